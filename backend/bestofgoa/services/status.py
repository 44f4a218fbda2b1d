from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..entities import EntityConfig
from ..extraction.steps import IMAGE_STEP

IMAGE_COUNTERS = ("images_processed", "images_total", "current_cost")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def initial_progress(entity: EntityConfig) -> Dict[str, Dict[str, Any]]:
    """Progress map of a freshly created stub: the stub itself is the first step."""
    first = entity.steps[0].name
    return {first: {"status": "completed", "timestamp": _now_iso()}}


def build_steps(entity: EntityConfig, progress: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Turn the stored per-step progress map into the reported step list, one
    entry per template step. Steps the runner never touched are `pending`.
    """
    progress = progress or {}
    steps = []
    for template in entity.steps:
        entry = progress.get(template.name) or {}
        status = entry.get("status") or "pending"
        step = {
            "name": template.name,
            "status": status,
            "started_at": entry.get("timestamp"),
            "completed_at": entry.get("timestamp") if status == "completed" else None,
            "error": entry.get("error"),
        }
        if template.name == IMAGE_STEP:
            for counter in IMAGE_COUNTERS:
                if entry.get(counter) is not None:
                    step[counter] = entry[counter]
        steps.append(step)
    return steps


def progress_percentage(entity: EntityConfig, steps: List[Dict[str, Any]]) -> int:
    completed = sum(1 for s in steps if s.get("status") == "completed")
    return round(completed / len(entity.steps) * 100)


def record_step(
    progress: Optional[Dict[str, Any]],
    step: str,
    status: str,
    *,
    error: Optional[str] = None,
    counters: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Return a new progress map with `step` updated. A new dict is returned so
    SQLAlchemy sees the JSON column change.
    """
    updated = {k: dict(v) for k, v in (progress or {}).items() if isinstance(v, dict)}
    entry = updated.get(step, {})
    entry["status"] = status
    entry["timestamp"] = _now_iso()
    if error:
        entry["error"] = error
    else:
        entry.pop("error", None)
    for key, value in (counters or {}).items():
        if value is not None:
            entry[key] = value
    updated[step] = entry
    return updated
