from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Literal, Optional, Sequence

from pydantic import BaseModel

StepState = Literal["pending", "running", "completed", "failed"]

IMAGE_STEP = "process_images"

_STEP_STATES = {"pending", "running", "completed", "failed"}

# Runner-side spellings seen in job_progress maps
_STEP_STATE_ALIASES = {
    "in_progress": "running",
    "processing": "running",
    "started": "running",
    "done": "completed",
    "success": "completed",
    "error": "failed",
}


@dataclass(frozen=True)
class StepTemplate:
    name: str
    display_name: str


class StepProgress(BaseModel):
    """Sub-progress, only reported by the image-processing step."""

    current: int = 0
    total: int = 10
    cost: float = 0


class StepStatus(BaseModel):
    name: str
    display_name: str
    status: StepState = "pending"
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    error: Optional[str] = None
    progress: Optional[StepProgress] = None


def normalize_step_state(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip().lower()
    if value in _STEP_STATES:
        return value
    return _STEP_STATE_ALIASES.get(value)


def initial_step(template: StepTemplate) -> StepStatus:
    progress = StepProgress() if template.name == IMAGE_STEP else None
    return StepStatus(name=template.name, display_name=template.display_name, progress=progress)


def initial_steps(template: Sequence[StepTemplate]) -> List[StepStatus]:
    return [initial_step(t) for t in template]


def _apply_record(template: StepTemplate, prior: StepStatus, record: Dict[str, Any]) -> StepStatus:
    status = normalize_step_state(record.get("status")) or prior.status
    update: Dict[str, Any] = {
        "display_name": template.display_name,
        "status": status,
        "started_at": record.get("started_at"),
        "completed_at": record.get("completed_at"),
        "error": record.get("error") if status == "failed" else None,
    }
    if template.name == IMAGE_STEP:
        update["progress"] = StepProgress(
            current=record.get("images_processed") or 0,
            total=record.get("images_total") or 10,
            cost=record.get("current_cost") or 0,
        )
    return prior.model_copy(update=update)


def project_steps(
    template: Sequence[StepTemplate],
    previous: Optional[Iterable[StepStatus]],
    reported: Optional[Iterable[Any]],
) -> List[StepStatus]:
    """
    Project one poll's step records onto the fixed template.

    Every templated step appears exactly once, in template order. A step the
    poll does not mention keeps its previous state, so a completed step never
    goes back to pending. Labels always come from the template; names the
    template does not know are dropped.
    """
    prior_by_name = {s.name: s for s in previous or []}

    reported_by_name: Dict[str, Dict[str, Any]] = {}
    for record in reported or []:
        if isinstance(record, dict) and isinstance(record.get("name"), str):
            reported_by_name[record["name"]] = record

    projected: List[StepStatus] = []
    for t in template:
        prior = prior_by_name.get(t.name) or initial_step(t)
        record = reported_by_name.get(t.name)
        if record is None:
            projected.append(prior.model_copy(update={"display_name": t.display_name}))
            continue
        projected.append(_apply_record(t, prior, record))
    return projected


def first_failed_error(steps: Iterable[StepStatus]) -> Optional[str]:
    for step in steps:
        if step.status == "failed":
            return step.error or f"{step.display_name} failed"
    return None
