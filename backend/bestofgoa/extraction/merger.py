"""
Incremental merge of polled extraction payloads into accumulated UI state.

Resolution order per field, highest first:
  1. relational data loaded by the comprehensive reload (authoritative)
  2. mapped database columns on the poll payload
  3. raw Google Places JSON (`apify_output`) aliases, see `fields.py`
  4. raw Firecrawl JSON (`firecrawl_output`), social links only, and only
     while neither social link is known yet

A populated field is never overwritten by an absent or empty value.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Set

from .fields import get_path, is_empty
from .formatting import join_names
from .steps import StepStatus, initial_steps

if TYPE_CHECKING:
    from ..entities import EntityConfig

JOB_STATUSES = ("pending", "in_progress", "processing", "completed", "failed")
TERMINAL_STATUSES = ("completed", "failed")
MERGEABLE_STATUSES = ("in_progress", "processing", "completed")

SOCIAL_HOSTS = {
    "instagram": "instagram.com",
    "facebook": "facebook.com",
}


@dataclass
class ExtractionState:
    entity_key: str
    entity_id: Optional[str] = None
    status: str = "pending"
    current_step: Optional[str] = None
    progress_percentage: int = 0
    steps: List[StepStatus] = field(default_factory=list)
    record: Dict[str, Any] = field(default_factory=dict)
    relations: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    children: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    images: List[Dict[str, Any]] = field(default_factory=list)
    counts: Dict[str, int] = field(default_factory=dict)
    # Relation kinds / child kinds resolved by the comprehensive reload
    authoritative: Set[str] = field(default_factory=set)
    reloaded: bool = False
    finished: bool = False
    timed_out: bool = False
    error: Optional[str] = None

    @classmethod
    def fresh(cls, entity: "EntityConfig") -> "ExtractionState":
        return cls(entity_key=entity.key, steps=initial_steps(entity.steps))

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def relation_names(self, kind: str) -> str:
        return join_names(self.relations.get(kind))

    def step(self, name: str) -> Optional[StepStatus]:
        return next((s for s in self.steps if s.name == name), None)


def apply_job_progress(state: ExtractionState, payload: Dict[str, Any]) -> None:
    status = payload.get("status")
    if status in JOB_STATUSES:
        state.status = status
    state.current_step = payload.get("current_step") or state.current_step

    percentage = payload.get("progress_percentage")
    if isinstance(percentage, (int, float)) and not isinstance(percentage, bool):
        percentage = max(0, min(100, int(percentage)))
        # Never moves backwards while the job is observed
        state.progress_percentage = max(state.progress_percentage, percentage)


def merge_payload(state: ExtractionState, entity: "EntityConfig", payload: Dict[str, Any]) -> ExtractionState:
    """
    Merge one status payload (or its `extracted_data`) into `state`.

    Mutates and returns the state.
    """
    data = payload.get("extracted_data") or payload
    if not isinstance(data, dict):
        return state

    record = state.record
    for rule in entity.field_rules:
        value = rule.resolve(data)
        if is_empty(value):
            continue
        if rule.write_once and not is_empty(record.get(rule.target)):
            continue
        record[rule.target] = value

    if is_empty(record.get("id")) and state.entity_id:
        record["id"] = state.entity_id

    _merge_social_fallback(record, data.get("firecrawl_output"))
    _merge_relations(state, entity, data)
    _merge_children(state, data)
    _update_counts(state, data)
    return state


def _merge_social_fallback(record: Dict[str, Any], firecrawl_output: Any) -> None:
    if not isinstance(firecrawl_output, dict):
        return
    if not is_empty(record.get("instagram")) or not is_empty(record.get("facebook")):
        return

    results = firecrawl_output.get("results")
    if not isinstance(results, list):
        return

    for target, host in SOCIAL_HOSTS.items():
        url = next(
            (r["url"] for r in results if isinstance(r, dict) and isinstance(r.get("url"), str) and host in r["url"]),
            None,
        )
        if url and is_empty(record.get(target)):
            record[target] = url


def _merge_relations(state: ExtractionState, entity: "EntityConfig", data: Dict[str, Any]) -> None:
    # Mid-poll arrays are advisory: they fill in until the reload supplies the real ones
    for kind in entity.relations:
        if kind in state.authoritative:
            continue
        items = data.get(kind)
        if isinstance(items, list) and items:
            state.relations[kind] = [r for r in map(_relation_item, items) if r]


def _relation_item(item: Any) -> Optional[Dict[str, Any]]:
    if isinstance(item, dict) and item.get("name"):
        return {"id": item.get("id"), "name": item["name"], "slug": item.get("slug")}
    if isinstance(item, str) and item:
        return {"id": None, "name": item, "slug": None}
    return None


def _menu_item_from_dish(dish: Dict[str, Any]) -> Dict[str, Any]:
    price = dish.get("price")
    return {
        "id": dish.get("id"),
        "name": dish.get("name"),
        "description": dish.get("description"),
        "price": f"{price} {dish.get('currency') or 'INR'}" if price else None,
        "mentions": dish.get("mentions_count") or 0,
        "category": dish.get("category") or "main",
        "is_popular": bool(dish.get("is_popular")),
        "confidence_score": dish.get("confidence_score"),
        "source": dish.get("source") or "database",
    }


def _merge_children(state: ExtractionState, data: Dict[str, Any]) -> None:
    if "menu_items" not in state.authoritative:
        dishes = data.get("dishes")
        menu_data = data.get("menu_data")
        if isinstance(dishes, list) and dishes:
            state.children["menu_items"] = [_menu_item_from_dish(d) for d in dishes if isinstance(d, dict)]
        elif isinstance(menu_data, dict) and isinstance(menu_data.get("items"), list) and menu_data["items"]:
            state.children["menu_items"] = [
                {
                    "name": item.get("text") or item.get("name"),
                    "mentions": 0,
                    "category": "main",
                    "is_popular": False,
                    "source": item.get("source") or "firecrawl",
                }
                for item in menu_data["items"]
                if isinstance(item, dict)
            ]

    for kind in ("faqs", "room_types"):
        if kind in state.authoritative:
            continue
        items = data.get(kind)
        if isinstance(items, list) and items:
            state.children[kind] = [i for i in items if isinstance(i, dict)]


def _update_counts(state: ExtractionState, data: Dict[str, Any]) -> None:
    menu_items = state.children.get("menu_items") or []
    if menu_items:
        state.counts["dishes"] = len(menu_items)
    faqs = state.children.get("faqs") or []
    if faqs:
        state.counts["faqs"] = len(faqs)
    photos = state.record.get("photos") or []
    if photos:
        state.counts["images"] = len(photos)
    reviews = get_path(data, "google_review_count")
    if isinstance(reviews, int) and reviews:
        state.counts["reviews"] = reviews


def apply_comprehensive_reload(state: ExtractionState, entity: "EntityConfig", review: Dict[str, Any]) -> ExtractionState:
    """
    Replace incrementally merged state with the fully resolved record.

    Relations and child collections become authoritative, including empty
    ones. Scalar fields the resolved record leaves empty keep their merged value.
    """
    resolved = review.get("record") or {}
    for key, value in resolved.items():
        if key in entity.relations:
            continue
        if not is_empty(value) or key not in state.record:
            state.record[key] = value

    relations = review.get("relations") or {}
    for kind in entity.relations:
        items = relations.get(kind)
        if items is None:
            items = resolved.get(kind) or []
        state.relations[kind] = [r for r in map(_relation_item, items) if r]
        state.authoritative.add(kind)

    children = review.get("children") or {}
    for kind in entity.child_kinds:
        state.children[kind] = list(children.get(kind) or [])
        state.authoritative.add(kind)

    images = review.get("images")
    if isinstance(images, list):
        state.images = images
        state.counts["images"] = len(images)

    state.counts["dishes"] = len(state.children.get("menu_items") or [])
    state.counts["faqs"] = len(state.children.get("faqs") or [])
    review_count = review.get("review_count")
    if isinstance(review_count, int):
        state.counts["reviews"] = review_count

    state.reloaded = True
    return state
