"""
Entity-type registry.

Everything that differs between restaurants, hotels, malls, attractions,
schools and fitness places lives in one `EntityConfig` row: the step template
shown while an extraction runs, the field-resolution table used to merge poll
payloads, the relational attribute kinds, the child collections of the review
payload and the public URL prefix. Routes and the extraction client are
generic over these rows.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Tuple, Union

from .exceptions import UnknownEntityTypeError
from .extraction.fields import FieldRule, HOTEL_RULES, RESTAURANT_RULES, build_rules
from .extraction.steps import StepTemplate


def _steps(*pairs: Tuple[str, str]) -> Tuple[StepTemplate, ...]:
    return tuple(StepTemplate(name, display_name) for name, display_name in pairs)


RESTAURANT_STEPS = _steps(
    ("initial_creation", "Initial Creation"),
    ("apify_fetch", "Google Places Data"),
    ("firecrawl_general", "General Info Search"),
    ("firecrawl_menu", "Menu Search"),
    ("firecrawl_website", "Website Scraping"),
    ("firecrawl_social_media_search", "Social Media Search"),
    ("apify_reviews", "Reviews Extraction"),
    ("firecrawl_tripadvisor", "TripAdvisor Search"),
    ("firecrawl_opentable", "OpenTable Search"),
    ("process_images", "Processing Images"),
    ("ai_sentiment", "AI Sentiment Analysis"),
    ("ai_enhancement", "AI Content Enhancement"),
    ("data_mapping", "Database Mapping"),
)

HOTEL_STEPS = _steps(
    ("initial_creation", "Initial Creation"),
    ("apify_fetch", "Google Places Data"),
    ("firecrawl_general", "General Info Search"),
    ("firecrawl_rooms", "Room Types & Amenities"),
    ("firecrawl_website", "Website Scraping"),
    ("firecrawl_social_media_search", "Social Media Search"),
    ("apify_reviews", "Reviews Extraction"),
    ("firecrawl_tripadvisor", "TripAdvisor Search"),
    ("firecrawl_booking_com", "Booking.com Search"),
    ("process_images", "Processing Images"),
    ("ai_sentiment", "AI Sentiment Analysis"),
    ("ai_enhancement", "AI Content Enhancement"),
    ("data_mapping", "Database Mapping"),
)

# Attractions, malls, schools and fitness places share the shorter pipeline
PLACE_STEPS = _steps(
    ("initial_creation", "Initial Creation"),
    ("apify_fetch", "Google Places Data"),
    ("firecrawl_website", "Website Scraping"),
    ("social_media_search", "Social Media Search"),
    ("apify_reviews", "Reviews Extraction"),
    ("process_images", "Processing Images"),
    ("ai_enhancement", "AI Content Enhancement"),
    ("category_matching", "Category Matching"),
    ("bok_score_calculation", "BOK Score Calculation"),
)


@dataclass(frozen=True)
class EntityConfig:
    key: str
    route: str
    label: str
    steps: Tuple[StepTemplate, ...]
    relations: Tuple[str, ...]
    child_kinds: Tuple[str, ...]
    public_path: str
    attribute_fields: Tuple[str, ...] = ()
    extra_rules: Tuple[FieldRule, ...] = ()
    field_rules: Tuple[FieldRule, ...] = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "field_rules", build_rules(self.extra_rules, self.attribute_fields))

    @property
    def step_names(self) -> Tuple[str, ...]:
        return tuple(s.name for s in self.steps)

    def public_url(self, slug: str) -> str:
        return f"{self.public_path}/{slug}"

    def review_path(self, entity_id: str) -> str:
        return f"/admin/{self.route}/{entity_id}/review"


RESTAURANT = EntityConfig(
    key="restaurant",
    route="restaurants",
    label="Restaurant",
    steps=RESTAURANT_STEPS,
    relations=("cuisines", "categories", "features", "meals", "good_for"),
    child_kinds=("menu_items", "faqs"),
    public_path="/places-to-eat/restaurants",
    attribute_fields=(
        "price_level", "currency", "average_meal_price", "menu_url", "menu_source",
        "dress_code", "reservations_policy", "parking_info", "payment_methods",
        "opentable_rating", "michelin_stars", "awards", "mall_name", "mall_floor",
    ),
    extra_rules=RESTAURANT_RULES,
)

HOTEL = EntityConfig(
    key="hotel",
    route="hotels",
    label="Hotel",
    steps=HOTEL_STEPS,
    relations=("amenities", "categories"),
    child_kinds=("room_types", "faqs"),
    public_path="/places-to-stay/hotels",
    attribute_fields=(
        "star_rating", "hotel_type", "check_in_time", "check_out_time",
        "booking_com_rating", "price_range", "total_rooms",
    ),
    extra_rules=HOTEL_RULES,
)

MALL = EntityConfig(
    key="mall",
    route="malls",
    label="Mall",
    steps=PLACE_STEPS,
    relations=("categories", "amenities"),
    child_kinds=("faqs",),
    public_path="/places-to-shop/malls",
    attribute_fields=("total_stores", "total_floors", "parking_spaces", "anchor_stores"),
)

ATTRACTION = EntityConfig(
    key="attraction",
    route="attractions",
    label="Attraction",
    steps=PLACE_STEPS,
    relations=("categories", "amenities"),
    child_kinds=("faqs",),
    public_path="/places-to-visit/attractions",
    attribute_fields=("attraction_type", "admission_fee", "typical_visit_duration", "age_suitability"),
)

SCHOOL = EntityConfig(
    key="school",
    route="schools",
    label="School",
    steps=PLACE_STEPS,
    relations=("curriculum", "facilities", "grade_levels"),
    child_kinds=("faqs",),
    public_path="/places-to-learn/schools",
    attribute_fields=("school_type", "gender_policy", "tuition_range", "curriculum_notes", "established_year"),
)

FITNESS = EntityConfig(
    key="fitness",
    route="fitness",
    label="Fitness Place",
    steps=PLACE_STEPS,
    relations=("fitness_types", "amenities"),
    child_kinds=("faqs",),
    public_path="/things-to-do/fitness",
    attribute_fields=("gender_policy", "membership_price", "opening_hours_notes"),
)

ENTITIES: Dict[str, EntityConfig] = {
    e.key: e for e in (RESTAURANT, HOTEL, MALL, ATTRACTION, SCHOOL, FITNESS)
}

IMMUTABLE_FIELDS = ("id", "slug", "entity_type", "created_at", "updated_at")

# Publish state and job state have their own endpoints; neither side lets a review edit touch them
NON_EDITABLE_FIELDS = IMMUTABLE_FIELDS + (
    "active", "extraction_status", "current_step", "extraction_progress",
    "apify_output", "firecrawl_output",
)

_BY_ROUTE: Dict[str, EntityConfig] = {e.route: e for e in ENTITIES.values()}


def get_entity(name: Union[str, EntityConfig]) -> EntityConfig:
    """Look up an entity type by key ("hotel") or route segment ("hotels")."""
    if isinstance(name, EntityConfig):
        return name
    config = ENTITIES.get(name) or _BY_ROUTE.get(name)
    if config is None:
        raise UnknownEntityTypeError(str(name))
    return config
