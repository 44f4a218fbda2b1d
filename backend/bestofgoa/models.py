import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Table,
    Text,
    UniqueConstraint,
)
Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


business_tags = Table(
    "business_tags",
    Base.metadata,
    Column("business_id", String, ForeignKey("businesses.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", String, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class Business(Base):
    """One extracted place of any entity type (restaurant, hotel, ...)."""
    __tablename__ = "businesses"
    __table_args__ = (UniqueConstraint("entity_type", "slug", name="uq_business_entity_slug"),)

    id = Column(String, primary_key=True, default=_uuid)
    entity_type = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, nullable=False, index=True)
    google_place_id = Column(String, nullable=True, index=True)

    address = Column(String, nullable=True)
    area = Column(String, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    phone = Column(String, nullable=True)
    email = Column(String, nullable=True)
    website = Column(String, nullable=True)
    instagram = Column(String, nullable=True)
    facebook = Column(String, nullable=True)
    twitter = Column(String, nullable=True)

    description = Column(Text, nullable=True)
    short_description = Column(Text, nullable=True)
    meta_title = Column(String, nullable=True)
    meta_description = Column(Text, nullable=True)
    meta_keywords = Column(JSON, nullable=True)

    google_rating = Column(Float, nullable=True)
    google_review_count = Column(Integer, nullable=True)
    bok_score = Column(Float, nullable=True)

    active = Column(Boolean, default=False, nullable=False)
    verified = Column(Boolean, default=False, nullable=False)
    featured = Column(Boolean, default=False, nullable=False)

    extraction_status = Column(String, default="pending", nullable=False)
    current_step = Column(String, nullable=True)
    # {step_name: {status, timestamp, error?, images_processed?, ...}}
    extraction_progress = Column(JSON, nullable=True)
    attributes = Column(JSON, nullable=True)
    apify_output = Column(JSON, nullable=True)
    firecrawl_output = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    tags = relationship("Tag", secondary=business_tags, lazy="selectin")
    images = relationship(
        "BusinessImage",
        back_populates="business",
        cascade="all, delete-orphan",
        order_by="BusinessImage.display_order",
        lazy="selectin",
    )
    items = relationship(
        "BusinessItem",
        back_populates="business",
        cascade="all, delete-orphan",
        order_by="BusinessItem.display_order",
        lazy="selectin",
    )


class Tag(Base):
    """Relational attribute value: a cuisine, an amenity, a curriculum, ..."""
    __tablename__ = "tags"
    __table_args__ = (UniqueConstraint("kind", "slug", name="uq_tag_kind_slug"),)

    id = Column(String, primary_key=True, default=_uuid)
    kind = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, nullable=False)


class BusinessImage(Base):
    __tablename__ = "business_images"

    id = Column(String, primary_key=True, default=_uuid)
    business_id = Column(String, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    url = Column(String, nullable=False)
    storage_key = Column(String, nullable=True)
    alt_text = Column(String, nullable=True)
    status = Column(String, default="pending", nullable=False)
    is_hero = Column(Boolean, default=False, nullable=False)
    display_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=_utcnow)

    business = relationship("Business", back_populates="images")


class BusinessItem(Base):
    """Child collection entry: menu item, room type or FAQ."""
    __tablename__ = "business_items"

    id = Column(String, primary_key=True, default=_uuid)
    business_id = Column(String, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    kind = Column(String, nullable=False, index=True)
    display_order = Column(Integer, default=0, nullable=False)
    data = Column(JSON, nullable=False, default=dict)

    business = relationship("Business", back_populates="items")


class Submission(Base):
    __tablename__ = "submissions"

    id = Column(String, primary_key=True, default=_uuid)
    status = Column(String, default="pending", nullable=False, index=True)
    category = Column(String, nullable=False)
    business_name = Column(String, nullable=False)
    website = Column(String, nullable=True)
    google_maps_url = Column(String, nullable=True)
    address = Column(String, nullable=True)
    area = Column(String, nullable=True)
    governorate = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    email = Column(String, nullable=True)
    instagram = Column(String, nullable=True)
    submitter_name = Column(String, nullable=False)
    submitter_email = Column(String, nullable=False)
    submitter_phone = Column(String, nullable=True)
    relationship = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    why_best = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    reviewed_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)
