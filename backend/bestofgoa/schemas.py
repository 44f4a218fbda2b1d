"""
Pydantic schemas for request/response validation
"""
from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List, Dict, Any, Literal
from datetime import datetime
from enum import Enum

from .entities import ENTITIES

# ===== Common Schemas =====

class ApiError(BaseModel):
    error: str
    message: str
    status_code: int

class HealthResponse(BaseModel):
    status: str

# ===== Extraction Schemas =====

class StartExtractionRequest(BaseModel):
    place_id: str = Field(min_length=1)
    search_query: Optional[str] = None
    place_data: Dict[str, Any] = Field(default_factory=dict)
    override: bool = False

class CheckDuplicateRequest(BaseModel):
    # Presence is checked by the route so a missing field is a 400, not a 422
    placeId: Optional[str] = None
    name: Optional[str] = None
    area: Optional[str] = None

class ReportedStep(BaseModel):
    name: str
    status: str
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    error: Optional[str] = None
    images_processed: Optional[int] = None
    images_total: Optional[int] = None
    current_cost: Optional[float] = None

class ExtractionStatusResponse(BaseModel):
    entity_id: str
    entity_type: str
    status: str
    current_step: Optional[str] = None
    progress_percentage: int
    steps: List[ReportedStep]
    extracted_data: Optional[Dict[str, Any]] = None

class ExtractionProgressUpdate(BaseModel):
    """Callback body posted by the extraction runner after each step."""
    step: str
    status: Literal["pending", "running", "completed", "failed"]
    error: Optional[str] = None
    images_processed: Optional[int] = None
    images_total: Optional[int] = None
    current_cost: Optional[float] = None
    # Overall job status; only the runner decides when the job is over
    job_status: Optional[Literal["processing", "completed", "failed"]] = None
    extracted: Dict[str, Any] = Field(default_factory=dict)
    relations: Dict[str, List[str]] = Field(default_factory=dict)
    children: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)
    images: List[Dict[str, Any]] = Field(default_factory=list)
    apify_output: Optional[Dict[str, Any]] = None
    firecrawl_output: Optional[Dict[str, Any]] = None

# ===== Image Schemas =====

class ImageActionRequest(BaseModel):
    imageId: str = Field(min_length=1)
    action: Literal["approve", "reject", "set_hero"]

class ImageOut(BaseModel):
    id: str
    url: str
    storage_key: Optional[str] = None
    alt_text: Optional[str] = None
    status: str
    is_hero: bool
    display_order: int

    class Config:
        from_attributes = True

# ===== Submission Schemas =====

class SubmissionStatus(str, Enum):
    PENDING = "pending"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    REJECTED = "rejected"

class SubmissionCreate(BaseModel):
    """Public application form. Accepts the form's camelCase names or snake_case."""
    business_name: str = Field(alias="businessName")
    category: str
    website: Optional[str] = None
    google_maps_url: Optional[str] = Field(None, alias="googleMapsUrl")
    address: Optional[str] = None
    area: Optional[str] = None
    governorate: str
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    instagram: Optional[str] = None
    submitter_name: str = Field(alias="submitterName")
    submitter_email: EmailStr = Field(alias="submitterEmail")
    submitter_phone: Optional[str] = Field(None, alias="submitterPhone")
    relationship: str
    description: Optional[str] = None
    why_best: Optional[str] = Field(None, alias="whyBest")

    class Config:
        populate_by_name = True

    @field_validator("business_name", "governorate", "submitter_name", "relationship")
    @classmethod
    def _required_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("category")
    @classmethod
    def _known_category(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ENTITIES:
            raise ValueError(f"must be one of: {', '.join(ENTITIES)}")
        return v

    @field_validator("email", "website", "google_maps_url", "instagram", "phone", "submitter_phone", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

class SubmissionUpdate(BaseModel):
    # Validated by the route so an unknown status is a 400
    status: Optional[str] = None
    admin_notes: Optional[str] = None

class SubmissionOut(BaseModel):
    id: str
    status: str
    category: str
    business_name: str
    website: Optional[str] = None
    google_maps_url: Optional[str] = None
    address: Optional[str] = None
    area: Optional[str] = None
    governorate: str
    phone: Optional[str] = None
    email: Optional[str] = None
    instagram: Optional[str] = None
    submitter_name: str
    submitter_email: str
    submitter_phone: Optional[str] = None
    relationship: str
    description: Optional[str] = None
    why_best: Optional[str] = None
    admin_notes: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class SubmissionResponse(BaseModel):
    success: bool = True
    submission: SubmissionOut

class SubmissionListResponse(BaseModel):
    submissions: List[SubmissionOut]
