"""
Pydantic schemas for data validation and serialization.
Validates every payload before a statement reaches the session.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, conint, constr, field_validator

from .models import ParticipationStatus, StudyStatus, UserRole

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# Base schemas
class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        use_enum_values=True,
        validate_assignment=True,
    )


class UpdateSchema(BaseSchema):
    """Partial update: only explicitly supplied fields are applied."""

    model_config = ConfigDict(from_attributes=True, use_enum_values=True, extra="forbid")

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class EmailNormalizedSchema(BaseSchema):
    """Stores e-mail addresses trimmed and lower-cased, so lookups and uniqueness ignore case."""

    @field_validator("email", "participant_email", mode="before", check_fields=False)
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


# User schemas
class UserCreate(EmailNormalizedSchema):
    """Profile creation at first login."""

    auth_id: UUID | None = None
    email: constr(pattern=EMAIL_PATTERN, max_length=320)
    name: str | None = None
    role: UserRole


class UserUpdate(UpdateSchema):
    """Profile update. Role, e-mail and identity binding are not updatable."""

    name: str | None = None


class UserResponse(BaseSchema):
    id: UUID
    auth_id: UUID
    email: str
    name: str | None = None
    role: UserRole
    created_at: datetime | None = None


# Study schemas
class StudyBase(BaseSchema):
    """Fields shared by study creation and responses."""

    title: str = ""
    description: str | None = None
    category: str | None = None
    compensation: Decimal = Decimal(0)
    duration: conint(ge=0) | None = None
    location: str = "remote"
    participants_needed: conint(ge=0) | None = None
    deadline: str | None = None
    requirements: list[Any] = Field(default_factory=list)
    screening_questions: list[Any] = Field(default_factory=list)
    auto_approve: bool = False
    payment_schedule: str | None = None
    status: StudyStatus = StudyStatus.DRAFT


class StudyCreate(StudyBase):
    """Study creation; researcher_id defaults to the acting identity."""

    researcher_id: UUID | None = None


class StudyUpdate(UpdateSchema):
    researcher_id: UUID | None = None
    title: str | None = None
    description: str | None = None
    category: str | None = None
    compensation: Decimal | None = None
    duration: conint(ge=0) | None = None
    location: str | None = None
    participants_needed: conint(ge=0) | None = None
    deadline: str | None = None
    requirements: list[Any] | None = None
    screening_questions: list[Any] | None = None
    auto_approve: bool | None = None
    payment_schedule: str | None = None
    status: StudyStatus | None = None


class StudyResponse(StudyBase):
    id: UUID
    researcher_id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


# Participation schemas
class ParticipationCreate(BaseSchema):
    """Self-enrollment request. Status always starts as pending."""

    study_id: UUID
    user_id: UUID


class ParticipationStatusUpdate(UpdateSchema):
    status: ParticipationStatus
    payout_amount: Decimal | None = None


class ParticipationResponse(BaseSchema):
    id: UUID
    study_id: UUID | None = None
    user_id: UUID | None = None
    status: ParticipationStatus
    payout_amount: Decimal | None = None
    created_at: datetime | None = None


# Form schemas
class FormCreate(BaseSchema):
    study_id: UUID
    title: constr(min_length=1)
    description: str | None = None
    questions: list[dict[str, Any]] = Field(default_factory=list)


class FormUpdate(UpdateSchema):
    study_id: UUID | None = None
    title: constr(min_length=1) | None = None
    description: str | None = None
    questions: list[dict[str, Any]] | None = None


class FormResponseSchema(BaseSchema):
    id: UUID
    study_id: UUID | None = None
    title: str
    description: str | None = None
    questions: list[dict[str, Any]] = Field(default_factory=list)
    created_at: datetime | None = None


# Response schemas (authenticated participant path)
class ResponseCreate(BaseSchema):
    form_id: UUID
    participant_id: UUID
    response_data: dict[str, Any] = Field(default_factory=dict)


class ResponseResponse(BaseSchema):
    id: UUID
    form_id: UUID | None = None
    participant_id: UUID | None = None
    response_data: dict[str, Any]
    created_at: datetime | None = None


# Public submission schemas (anonymous path)
class PublicSubmissionCreate(EmailNormalizedSchema):
    study_id: UUID
    participant_email: constr(pattern=EMAIL_PATTERN, max_length=320)
    participant_name: str | None = None
    response_data: dict[str, Any] = Field(default_factory=dict)
    ip_address: str | None = None


class PublicSubmissionUpdate(UpdateSchema):
    participant_email: str | None = None
    participant_name: str | None = None
    response_data: dict[str, Any] | None = None


class PublicSubmissionResponse(BaseSchema):
    id: UUID
    study_id: UUID
    participant_email: str
    participant_name: str | None = None
    response_data: dict[str, Any]
    submitted_at: datetime | None = None
    ip_address: str | None = None


# Data upload schemas
class DataUploadCreate(BaseSchema):
    """Upload metadata; researcher_id defaults to the acting identity."""

    study_id: UUID
    researcher_id: UUID | None = None
    file_name: constr(min_length=1)
    file_path: constr(min_length=1)
    file_size: conint(ge=0)
    row_count: conint(ge=0) | None = None
    description: str | None = None


class DataUploadUpdate(UpdateSchema):
    researcher_id: UUID | None = None
    file_name: constr(min_length=1) | None = None
    file_path: constr(min_length=1) | None = None
    file_size: conint(ge=0) | None = None
    row_count: conint(ge=0) | None = None
    description: str | None = None


class DataUploadResponse(BaseSchema):
    id: UUID
    study_id: UUID
    researcher_id: UUID
    file_name: str
    file_path: str
    file_size: int
    upload_date: datetime | None = None
    row_count: int | None = None
    description: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
