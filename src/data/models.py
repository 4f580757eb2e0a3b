"""
Database models for the study platform.
Defines all SQLAlchemy models for identities, profiles, studies, participation, forms,
responses and data uploads.
"""

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, relationship, validates
from sqlalchemy.types import TypeDecorator

Base = declarative_base()


# Database-agnostic JSON column type
class JSONColumn(TypeDecorator):
    """JSON column that uses JSONB for PostgreSQL and JSON for other databases."""

    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(JSONB())
        else:
            return dialect.type_descriptor(JSON())


class UserRole(str, Enum):
    """User role enumeration."""

    RESEARCHER = "researcher"
    PARTICIPANT = "participant"


class StudyStatus(str, Enum):
    """Study lifecycle status."""

    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"


class ParticipationStatus(str, Enum):
    """Participation approval status."""

    PENDING = "pending"
    APPROVED = "approved"
    COMPLETED = "completed"
    REJECTED = "rejected"


def _in_check(column: str, enum_cls: type[Enum]) -> str:
    values = ", ".join(f"'{member.value}'" for member in enum_cls)
    return f"{column} IN ({values})"


def _validate_enum(enum_cls: type[Enum], value, label: str):
    raw = value.value if isinstance(value, Enum) else value
    if raw not in [member.value for member in enum_cls]:
        raise ValueError(f"Invalid {label}: {raw}")
    return raw


class AuthUser(Base):
    """Identity provider account; the uid every policy compares against."""

    __tablename__ = "auth_users"

    id = Column(Uuid, primary_key=True, default=uuid4)
    email = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=func.now())

    profile = relationship(
        "User",
        back_populates="auth_user",
        uselist=False,
        cascade="all",
        passive_deletes=True,
    )
    studies = relationship(
        "Study", back_populates="researcher", cascade="all", passive_deletes=True
    )

    def __repr__(self):
        return f"<AuthUser(id={self.id}, email={self.email})>"


class User(Base):
    """User profile bound to exactly one external identity."""

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid4)
    auth_id = Column(
        Uuid, ForeignKey("auth_users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    email = Column(Text, nullable=False, unique=True)
    name = Column(Text, nullable=True)
    role = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=func.now())

    # Relationships
    auth_user = relationship("AuthUser", back_populates="profile")
    participations = relationship(
        "Participation", back_populates="user", cascade="all", passive_deletes=True
    )

    __table_args__ = (
        CheckConstraint(_in_check("role", UserRole), name="users_role_check"),
        Index("users_auth_id_idx", "auth_id"),
        Index("users_email_idx", "email"),
    )

    @validates("role")
    def validate_role(self, key, role):
        """Validate user role."""
        return _validate_enum(UserRole, role, "role")

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"


class Study(Base):
    """Unit of research work owned by a researcher."""

    __tablename__ = "studies"

    id = Column(Uuid, primary_key=True, default=uuid4)
    researcher_id = Column(Uuid, ForeignKey("auth_users.id", ondelete="CASCADE"))
    title = Column(Text, nullable=False, default="")
    description = Column(Text)
    category = Column(Text)
    compensation = Column(Numeric, default=0)
    duration = Column(Integer)
    location = Column(Text, default="remote")
    participants_needed = Column(Integer)
    deadline = Column(Text)
    requirements = Column(JSONColumn, default=list)
    screening_questions = Column(JSONColumn, default=list)
    auto_approve = Column(Boolean, default=False)
    payment_schedule = Column(Text)
    status = Column(Text, default=StudyStatus.DRAFT.value)
    created_at = Column(DateTime(timezone=True), default=func.now())
    updated_at = Column(DateTime(timezone=True), default=func.now(), onupdate=func.now())

    # Relationships
    researcher = relationship("AuthUser", back_populates="studies")
    forms = relationship(
        "Form", back_populates="study", cascade="all", passive_deletes=True
    )
    participations = relationship(
        "Participation", back_populates="study", cascade="all", passive_deletes=True
    )
    data_uploads = relationship(
        "StudyDataUpload", back_populates="study", cascade="all", passive_deletes=True
    )
    form_responses = relationship(
        "FormResponse", back_populates="study", cascade="all", passive_deletes=True
    )

    __table_args__ = (
        CheckConstraint(_in_check("status", StudyStatus), name="studies_status_check"),
        Index("studies_researcher_id_idx", "researcher_id"),
        Index("studies_status_idx", "status"),
        Index("studies_created_at_idx", "created_at"),
    )

    @validates("status")
    def validate_status(self, key, status):
        """Validate study status."""
        return _validate_enum(StudyStatus, status, "study status")

    def __repr__(self):
        return f"<Study(id={self.id}, title={self.title}, status={self.status})>"


class Participation(Base):
    """A user's enrollment in a study."""

    __tablename__ = "participants"

    id = Column(Uuid, primary_key=True, default=uuid4)
    study_id = Column(Uuid, ForeignKey("studies.id", ondelete="CASCADE"))
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"))
    status = Column(Text, default=ParticipationStatus.PENDING.value)
    payout_amount = Column(Numeric)
    created_at = Column(DateTime(timezone=True), default=func.now())

    # Relationships
    study = relationship("Study", back_populates="participations")
    user = relationship("User", back_populates="participations")
    responses = relationship(
        "Response", back_populates="participant", cascade="all", passive_deletes=True
    )

    __table_args__ = (
        CheckConstraint(_in_check("status", ParticipationStatus), name="participants_status_check"),
        Index("participants_study_id_idx", "study_id"),
        Index("participants_user_id_idx", "user_id"),
    )

    @validates("status")
    def validate_status(self, key, status):
        """Validate participation status."""
        return _validate_enum(ParticipationStatus, status, "participation status")

    def __repr__(self):
        return f"<Participation(id={self.id}, study_id={self.study_id}, status={self.status})>"


class Form(Base):
    """Data collection form attached to a study."""

    __tablename__ = "forms"

    id = Column(Uuid, primary_key=True, default=uuid4)
    study_id = Column(Uuid, ForeignKey("studies.id", ondelete="CASCADE"))
    title = Column(Text, nullable=False)
    description = Column(Text)
    questions = Column(JSONColumn, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=func.now())

    # Relationships
    study = relationship("Study", back_populates="forms")
    responses = relationship(
        "Response", back_populates="form", cascade="all", passive_deletes=True
    )

    __table_args__ = (Index("forms_study_id_idx", "study_id"),)

    def __repr__(self):
        return f"<Form(id={self.id}, study_id={self.study_id}, title={self.title})>"


class Response(Base):
    """Answers submitted by an enrolled participant."""

    __tablename__ = "responses"

    id = Column(Uuid, primary_key=True, default=uuid4)
    form_id = Column(Uuid, ForeignKey("forms.id", ondelete="CASCADE"))
    participant_id = Column(Uuid, ForeignKey("participants.id", ondelete="CASCADE"))
    response_data = Column(JSONColumn, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=func.now())

    # Relationships
    form = relationship("Form", back_populates="responses")
    participant = relationship("Participation", back_populates="responses")

    __table_args__ = (
        Index("responses_form_id_idx", "form_id"),
        Index("responses_participant_id_idx", "participant_id"),
    )

    def __repr__(self):
        return f"<Response(id={self.id}, form_id={self.form_id}, participant_id={self.participant_id})>"


class FormResponse(Base):
    """Public form submission, identified by e-mail rather than by participation."""

    __tablename__ = "form_responses"

    id = Column(Uuid, primary_key=True, default=uuid4)
    study_id = Column(Uuid, ForeignKey("studies.id", ondelete="CASCADE"), nullable=False)
    participant_email = Column(Text, nullable=False)
    participant_name = Column(Text)
    response_data = Column(JSONColumn, nullable=False, default=dict)
    submitted_at = Column(DateTime(timezone=True), default=func.now())
    ip_address = Column(Text)
    created_at = Column(DateTime(timezone=True), default=func.now())
    updated_at = Column(DateTime(timezone=True), default=func.now(), onupdate=func.now())

    # Relationships
    study = relationship("Study", back_populates="form_responses")

    __table_args__ = (
        Index("form_responses_study_id_idx", "study_id"),
        Index("form_responses_submitted_at_idx", "submitted_at"),
        Index("form_responses_participant_email_idx", "participant_email"),
    )

    def __repr__(self):
        return f"<FormResponse(id={self.id}, study_id={self.study_id}, email={self.participant_email})>"


class StudyDataUpload(Base):
    """Metadata for a data file stored in the study-data bucket."""

    __tablename__ = "study_data_uploads"

    id = Column(Uuid, primary_key=True, default=uuid4)
    study_id = Column(Uuid, ForeignKey("studies.id", ondelete="CASCADE"), nullable=False)
    researcher_id = Column(Uuid, ForeignKey("auth_users.id"), nullable=False)
    file_name = Column(Text, nullable=False)
    file_path = Column(Text, nullable=False)
    file_size = Column(BigInteger, nullable=False)
    upload_date = Column(DateTime(timezone=True), default=func.now())
    row_count = Column(Integer)
    description = Column(Text)
    created_at = Column(DateTime(timezone=True), default=func.now())
    updated_at = Column(DateTime(timezone=True), default=func.now(), onupdate=func.now())

    # Relationships
    study = relationship("Study", back_populates="data_uploads")

    __table_args__ = (
        Index("study_data_uploads_study_id_idx", "study_id"),
        Index("study_data_uploads_researcher_id_idx", "researcher_id"),
    )

    def __repr__(self):
        return f"<StudyDataUpload(id={self.id}, study_id={self.study_id}, file={self.file_name})>"
