"""
Repository classes for data access layer.
Implements the repository pattern for all study platform entities. Every repository is
bound to one session and one acting identity; reads are narrowed and writes are guarded
by the row policies in src.security.policies.
"""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy import desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config.config import config
from src.exceptions import ConstraintViolationError, InvalidInputError
from src.security.identity import Identity
from src.security.policies import Command, PolicyEnforcer

from .models import (
    AuthUser,
    Form,
    FormResponse,
    Participation,
    ParticipationStatus,
    Response,
    Study,
    StudyDataUpload,
    StudyStatus,
    User,
)
from .schemas import (
    DataUploadCreate,
    DataUploadUpdate,
    FormCreate,
    FormUpdate,
    ParticipationCreate,
    ParticipationStatusUpdate,
    PublicSubmissionCreate,
    PublicSubmissionUpdate,
    ResponseCreate,
    StudyCreate,
    StudyUpdate,
    UserCreate,
    UserUpdate,
)

logger = logging.getLogger(__name__)


class BaseRepository:
    """Base repository with policy-scoped CRUD operations."""

    def __init__(self, session: Session, identity: Identity, model_class):
        self.session = session
        self.identity = identity
        self.model_class = model_class
        self.policies = PolicyEnforcer(session, identity)

    @property
    def table(self) -> str:
        return self.model_class.__tablename__

    def _visible(self):
        return self.policies.select(self.model_class)

    def get_by_id(self, id: UUID) -> Any | None:
        """Get entity by ID; None when it does not exist or is not visible."""
        statement = self._visible().where(self.model_class.id == id)
        return self.session.scalars(statement).first()

    def get_all(self, *criteria, limit: int | None = None, offset: int | None = None) -> list[Any]:
        """Get all visible entities, newest first, with optional pagination."""
        statement = self._visible().where(*criteria).order_by(desc(self.model_class.created_at))
        if offset is not None:
            statement = statement.offset(offset)
        if limit is not None:
            statement = statement.limit(limit)
        return list(self.session.scalars(statement))

    def _flush(self) -> None:
        try:
            self.session.flush()
        except IntegrityError as e:
            logger.error(f"Constraint violation on {self.table}: {e.orig}")
            raise ConstraintViolationError(self.table, str(e.orig)) from e

    def _build(self, values: dict[str, Any]):
        try:
            return self.model_class(**values)
        except ValueError as e:
            raise ConstraintViolationError(self.table, str(e)) from e

    def _insert(self, values: dict[str, Any]) -> Any:
        """WITH CHECK on the proposed row, then INSERT."""
        self.policies.check_insert(self.model_class, values)
        entity = self._build(values)
        self.session.add(entity)
        self._flush()
        logger.debug(f"Inserted {self.table} row {entity.id} as {self.identity}")
        return entity

    def _update(self, id: UUID, changes: dict[str, Any]) -> Any:
        """USING on the locked pre-image, WITH CHECK on the post-image, then UPDATE."""
        entity = self.policies.lock_pre_image(self.model_class, id, Command.UPDATE)
        self.policies.check_update(entity, changes)
        try:
            for key, value in changes.items():
                setattr(entity, key, value)
        except ValueError as e:
            raise ConstraintViolationError(self.table, str(e)) from e
        self._flush()
        return entity

    def delete(self, id: UUID) -> bool:
        """Delete entity by ID; the database cascades to dependent rows."""
        entity = self.policies.lock_pre_image(self.model_class, id, Command.DELETE)
        self.session.delete(entity)
        self._flush()
        logger.info(f"Deleted {self.table} row {id} as {self.identity}")
        return True


class AuthUserRepository:
    """Identity provider accounts. Not policy scoped: these rows stand in for the provider."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, email: str | None = None, id: UUID | None = None) -> AuthUser:
        account = AuthUser(email=email) if id is None else AuthUser(id=id, email=email)
        self.session.add(account)
        try:
            self.session.flush()
        except IntegrityError as e:
            raise ConstraintViolationError(AuthUser.__tablename__, str(e.orig)) from e
        return account

    def get_by_id(self, id: UUID) -> AuthUser | None:
        return self.session.get(AuthUser, id)

    def delete(self, id: UUID) -> bool:
        account = self.session.get(AuthUser, id)
        if account is None:
            return False
        self.session.delete(account)
        self.session.flush()
        return True


class UserRepository(BaseRepository):
    """Repository for User profiles."""

    def __init__(self, session: Session, identity: Identity):
        super().__init__(session, identity, User)

    def create(self, user_data: UserCreate) -> User:
        """Create the profile for the acting identity."""
        values = user_data.model_dump()
        if values["auth_id"] is None:
            values["auth_id"] = self.identity.uid
        return self._insert(values)

    def get_own(self) -> User | None:
        """The profile bound to the acting identity."""
        statement = self._visible().where(User.auth_id == self.identity.uid)
        return self.session.scalars(statement).first()

    def get_by_email(self, email: str) -> User | None:
        statement = self._visible().where(User.email == email.strip().lower())
        return self.session.scalars(statement).first()

    def update(self, user_id: UUID, user_data: UserUpdate) -> User:
        return self._update(user_id, user_data.changes())


class StudyRepository(BaseRepository):
    """Repository for Study entities."""

    def __init__(self, session: Session, identity: Identity):
        super().__init__(session, identity, Study)

    def create(self, study_data: StudyCreate) -> Study:
        values = study_data.model_dump()
        if values["researcher_id"] is None:
            values["researcher_id"] = self.identity.uid
        return self._insert(values)

    def list_active(self, limit: int | None = None, offset: int | None = None) -> list[Study]:
        """Public discovery listing."""
        return self.get_all(Study.status == StudyStatus.ACTIVE.value, limit=limit, offset=offset)

    def list_by_researcher(self, researcher_id: UUID) -> list[Study]:
        return self.get_all(Study.researcher_id == researcher_id)

    def update(self, study_id: UUID, study_data: StudyUpdate) -> Study:
        return self._update(study_id, study_data.changes())


class ParticipationRepository(BaseRepository):
    """Repository for study enrollments."""

    def __init__(self, session: Session, identity: Identity):
        super().__init__(session, identity, Participation)

    def enroll(self, participation_data: ParticipationCreate) -> Participation:
        """Self-enrollment; new rows always start pending."""
        values = participation_data.model_dump()
        values["status"] = ParticipationStatus.PENDING.value
        return self._insert(values)

    def list_for_study(self, study_id: UUID) -> list[Participation]:
        return self.get_all(Participation.study_id == study_id)

    def list_for_user(self, user_id: UUID) -> list[Participation]:
        return self.get_all(Participation.user_id == user_id)

    def set_status(self, participation_id: UUID, status_data: ParticipationStatusUpdate) -> Participation:
        """Only identities granted UPDATE on participants get past the pre-image check."""
        return self._update(participation_id, status_data.changes())


class FormRepository(BaseRepository):
    """Repository for data collection forms."""

    def __init__(self, session: Session, identity: Identity):
        super().__init__(session, identity, Form)

    def create(self, form_data: FormCreate) -> Form:
        return self._insert(form_data.model_dump())

    def list_for_study(self, study_id: UUID) -> list[Form]:
        return self.get_all(Form.study_id == study_id)

    def update(self, form_id: UUID, form_data: FormUpdate) -> Form:
        return self._update(form_id, form_data.changes())


class ResponseRepository(BaseRepository):
    """Repository for participant responses (authenticated path)."""

    def __init__(self, session: Session, identity: Identity):
        super().__init__(session, identity, Response)

    def create(self, response_data: ResponseCreate) -> Response:
        return self._insert(response_data.model_dump())

    def list_for_form(self, form_id: UUID) -> list[Response]:
        return self.get_all(Response.form_id == form_id)


class FormResponseRepository(BaseRepository):
    """Repository for public form submissions (anonymous path)."""

    def __init__(self, session: Session, identity: Identity):
        super().__init__(session, identity, FormResponse)

    def create(self, submission: PublicSubmissionCreate) -> FormResponse:
        return self._insert(submission.model_dump())

    def list_for_study(self, study_id: UUID) -> list[FormResponse]:
        return self.get_all(FormResponse.study_id == study_id)

    def list_by_email(self, email: str) -> list[FormResponse]:
        return self.get_all(FormResponse.participant_email == email.strip().lower())

    def update(self, submission_id: UUID, submission: PublicSubmissionUpdate) -> FormResponse:
        return self._update(submission_id, submission.changes())


class DataUploadRepository(BaseRepository):
    """Repository for study data upload metadata."""

    def __init__(self, session: Session, identity: Identity):
        super().__init__(session, identity, StudyDataUpload)

    def _check_path(self, study_id: UUID, file_path: str) -> None:
        if not config.feature_flags.enforce_upload_path_prefix:
            return
        if not file_path.startswith(f"{study_id}/"):
            raise InvalidInputError("file_path", file_path, f"must be stored under '{study_id}/'")

    def create(self, upload_data: DataUploadCreate) -> StudyDataUpload:
        values = upload_data.model_dump()
        if values["researcher_id"] is None:
            values["researcher_id"] = self.identity.uid
        self._check_path(values["study_id"], values["file_path"])
        return self._insert(values)

    def list_for_study(self, study_id: UUID) -> list[StudyDataUpload]:
        return self.get_all(StudyDataUpload.study_id == study_id)

    def update(self, upload_id: UUID, upload_data: DataUploadUpdate) -> StudyDataUpload:
        changes = upload_data.changes()
        if "file_path" in changes:
            current = self.get_by_id(upload_id)
            if current is not None:
                self._check_path(current.study_id, changes["file_path"])
        return self._update(upload_id, changes)
