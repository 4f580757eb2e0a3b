"""
Row-level authorization policies for the study platform.

Every table carries a list of permissive policies, each scoped to a command and a set of
database roles. A policy predicate is written once against a "row" and serves both ways
a row can be presented:

* the mapped class itself (``Study``), so the predicate becomes a correlated SQL filter
  used for reads and for the pre-image of UPDATE/DELETE (USING);
* a ``ProposedRow`` of plain values, so the predicate becomes a SQL expression over bound
  literals evaluated for the row about to be written (WITH CHECK).

Policies for one command are OR-ed together; no applicable policy means deny. The
service role bypasses every policy, but append-only tables refuse UPDATE and DELETE
to every role.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import ColumnElement, and_, exists, false, or_, select, true
from sqlalchemy.orm import Session

from config.config import config
from src.data.models import (
    Form,
    Participation,
    Study,
    StudyStatus,
    User,
)
from src.exceptions import AuthorizationError, PolicyViolationError
from src.utils.logging import get_logger

from .identity import Identity, IdentityRole

logger = get_logger(__name__)

STORAGE_OBJECTS = "storage.objects"

# Rows in these tables are never changed or removed, whatever the role
APPEND_ONLY_TABLES = frozenset({"form_responses"})


class Command(str, Enum):
    SELECT = "SELECT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    ALL = "ALL"


class ProposedRow(dict):
    """Column values of a row that is about to be written."""

    def __getattr__(self, name: str) -> Any:
        return self.get(name)


Predicate = Callable[[Identity, Any], ColumnElement[bool]]

ANON_AND_AUTHENTICATED = (IdentityRole.ANON, IdentityRole.AUTHENTICATED)
AUTHENTICATED = (IdentityRole.AUTHENTICATED,)


@dataclass(frozen=True)
class Policy:
    name: str
    table: str
    command: Command
    roles: tuple[IdentityRole, ...]
    using: Predicate | None = None
    with_check: Predicate | None = None

    def applies_to(self, command: Command, identity: Identity) -> bool:
        return identity.role in self.roles and self.command in (command, Command.ALL)

    def check_predicate(self) -> Predicate | None:
        """WITH CHECK falls back to USING, as in PostgreSQL."""
        return self.with_check or self.using


def as_predicate(value: Any) -> ColumnElement[bool]:
    """Lift a plain comparison result to SQL; pass SQL expressions through."""
    if isinstance(value, bool):
        return true() if value else false()
    return value


def folder_name(object_name: str) -> list[str]:
    """Folder segments of an object key, excluding the file name."""
    return object_name.split("/")[:-1]


def study_id_from_folder(object_name: str) -> UUID | None:
    """The study id an object key is filed under, if the first folder is a canonical UUID."""
    folders = folder_name(object_name)
    if not folders:
        return None
    try:
        study_id = UUID(folders[0])
    except ValueError:
        return None
    # The folder must be the exact text form of the id, not just parse as one
    if str(study_id) != folders[0]:
        return None
    return study_id


# -- predicates --------------------------------------------------------------------


def is_uid(column: Any, identity: Identity) -> ColumnElement[bool]:
    return as_predicate(column == identity.uid)


def owns_profile(identity: Identity, row) -> ColumnElement[bool]:
    return is_uid(row.auth_id, identity)


def owns_study(identity: Identity, row) -> ColumnElement[bool]:
    return is_uid(row.researcher_id, identity)


def study_is_active(identity: Identity, row) -> ColumnElement[bool]:
    return as_predicate(row.status == StudyStatus.ACTIVE.value)


def owns_parent_study(identity: Identity, row) -> ColumnElement[bool]:
    return exists().where(Study.id == row.study_id, Study.researcher_id == identity.uid)


def parent_study_is_active(identity: Identity, row) -> ColumnElement[bool]:
    return exists().where(Study.id == row.study_id, Study.status == StudyStatus.ACTIVE.value)


def owns_enrolled_user(identity: Identity, row) -> ColumnElement[bool]:
    return exists().where(User.id == row.user_id, User.auth_id == identity.uid)


def owns_participation(identity: Identity, row) -> ColumnElement[bool]:
    return exists().where(
        Participation.id == row.participant_id,
        User.id == Participation.user_id,
        User.auth_id == identity.uid,
    )


def owns_study_of_form(identity: Identity, row) -> ColumnElement[bool]:
    return exists().where(
        Form.id == row.form_id,
        Study.id == Form.study_id,
        Study.researcher_id == identity.uid,
    )


def owns_upload(identity: Identity, row) -> ColumnElement[bool]:
    return and_(is_uid(row.researcher_id, identity), owns_parent_study(identity, row))


def owns_study_folder(identity: Identity, obj) -> ColumnElement[bool]:
    study_id = study_id_from_folder(obj.name or "")
    if obj.bucket_id != config.storage.bucket_name or study_id is None:
        return false()
    return exists().where(Study.id == study_id, Study.researcher_id == identity.uid)


def always(identity: Identity, row) -> ColumnElement[bool]:
    return true()


def never(identity: Identity, row) -> ColumnElement[bool]:
    return false()


POLICIES: list[Policy] = [
    # users
    Policy("Users can view their own profile", "users", Command.SELECT, AUTHENTICATED,
           using=owns_profile),
    Policy("Users can create their own profile", "users", Command.INSERT, AUTHENTICATED,
           with_check=owns_profile),
    Policy("Users can update their own profile", "users", Command.UPDATE, AUTHENTICATED,
           using=owns_profile, with_check=owns_profile),
    # studies
    Policy("Researchers can view their own studies", "studies", Command.SELECT, AUTHENTICATED,
           using=owns_study),
    Policy("Anyone can view active studies", "studies", Command.SELECT, ANON_AND_AUTHENTICATED,
           using=study_is_active),
    Policy("Researchers can create studies", "studies", Command.INSERT, AUTHENTICATED,
           with_check=owns_study),
    Policy("Researchers can update their own studies", "studies", Command.UPDATE, AUTHENTICATED,
           using=owns_study, with_check=owns_study),
    Policy("Researchers can delete their own studies", "studies", Command.DELETE, AUTHENTICATED,
           using=owns_study),
    # participants
    Policy("Researchers can view participants in their studies", "participants", Command.SELECT,
           AUTHENTICATED, using=owns_parent_study),
    Policy("Participants can view their own participation", "participants", Command.SELECT,
           AUTHENTICATED, using=owns_enrolled_user),
    Policy("Authenticated users can create participation records", "participants",
           Command.INSERT, AUTHENTICATED, with_check=owns_enrolled_user),
    # forms
    Policy("Researchers can manage forms for their studies", "forms", Command.ALL, AUTHENTICATED,
           using=owns_parent_study, with_check=owns_parent_study),
    Policy("Anyone can view forms for active studies", "forms", Command.SELECT,
           ANON_AND_AUTHENTICATED, using=parent_study_is_active),
    # responses
    Policy("Researchers can view responses for their studies", "responses", Command.SELECT,
           AUTHENTICATED, using=owns_study_of_form),
    Policy("Participants can create responses", "responses", Command.INSERT, AUTHENTICATED,
           with_check=owns_participation),
    Policy("Participants can view their own responses", "responses", Command.SELECT,
           AUTHENTICATED, using=owns_participation),
    # study_data_uploads
    Policy("Researchers can view their own study data uploads", "study_data_uploads",
           Command.SELECT, AUTHENTICATED, using=owns_upload),
    Policy("Researchers can upload data to their own studies", "study_data_uploads",
           Command.INSERT, AUTHENTICATED, with_check=owns_upload),
    Policy("Researchers can update their own study data uploads", "study_data_uploads",
           Command.UPDATE, AUTHENTICATED, using=owns_upload, with_check=owns_upload),
    Policy("Researchers can delete their own study data uploads", "study_data_uploads",
           Command.DELETE, AUTHENTICATED, using=owns_upload),
    # form_responses
    Policy("Researchers can view responses from their studies", "form_responses",
           Command.SELECT, AUTHENTICATED, using=owns_parent_study),
    Policy("Anyone can submit form responses", "form_responses", Command.INSERT,
           ANON_AND_AUTHENTICATED, with_check=always),
    Policy("Researchers cannot update responses", "form_responses", Command.UPDATE,
           AUTHENTICATED, using=never),
    Policy("Researchers cannot delete responses", "form_responses", Command.DELETE,
           AUTHENTICATED, using=never),
    # storage.objects in the study-data bucket
    Policy("Researchers can upload files to their studies", STORAGE_OBJECTS, Command.INSERT,
           AUTHENTICATED, with_check=owns_study_folder),
    Policy("Researchers can view files from their studies", STORAGE_OBJECTS, Command.SELECT,
           AUTHENTICATED, using=owns_study_folder),
    Policy("Researchers can update files from their studies", STORAGE_OBJECTS, Command.UPDATE,
           AUTHENTICATED, using=owns_study_folder),
    Policy("Researchers can delete files from their studies", STORAGE_OBJECTS, Command.DELETE,
           AUTHENTICATED, using=owns_study_folder),
]


def policies_for(table: str, command: Command, identity: Identity,
                 registry: Iterable[Policy] = POLICIES) -> list[Policy]:
    return [p for p in registry if p.table == table and p.applies_to(command, identity)]


class PolicyEnforcer:
    """
    Applies the policy registry to statements issued through one session.

    Reads are narrowed with the SELECT policies' USING clauses, so rows the identity may
    not see are simply absent. Writes are checked inside the same transaction and raise
    PolicyViolationError when no policy admits them.
    """

    def __init__(self, session: Session, identity: Identity, registry: Iterable[Policy] = POLICIES):
        if identity.is_service and not config.security.service_role_enabled:
            raise AuthorizationError("The service role is disabled in this deployment")
        self.session = session
        self.identity = identity
        self.registry = list(registry)

    # -- expressions -------------------------------------------------------------

    def row_filter(self, model, command: Command = Command.SELECT) -> ColumnElement[bool]:
        """USING clauses for a mapped class, OR-ed; false when nothing applies."""
        if self.identity.is_service:
            return true()
        clauses = [
            p.using(self.identity, model)
            for p in policies_for(model.__tablename__, command, self.identity, self.registry)
            if p.using is not None
        ]
        return or_(*clauses) if clauses else false()

    def check_clause(self, table: str, command: Command, row: ProposedRow) -> ColumnElement[bool]:
        """WITH CHECK clauses for a proposed row, OR-ed; false when nothing applies."""
        if self.identity.is_service:
            return true()
        clauses = []
        for policy in policies_for(table, command, self.identity, self.registry):
            predicate = policy.check_predicate()
            if predicate is not None:
                clauses.append(predicate(self.identity, row))
        return or_(*clauses) if clauses else false()

    def _evaluate(self, clause: ColumnElement[bool]) -> bool:
        return bool(self.session.scalar(select(clause)))

    def _deny(self, table: str, command: Command, reason: str | None = None) -> PolicyViolationError:
        if config.security.policy_audit_logging:
            logger.warning(
                "Row policy denied %s on %s",
                command.value,
                table,
                extra={"identity": str(self.identity), "table": table, "command": command.value},
            )
        return PolicyViolationError(table, command.value, self.identity.role.value, reason)

    # -- reads -------------------------------------------------------------------

    def select(self, model):
        """A SELECT over model narrowed to the rows this identity may read."""
        return select(model).where(self.row_filter(model, Command.SELECT))

    # -- writes ------------------------------------------------------------------

    def check_insert(self, model, values: dict[str, Any]) -> None:
        table = model.__tablename__
        if not self._evaluate(self.check_clause(table, Command.INSERT, ProposedRow(values))):
            raise self._deny(table, Command.INSERT)

    def lock_pre_image(self, model, row_id: UUID, command: Command):
        """
        Load the row an UPDATE or DELETE targets through the command's USING clauses.

        A row that does not exist and a row the identity may not touch are reported the
        same way.
        """
        if model.__tablename__ in APPEND_ONLY_TABLES:
            raise self._deny(model.__tablename__, command, "table is append-only")
        statement = select(model).where(model.id == row_id, self.row_filter(model, command))
        if config.persistence.lock_pre_images:
            statement = statement.with_for_update()
        instance = self.session.scalars(statement).first()
        if instance is None:
            raise self._deny(model.__tablename__, command, "row not found or not permitted")
        return instance

    def check_update(self, instance, changes: dict[str, Any]) -> None:
        """WITH CHECK against the post-image of an UPDATE, before anything is written."""
        table = instance.__tablename__
        post_image = ProposedRow(
            {column.key: getattr(instance, column.key) for column in instance.__table__.columns}
        )
        post_image.update(changes)
        if not self._evaluate(self.check_clause(table, Command.UPDATE, post_image)):
            raise self._deny(table, Command.UPDATE, "new row violates row-level security policy")

    # -- object storage ----------------------------------------------------------

    def check_object(self, command: Command, bucket_id: str, name: str) -> None:
        """Guard a storage operation on bucket_id/name."""
        row = ProposedRow(bucket_id=bucket_id, name=name)
        if not self._evaluate(self.check_clause(STORAGE_OBJECTS, command, row)):
            raise self._deny(STORAGE_OBJECTS, command, f"object '{name}' in bucket '{bucket_id}'")

    def object_filter(self, bucket_id: str, names: Iterable[str]) -> list[str]:
        """The subset of object names this identity may read."""
        readable = []
        for name in names:
            row = ProposedRow(bucket_id=bucket_id, name=name)
            if self._evaluate(self.check_clause(STORAGE_OBJECTS, Command.SELECT, row)):
                readable.append(name)
        return readable
