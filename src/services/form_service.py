"""
Form service: data collection forms attached to studies.
"""

import logging
from uuid import UUID

from src.data.database import get_session
from src.data.repositories import FormRepository
from src.data.schemas import FormCreate, FormResponseSchema, FormUpdate
from src.security.identity import Identity

logger = logging.getLogger(__name__)


class FormService:
    """Researchers manage forms of their own studies; forms of active studies are public."""

    def create_form(self, identity: Identity, form_data: FormCreate) -> FormResponseSchema:
        with get_session() as session:
            form = FormRepository(session, identity).create(form_data)
            logger.info(f"Form {form.id} added to study {form.study_id}")
            return FormResponseSchema.model_validate(form)

    def get_form(self, identity: Identity, form_id: UUID) -> FormResponseSchema | None:
        with get_session() as session:
            form = FormRepository(session, identity).get_by_id(form_id)
            return FormResponseSchema.model_validate(form) if form else None

    def list_forms(self, identity: Identity, study_id: UUID) -> list[FormResponseSchema]:
        with get_session() as session:
            forms = FormRepository(session, identity).list_for_study(study_id)
            return [FormResponseSchema.model_validate(f) for f in forms]

    def update_form(self, identity: Identity, form_id: UUID, form_data: FormUpdate) -> FormResponseSchema:
        """Moving a form to another study requires owning both studies."""
        with get_session() as session:
            form = FormRepository(session, identity).update(form_id, form_data)
            return FormResponseSchema.model_validate(form)

    def delete_form(self, identity: Identity, form_id: UUID) -> bool:
        with get_session() as session:
            return FormRepository(session, identity).delete(form_id)
