"""
Study service for the study platform.
Study lifecycle for researchers and public discovery of active studies.
"""

import logging
from uuid import UUID

from src.data.database import get_session
from src.data.repositories import StudyRepository
from src.data.schemas import StudyCreate, StudyResponse, StudyUpdate
from src.security.identity import Identity

logger = logging.getLogger(__name__)


class StudyService:
    """
    Service layer for studies.

    Draft, paused and completed studies are visible to their researcher only; active
    studies are visible to everyone, including anonymous visitors.
    """

    def create_study(self, identity: Identity, study_data: StudyCreate) -> StudyResponse:
        """
        Create a study owned by the acting researcher.

        Raises:
            PolicyViolationError: If researcher_id names someone else or identity is anonymous
        """
        with get_session() as session:
            study = StudyRepository(session, identity).create(study_data)
            logger.info(f"Study {study.id} created by {identity}")
            return StudyResponse.model_validate(study)

    def get_study(self, identity: Identity, study_id: UUID) -> StudyResponse | None:
        with get_session() as session:
            study = StudyRepository(session, identity).get_by_id(study_id)
            return StudyResponse.model_validate(study) if study else None

    def list_studies(
        self, identity: Identity, limit: int | None = None, offset: int | None = None
    ) -> list[StudyResponse]:
        """All studies the identity can see, newest first."""
        with get_session() as session:
            studies = StudyRepository(session, identity).get_all(limit=limit, offset=offset)
            return [StudyResponse.model_validate(s) for s in studies]

    def list_active_studies(
        self, identity: Identity, limit: int | None = None, offset: int | None = None
    ) -> list[StudyResponse]:
        with get_session() as session:
            studies = StudyRepository(session, identity).list_active(limit=limit, offset=offset)
            return [StudyResponse.model_validate(s) for s in studies]

    def list_my_studies(self, identity: Identity) -> list[StudyResponse]:
        """Studies owned by the acting researcher, in any status."""
        researcher_id = identity.require_authenticated()
        with get_session() as session:
            studies = StudyRepository(session, identity).list_by_researcher(researcher_id)
            return [StudyResponse.model_validate(s) for s in studies]

    def update_study(self, identity: Identity, study_id: UUID, study_data: StudyUpdate) -> StudyResponse:
        with get_session() as session:
            study = StudyRepository(session, identity).update(study_id, study_data)
            logger.info(f"Study {study_id} updated by {identity}: {sorted(study_data.changes())}")
            return StudyResponse.model_validate(study)

    def delete_study(self, identity: Identity, study_id: UUID) -> bool:
        """Delete a study together with its forms, enrollments, responses and uploads."""
        with get_session() as session:
            deleted = StudyRepository(session, identity).delete(study_id)
            logger.info(f"Study {study_id} deleted by {identity}")
            return deleted
