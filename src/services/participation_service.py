"""
Participation service for the study platform.
Self-enrollment of participants and the privileged status workflow.
"""

import logging
from uuid import UUID

from src.data.database import get_session
from src.data.repositories import ParticipationRepository
from src.data.schemas import ParticipationCreate, ParticipationResponse, ParticipationStatusUpdate
from src.security.identity import Identity

logger = logging.getLogger(__name__)


class ParticipationService:
    """
    Service layer for study enrollment.

    Participants enroll themselves and always start as pending. Neither participants nor
    researchers can change an enrollment afterwards; status changes run as the service
    role.
    """

    def enroll(self, identity: Identity, participation_data: ParticipationCreate) -> ParticipationResponse:
        """
        Enroll the acting identity's own profile in a study.

        Raises:
            PolicyViolationError: If user_id is not the acting identity's profile
            ConstraintViolationError: If the study or profile does not exist
        """
        with get_session() as session:
            participation = ParticipationRepository(session, identity).enroll(participation_data)
            logger.info(
                f"User {participation.user_id} enrolled in study {participation.study_id} as {identity}"
            )
            return ParticipationResponse.model_validate(participation)

    def get_participation(self, identity: Identity, participation_id: UUID) -> ParticipationResponse | None:
        with get_session() as session:
            participation = ParticipationRepository(session, identity).get_by_id(participation_id)
            return ParticipationResponse.model_validate(participation) if participation else None

    def list_participations(
        self, identity: Identity, study_id: UUID | None = None
    ) -> list[ParticipationResponse]:
        """Enrollments visible to the identity, optionally for one study."""
        with get_session() as session:
            repository = ParticipationRepository(session, identity)
            if study_id is not None:
                participations = repository.list_for_study(study_id)
            else:
                participations = repository.get_all()
            return [ParticipationResponse.model_validate(p) for p in participations]

    def set_participation_status(
        self, identity: Identity, participation_id: UUID, status_data: ParticipationStatusUpdate
    ) -> ParticipationResponse:
        """
        Approve, reject or complete an enrollment.

        Only the service role holds UPDATE on participants; every other identity is
        refused with PolicyViolationError.
        """
        with get_session() as session:
            participation = ParticipationRepository(session, identity).set_status(
                participation_id, status_data
            )
            logger.info(f"Participation {participation_id} set to {participation.status} by {identity}")
            return ParticipationResponse.model_validate(participation)
