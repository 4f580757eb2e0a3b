"""
Response services for the study platform.

Two independent submission paths exist and are kept apart:

* ResponseService: authenticated participants answer a form through their enrollment.
* PublicSubmissionService: anyone, signed in or not, submits a study's public form
  identified only by an e-mail address. Submissions are immutable.
"""

import logging
from uuid import UUID

from src.data.database import get_session
from src.data.repositories import FormResponseRepository, ResponseRepository
from src.data.schemas import (
    PublicSubmissionCreate,
    PublicSubmissionResponse,
    PublicSubmissionUpdate,
    ResponseCreate,
    ResponseResponse,
)
from src.security.identity import Identity

logger = logging.getLogger(__name__)


class ResponseService:
    """Responses tied to a participation record."""

    def submit_response(self, identity: Identity, response_data: ResponseCreate) -> ResponseResponse:
        """
        Store answers for a form.

        Raises:
            PolicyViolationError: If participant_id is not the acting identity's enrollment
        """
        with get_session() as session:
            response = ResponseRepository(session, identity).create(response_data)
            logger.info(f"Response {response.id} submitted for form {response.form_id}")
            return ResponseResponse.model_validate(response)

    def get_response(self, identity: Identity, response_id: UUID) -> ResponseResponse | None:
        with get_session() as session:
            response = ResponseRepository(session, identity).get_by_id(response_id)
            return ResponseResponse.model_validate(response) if response else None

    def list_responses(self, identity: Identity, form_id: UUID | None = None) -> list[ResponseResponse]:
        with get_session() as session:
            repository = ResponseRepository(session, identity)
            if form_id is not None:
                responses = repository.list_for_form(form_id)
            else:
                responses = repository.get_all()
            return [ResponseResponse.model_validate(r) for r in responses]


class PublicSubmissionService:
    """Public form submissions; readable by the owning researcher only."""

    def submit_public_response(
        self, identity: Identity, submission: PublicSubmissionCreate
    ) -> PublicSubmissionResponse:
        with get_session() as session:
            record = FormResponseRepository(session, identity).create(submission)
            logger.info(f"Public submission {record.id} received for study {record.study_id}")
            return PublicSubmissionResponse.model_validate(record)

    def list_public_responses(self, identity: Identity, study_id: UUID) -> list[PublicSubmissionResponse]:
        with get_session() as session:
            records = FormResponseRepository(session, identity).list_for_study(study_id)
            return [PublicSubmissionResponse.model_validate(r) for r in records]

    def get_public_response(self, identity: Identity, submission_id: UUID) -> PublicSubmissionResponse | None:
        with get_session() as session:
            record = FormResponseRepository(session, identity).get_by_id(submission_id)
            return PublicSubmissionResponse.model_validate(record) if record else None

    def update_public_response(
        self, identity: Identity, submission_id: UUID, submission: PublicSubmissionUpdate
    ) -> PublicSubmissionResponse:
        """Always refused: no role may change a submission."""
        with get_session() as session:
            record = FormResponseRepository(session, identity).update(submission_id, submission)
            return PublicSubmissionResponse.model_validate(record)

    def delete_public_response(self, identity: Identity, submission_id: UUID) -> bool:
        """Always refused: no role may remove a submission."""
        with get_session() as session:
            return FormResponseRepository(session, identity).delete(submission_id)
