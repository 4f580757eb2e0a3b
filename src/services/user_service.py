"""
User profile service.
Binds identity-provider accounts to platform profiles.
"""

import logging
from uuid import UUID

from src.data.database import get_session
from src.data.repositories import UserRepository
from src.data.schemas import UserCreate, UserResponse, UserUpdate
from src.security.identity import Identity

logger = logging.getLogger(__name__)


class UserService:
    """
    Service layer for user profiles.
    A profile is created once per identity at first login; its role never changes.
    """

    def create_profile(self, identity: Identity, user_data: UserCreate) -> UserResponse:
        """
        Create the profile for the acting identity.

        Raises:
            PolicyViolationError: If auth_id names a different identity
            ConstraintViolationError: If the identity or e-mail already has a profile
        """
        with get_session() as session:
            user = UserRepository(session, identity).create(user_data)
            logger.info(f"Created {user.role} profile {user.id} for {identity}")
            return UserResponse.model_validate(user)

    def get_profile(self, identity: Identity) -> UserResponse | None:
        with get_session() as session:
            user = UserRepository(session, identity).get_own()
            return UserResponse.model_validate(user) if user else None

    def get_user(self, identity: Identity, user_id: UUID) -> UserResponse | None:
        """Profiles are private: only the own row is ever returned."""
        with get_session() as session:
            user = UserRepository(session, identity).get_by_id(user_id)
            return UserResponse.model_validate(user) if user else None

    def update_profile(self, identity: Identity, user_id: UUID, user_data: UserUpdate) -> UserResponse:
        with get_session() as session:
            user = UserRepository(session, identity).update(user_id, user_data)
            return UserResponse.model_validate(user)
