"""
Pytest configuration and fixtures for study platform tests.
"""

import os
import sys
from pathlib import Path

import pytest

# Add project root to path for imports
sys.path.append(str(Path(__file__).parent.parent))

os.environ.setdefault("ENVIRONMENT", "testing")

from config.config import Config, FeatureFlags
from src.data.database import get_session
from src.data.database_factory import _db_factory
from src.data.repositories import AuthUserRepository
from src.data.schemas import StudyCreate, StudyUpdate, UserCreate
from src.security.identity import Identity
from src.services.storage_service import LocalFileSystemProvider, StudyDataStorageService
from src.services.study_service import StudyService
from src.services.user_service import UserService


@pytest.fixture
def test_config():
    """Provide a test configuration instance."""
    config = Config()
    config.environment = "testing"
    config.debug = True
    config.database.dsn = "sqlite://"
    config.feature_flags = FeatureFlags()
    return config


@pytest.fixture
def database():
    """Fresh in-memory SQLite database behind the global session factory."""
    _db_factory.close()
    _db_factory.initialize("sqlite://")
    _db_factory.create_all_tables()
    yield _db_factory
    _db_factory.drop_all_tables()
    _db_factory.close()


@pytest.fixture
def db_session(database):
    """A raw session for arranging rows and inspecting results directly."""
    session = database.session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def make_identity(database):
    """Register an identity-provider account and return the identity acting as it."""

    def _make(email: str | None = None) -> Identity:
        with get_session() as session:
            account = AuthUserRepository(session).create(email=email)
            return Identity.authenticated(account.id)

    return _make


@pytest.fixture
def researcher(make_identity):
    return make_identity("researcher@example.org")


@pytest.fixture
def participant(make_identity):
    return make_identity("participant@example.org")


@pytest.fixture
def outsider(make_identity):
    return make_identity("outsider@example.org")


@pytest.fixture
def anon():
    return Identity.anonymous()


@pytest.fixture
def service():
    return Identity.service()


@pytest.fixture
def make_study():
    """Create a study as the given researcher, optionally moving it to a status."""

    def _make(identity: Identity, status: str = "draft", **fields):
        studies = StudyService()
        study = studies.create_study(identity, StudyCreate(title=fields.pop("title", "Sleep study"), **fields))
        if status != "draft":
            study = studies.update_study(identity, study.id, StudyUpdate(status=status))
        return study

    return _make


@pytest.fixture
def make_profile():
    """Create the platform profile for an identity."""

    def _make(identity: Identity, email: str, role: str = "participant", name: str | None = None):
        return UserService().create_profile(identity, UserCreate(email=email, role=role, name=name))

    return _make


@pytest.fixture
def local_storage(tmp_path):
    """Guarded storage over a temporary local bucket."""
    provider = LocalFileSystemProvider(str(tmp_path), "study-data")
    return StudyDataStorageService(provider)
