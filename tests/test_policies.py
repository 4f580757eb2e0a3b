"""
Tests for the row policy registry and the enforcer.
"""

import logging
from uuid import uuid4

import pytest
from sqlalchemy import select

from src.data.models import AuthUser, Form, FormResponse, Participation, Study, User
from src.exceptions import AuthorizationError, PolicyViolationError
from src.security.identity import Identity, IdentityRole
from src.security.policies import (
    POLICIES,
    STORAGE_OBJECTS,
    Command,
    PolicyEnforcer,
    folder_name,
    policies_for,
    study_id_from_folder,
)


def _account(session):
    account = AuthUser()
    session.add(account)
    session.flush()
    return account


def _study(session, owner, status="draft"):
    study = Study(researcher_id=owner.id, title="Attention", status=status)
    session.add(study)
    session.flush()
    return study


class TestRegistry:
    def test_every_table_is_covered(self):
        tables = {policy.table for policy in POLICIES}
        assert tables == {
            "users",
            "studies",
            "participants",
            "forms",
            "responses",
            "study_data_uploads",
            "form_responses",
            STORAGE_OBJECTS,
        }

    def test_policy_names_unique_per_table(self):
        keys = [(policy.table, policy.name) for policy in POLICIES]
        assert len(keys) == len(set(keys))

    def test_anonymous_grants(self):
        anon = Identity.anonymous()
        assert {p.table for p in POLICIES if IdentityRole.ANON in p.roles} == {
            "studies",
            "forms",
            "form_responses",
        }
        assert policies_for("form_responses", Command.INSERT, anon)
        assert not policies_for("form_responses", Command.SELECT, anon)

    def test_no_update_or_delete_grants_on_participants_or_responses(self):
        user = Identity.authenticated(uuid4())
        for table in ("participants", "responses"):
            assert not policies_for(table, Command.UPDATE, user)
            assert not policies_for(table, Command.DELETE, user)

    def test_for_all_policy_applies_to_every_command(self):
        user = Identity.authenticated(uuid4())
        for command in (Command.SELECT, Command.INSERT, Command.UPDATE, Command.DELETE):
            names = [p.name for p in policies_for("forms", command, user)]
            assert "Researchers can manage forms for their studies" in names


class TestFolderName:
    def test_folder_segments(self):
        assert folder_name("a/b/c.csv") == ["a", "b"]
        assert folder_name("c.csv") == []

    def test_study_id_from_folder(self):
        study_id = uuid4()
        assert study_id_from_folder(f"{study_id}/data.csv") == study_id
        assert study_id_from_folder(f"{study_id}/raw/data.csv") == study_id

    @pytest.mark.parametrize(
        "name",
        ["data.csv", "not-a-uuid/data.csv", "/data.csv", ""],
    )
    def test_no_study_folder(self, name):
        assert study_id_from_folder(name) is None

    def test_non_canonical_uuid_text_rejected(self):
        study_id = uuid4()
        assert study_id_from_folder(f"{str(study_id).upper()}/data.csv") is None
        assert study_id_from_folder(f"{study_id.hex}/data.csv") is None


class TestReadScoping:
    def test_owner_sees_draft_others_do_not(self, db_session):
        owner, other = _account(db_session), _account(db_session)
        study = _study(db_session, owner)

        def visible(identity):
            enforcer = PolicyEnforcer(db_session, identity)
            return db_session.scalars(enforcer.select(Study)).all()

        assert visible(Identity.authenticated(owner.id)) == [study]
        assert visible(Identity.authenticated(other.id)) == []
        assert visible(Identity.anonymous()) == []
        assert visible(Identity.service()) == [study]

    def test_active_study_visible_to_everyone(self, db_session):
        owner, other = _account(db_session), _account(db_session)
        study = _study(db_session, owner, status="active")

        for identity in (Identity.anonymous(), Identity.authenticated(other.id)):
            enforcer = PolicyEnforcer(db_session, identity)
            assert db_session.scalars(enforcer.select(Study)).all() == [study]

    def test_forms_follow_parent_study(self, db_session):
        owner = _account(db_session)
        draft, active = _study(db_session, owner), _study(db_session, owner, status="active")
        db_session.add_all([Form(study_id=draft.id, title="Draft form"), Form(study_id=active.id, title="Live form")])
        db_session.flush()

        anon_forms = db_session.scalars(PolicyEnforcer(db_session, Identity.anonymous()).select(Form)).all()
        owner_forms = db_session.scalars(
            PolicyEnforcer(db_session, Identity.authenticated(owner.id)).select(Form)
        ).all()

        assert [f.title for f in anon_forms] == ["Live form"]
        assert {f.title for f in owner_forms} == {"Draft form", "Live form"}

    def test_no_applicable_policy_means_nothing_visible(self, db_session):
        owner = _account(db_session)
        study = _study(db_session, owner, status="active")
        db_session.add(FormResponse(study_id=study.id, participant_email="x@example.org"))
        db_session.flush()

        enforcer = PolicyEnforcer(db_session, Identity.anonymous())
        assert db_session.scalars(enforcer.select(FormResponse)).all() == []


class TestWriteChecks:
    def test_insert_check_passes_for_owner(self, db_session):
        owner = _account(db_session)
        enforcer = PolicyEnforcer(db_session, Identity.authenticated(owner.id))
        enforcer.check_insert(Study, {"researcher_id": owner.id, "title": "Mine"})

    def test_insert_check_rejects_other_owner(self, db_session):
        owner, other = _account(db_session), _account(db_session)
        enforcer = PolicyEnforcer(db_session, Identity.authenticated(other.id))
        with pytest.raises(PolicyViolationError) as exc_info:
            enforcer.check_insert(Study, {"researcher_id": owner.id})
        assert exc_info.value.table == "studies"
        assert exc_info.value.command == "INSERT"

    def test_participation_insert_requires_own_profile(self, db_session):
        account, other = _account(db_session), _account(db_session)
        study = _study(db_session, _account(db_session), status="active")
        profile = User(auth_id=account.id, email="p@example.org", role="participant")
        db_session.add(profile)
        db_session.flush()

        values = {"study_id": study.id, "user_id": profile.id}
        PolicyEnforcer(db_session, Identity.authenticated(account.id)).check_insert(Participation, values)
        with pytest.raises(PolicyViolationError):
            PolicyEnforcer(db_session, Identity.authenticated(other.id)).check_insert(Participation, values)

    def test_pre_image_hidden_row_is_denied(self, db_session):
        owner, other = _account(db_session), _account(db_session)
        study = _study(db_session, owner)

        enforcer = PolicyEnforcer(db_session, Identity.authenticated(other.id))
        with pytest.raises(PolicyViolationError) as exc_info:
            enforcer.lock_pre_image(Study, study.id, Command.UPDATE)
        assert exc_info.value.command == "UPDATE"

    def test_missing_row_is_denied_the_same_way(self, db_session):
        owner = _account(db_session)
        enforcer = PolicyEnforcer(db_session, Identity.authenticated(owner.id))
        with pytest.raises(PolicyViolationError):
            enforcer.lock_pre_image(Study, uuid4(), Command.DELETE)

    def test_post_image_must_keep_ownership(self, db_session):
        owner, other = _account(db_session), _account(db_session)
        study = _study(db_session, owner)
        enforcer = PolicyEnforcer(db_session, Identity.authenticated(owner.id))

        locked = enforcer.lock_pre_image(Study, study.id, Command.UPDATE)
        enforcer.check_update(locked, {"title": "Renamed"})
        with pytest.raises(PolicyViolationError):
            enforcer.check_update(locked, {"researcher_id": other.id})

    def test_append_only_table_refuses_service_role(self, db_session):
        study = _study(db_session, _account(db_session), status="active")
        submission = FormResponse(study_id=study.id, participant_email="x@example.org")
        db_session.add(submission)
        db_session.flush()

        enforcer = PolicyEnforcer(db_session, Identity.service())
        for command in (Command.UPDATE, Command.DELETE):
            with pytest.raises(PolicyViolationError):
                enforcer.lock_pre_image(FormResponse, submission.id, command)

    def test_service_role_bypasses_policies(self, db_session):
        owner = _account(db_session)
        study = _study(db_session, owner)
        enforcer = PolicyEnforcer(db_session, Identity.service())

        enforcer.check_insert(Study, {"researcher_id": None})
        assert enforcer.lock_pre_image(Study, study.id, Command.UPDATE) is study

    def test_service_role_can_be_disabled(self, db_session, monkeypatch):
        from config.config import config

        monkeypatch.setattr(config.security, "service_role_enabled", False)
        with pytest.raises(AuthorizationError):
            PolicyEnforcer(db_session, Identity.service())


class TestStorageObjects:
    def test_owner_allowed_on_study_folder(self, db_session):
        owner = _account(db_session)
        study = _study(db_session, owner)
        enforcer = PolicyEnforcer(db_session, Identity.authenticated(owner.id))

        for command in (Command.INSERT, Command.SELECT, Command.UPDATE, Command.DELETE):
            enforcer.check_object(command, "study-data", f"{study.id}/file.csv")

    @pytest.mark.parametrize(
        "bucket,name_template",
        [
            ("other-bucket", "{study_id}/file.csv"),
            ("study-data", "file.csv"),
            ("study-data", "{other_id}/file.csv"),
            ("study-data", "uploads/{study_id}/file.csv"),
        ],
    )
    def test_denied(self, db_session, bucket, name_template):
        owner = _account(db_session)
        study = _study(db_session, owner)
        enforcer = PolicyEnforcer(db_session, Identity.authenticated(owner.id))

        name = name_template.format(study_id=study.id, other_id=uuid4())
        with pytest.raises(PolicyViolationError) as exc_info:
            enforcer.check_object(Command.INSERT, bucket, name)
        assert exc_info.value.table == STORAGE_OBJECTS

    def test_anonymous_denied(self, db_session):
        study = _study(db_session, _account(db_session), status="active")
        with pytest.raises(PolicyViolationError):
            PolicyEnforcer(db_session, Identity.anonymous()).check_object(
                Command.SELECT, "study-data", f"{study.id}/file.csv"
            )

    def test_object_filter(self, db_session):
        owner, other = _account(db_session), _account(db_session)
        mine, theirs = _study(db_session, owner), _study(db_session, other)
        enforcer = PolicyEnforcer(db_session, Identity.authenticated(owner.id))

        names = [f"{mine.id}/a.csv", f"{theirs.id}/b.csv", "loose.csv"]
        assert enforcer.object_filter("study-data", names) == [f"{mine.id}/a.csv"]


class TestAuditLogging:
    def test_denial_logged_with_policy_fields(self, db_session, monkeypatch):
        from config.config import config
        from src.security import policies

        monkeypatch.setattr(config.security, "policy_audit_logging", True)
        records = []
        handler = logging.Handler()
        handler.emit = records.append
        policies.logger.addHandler(handler)
        try:
            with pytest.raises(PolicyViolationError):
                PolicyEnforcer(db_session, Identity.anonymous()).check_insert(Study, {"researcher_id": None})
        finally:
            policies.logger.removeHandler(handler)

        assert len(records) == 1
        assert records[0].table == "studies"
        assert records[0].command == "INSERT"
        assert records[0].identity == "anon"
        assert records[0].levelno == logging.WARNING

    def test_denial_not_logged_when_disabled(self, db_session, monkeypatch):
        from config.config import config
        from src.security import policies

        monkeypatch.setattr(config.security, "policy_audit_logging", False)
        records = []
        handler = logging.Handler()
        handler.emit = records.append
        policies.logger.addHandler(handler)
        try:
            with pytest.raises(PolicyViolationError):
                PolicyEnforcer(db_session, Identity.anonymous()).check_insert(Study, {"researcher_id": None})
        finally:
            policies.logger.removeHandler(handler)

        assert records == []
