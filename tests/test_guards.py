"""Tests for access guards and actors."""

from types import SimpleNamespace
from uuid import uuid4

import pytest

from folio.auth.roles import REVIEW_CONTENT, RUN_SCHEDULER, register_role, ROLE_DEFINITIONS
from folio.workflow.guards import (
    SCHEDULER_ACTOR,
    AccessGuard,
    Actor,
    RoleAccessGuard,
    load_guard,
)
from folio.workflow.states import WorkflowAction

A = WorkflowAction


@pytest.fixture
def guard():
    return RoleAccessGuard()


@pytest.fixture
def owner():
    return Actor(id=uuid4(), role="author", name="Alice")


@pytest.fixture
def stranger():
    return Actor(id=uuid4(), role="author", name="Bob")


@pytest.fixture
def editor():
    return Actor(id=uuid4(), role="editor", name="Erin")


@pytest.fixture
def item(owner):
    return SimpleNamespace(id=uuid4(), created_by=owner.id)


class TestRoleAccessGuard:
    @pytest.mark.parametrize("action", [A.UPDATE, A.SUBMIT, A.ARCHIVE])
    def test_owner_may_edit_submit_archive(self, guard, owner, item, action):
        assert guard.can_transition(owner, item, action) is True

    @pytest.mark.parametrize("action", [A.APPROVE, A.REJECT, A.REQUEST_CHANGES])
    def test_owner_may_not_review(self, guard, owner, item, action):
        assert guard.can_transition(owner, item, action) is False

    @pytest.mark.parametrize("action", list(WorkflowAction))
    def test_stranger_may_do_nothing(self, guard, stranger, item, action):
        assert guard.can_transition(stranger, item, action) is False

    @pytest.mark.parametrize(
        "action", [A.UPDATE, A.SUBMIT, A.APPROVE, A.REJECT, A.REQUEST_CHANGES, A.ARCHIVE]
    )
    def test_editor_may_do_every_user_action(self, guard, editor, item, action):
        assert guard.can_transition(editor, item, action) is True

    @pytest.mark.parametrize("action", [A.PUBLISH, A.EXPIRE])
    def test_only_scheduler_may_publish_and_expire(self, guard, owner, editor, item, action):
        admin = Actor(id=uuid4(), role="admin")
        assert guard.can_transition(SCHEDULER_ACTOR, item, action) is True
        assert guard.can_transition(owner, item, action) is False
        assert guard.can_transition(editor, item, action) is False
        assert guard.can_transition(admin, item, action) is False

    @pytest.mark.parametrize(
        "action", [A.UPDATE, A.SUBMIT, A.APPROVE, A.REJECT, A.REQUEST_CHANGES, A.ARCHIVE]
    )
    def test_scheduler_may_do_nothing_else(self, guard, item, action):
        assert guard.can_transition(SCHEDULER_ACTOR, item, action) is False

    def test_delete_is_owner_or_privileged(self, guard, owner, stranger, editor, item):
        assert guard.can_delete(owner, item) is True
        assert guard.can_delete(editor, item) is True
        assert guard.can_delete(stranger, item) is False
        assert guard.can_delete(SCHEDULER_ACTOR, item) is False

    def test_view_rules(self, guard, owner, stranger, editor, item):
        assert guard.can_view(owner, item) is True
        assert guard.can_view(editor, item) is True
        assert guard.can_view(stranger, item) is False

    def test_create_requires_create_permission(self, guard, owner):
        assert guard.can_create(owner) is True
        assert guard.can_create(SCHEDULER_ACTOR) is False
        assert guard.can_create(Actor(id=uuid4(), role="unknown")) is False

    def test_implements_protocol(self, guard):
        assert isinstance(guard, AccessGuard)


class TestActor:
    def test_admin_has_every_permission(self):
        admin = Actor(id=uuid4(), role="admin")
        assert admin.has_permission(RUN_SCHEDULER)
        assert admin.has_permission("anything-at-all")
        assert admin.is_privileged

    def test_editor_cannot_run_scheduler(self):
        assert not Actor(id=uuid4(), role="editor").has_permission(RUN_SCHEDULER)

    def test_extra_permissions(self):
        actor = Actor(id=uuid4(), role="author", extra_permissions=frozenset({REVIEW_CONTENT}))
        assert actor.is_privileged

    def test_scheduler_is_never_privileged(self):
        assert SCHEDULER_ACTOR.is_privileged is False

    def test_registered_role_is_honored(self):
        register_role("copy-chief", REVIEW_CONTENT)
        try:
            assert Actor(id=uuid4(), role="copy-chief").is_privileged
        finally:
            ROLE_DEFINITIONS.pop("copy-chief")


CUSTOM_GUARD_MODULE = '''
class AllowEverything:
    def can_create(self, actor):
        return True

    def can_transition(self, actor, item, action):
        return True

    def can_delete(self, actor, item):
        return True

    def can_view(self, actor, item):
        return True
'''


class TestLoadGuard:
    def test_loads_default_guard(self):
        assert isinstance(load_guard("folio.workflow.guards:RoleAccessGuard"), RoleAccessGuard)

    def test_loads_custom_guard(self, tmp_path, monkeypatch):
        (tmp_path / "permissive_guard.py").write_text(CUSTOM_GUARD_MODULE)
        monkeypatch.syspath_prepend(str(tmp_path))

        guard = load_guard("permissive_guard:AllowEverything")

        assert isinstance(guard, AccessGuard)
        assert guard.can_transition(SCHEDULER_ACTOR, None, A.APPROVE) is True

    def test_rejects_missing_colon(self):
        with pytest.raises(ValueError, match="module:ClassName"):
            load_guard("folio.workflow.guards.RoleAccessGuard")

    def test_rejects_two_colons(self):
        with pytest.raises(ValueError, match="exactly one colon"):
            load_guard("a:b:c")

    def test_rejects_non_guard(self):
        with pytest.raises(TypeError):
            load_guard("collections:OrderedDict")
