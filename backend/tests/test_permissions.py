"""Tests for role and resource permission checks."""

from types import SimpleNamespace

import pytest

from app.services.permissions import CITIZEN_ACCESS, can_access, has_role

ADMIN = SimpleNamespace(role="admin")
CITIZEN = SimpleNamespace(role="citizen")


class TestHasRole:
    def test_admin_role_requires_admin(self):
        assert has_role(ADMIN, "admin") is True
        assert has_role(CITIZEN, "admin") is False

    def test_role_matches_itself(self):
        assert has_role(CITIZEN, "citizen") is True

    def test_admin_satisfies_other_roles(self):
        assert has_role(ADMIN, "citizen") is True
        assert has_role(ADMIN, "moderator") is True

    def test_citizen_lacks_other_roles(self):
        assert has_role(CITIZEN, "moderator") is False


class TestCanAccess:
    @pytest.mark.parametrize(
        "resource,action",
        [
            ("news", "read"),
            ("news", "delete"),
            ("feedback", "respond"),
            ("settings", "update"),
            ("anything", "read"),
        ],
    )
    def test_admin_can_do_everything(self, resource, action):
        assert can_access(ADMIN, resource, action) is True

    @pytest.mark.parametrize(
        "resource,action,allowed",
        [
            ("news", "read", True),
            ("news", "create", False),
            ("feedback", "read", True),
            ("feedback", "create", True),
            ("feedback", "delete", False),
            ("help-request", "create", True),
            ("help-request", "read", False),
            ("profile", "read", True),
            ("profile", "update", True),
            ("profile", "delete", False),
        ],
    )
    def test_citizen_table(self, resource, action, allowed):
        assert can_access(CITIZEN, resource, action) is allowed

    def test_default_action_is_read(self):
        assert can_access(CITIZEN, "news") is True
        assert can_access(CITIZEN, "help-request") is False

    def test_unknown_resource_denied(self):
        assert "settings" not in CITIZEN_ACCESS
        assert can_access(CITIZEN, "settings", "read") is False
