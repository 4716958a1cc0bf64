from warehouse.core.permissions import (
    ALL_PERMISSIONS, ROLES, has_permission, has_any_permission, get_effective_permissions
)
from warehouse.core.rate_limit import SlidingWindowRateLimiter
from warehouse.models.user import User
from warehouse.services.notifications import NOTIFICATION_TYPES, default_preferences, merge_preferences


def test_admin_has_every_permission():
    assert all(has_permission("ADMIN", p) for p in ALL_PERMISSIONS)
    assert get_effective_permissions("ADMIN") == list(ALL_PERMISSIONS)


def test_role_matrix():
    assert has_permission("INVENTORY", "movements:approve")
    assert not has_permission("INVENTORY", "po:write")
    assert has_permission("PURCHASING", "grn:write")
    assert not has_permission("PURCHASING", "po:approve")
    assert has_permission("APPROVER", "pr:approve")
    assert not has_permission("REQUESTER", "pr:approve")
    assert has_permission("VIEWER", "reports:read")
    assert not has_permission("VIEWER", "stock:write")
    assert not has_permission("UNKNOWN", "products:read")


def test_custom_permissions_extend_role():
    assert has_permission("REQUESTER", "reports:read", ["reports:read"])
    assert has_any_permission("VIEWER", ["po:write", "grn:write"], ["grn:write"])
    assert not has_any_permission("VIEWER", ["po:write", "grn:write"])
    permissions = get_effective_permissions("REQUESTER", ["reports:read"])
    assert "reports:read" in permissions
    assert "pr:write" in permissions
    assert "po:write" not in permissions


def test_user_model_uses_custom_permissions():
    user = User(username="u", name="u", role="VIEWER", custom_permissions=["stock:write"])
    assert user.has_permission("stock:write")
    assert user.has_any_permission(["po:approve", "stock:write"])
    assert not user.is_admin


def test_every_role_is_mapped():
    assert set(ROLES) == {"ADMIN", "APPROVER", "PURCHASING", "INVENTORY", "REQUESTER", "VIEWER"}


class TestRateLimiter:
    def test_blocks_after_limit_within_window(self):
        limiter = SlidingWindowRateLimiter(limit=2, window_seconds=10)
        assert limiter.hit("key", now=0)
        assert limiter.hit("key", now=1)
        assert not limiter.hit("key", now=2)
        assert limiter.remaining("key", now=2) == 0

    def test_window_slides(self):
        limiter = SlidingWindowRateLimiter(limit=2, window_seconds=10)
        limiter.hit("key", now=0)
        limiter.hit("key", now=5)
        assert limiter.hit("key", now=10.5)
        assert not limiter.hit("key", now=11)

    def test_keys_are_independent_and_resettable(self):
        limiter = SlidingWindowRateLimiter(limit=1, window_seconds=60)
        assert limiter.hit("a", now=0)
        assert limiter.hit("b", now=0)
        assert not limiter.hit("a", now=1)
        limiter.reset("a")
        assert limiter.hit("a", now=2)
        assert limiter.remaining("c") == 1

    def test_idle_keys_are_released(self):
        limiter = SlidingWindowRateLimiter(limit=5, window_seconds=60)
        for i in range(10000):
            limiter.hit(f"bogus-{i}", now=0)
        assert limiter.tracked_keys() == 10000

        assert limiter.hit("real", now=1000)
        assert limiter.tracked_keys() == 1

    def test_sweep_keeps_keys_inside_window(self):
        limiter = SlidingWindowRateLimiter(limit=1, window_seconds=60)
        limiter.hit("old", now=0)
        limiter.hit("recent", now=50)
        limiter.hit("new", now=70)
        assert limiter.tracked_keys() == 2
        # ยังอยู่ในหน้าต่างเวลาจึงต้องถูกปฏิเสธ
        assert not limiter.hit("recent", now=75)


class TestNotificationPreferences:
    def test_defaults_cover_every_type(self):
        defaults = default_preferences()
        assert set(defaults) == set(NOTIFICATION_TYPES)
        assert defaults["lowStock"] == {"web": True, "line": True, "email": True}
        assert defaults["receivePosted"] == {"web": True, "line": False, "email": False}
        assert defaults["poSent"] == {"web": True, "line": True, "email": False}

    def test_stored_then_update_override_per_channel(self):
        stored = {"lowStock": {"email": False}}
        update = {"lowStock": {"line": False}, "prPending": {"web": False, "email": None}}
        merged = merge_preferences(stored, update)
        assert merged["lowStock"] == {"web": True, "line": False, "email": False}
        assert merged["prPending"] == {"web": False, "line": True, "email": True}

    def test_unknown_types_are_ignored(self):
        merged = merge_preferences({"somethingElse": {"web": False}, "expiring": "bad"})
        assert "somethingElse" not in merged
        assert merged["expiring"]["web"] is True
