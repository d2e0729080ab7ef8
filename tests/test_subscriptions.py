from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from creatorconnect.core.errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from creatorconnect.services.subscriptions import SubscriptionService

RENEWAL = datetime(2030, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def subs(db) -> SubscriptionService:
    return SubscriptionService(db["subscriptions"])


def _create(subs, ref="sub_1", supporter="s1", creator="c1"):
    return subs.create_subscription(supporter, creator, "tier_1", ref, RENEWAL)


def test_create_starts_active(subs):
    doc = _create(subs)
    assert doc["status"] == "active"
    assert doc["_id"] is not None
    assert subs.has_active_subscription("s1", "c1")


def test_second_active_subscription_for_pair_conflicts(subs):
    _create(subs, ref="sub_1")
    with pytest.raises(ConflictError) as exc:
        _create(subs, ref="sub_2")
    assert exc.value.status_code == 409
    assert "active subscription already exists" in exc.value.detail


def test_duplicate_provider_ref_conflicts(subs):
    _create(subs, ref="sub_1", supporter="s1")
    with pytest.raises(ConflictError) as exc:
        _create(subs, ref="sub_1", supporter="s2")
    assert "sub_1" in exc.value.detail


def test_new_subscription_allowed_after_cancel(subs):
    _create(subs, ref="sub_1")
    subs.update_subscription_status("sub_1", "canceled")
    doc = _create(subs, ref="sub_2")
    assert doc["status"] == "active"


def test_concurrent_creates_for_same_pair_yield_one_conflict(subs):
    def attempt(ref):
        try:
            _create(subs, ref=ref)
            return "ok"
        except ConflictError:
            return "conflict"

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = sorted(pool.map(attempt, ["sub_a", "sub_b"]))

    assert results == ["conflict", "ok"]
    assert len(subs.list_for_supporter("s1", status="active")) == 1


def test_allowed_transitions(subs):
    _create(subs)
    change = subs.update_subscription_status("sub_1", "past_due")
    assert change.changed and change.previous_status == "active"
    assert change.subscription["status"] == "past_due"

    change = subs.update_subscription_status("sub_1", "active")
    assert change.subscription["status"] == "active"


def test_same_status_is_a_noop(subs):
    _create(subs)
    change = subs.update_subscription_status("sub_1", "active")
    assert change.changed is False
    assert change.subscription["status"] == "active"


def test_canceled_is_terminal(subs):
    _create(subs)
    subs.update_subscription_status("sub_1", "canceled")
    with pytest.raises(InvalidTransitionError):
        subs.update_subscription_status("sub_1", "active")


def test_unpaid_cannot_go_past_due(subs):
    _create(subs)
    subs.update_subscription_status("sub_1", "unpaid")
    with pytest.raises(InvalidTransitionError) as exc:
        subs.update_subscription_status("sub_1", "past_due")
    assert exc.value.current == "unpaid"


def test_unknown_status_and_ref(subs):
    _create(subs)
    with pytest.raises(ValidationError):
        subs.update_subscription_status("sub_1", "paused")
    with pytest.raises(NotFoundError):
        subs.update_subscription_status("missing", "canceled")


def test_reactivation_blocked_by_other_active_subscription(subs):
    _create(subs, ref="sub_1")
    subs.update_subscription_status("sub_1", "unpaid")
    _create(subs, ref="sub_2")
    with pytest.raises(ConflictError):
        subs.update_subscription_status("sub_1", "active")
    assert subs.get_by_ref("sub_1")["status"] == "unpaid"


def test_renew_moves_date_forward_and_reactivates(subs):
    _create(subs)
    subs.update_subscription_status("sub_1", "past_due")
    later = RENEWAL + timedelta(days=30)
    change = subs.renew("sub_1", later)
    assert change.changed is True
    assert change.subscription["status"] == "active"
    assert change.subscription["renewal_date"] == later


def test_renew_rejects_backwards_date_and_canceled(subs):
    _create(subs)
    with pytest.raises(ValidationError):
        subs.renew("sub_1", RENEWAL)
    subs.update_subscription_status("sub_1", "canceled")
    with pytest.raises(InvalidTransitionError):
        subs.renew("sub_1", RENEWAL + timedelta(days=30))


def test_get_by_id_and_listings(subs):
    doc = _create(subs, ref="sub_1", supporter="s1", creator="c1")
    _create(subs, ref="sub_2", supporter="s2", creator="c1")
    assert subs.get(str(doc["_id"]))["provider_subscription_ref"] == "sub_1"
    assert len(subs.list_for_creator("c1")) == 2
    assert len(subs.list_for_supporter("s2")) == 1
    with pytest.raises(NotFoundError):
        subs.get("not-an-id")
