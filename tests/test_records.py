from __future__ import annotations

from datetime import datetime, timezone

import pytest

from creatorconnect.core.errors import ValidationError
from creatorconnect.records import (
    AI_PROMPT_MAX,
    AILogRecord,
    NotificationRecord,
    SupportRecord,
    TierRecord,
    TransactionRecord,
    build_document,
    build_record,
    serialize,
)


def test_transaction_currency_is_uppercased():
    rec = build_record(TransactionRecord, user_id="u1", creator_id="c1", type="support", amount=5, currency="usd")
    assert rec.currency == "USD"
    assert rec.status == "pending"


@pytest.mark.parametrize("currency", ["us", "dollars", "12$", ""])
def test_transaction_rejects_bad_currency(currency):
    with pytest.raises(ValidationError) as exc:
        build_record(TransactionRecord, user_id="u1", creator_id="c1", type="tip", amount=5, currency=currency)
    assert exc.value.status_code == 400
    assert exc.value.errors[0]["field"] == "currency"


@pytest.mark.parametrize("amount", [0, -1, -0.01])
def test_non_positive_amounts_are_rejected(amount):
    with pytest.raises(ValidationError):
        build_record(SupportRecord, supporter_id="s1", creator_id="c1", amount=amount)
    with pytest.raises(ValidationError):
        build_record(TransactionRecord, user_id="s1", creator_id="c1", type="support", amount=amount)


def test_unknown_transaction_status_is_rejected():
    with pytest.raises(ValidationError):
        build_record(TransactionRecord, user_id="u", creator_id="c", type="support", amount=1, status="settled")


def test_ai_prompt_length_boundary():
    ok = build_record(AILogRecord, user_id="u1", prompt="p" * AI_PROMPT_MAX, response="r")
    assert len(ok.prompt) == 2000
    assert ok.purpose == "other"
    with pytest.raises(ValidationError):
        build_record(AILogRecord, user_id="u1", prompt="p" * (AI_PROMPT_MAX + 1), response="r")


def test_notification_defaults_unread_system():
    rec = build_record(NotificationRecord, user_id="u1", title="Hi", message="Hello")
    assert rec.is_read is False
    assert rec.type == "system"


def test_support_message_limit():
    build_record(SupportRecord, supporter_id="s", creator_id="c", amount=1, message="m" * 500)
    with pytest.raises(ValidationError):
        build_record(SupportRecord, supporter_id="s", creator_id="c", amount=1, message="m" * 501)


def test_support_naive_expiry_is_treated_as_utc():
    rec = build_record(SupportRecord, supporter_id="s", creator_id="c", amount=1, access_expiry=datetime(2030, 1, 1))
    assert rec.access_expiry == datetime(2030, 1, 1, tzinfo=timezone.utc)


def test_tier_title_is_trimmed_and_price_floor():
    rec = build_record(TierRecord, creator_id="c", title="  Gold  ", description="Best", price=0.01)
    assert rec.title == "Gold"
    with pytest.raises(ValidationError):
        build_record(TierRecord, creator_id="c", title="Gold", description="Best", price=0)


def test_unknown_fields_are_rejected():
    with pytest.raises(ValidationError):
        build_record(NotificationRecord, user_id="u", title="t", message="m", priority="high")


def test_build_document_stamps_times_and_serialize_exposes_id():
    doc = build_document(NotificationRecord, user_id="u", title="t", message="m")
    assert doc["created_at"] == doc["updated_at"]
    assert doc["created_at"].tzinfo is not None

    doc["_id"] = "abc"
    out = serialize(doc)
    assert out["id"] == "abc"
    assert "_id" not in out
    assert serialize(None) is None
