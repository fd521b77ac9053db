from datetime import datetime, timezone

from settleup.db.models import CloseOutcome
from settleup.services.summary import format_cents, format_close_outcome
from settleup.services.transfers import Transfer


def test_format_cents():
    assert format_cents(12345) == "123.45"
    assert format_cents(-34) == "-0.34"
    assert format_cents(67, signed=True) == "+0.67"
    assert format_cents(0, signed=True) == "0.00"


def test_format_close_outcome():
    outcome = CloseOutcome(
        settlement_id="s-1",
        closed_at=datetime(2025, 11, 3, 12, 0, tzinfo=timezone.utc),
        balances={"p1": 67, "p2": -33, "p3": -34},
        transfers=(Transfer("p3", "p1", 34), Transfer("p2", "p1", 33)),
    )

    text = format_close_outcome(outcome, {"p1": "anna", "p2": "bartek", "p3": "celina"}, timezone.utc)

    assert text.startswith("Settlement closed: 03.11.2025 12:00 UTC")
    assert "anna: +0.67 PLN" in text
    assert "celina → anna: 0.34 PLN" in text
    assert "bartek → anna: 0.33 PLN" in text


def test_format_close_outcome_replay_without_transfers():
    outcome = CloseOutcome(
        settlement_id="s-1",
        closed_at=datetime(2025, 11, 3, 12, 0, tzinfo=timezone.utc),
        balances={"p1": 0},
        transfers=(),
        replayed=True,
    )

    text = format_close_outcome(outcome, {}, timezone.utc, currency="EUR")

    assert text.startswith("Settlement was already closed")
    assert "p1: 0.00 EUR" in text
    assert "No transfers needed." in text


def test_close_outcome_payload():
    outcome = CloseOutcome(
        settlement_id="s-1",
        closed_at=datetime(2025, 11, 3, 12, 0, tzinfo=timezone.utc),
        balances={"b": -5, "a": 5},
        transfers=(Transfer("b", "a", 5),),
        replayed=True,
    )

    assert outcome.as_payload() == {
        "id": "s-1",
        "status": "closed",
        "closed_at": "2025-11-03T12:00:00+00:00",
        "balances": {"a": 5, "b": -5},
        "transfers": [{"from": "b", "to": "a", "amount_cents": 5}],
    }
    assert list(outcome.as_payload()["balances"]) == ["a", "b"]
