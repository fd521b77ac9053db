import random

import pytest

from settleup.services.errors import BalanceInvariantError
from settleup.services.transfers import Transfer, minimize_transfers


def _replay(balances, transfers):
    after = dict(balances)
    for t in transfers:
        after[t.from_participant] += t.amount_cents
        after[t.to_participant] -= t.amount_cents
    return after


def test_minimize_transfers_four_participants():
    balances = {"A": 1500, "B": -1000, "C": 500, "D": -1000}

    transfers = minimize_transfers(balances)

    assert transfers == [
        Transfer(from_participant="B", to_participant="A", amount_cents=1000),
        Transfer(from_participant="D", to_participant="A", amount_cents=500),
        Transfer(from_participant="D", to_participant="C", amount_cents=500),
    ]
    assert all(value == 0 for value in _replay(balances, transfers).values())


def test_minimize_transfers_single_pair():
    assert minimize_transfers({"A": 1000, "B": -1000}) == [
        Transfer(from_participant="B", to_participant="A", amount_cents=1000)
    ]


def test_minimize_transfers_all_zero():
    assert minimize_transfers({"A": 0, "B": 0, "C": 0}) == []
    assert minimize_transfers({}) == []


def test_minimize_transfers_ties_break_on_smaller_id():
    balances = {"y": -100, "b": 100, "x": -100, "a": 100}

    transfers = minimize_transfers(balances)

    assert transfers == [
        Transfer(from_participant="x", to_participant="a", amount_cents=100),
        Transfer(from_participant="y", to_participant="b", amount_cents=100),
    ]


def test_minimize_transfers_ignores_input_order():
    balances = {"A": 1500, "B": -1000, "C": 500, "D": -1000}
    reordered = dict(reversed(list(balances.items())))

    assert minimize_transfers(balances) == minimize_transfers(reordered)


def test_minimize_transfers_rejects_non_zero_sum():
    with pytest.raises(BalanceInvariantError):
        minimize_transfers({"A": 100, "B": -99})


def test_minimize_transfers_does_not_mutate_input():
    balances = {"A": 300, "B": -100, "C": -200}
    minimize_transfers(balances)
    assert balances == {"A": 300, "B": -100, "C": -200}


def test_transfer_as_dict_round_trip():
    transfer = Transfer(from_participant="B", to_participant="A", amount_cents=250)
    assert transfer.as_dict() == {"from": "B", "to": "A", "amount_cents": 250}
    assert Transfer.from_dict(transfer.as_dict()) == transfer


def test_minimize_transfers_random_balances():
    rng = random.Random(42)

    for _ in range(300):
        size = rng.randint(1, 12)
        values = [rng.randint(-50_000, 50_000) for _ in range(size - 1)]
        values.append(-sum(values))
        balances = {f"id-{i:03d}": value for i, value in enumerate(values)}

        transfers = minimize_transfers(balances)
        non_zero = sum(1 for value in balances.values() if value != 0)

        assert all(t.amount_cents > 0 for t in transfers)
        assert all(value == 0 for value in _replay(balances, transfers).values())
        if non_zero:
            assert len(transfers) <= non_zero - 1
        else:
            assert transfers == []
        assert transfers == minimize_transfers(dict(balances))
