"""Tests for the mutable simulation state and its frozen views."""

from dataclasses import FrozenInstanceError
from datetime import date

import pytest

from retirement_sim.exceptions import OverdrawnAccountError
from retirement_sim.simulation.accounts import Account, AccountType
from retirement_sim.simulation.context import AccountWithdrawal, WithdrawalPlan
from retirement_sim.simulation.state import SimulationFlags, SimulationState


def _state():
    return SimulationState(
        [
            Account("brokerage", "Brokerage", AccountType.TAXABLE_BROKERAGE, 100000.0),
            Account("ira", "IRA", AccountType.TRADITIONAL_IRA, 50000.0),
        ]
    )


def _plan(*draws):
    withdrawals = [AccountWithdrawal(aid, aid, amount, prior) for aid, amount, prior in draws]
    total = sum(w.amount for w in withdrawals)
    return WithdrawalPlan(total, total, account_withdrawals=withdrawals)


def test_snapshot_is_frozen_and_idempotent():
    state = _state()
    first = state.snapshot(date(2030, 1, 1))
    second = state.snapshot(date(2030, 1, 1))
    assert first.accounts == second.accounts
    assert first.prior_year_withdrawals == second.prior_year_withdrawals
    assert first.total_balance == 150000.0
    with pytest.raises(FrozenInstanceError):
        first.total_balance = 0.0


def test_view_does_not_change_after_state_mutates():
    state = _state()
    view = state.snapshot(date(2030, 1, 1))
    state.begin_month()
    state.apply(_plan(("brokerage", 1000.0, 100000.0)))
    assert view.account("brokerage").balance == 100000.0
    assert state.balance("brokerage") == 99000.0


def test_apply_rejects_overdraw_and_leaves_balances():
    state = _state()
    state.begin_month()
    with pytest.raises(OverdrawnAccountError) as err:
        state.apply(_plan(("ira", 60000.0, 50000.0)))
    assert err.value.account_id == "ira"
    assert state.balance("ira") == 50000.0


def test_apply_clamps_rounding_dust_to_zero():
    state = _state()
    state.begin_month()
    taken = state.apply(_plan(("ira", 50000.0005, 50000.0)))
    assert taken == pytest.approx(50000.0)
    assert state.balance("ira") == 0.0


def test_monthly_flows_conserve_money():
    state = _state()
    state.begin_month()
    state.apply(_plan(("brokerage", 2500.0, 100000.0)))
    state.deposit("ira", 500.0)
    state.apply_returns({"brokerage": 0.01, "ira": 0.005})
    flows = state.close_month()
    assert all(flow.is_balanced() for flow in flows.values())
    assert flows["brokerage"].returns == pytest.approx(97500.0 * 0.01)
    assert flows["ira"].contributions == 500.0


def test_transfer_ownership_keeps_balances():
    state = _state()
    before = state.total_balance
    moved = state.transfer_ownership("primary", "spouse")
    assert set(moved) == {"brokerage", "ira"}
    assert state.owner_of("ira") == "spouse"
    assert state.total_balance == before


def test_withdrawal_base_is_frozen_at_first_call():
    state = _state()
    state.mark_withdrawal_start()
    state.deposit("brokerage", 10000.0)
    state.mark_withdrawal_start()
    assert state.withdrawal_base == 150000.0
    assert state.snapshot(date(2030, 1, 1)).withdrawal_base == 150000.0


def test_reserves_draw_and_refill():
    state = SimulationState([], reserves={"home_repair": (10000.0, 4000.0)})
    assert state.draw_reserve("home_repair", 6000.0) == 4000.0
    assert state.reserve_deficit("home_repair") == 10000.0
    assert state.refill_reserve("home_repair", 12000.0) == 10000.0
    assert state.reserve_balance == 10000.0
    assert state.draw_reserve("unknown", 100.0) == 0.0


def test_flags_return_new_objects():
    flags = SimulationFlags()
    survivor = flags.with_survivor_mode().with_refill("home_repair")
    assert not flags.survivor_mode
    assert survivor.survivor_mode and survivor.is_refilling("home_repair")
    assert not survivor.with_refill("home_repair", active=False).is_refilling("home_repair")


def test_ratchet_keeps_first_month_of_increase_year():
    state = _state()
    for month in range(1, 13):
        state.record_ratchet(date(2031, month, 1))
    assert state.last_ratchet_month == date(2031, 1, 1)
    state.record_ratchet(date(2033, 1, 1))
    view = state.snapshot(date(2034, 6, 1))
    assert view.last_ratchet_month == date(2033, 1, 1)
    assert view.years_since_ratchet() == 1
