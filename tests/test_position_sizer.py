"""Tests for position sizing heuristics, the blend, and the risk gate."""

import pytest

from marketstruct.risk.limits import AccountState, SizingConfig, check_risk_gate
from marketstruct.risk.position_sizer import (
    SizingError,
    SizingRecommendation,
    SizingRequest,
    calculate_quantity,
    confidence_graded,
    fixed_fractional,
    half_kelly,
    intelligent_sizing,
    momentum_multiplier,
    momentum_scaled,
    volatility_scaled,
)


BALANCE = 10_000.0


# ── calculate_quantity ───────────────────────────────────────────────────


class TestCalculateQuantity:
    def test_two_percent_over_two_points(self):
        # 200 risked over a 2-point stop
        assert calculate_quantity(BALANCE, 2.0, 100.0, 98.0) == pytest.approx(100.0)

    def test_short_side_uses_absolute_distance(self):
        assert calculate_quantity(BALANCE, 2.0, 100.0, 102.0) == pytest.approx(100.0)

    def test_leverage_cap(self):
        # 200 / 0.1 = 2000 units, but 10x leverage only buys 1000
        assert calculate_quantity(BALANCE, 2.0, 100.0, 99.9) == pytest.approx(1000.0)

    def test_zero_distance_is_capped_not_infinite(self):
        assert calculate_quantity(BALANCE, 2.0, 100.0, 100.0) == pytest.approx(1000.0)

    @pytest.mark.parametrize("kwargs", [
        {"balance": 0.0},
        {"risk_pct": -1.0},
        {"entry": 0.0},
        {"max_leverage": 0.0},
    ])
    def test_non_positive_inputs_raise(self, kwargs):
        args = {"balance": BALANCE, "risk_pct": 2.0, "entry": 100.0, "stop": 98.0}
        args.update(kwargs)
        with pytest.raises(ValueError, match="must be positive"):
            calculate_quantity(**args)


# ── Heuristics ───────────────────────────────────────────────────────────


class TestHeuristics:
    def test_fixed_fractional(self):
        quote = fixed_fractional(BALANCE, 100.0, 98.0)
        assert quote.method == "fixed_fractional"
        assert quote.risk_amount == pytest.approx(100.0)
        assert quote.quantity == pytest.approx(50.0)
        assert quote.capped is False

    def test_half_kelly_capped_at_max_risk(self):
        # Kelly 0.4, halved to 20 %, capped at 3 %
        quote = half_kelly(BALANCE, 100.0, 98.0, 106.0, 0.55)
        assert quote.risk_percentage == pytest.approx(3.0)
        assert quote.quantity == pytest.approx(150.0)

    def test_half_kelly_negative_edge_sizes_zero(self):
        quote = half_kelly(BALANCE, 100.0, 98.0, 101.0, 0.3)
        assert quote.quantity == 0.0

    def test_volatility_scaled_shrinks_in_high_volatility(self):
        quote = volatility_scaled(BALANCE, 100.0, 98.0, atr=2.0, average_atr=1.0)
        assert quote.risk_percentage == pytest.approx(0.5)
        assert quote.quantity == pytest.approx(25.0)

    def test_volatility_scaled_clamped_to_max(self):
        quote = volatility_scaled(BALANCE, 100.0, 98.0, atr=0.25, average_atr=1.0)
        assert quote.risk_percentage == pytest.approx(3.0)
        assert quote.quantity == pytest.approx(150.0)

    def test_confidence_graded_best_and_worst(self):
        best = confidence_graded(BALANCE, 100.0, 98.0, grade="A+", confidence=1.0)
        assert best.quantity == pytest.approx(75.0)
        worst = confidence_graded(BALANCE, 100.0, 98.0, grade="D", confidence=0.0)
        # 0.125 % clamps up to the 0.25 % floor
        assert worst.risk_percentage == pytest.approx(0.25)
        assert worst.quantity == pytest.approx(12.5)

    def test_unknown_grade_uses_default_multiplier(self):
        quote = confidence_graded(BALANCE, 100.0, 98.0, grade="Z", confidence=1.0)
        assert quote.risk_percentage == pytest.approx(0.75)

    @pytest.mark.parametrize("momentum,multiplier", [
        (0.95, 1.5), (0.7, 1.25), (0.5, 1.0), (0.3, 0.6), (0.1, 0.3),
    ])
    def test_momentum_bands(self, momentum, multiplier):
        assert momentum_multiplier(momentum) == multiplier

    def test_momentum_scaled(self):
        quote = momentum_scaled(BALANCE, 100.0, 98.0, momentum=0.95)
        assert quote.quantity == pytest.approx(75.0)


# ── Blend ────────────────────────────────────────────────────────────────


class TestIntelligentSizing:
    def test_minimal_request_falls_back_to_fixed(self):
        account = AccountState(initial_balance=BALANCE)
        rec = intelligent_sizing(SizingRequest(entry=100.0, stop=98.0), account)

        assert isinstance(rec, SizingRecommendation)
        # Kelly and volatility slots reuse the fixed quote (50)
        assert rec.quantity == pytest.approx(43.4375)
        assert rec.risk_amount == pytest.approx(86.875)
        assert rec.reward_risk == pytest.approx(1.0)
        assert rec.risk_check.can_open is True
        assert [q.method for q in rec.quotes] == [
            "fixed_fractional", "confidence_graded", "momentum_scaled",
        ]

    def test_full_request_blends_all_five(self):
        account = AccountState(initial_balance=BALANCE)
        request = SizingRequest(entry=100.0, stop=98.0, target=106.0, atr=2.0, average_atr=1.0)
        rec = intelligent_sizing(request, account)

        assert len(rec.quotes) == 5
        assert rec.quantity == pytest.approx(59.6875)
        assert rec.reward_risk == pytest.approx(3.0)
        assert rec.max_quantity == pytest.approx(1000.0)
        assert rec.leverage_capped is False

    def test_missing_stop_is_error_value(self):
        account = AccountState(initial_balance=BALANCE)
        result = intelligent_sizing(SizingRequest(entry=100.0, stop=None), account)
        assert isinstance(result, SizingError)
        assert "required" in result.message

    def test_tight_stop_hits_leverage_cap(self):
        account = AccountState(initial_balance=BALANCE)
        rec = intelligent_sizing(SizingRequest(entry=100.0, stop=99.99), account)
        assert rec.leverage_capped is True
        assert rec.quantity <= rec.max_quantity

    def test_gate_failure_reported(self):
        account = AccountState(initial_balance=BALANCE, open_positions=3)
        rec = intelligent_sizing(SizingRequest(entry=100.0, stop=98.0), account)
        assert rec.risk_check.can_open is False
        assert "max_open_positions" in rec.risk_check.failures

    def test_gate_checks_risk_of_blended_quantity(self):
        # Grade D sizes small, but Kelly, volatility and momentum push the blend up
        account = AccountState(initial_balance=BALANCE, daily_loss=450.0)
        request = SizingRequest(
            entry=100.0, stop=98.0, target=110.0, atr=1.0, average_atr=2.0,
            win_probability=0.7, grade="D", confidence=0.0, momentum=0.95,
        )
        rec = intelligent_sizing(request, account)

        assert rec.quantity == pytest.approx(70.0)
        assert rec.risk_amount == pytest.approx(140.0)
        assert rec.risk_check.can_open is False
        assert rec.risk_check.failures == ("max_daily_loss",)

        fresh = intelligent_sizing(request, AccountState(initial_balance=BALANCE))
        assert fresh.risk_check.can_open is True


# ── Risk gate ────────────────────────────────────────────────────────────


class TestRiskGate:
    def test_clean_account_passes(self):
        check = check_risk_gate(AccountState(initial_balance=BALANCE), 100.0)
        assert check.can_open is True
        assert check.failures == ()

    def test_daily_loss_cap(self):
        account = AccountState(initial_balance=BALANCE, daily_loss=450.0)
        assert check_risk_gate(account, 100.0).failures == ("max_daily_loss",)

    def test_monthly_loss_cap(self):
        account = AccountState(initial_balance=BALANCE, monthly_loss=1450.0)
        assert check_risk_gate(account, 100.0).failures == ("max_monthly_loss",)

    def test_open_position_limit(self):
        account = AccountState(initial_balance=BALANCE, open_positions=3)
        assert check_risk_gate(account, 100.0).failures == ("max_open_positions",)

    def test_loss_streak(self):
        account = AccountState(initial_balance=BALANCE, consecutive_losses=3)
        assert check_risk_gate(account, 100.0).failures == ("max_consecutive_losses",)

    def test_hard_ceiling_uses_current_balance(self):
        config = SizingConfig(max_daily_loss=10.0)
        account = AccountState(initial_balance=BALANCE)
        assert check_risk_gate(account, 600.0, config).failures == ("hard_risk_ceiling",)

    def test_multiple_failures_all_named(self):
        account = AccountState(initial_balance=BALANCE, open_positions=3, consecutive_losses=5)
        failures = check_risk_gate(account, 100.0).failures
        assert set(failures) == {"max_open_positions", "max_consecutive_losses"}


class TestAccountState:
    def test_balance_defaults_to_initial(self):
        assert AccountState(initial_balance=5000.0).balance == 5000.0

    def test_explicit_zero_balance_kept(self):
        account = AccountState(initial_balance=5000.0, balance=0.0)
        assert account.balance == 0.0
        assert "hard_risk_ceiling" in check_risk_gate(account, 100.0).failures

    def test_non_positive_initial_balance_rejected(self):
        with pytest.raises(ValueError):
            AccountState(initial_balance=0.0)

    def test_losses_accumulate_and_win_resets_streak(self):
        account = AccountState(initial_balance=BALANCE)
        account.open_position()
        account.record_trade(-100.0)
        assert account.balance == pytest.approx(9900.0)
        assert account.daily_loss == pytest.approx(100.0)
        assert account.monthly_loss == pytest.approx(100.0)
        assert account.consecutive_losses == 1
        assert account.open_positions == 0

        account.record_trade(50.0)
        assert account.consecutive_losses == 0
        assert account.balance == pytest.approx(9950.0)

    def test_cash_settlement_with_prepaid_fee(self):
        account = AccountState(initial_balance=BALANCE)
        account.adjust_balance(-10.0)
        account.record_trade(90.0, cash=100.0)
        assert account.balance == pytest.approx(10_090.0)

    def test_resets(self):
        account = AccountState(initial_balance=BALANCE, daily_loss=1.0, monthly_loss=2.0,
                               consecutive_losses=2)
        account.reset_daily()
        account.reset_streak()
        assert account.daily_loss == 0.0
        assert account.consecutive_losses == 0
        assert account.monthly_loss == 2.0
        account.reset_monthly()
        assert account.monthly_loss == 0.0

    def test_config_validation(self):
        with pytest.raises(ValueError, match="exceeds"):
            SizingConfig(min_risk_percentage=4.0, max_risk_percentage=3.0)
