"""
Tests for SettlementLedger (staking, winner resolution, payouts, claims)
"""

from dataclasses import replace
from decimal import Decimal

import pytest

from core.errors import ClaimRejected, StakeRejected
from core.ledger import SettlementLedger
from models import Position, PushPolicy, RoundStatus, UserBet


def bet(position, amount, round_id=1, user="alice"):
    return UserBet(user_id=user, round_id=round_id, position=position, amount=Decimal(amount), placed_at=0.0)


class TestStake:
    def test_stake_increments_only_that_side(self, ledger, live_round):
        round_ = ledger.stake(live_round, Position.UP, Decimal("10"))

        assert round_.up_pool == Decimal("10")
        assert round_.down_pool == Decimal("0")
        assert round_.total_pool == Decimal("10")
        # Original value untouched
        assert live_round.up_pool == Decimal("0")

    def test_total_pool_is_sum_of_sides(self, ledger, live_round):
        round_ = live_round
        for position, amount in [(Position.UP, "1.5"), (Position.DOWN, "2.25"), (Position.UP, "3")]:
            round_ = ledger.stake(round_, position, Decimal(amount))

        assert round_.total_pool == round_.up_pool + round_.down_pool == Decimal("6.75")

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1"), Decimal("NaN"), Decimal("Infinity"), 5])
    def test_bad_amount_rejected(self, ledger, live_round, amount):
        with pytest.raises(StakeRejected):
            ledger.stake(live_round, Position.UP, amount)

    def test_none_position_rejected(self, ledger, live_round):
        with pytest.raises(StakeRejected):
            ledger.stake(live_round, Position.NONE, Decimal("1"))

    def test_settled_round_rejected(self, ledger, staked_round):
        settled = ledger.settle(staked_round, Decimal("1.05"))

        with pytest.raises(StakeRejected, match="ENDED"):
            ledger.stake(settled, Position.UP, Decimal("1"))


class TestSettle:
    @pytest.mark.parametrize(
        "close, winner",
        [("1.05", Position.UP), ("0.95", Position.DOWN), ("1.00", Position.NONE)],
    )
    def test_winner_from_prices(self, ledger, staked_round, close, winner):
        settled = ledger.settle(staked_round, Decimal(close))

        assert settled.winner == winner
        assert settled.status == RoundStatus.ENDED
        assert settled.close_price == Decimal(close)
        assert settled.up_pool == Decimal("80")
        assert settled.down_pool == Decimal("70")

    def test_settle_twice_raises(self, ledger, staked_round):
        settled = ledger.settle(staked_round, Decimal("1.05"))

        with pytest.raises(ValueError, match="already settled"):
            ledger.settle(settled, Decimal("1.10"))

    def test_winning_side_without_stakes_goes_to_treasury(self, ledger, live_round):
        round_ = ledger.stake(live_round, Position.DOWN, Decimal("25"))

        ledger.settle(round_, Decimal("1.10"))

        assert ledger.treasury_balance == Decimal("25")

    def test_refund_push_keeps_treasury_empty(self, ledger, staked_round):
        ledger.settle(staked_round, Decimal("1.00"))

        assert ledger.treasury_balance == Decimal("0")

    def test_forfeit_push_moves_pool_to_treasury(self, staked_round):
        ledger = SettlementLedger(push_policy=PushPolicy.FORFEIT)

        ledger.settle(staked_round, Decimal("1.00"))

        assert ledger.treasury_balance == Decimal("150")


class TestPayouts:
    def test_single_winner_takes_whole_pool(self, ledger, staked_round):
        """80 UP vs 70 DOWN, price 1.00 -> 1.05: UP payout 150, DOWN payout 0"""
        settled = ledger.settle(staked_round, Decimal("1.05"))

        assert ledger.compute_payout(settled, bet(Position.UP, "80")) == Decimal("150")
        assert ledger.compute_payout(settled, bet(Position.DOWN, "70")) == Decimal("0")

    def test_two_losers_one_winner(self, ledger, live_round):
        """30 + 20 UP vs 50 DOWN, price falls: DOWN payout 100, UP bettors 0"""
        round_ = live_round
        for position, amount in [(Position.UP, "30"), (Position.UP, "20"), (Position.DOWN, "50")]:
            round_ = ledger.stake(round_, position, Decimal(amount))
        settled = ledger.settle(round_, Decimal("0.90"))

        assert ledger.compute_payout(settled, bet(Position.DOWN, "50")) == Decimal("100")
        assert ledger.compute_payout(settled, bet(Position.UP, "30")) == Decimal("0")
        assert ledger.compute_payout(settled, bet(Position.UP, "20")) == Decimal("0")

    def test_winners_share_proportionally(self, ledger, live_round):
        round_ = live_round
        for position, amount in [(Position.UP, "25"), (Position.UP, "75"), (Position.DOWN, "100")]:
            round_ = ledger.stake(round_, position, Decimal(amount))
        settled = ledger.settle(round_, Decimal("1.01"))

        small = ledger.compute_payout(settled, bet(Position.UP, "25"))
        large = ledger.compute_payout(settled, bet(Position.UP, "75"))

        assert small == Decimal("50")
        assert large == Decimal("150")
        assert small + large <= settled.total_pool

    def test_payout_before_settlement_raises(self, ledger, staked_round):
        with pytest.raises(ValueError, match="has not ended"):
            ledger.compute_payout(staked_round, bet(Position.UP, "80"))

    def test_push_refund_returns_stake(self, ledger, staked_round):
        settled = ledger.settle(staked_round, Decimal("1.00"))

        assert ledger.compute_payout(settled, bet(Position.UP, "80")) == Decimal("80")
        assert ledger.compute_payout(settled, bet(Position.DOWN, "70")) == Decimal("70")

    def test_push_forfeit_pays_nothing(self, staked_round):
        ledger = SettlementLedger(push_policy=PushPolicy.FORFEIT)
        settled = ledger.settle(staked_round, Decimal("1.00"))

        assert ledger.compute_payout(settled, bet(Position.UP, "80")) == Decimal("0")
        assert not ledger.is_claimable(settled, bet(Position.UP, "80"))

    def test_fee_withheld_when_enabled(self, staked_round):
        ledger = SettlementLedger(fee_rate=Decimal("0.01"), apply_fee=True)
        settled = ledger.settle(staked_round, Decimal("1.05"))

        assert ledger.compute_payout(settled, bet(Position.UP, "80")) == Decimal("148.50")

    def test_invalid_fee_rate(self):
        with pytest.raises(ValueError):
            SettlementLedger(fee_rate=Decimal("1"))


UNEVEN_STAKES = [
    ([(Position.UP, "1"), (Position.UP, "3"), (Position.UP, "3"), (Position.DOWN, "1")], "1.05"),
    ([(Position.UP, "0.1"), (Position.UP, "0.1"), (Position.UP, "0.1"), (Position.DOWN, "0.2")], "1.05"),
    ([(Position.DOWN, "7"), (Position.DOWN, "11"), (Position.UP, "13")], "0.95"),
    ([(Position.UP, "1"), (Position.UP, "1"), (Position.UP, "1"), (Position.DOWN, "0.01")], "1.05"),
]


class TestPayoutInvariants:
    """Shares that do not divide evenly are truncated, never rounded up"""

    @staticmethod
    def settle(ledger, live_round, stakes, close):
        round_ = live_round
        for position, amount in stakes:
            round_ = ledger.stake(round_, position, Decimal(amount))
        return ledger.settle(round_, Decimal(close))

    @pytest.mark.parametrize("stakes, close", UNEVEN_STAKES)
    def test_payouts_never_exceed_pool(self, ledger, live_round, stakes, close):
        settled = self.settle(ledger, live_round, stakes, close)
        winners = [bet(p, a) for p, a in stakes if p == settled.winner]

        paid = sum(ledger.compute_payout(settled, b) for b in winners)

        assert paid <= settled.total_pool
        assert settled.total_pool - paid < len(winners) * Decimal("1e-18")

    @pytest.mark.parametrize("stakes, close", UNEVEN_STAKES)
    def test_payouts_and_fees_never_exceed_pool(self, live_round, stakes, close):
        ledger = SettlementLedger(fee_rate=Decimal("0.03"), apply_fee=True)
        settled = self.settle(ledger, live_round, stakes, close)

        paid = sum(ledger.claim(settled, bet(p, a)).payout for p, a in stakes if p == settled.winner)

        assert paid + ledger.treasury_balance <= settled.total_pool

    def test_payout_truncated_to_eighteen_places(self, ledger, live_round):
        settled = self.settle(ledger, live_round, UNEVEN_STAKES[0][0], "1.05")

        payout = ledger.compute_payout(settled, bet(Position.UP, "1"))

        assert payout.as_tuple().exponent == -18
        assert payout == Decimal("1.142857142857142857")

    def test_precision_is_configurable(self, live_round):
        ledger = SettlementLedger(precision=2)
        stakes = [(Position.UP, "1"), (Position.UP, "2"), (Position.DOWN, "1")]
        settled = self.settle(ledger, live_round, stakes, "1.05")

        assert ledger.compute_payout(settled, bet(Position.UP, "1")) == Decimal("1.33")
        assert ledger.compute_payout(settled, bet(Position.UP, "2")) == Decimal("2.66")


class TestVoid:
    def test_void_ends_without_winner(self, ledger, staked_round):
        voided = ledger.void(staked_round, Decimal("1.20"))

        assert voided.status == RoundStatus.ENDED
        assert voided.voided
        assert voided.winner == Position.NONE
        assert voided.close_price == Decimal("1.20")
        assert ledger.treasury_balance == Decimal("0")

    @pytest.mark.parametrize("policy", [PushPolicy.REFUND, PushPolicy.FORFEIT])
    def test_void_refunds_under_any_push_policy(self, staked_round, policy):
        ledger = SettlementLedger(push_policy=policy)
        voided = ledger.void(staked_round, Decimal("1.20"))

        assert ledger.refunds(voided)
        assert ledger.compute_payout(voided, bet(Position.UP, "80")) == Decimal("80")
        result = ledger.claim(voided, bet(Position.DOWN, "70"))
        assert result.refund
        assert result.payout == Decimal("70")

    def test_void_ended_round_raises(self, ledger, staked_round):
        settled = ledger.settle(staked_round, Decimal("1.05"))

        with pytest.raises(ValueError, match="already settled"):
            ledger.void(settled, Decimal("1.05"))


class TestClaim:
    def test_claim_winner(self, ledger, staked_round):
        settled = ledger.settle(staked_round, Decimal("1.05"))

        result = ledger.claim(settled, bet(Position.UP, "80"))

        assert result.payout == Decimal("150")
        assert result.fee == Decimal("0")
        assert not result.refund

    def test_claim_books_fee_to_treasury(self, staked_round):
        ledger = SettlementLedger(apply_fee=True)
        settled = ledger.settle(staked_round, Decimal("1.05"))

        result = ledger.claim(settled, bet(Position.UP, "80"))

        assert result.fee == Decimal("1.50")
        assert ledger.treasury_balance == Decimal("1.50")
        assert result.payout + ledger.treasury_balance == settled.total_pool

    def test_claim_push_refund(self, ledger, staked_round):
        settled = ledger.settle(staked_round, Decimal("1.00"))

        result = ledger.claim(settled, bet(Position.DOWN, "70"))

        assert result.refund
        assert result.payout == Decimal("70")

    def test_claim_loser_rejected(self, ledger, staked_round):
        settled = ledger.settle(staked_round, Decimal("1.05"))

        with pytest.raises(ClaimRejected, match="did not win"):
            ledger.claim(settled, bet(Position.DOWN, "70"))

    def test_claim_already_claimed_rejected(self, ledger, staked_round):
        settled = ledger.settle(staked_round, Decimal("1.05"))
        claimed = replace(bet(Position.UP, "80"), claimed=True)

        with pytest.raises(ClaimRejected, match="already claimed"):
            ledger.claim(settled, claimed)

    def test_claim_open_round_rejected(self, ledger, staked_round):
        with pytest.raises(ClaimRejected, match="has not ended"):
            ledger.claim(staked_round, bet(Position.UP, "80"))

    def test_claim_wrong_round_rejected(self, ledger, staked_round):
        settled = ledger.settle(staked_round, Decimal("1.05"))

        with pytest.raises(ClaimRejected, match="belongs to round"):
            ledger.claim(settled, bet(Position.UP, "80", round_id=2))
