"""
Pool and settlement ledger

Stake accounting on rounds, winner determination and pari-mutuel payouts.
The ledger never touches balances or bets itself; the GameController applies
its results together with the PositionBook so each operation is all or
nothing.
"""

import logging
from dataclasses import dataclass, replace
from decimal import ROUND_DOWN, Context, Decimal, localcontext

from models import Position, PushPolicy, Round, RoundStatus, UserBet

from .errors import ClaimRejected, StakeRejected

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
ONE = Decimal("1")
# Wide enough that sums and shares at 18 decimal places never round
WIDE = Context(prec=60, rounding=ROUND_DOWN)


@dataclass(frozen=True)
class ClaimResult:
    """Outcome of a successful claim"""

    round_id: int
    position: Position
    payout: Decimal
    fee: Decimal = ZERO
    refund: bool = False


class SettlementLedger:
    """
    Pari-mutuel ledger

    Winners share the whole pool (both sides) in proportion to their stake in
    the winning side. A push (close == start) is handled by `push_policy`.
    A treasury fee is withheld from winning payouts only when
    `apply_fee` is set.
    """

    def __init__(
        self,
        push_policy: PushPolicy = PushPolicy.REFUND,
        fee_rate: Decimal = Decimal("0.01"),
        apply_fee: bool = False,
        precision: int = 18,
    ):
        if fee_rate < 0 or fee_rate >= 1:
            raise ValueError(f"fee_rate must be in [0, 1), got {fee_rate}")

        self.push_policy = PushPolicy(push_policy)
        self.fee_rate = fee_rate
        self.apply_fee = apply_fee
        # Payouts and fees are truncated to this many decimal places
        self._quantum = Decimal(1).scaleb(-precision)
        self._treasury = ZERO

        logger.info(
            f"SettlementLedger initialized: push_policy={self.push_policy.value}, "
            f"fee={fee_rate if apply_fee else 'off'}"
        )

    @property
    def treasury_balance(self) -> Decimal:
        return self._treasury

    # ========================================================================
    # STAKING
    # ========================================================================

    def stake(self, round_: Round, position: Position, amount: Decimal) -> Round:
        """
        Add a stake to one side of a live round

        Balance checks belong to the caller.

        Returns:
            The round with the pool incremented

        Raises:
            StakeRejected: non-positive/non-finite amount, bad side, round not LIVE
        """
        if not isinstance(amount, Decimal) or not amount.is_finite() or amount <= 0:
            raise StakeRejected(f"Stake amount must be a finite positive number, got {amount!r}")
        if not Position.is_stakeable(position):
            raise StakeRejected(f"Cannot stake on {position}")
        if round_.status != RoundStatus.LIVE:
            raise StakeRejected(f"Round {round_.id} is {round_.status.value}")

        return round_.with_stake(Position(position), amount)

    # ========================================================================
    # SETTLEMENT
    # ========================================================================

    @staticmethod
    def determine_winner(start_price: Decimal, close_price: Decimal) -> Position:
        if close_price > start_price:
            return Position.UP
        if close_price < start_price:
            return Position.DOWN
        return Position.NONE

    def settle(self, round_: Round, close_price: Decimal) -> Round:
        """
        Freeze pool totals and resolve the winner

        Pools that no bettor can claim (a forfeited push, or a winning side
        nobody staked on) are moved to the treasury.
        """
        if round_.is_ended:
            raise ValueError(f"Round {round_.id} already settled")

        winner = self.determine_winner(round_.start_price, close_price)
        settled = replace(
            round_, close_price=close_price, winner=winner, status=RoundStatus.ENDED
        )

        if settled.total_pool > 0:
            if winner == Position.NONE and self.push_policy == PushPolicy.FORFEIT:
                self._treasury += settled.total_pool
                logger.info(f"Round {settled.id} pushed: {settled.total_pool} forfeited to treasury")
            elif winner != Position.NONE and settled.pool_for(winner) == 0:
                self._treasury += settled.total_pool
                logger.info(
                    f"Round {settled.id}: no stake on winning side {winner.value}, "
                    f"{settled.total_pool} moved to treasury"
                )

        return settled

    # ========================================================================
    # PAYOUTS
    # ========================================================================

    def gross_payout(self, round_: Round, bet: UserBet) -> Decimal:
        """
        Pari-mutuel share of the whole pool before policy and fees

        0 for a losing bet or a push.
        """
        if round_.winner == Position.NONE or bet.position != round_.winner:
            return ZERO

        winner_pool = round_.pool_for(round_.winner)
        # A winning bet is itself in this pool; zero only on corrupted data
        safe_winner_pool = winner_pool if winner_pool != 0 else ONE
        # Every step rounds down so the winners' shares never sum past the pool
        with localcontext(WIDE):
            gross = round_.total_pool * bet.amount / safe_winner_pool
            return gross.quantize(self._quantum, rounding=ROUND_DOWN)

    def void(self, round_: Round, close_price: Decimal) -> Round:
        """
        End a round without a winner; every stake is refunded whatever the
        push policy
        """
        if round_.is_ended:
            raise ValueError(f"Round {round_.id} already settled")
        return replace(
            round_,
            close_price=close_price,
            winner=Position.NONE,
            status=RoundStatus.ENDED,
            voided=True,
        )

    def refunds(self, round_: Round) -> bool:
        """True if stakes on this ended round are returned"""
        return round_.is_push and (round_.voided or self.push_policy == PushPolicy.REFUND)

    def is_claimable(self, round_: Round, bet: UserBet) -> bool:
        if not round_.is_ended or bet.claimed or bet.round_id != round_.id:
            return False
        if round_.is_push:
            return self.refunds(round_)
        return bet.position == round_.winner

    def compute_payout(self, round_: Round, bet: UserBet) -> Decimal:
        """
        Amount credited to the bettor when claiming (fees withheld)

        Pure; callable any time after the round has ended, whether or not the
        bet was already claimed.
        """
        if not round_.is_ended:
            raise ValueError(f"Round {round_.id} has not ended")

        if round_.is_push:
            return bet.amount if self.refunds(round_) else ZERO

        net, _ = self._split_fee(self.gross_payout(round_, bet))
        return net

    def claim(self, round_: Round, bet: UserBet) -> ClaimResult:
        """
        Compute the claim for one bet and book any fee to the treasury

        The caller marks the bet claimed and credits the payout.

        Raises:
            ClaimRejected: round not ended, bet already claimed or not a winner
        """
        if bet.round_id != round_.id:
            raise ClaimRejected(f"Bet belongs to round {bet.round_id}, not {round_.id}")
        if not round_.is_ended:
            raise ClaimRejected(f"Round {round_.id} has not ended")
        if bet.claimed:
            raise ClaimRejected(f"Bet on round {round_.id} {bet.position.value} already claimed")
        if not self.is_claimable(round_, bet):
            raise ClaimRejected(
                f"Bet on round {round_.id} {bet.position.value} did not win "
                f"(winner {round_.winner.value})"
            )

        if round_.is_push:
            return ClaimResult(round_.id, bet.position, payout=bet.amount, refund=True)

        net, fee = self._split_fee(self.gross_payout(round_, bet))
        with localcontext(WIDE):
            self._treasury += fee
        return ClaimResult(round_.id, bet.position, payout=net, fee=fee)

    def _split_fee(self, gross: Decimal) -> tuple[Decimal, Decimal]:
        """(net payout, fee) for a gross payout"""
        if not self.apply_fee or gross <= 0:
            return gross, ZERO
        with localcontext(WIDE):
            fee = (gross * self.fee_rate).quantize(self._quantum, rounding=ROUND_DOWN)
            return gross - fee, fee
