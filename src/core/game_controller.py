"""
Game Controller - single owner of all mutable engine state

Every mutation (price samples, expiry checks, stakes, claims, selections)
runs under one re-entrant lock, so readers only ever see consistent
snapshots. User-facing operations return result dictionaries instead of
raising; a rejected operation changes nothing.
"""

import logging
import threading
import time
from collections.abc import Callable
from decimal import Decimal
from typing import Any

import numpy as np

from config import Config, config
from models import (
    Asset,
    EngineSnapshot,
    FeedMode,
    Position,
    PricePoint,
    PushPolicy,
    Round,
    RoundStatus,
    to_price,
)
from services.event_bus import EventBus, Events, event_bus

from .errors import ClaimRejected, StakeRejected
from .leaderboard import UserStats, compute_user_stats
from .ledger import ZERO, SettlementLedger
from .position_book import PositionBook
from .price_history import PriceHistoryBuffer
from .round_engine import RoundLifecycleEngine
from .validators import (
    parse_amount,
    validate_position,
    validate_round_open,
    validate_stake_amount,
)

logger = logging.getLogger(__name__)


class GameController:
    """
    Orchestrates the price history, round engine, ledger and position book

    Construct a fresh instance per process (or per test). Collaborators
    (clock, random generator, event bus) are injectable.
    """

    def __init__(
        self,
        cfg: Config = config,
        clock: Callable[[], float] = time.time,
        rng: np.random.Generator | None = None,
        bus: EventBus | None = event_bus,
    ):
        self._cfg = cfg
        self._clock = clock
        self._bus = bus
        self._lock = threading.RLock()

        rules = cfg.section("game_rules")
        feed = cfg.section("price_feed")
        history = cfg.section("history")

        self._initial_balance: Decimal = cfg.get("financial", "initial_balance")
        self._min_bet: Decimal = cfg.get("financial", "min_bet")
        self._max_bet: Decimal = cfg.get("financial", "max_bet")
        self._default_user: str = cfg.get("api", "default_user")
        self._backfill_count: int = history["backfill_count"]
        self._backfill_interval: float = history["backfill_interval_sec"]
        self._backfill_volatility: float = history["backfill_volatility"]

        self._assets = {a["symbol"]: Asset.from_dict(a) for a in cfg.ASSETS}
        self._balances: dict[str, Decimal] = {}
        self._selected_asset: str = feed["default_asset"]
        self._generation = 0
        self._feed_mode = FeedMode.SYNTHETIC

        self.history = PriceHistoryBuffer(
            max_size=history["max_points"],
            rng=rng if rng is not None else np.random.default_rng(),
        )
        self.ledger = SettlementLedger(
            push_policy=PushPolicy(rules["push_policy"]),
            fee_rate=rules["treasury_fee_rate"],
            apply_fee=rules["apply_treasury_fee"],
            precision=cfg.get("financial", "decimal_precision"),
        )
        self.book = PositionBook()
        self.engine = RoundLifecycleEngine(
            ledger=self.ledger,
            clock=clock,
            duration_sec=rules["default_duration_sec"],
            lock_window_sec=rules["lock_window_sec"],
            max_archived_rounds=cfg.get("memory", "max_archived_rounds"),
            opening_pools=(rules["opening_up_pool"], rules["opening_down_pool"]),
        )

        # Startup: seed the chart and round 1 from the configured price
        initial_price: Decimal = feed["initial_price"]
        self._current_price = initial_price
        self.history.backfill_synthetic(
            initial_price,
            now=clock(),
            count=self._backfill_count,
            interval_sec=self._backfill_interval,
            volatility=history["startup_volatility"],
        )
        self.engine.open_first_round(initial_price, self._selected_asset)

        logger.info(
            f"GameController initialized: asset={self._selected_asset}, "
            f"price={initial_price}, duration={self.engine.duration_sec}s"
        )

    # ========================================================================
    # ACCESSORS
    # ========================================================================

    @property
    def current_price(self) -> Decimal:
        with self._lock:
            return self._current_price

    @property
    def selected_asset(self) -> Asset:
        with self._lock:
            return self._assets[self._selected_asset]

    @property
    def feed_mode(self) -> FeedMode:
        return self._feed_mode

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def current_asset_and_generation(self) -> tuple[Asset, int]:
        """Read both atomically so a fetch can be matched to its asset"""
        with self._lock:
            return self._assets[self._selected_asset], self._generation

    def list_assets(self) -> list[Asset]:
        return list(self._assets.values())

    def balance(self, user_id: str | None = None) -> Decimal:
        with self._lock:
            return self._balance_of(user_id or self._default_user)

    def _balance_of(self, user_id: str) -> Decimal:
        return self._balances.setdefault(user_id, self._initial_balance)

    # ========================================================================
    # PRICE & EXPIRY TRIGGERS
    # ========================================================================

    def update_price(
        self,
        price: Any,
        asset: str | None = None,
        generation: int | None = None,
        synthetic: bool = False,
    ) -> bool:
        """
        Accept a price sample for the selected asset

        Args:
            price: Raw price (anything to_price understands)
            asset: Symbol the sample was fetched for (None skips the check)
            generation: Asset generation read before the fetch (None skips)
            synthetic: True if produced by the random-walk generator

        Returns:
            True if the sample was recorded
        """
        value = to_price(price)
        if value is None:
            logger.warning(f"Ignoring invalid price sample: {price!r}")
            return False

        with self._lock:
            if generation is not None and generation != self._generation:
                logger.debug(f"Dropping stale price for generation {generation}")
                return False
            if asset is not None and asset != self._selected_asset:
                logger.debug(f"Dropping price for {asset}, {self._selected_asset} is selected")
                return False

            now = self._clock()
            if not self.history:
                self.history.backfill_synthetic(
                    value,
                    now=now,
                    count=self._backfill_count,
                    interval_sec=self._backfill_interval,
                    volatility=self._backfill_volatility,
                )
            elif not self.history.append(PricePoint(time=now, value=value, synthetic=synthetic)):
                return False

            self._current_price = value
            self._publish(
                Events.PRICE_UPDATED,
                {"asset": self._selected_asset, "price": float(value), "synthetic": synthetic},
            )

            # First sample after an asset switch opens the next round
            if not self.engine.has_round:
                opened = self.engine.open_next_round(value, self._selected_asset)
                self._publish(Events.ROUND_STARTED, opened.to_dict())
            return True

    def check_round_expiry(self) -> Round | None:
        """
        Settle the current round if due; safe to call repeatedly

        Returns:
            The settled round, or None
        """
        with self._lock:
            if not self.engine.has_round:
                return None
            before = self.engine.current_round.status
            current = self.engine.refresh_status()
            if before == RoundStatus.LIVE and current.status == RoundStatus.LOCKED:
                self._publish(Events.ROUND_LOCKED, current.to_dict())

            settled = self.engine.check_expiry(self._current_price, next_asset=self._selected_asset)
            if settled is None:
                return None

            self._publish(Events.ROUND_SETTLED, settled.to_dict())
            self._publish(Events.ROUND_STARTED, self.engine.current_round.to_dict())
            return settled

    def set_feed_mode(self, mode: FeedMode):
        mode = FeedMode(mode)
        with self._lock:
            if mode == self._feed_mode:
                return
            previous, self._feed_mode = self._feed_mode, mode
        logger.info(f"Feed mode {previous.value} -> {mode.value}")
        self._publish(Events.FEED_MODE_CHANGED, {"from": previous.value, "to": mode.value})

    # ========================================================================
    # USER ENTRY POINTS
    # ========================================================================

    def place_bet(self, position: Any, amount: Any, user_id: str | None = None) -> dict[str, Any]:
        """
        Stake `amount` on `position` in the current round

        Returns:
            Result dictionary with success status and details
        """
        user_id = user_id or self._default_user
        with self._lock:
            is_valid, error = validate_position(position)
            if not is_valid:
                return self._rejected_bet(error, user_id)
            side = Position(position)

            stake = parse_amount(amount)
            is_valid, error = validate_stake_amount(
                stake, self._balance_of(user_id), self._min_bet, self._max_bet
            )
            if not is_valid:
                return self._rejected_bet(error, user_id)

            now = self._clock()
            if not self.engine.has_round:
                return self._rejected_bet(
                    f"No open round, waiting for the first {self._selected_asset} price", user_id
                )
            round_ = self.engine.refresh_status()
            is_valid, error = validate_round_open(round_, now)
            if not is_valid:
                return self._rejected_bet(error, user_id)

            try:
                round_ = self.engine.apply_stake(side, stake)
            except StakeRejected as e:
                return self._rejected_bet(str(e), user_id)

            bet = self.book.record_bet(user_id, round_.id, side, stake, placed_at=now)
            self._balances[user_id] = self._balance_of(user_id) - stake

            logger.info(f"{user_id} staked {stake} on {side.value} in round {round_.id}")
            self._publish(
                Events.BET_PLACED,
                {"user_id": user_id, "round_id": round_.id, "position": side.value, "amount": float(stake)},
            )
            return self._success_result(
                action="BET",
                user_id=user_id,
                round_id=round_.id,
                position=side.value,
                amount=float(stake),
                bet_total=float(bet.amount),
                round=round_.to_dict(),
            )

    def claim(self, round_id: Any, user_id: str | None = None) -> dict[str, Any]:
        """
        Claim every claimable bet of the user on a settled round

        Returns:
            Result dictionary with the credited payout
        """
        user_id = user_id or self._default_user
        with self._lock:
            try:
                round_id = int(round_id)
            except (TypeError, ValueError):
                return self._error_result(f"Invalid round id: {round_id!r}", "CLAIM", user_id)

            round_ = self.engine.find_round(round_id)
            if round_ is None:
                return self._error_result(f"Unknown round {round_id}", "CLAIM", user_id)
            if not round_.is_ended:
                return self._error_result(f"Round {round_id} has not ended", "CLAIM", user_id)

            claimable = [
                bet
                for bet in self.book.bets_for_round(user_id, round_id)
                if self.ledger.is_claimable(round_, bet)
            ]
            if not claimable:
                return self._error_result(f"Nothing to claim on round {round_id}", "CLAIM", user_id)

            payout = ZERO
            fee = ZERO
            try:
                for bet in claimable:
                    result = self.ledger.claim(round_, bet)
                    self.book.mark_claimed(user_id, round_id, bet.position)
                    payout += result.payout
                    fee += result.fee
            except ClaimRejected as e:
                # Only reachable if state was mutated outside the controller
                logger.error(f"Claim on round {round_id} failed midway: {e}")
                return self._error_result(str(e), "CLAIM", user_id)

            self._balances[user_id] = self._balance_of(user_id) + payout

            logger.info(f"{user_id} claimed {payout} from round {round_id}")
            self._publish(
                Events.REWARD_CLAIMED,
                {"user_id": user_id, "round_id": round_id, "payout": float(payout)},
            )
            return self._success_result(
                action="CLAIM",
                user_id=user_id,
                round_id=round_id,
                payout=float(payout),
                fee=float(fee),
                refund=round_.is_push,
            )

    def select_asset(self, symbol: Any) -> dict[str, Any]:
        """
        Switch the traded asset

        Clears the price history (the next sample backfills it) and bumps the
        generation so in-flight fetches for the old asset are dropped. The
        round in progress is voided at the old asset's last price and its
        stakes become refundable; the next round opens on the first price
        sample for the new asset.
        """
        asset = self._cfg.find_asset(symbol)
        with self._lock:
            if asset is None:
                return self._error_result(f"Unknown asset: {symbol!r}", "ASSET", self._default_user)
            if asset["symbol"] == self._selected_asset:
                return self._success_result(
                    action="ASSET", asset=self._selected_asset, generation=self._generation, changed=False
                )

            previous = self._selected_asset
            voided = self.engine.void_current(self._current_price)
            self._selected_asset = asset["symbol"]
            self._generation += 1
            self.history.clear()

            if voided is not None:
                self._publish(Events.ROUND_VOIDED, voided.to_dict())

            logger.info(f"Asset switched {previous} -> {self._selected_asset} (generation {self._generation})")
            self._publish(
                Events.ASSET_CHANGED,
                {"from": previous, "to": self._selected_asset, "generation": self._generation},
            )
            return self._success_result(
                action="ASSET", asset=self._selected_asset, generation=self._generation, changed=True
            )

    def select_duration(self, seconds: Any) -> dict[str, Any]:
        """Set the duration of the next round (catalogue values only)"""
        with self._lock:
            try:
                value = int(seconds)
            except (TypeError, ValueError):
                value = None
            if isinstance(seconds, bool) or value not in self._cfg.duration_values():
                return self._error_result(
                    f"Unsupported duration: {seconds!r}", "DURATION", self._default_user
                )

            self.engine.set_duration(value)
            self._publish(Events.DURATION_CHANGED, {"seconds": value})
            return self._success_result(action="DURATION", seconds=value)

    # ========================================================================
    # READ MODELS
    # ========================================================================

    def get_snapshot(self, user_id: str | None = None) -> EngineSnapshot:
        user_id = user_id or self._default_user
        with self._lock:
            now = self._clock()
            return EngineSnapshot(
                timestamp=now,
                user_id=user_id,
                current_round=self.engine.current_round if self.engine.has_round else None,
                past_rounds=tuple(self.engine.past_rounds()),
                current_price=self._current_price,
                price_history=tuple(self.history.get_all()),
                balance=self._balance_of(user_id),
                bets=tuple(self.book.bets_for(user_id)),
                selected_asset=self._selected_asset,
                selected_duration=self.engine.duration_sec,
                feed_mode=self._feed_mode,
                accepting_stakes=self.engine.accepts_stakes(now),
                treasury_balance=self.ledger.treasury_balance,
            )

    def finished_bets(self, user_id: str | None = None) -> list[dict[str, Any]]:
        """
        The user's bets on archived rounds, newest round first, with outcome
        """
        user_id = user_id or self._default_user
        with self._lock:
            entries = []
            for bet in self.book.finished_bets(user_id, self.engine.archived_ids()):
                round_ = self.engine.find_round(bet.round_id)
                payout = self.ledger.compute_payout(round_, bet)
                entries.append(
                    {
                        "bet": bet.to_dict(),
                        "round": round_.to_dict(),
                        "won": bet.position == round_.winner,
                        "push": round_.is_push,
                        "claimable": self.ledger.is_claimable(round_, bet),
                        "payout": float(payout),
                    }
                )
            return entries

    def get_user_stats(self, user_id: str | None = None) -> UserStats:
        user_id = user_id or self._default_user
        with self._lock:
            rounds = {r.id: r for r in self.engine.past_rounds()}
            return compute_user_stats(user_id, self.book.bets_for(user_id), rounds, self.ledger)

    def leaderboard(self) -> list[UserStats]:
        """Stats for every user that has staked, best profit first"""
        with self._lock:
            users = self.book.users() or [self._default_user]
            stats = [self.get_user_stats(user) for user in users]
        return sorted(stats, key=lambda s: (s.profit, s.wins), reverse=True)

    # ========================================================================
    # HELPERS
    # ========================================================================

    def _publish(self, event: Events, data: Any = None):
        if self._bus is not None:
            self._bus.publish(event, data)

    def _rejected_bet(self, reason: str, user_id: str) -> dict[str, Any]:
        logger.warning(f"Bet rejected for {user_id}: {reason}")
        self._publish(Events.BET_REJECTED, {"user_id": user_id, "reason": reason})
        return self._error_result(reason, "BET", user_id)

    def _success_result(self, action: str, user_id: str | None = None, **kwargs) -> dict[str, Any]:
        """Create success result dictionary"""
        result = {"success": True, "action": action}
        if user_id is not None:
            result["user_id"] = user_id
            result["balance"] = float(self._balance_of(user_id))
        result.update(kwargs)
        return result

    def _error_result(self, reason: str, action: str, user_id: str) -> dict[str, Any]:
        """Create error result dictionary"""
        return {
            "success": False,
            "action": action,
            "reason": reason,
            "balance": float(self._balance_of(user_id)),
        }
