"""
Input validation functions

Every validator returns (is_valid, error_message) so callers can turn a
rejection into a no-op result without raising.
"""

from decimal import Decimal, InvalidOperation

from models import Position, Round, RoundStatus


def parse_amount(raw) -> Decimal | None:
    """
    Coerce user input to a Decimal amount

    Returns None for non-numeric input. "nan" and "inf" do parse; they are
    rejected later by validate_stake_amount as non-finite.
    """
    if isinstance(raw, bool) or raw is None:
        return None
    try:
        if isinstance(raw, Decimal):
            return raw
        if isinstance(raw, float):
            return Decimal(str(raw))
        return Decimal(str(raw).strip())
    except (InvalidOperation, ValueError, TypeError):
        return None


def validate_stake_amount(
    amount: Decimal | None,
    balance: Decimal,
    min_bet: Decimal,
    max_bet: Decimal,
) -> tuple[bool, str | None]:
    """
    Validate a stake is numeric, finite, positive, within bounds and affordable

    Args:
        amount: Parsed stake (None if the raw input was not numeric)
        balance: Current balance of the staking user
        min_bet: Smallest accepted stake
        max_bet: Largest accepted stake

    Returns:
        Tuple of (is_valid, error_message)
    """
    if amount is None:
        return False, "Stake amount is not a number"

    if not amount.is_finite():
        return False, f"Invalid stake amount: {amount} (must be finite)"

    if not balance.is_finite() or balance < 0:
        return False, f"Invalid balance state: {balance}"

    if amount <= 0:
        return False, f"Stake amount {amount} must be positive"

    if amount < min_bet:
        return False, f"Stake amount {amount} below minimum {min_bet}"

    if amount > max_bet:
        return False, f"Stake amount {amount} exceeds maximum {max_bet}"

    if amount > balance:
        return False, f"Insufficient balance: have {balance}, need {amount}"

    return True, None


def validate_position(position) -> tuple[bool, str | None]:
    """Only UP and DOWN can be staked on"""
    try:
        parsed = Position(position)
    except ValueError:
        return False, f"Unknown position: {position!r}"
    if not Position.is_stakeable(parsed):
        return False, f"Cannot stake on {parsed.value}"
    return True, None


def validate_round_open(round_: Round, now: float) -> tuple[bool, str | None]:
    """
    Validate the round still accepts stakes

    A round accepts stakes while LIVE and before its lock time.
    """
    if round_.status != RoundStatus.LIVE:
        return False, f"Round {round_.id} is {round_.status.value}, not accepting stakes"

    if now >= round_.lock_time:
        return False, f"Round {round_.id} is locked"

    return True, None
