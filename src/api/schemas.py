"""
Request bodies accepted by the HTTP API
"""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models import Position


class _Request(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class BetRequest(_Request):
    """POST /api/bets"""

    position: Position
    amount: Decimal = Field(..., allow_inf_nan=False)
    user_id: str | None = Field(None, min_length=1, max_length=64)

    @field_validator("position", mode="before")
    @classmethod
    def upper_position(cls, v):
        return v.upper() if isinstance(v, str) else v

    @field_validator("position")
    @classmethod
    def stakeable_only(cls, v: Position) -> Position:
        if not Position.is_stakeable(v):
            raise ValueError("position must be UP or DOWN")
        return v


class ClaimRequest(_Request):
    """Optional body of POST /api/claims/<round_id>"""

    user_id: str | None = Field(None, min_length=1, max_length=64)


class AssetRequest(_Request):
    """POST /api/asset"""

    symbol: str = Field(..., min_length=1, max_length=16)


class DurationRequest(_Request):
    """POST /api/duration"""

    seconds: int = Field(..., gt=0, strict=True)
