"""
Market analysis schema

Advisory output of the sentiment source. Never consulted by settlement.
"""

import time

from pydantic import BaseModel, Field, field_validator

from .enums import Sentiment


class MarketAnalysis(BaseModel):
    """
    Sentiment read on recent price action.

    Example payload (model response):
    {
        "sentiment": "BULLISH",
        "confidence": 72,
        "reasoning": "Higher lows over the last minute."
    }
    """

    sentiment: Sentiment = Field(..., description="BULLISH / BEARISH / NEUTRAL")
    confidence: float = Field(..., ge=0, le=100, description="Confidence in percent")
    reasoning: str = Field("", description="One sentence rationale")
    timestamp: float = Field(default_factory=time.time, description="Unix seconds")

    @field_validator("sentiment", mode="before")
    @classmethod
    def normalise_sentiment(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v):
        try:
            value = float(v)
        except (TypeError, ValueError):
            return v
        return min(100.0, max(0.0, value))

    @classmethod
    def unavailable(cls) -> "MarketAnalysis":
        return cls(
            sentiment=Sentiment.NEUTRAL,
            confidence=0,
            reasoning="AI analysis unavailable at the moment.",
        )
