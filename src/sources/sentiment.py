"""
Sentiment source - advisory market read on recent prices

Asks Gemini (generateContent REST endpoint) for a JSON verdict on the last
few prices. Without an API key a simulated read is returned after a short
delay; any failure yields a neutral, zero-confidence analysis. Results are
advisory only and never influence settlement.
"""

import json
import logging
import threading
import time
from collections.abc import Callable, Sequence
from decimal import Decimal

import numpy as np
import requests
from pydantic import ValidationError

from models import MarketAnalysis, Sentiment
from services.logger import PerformanceLogger

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

SIMULATED_REASONING = (
    "Simulated analysis: Moving averages indicate a strong trend reversal based on "
    "recent volume spikes. RSI suggests the asset is currently in a neutral zone but "
    "momentum is building."
)

RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "sentiment": {"type": "STRING", "enum": [s.value for s in Sentiment]},
        "confidence": {"type": "NUMBER"},
        "reasoning": {"type": "STRING"},
    },
    "required": ["sentiment", "confidence", "reasoning"],
}


class SentimentAnalyzer:
    """
    Gemini-backed market sentiment with simulated and neutral fallbacks

    Example:
        analyzer = SentimentAnalyzer(api_key="")
        analysis = analyzer.analyze("CELO", [Decimal("0.65"), Decimal("0.651")])
    """

    def __init__(
        self,
        api_key: str = "",
        model: str = "gemini-2.5-flash",
        base_url: str = GEMINI_BASE_URL,
        history_points: int = 15,
        timeout: float = 10.0,
        simulated_delay_sec: float = 1.5,
        rng: np.random.Generator | None = None,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.history_points = history_points
        self.timeout = timeout
        self.simulated_delay_sec = simulated_delay_sec
        self._rng = rng if rng is not None else np.random.default_rng()
        # Flask serves requests on several threads; Generator is not thread-safe
        self._rng_lock = threading.Lock()
        self._session = session or requests.Session()
        self._sleep = sleep

    @property
    def simulated(self) -> bool:
        return not self.api_key

    def analyze(self, asset: str, prices: Sequence[Decimal]) -> MarketAnalysis:
        """Sentiment for `asset` from the most recent `history_points` prices"""
        if self.simulated:
            return self._simulated_analysis()

        recent = list(prices)[-self.history_points :]
        try:
            with PerformanceLogger(logger, f"sentiment {asset}"):
                text = self._generate(self._build_prompt(asset, recent))
            analysis = MarketAnalysis.model_validate(json.loads(text))
        except requests.RequestException as e:
            logger.warning(f"Gemini request failed: {e}")
            return MarketAnalysis.unavailable()
        except (ValidationError, ValueError, KeyError, IndexError, TypeError) as e:
            logger.warning(f"Gemini returned an unusable analysis: {e}")
            return MarketAnalysis.unavailable()

        logger.info(f"{asset} sentiment {analysis.sentiment.value} ({analysis.confidence:.0f}%)")
        return analysis

    @staticmethod
    def _build_prompt(asset: str, prices: Sequence[Decimal]) -> str:
        series = ", ".join(f"{float(p):.4f}" for p in prices)
        return (
            f"Analyze this crypto price trend for {asset}. Prices: [{series}]. "
            "Provide a JSON response with sentiment (BULLISH/BEARISH/NEUTRAL), "
            "confidence (0-100), and a 1 sentence reasoning."
        )

    def _generate(self, prompt: str) -> str:
        resp = self._session.post(
            f"{self.base_url}/models/{self.model}:generateContent",
            headers={"x-goog-api-key": self.api_key},
            json={
                "contents": [{"parts": [{"text": prompt}]}],
                "generationConfig": {
                    "responseMimeType": "application/json",
                    "responseSchema": RESPONSE_SCHEMA,
                },
            },
            timeout=self.timeout,
        )
        resp.raise_for_status()
        payload = resp.json()
        text = payload["candidates"][0]["content"]["parts"][0]["text"]
        if not text:
            raise ValueError("Empty response from model")
        return text

    def _simulated_analysis(self) -> MarketAnalysis:
        if self.simulated_delay_sec > 0:
            self._sleep(self.simulated_delay_sec)
        with self._rng_lock:
            bullish = self._rng.random() > 0.5
            confidence = int(self._rng.integers(60, 90))
        return MarketAnalysis(
            sentiment=Sentiment.BULLISH if bullish else Sentiment.BEARISH,
            confidence=confidence,
            reasoning=SIMULATED_REASONING,
        )
