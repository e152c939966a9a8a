# services/portfolio/portfolio_form.py
"""
In-memory portfolio form: holdings, initial investment and the state of the
last forecast request (idle / loading / error / result).
"""
from __future__ import annotations

import logging
import math
import re
import uuid
from typing import List, Optional, Protocol, Sequence

from schemas.forecast import AnalysisResult, FormStatus, Holding, PortfolioState
from services.ai.forecast.errors import GENERIC_FORECAST_MESSAGE, ForecastError
from services.ai.forecast.forecast_metrics import compute_forecast_metrics

logger = logging.getLogger(__name__)

MAX_HOLDINGS = 10
MAX_SYMBOL_LENGTH = 50
MIN_INVESTMENT = 100.0
REQUIRED_TOTAL_WEIGHT = 100

_DISALLOWED_SYMBOL_CHARS = re.compile(r"[^a-zA-Z0-9.\- ]")


class PortfolioValidationError(ValueError):
    """Form input rejected before any model call."""


class ForecastInFlightError(RuntimeError):
    """A forecast for this form is already running."""


class ForecastProvider(Protocol):
    async def get_portfolio_prediction(
        self, holdings: Sequence[Holding], initial_investment: float
    ) -> AnalysisResult: ...


def sanitize_symbol(text: str) -> str:
    return _DISALLOWED_SYMBOL_CHARS.sub("", text or "")[:MAX_SYMBOL_LENGTH]


def _new_holding_id() -> str:
    return uuid.uuid4().hex


class PortfolioForm:
    def __init__(
        self,
        holdings: Optional[List[Holding]] = None,
        initial_investment: float = 10000,
    ):
        self.holdings: List[Holding] = list(holdings or [])
        self.initial_investment = initial_investment
        self.status: FormStatus = "idle"
        self.error: Optional[str] = None
        self.result: Optional[AnalysisResult] = None
        # sole guard against concurrent forecasts; status is display only
        self._in_flight = False
        # investment the current result was computed for
        self._result_investment: Optional[float] = None

    @classmethod
    def default(cls) -> "PortfolioForm":
        return cls(
            holdings=[
                Holding(id=_new_holding_id(), symbol="VOO", weight=60),
                Holding(id=_new_holding_id(), symbol="Apple", weight=40),
            ],
            initial_investment=10000,
        )

    # ---- state helpers ----

    def _fail(self, message: str) -> None:
        # a running forecast owns the status until it resolves
        if self._in_flight:
            return
        self.status = "error"
        self.error = message

    def _clear_error(self) -> None:
        if self._in_flight:
            return
        if self.status == "error":
            self.status = "result" if self.result is not None else "idle"
        self.error = None

    def _reject(self, message: str) -> PortfolioValidationError:
        logger.info("portfolio_form_rejected holdings=%d reason=%s", len(self.holdings), message)
        self._fail(message)
        return PortfolioValidationError(message)

    # ---- user intents ----

    def add_holding(self, symbol: str, weight: float) -> Holding:
        clean = sanitize_symbol(symbol).strip()
        if not clean:
            raise self._reject("Please enter a ticker or company name.")
        if len(self.holdings) >= MAX_HOLDINGS:
            raise self._reject(f"Maximum of {MAX_HOLDINGS} holdings allowed for stability.")

        try:
            value = float(weight)
        except (TypeError, ValueError):
            raise self._reject("Weight must be a positive number.") from None
        if not math.isfinite(value) or value <= 0:
            raise self._reject("Weight must be a positive number.")
        if value > 100:
            raise self._reject("Weight cannot exceed 100%.")

        holding = Holding(id=_new_holding_id(), symbol=clean, weight=value)
        self.holdings.append(holding)
        self._clear_error()
        return holding

    def remove_holding(self, holding_id: str) -> bool:
        before = len(self.holdings)
        self.holdings = [h for h in self.holdings if h.id != holding_id]
        self._clear_error()
        return len(self.holdings) != before

    def set_investment(self, amount: float) -> None:
        self.initial_investment = float(amount)

    def total_weight(self) -> float:
        return sum(h.weight for h in self.holdings)

    def validate_for_submit(self) -> None:
        if self.total_weight() != REQUIRED_TOTAL_WEIGHT:
            raise self._reject("Total portfolio weight must equal 100%")
        if not math.isfinite(self.initial_investment) or self.initial_investment < MIN_INVESTMENT:
            raise self._reject("Please enter a minimum investment of $100.")

    async def request_forecast(self, provider: ForecastProvider) -> AnalysisResult:
        if self._in_flight:
            raise ForecastInFlightError("A forecast is already running.")
        self.validate_for_submit()

        self.status = "loading"
        self.error = None
        self.result = None
        investment = self.initial_investment
        self._in_flight = True
        try:
            result = await provider.get_portfolio_prediction(list(self.holdings), investment)
        except Exception as e:
            self._in_flight = False
            self._fail(e.user_message if isinstance(e, ForecastError) else GENERIC_FORECAST_MESSAGE)
            raise
        except BaseException:
            # cancelled by the caller: nothing to show, form is free again
            self._in_flight = False
            self.status = "idle"
            raise
        finally:
            self._in_flight = False

        self.result = result
        self._result_investment = investment
        self.status = "result"
        return result

    def state(self) -> PortfolioState:
        metrics = None
        if self.status == "result" and self.result is not None:
            metrics = compute_forecast_metrics(self.result, self._result_investment or self.initial_investment)
        return PortfolioState(
            status=self.status,
            holdings=list(self.holdings),
            totalWeight=self.total_weight(),
            initialInvestment=self.initial_investment,
            error=self.error,
            result=self.result if self.status == "result" else None,
            metrics=metrics,
        )
