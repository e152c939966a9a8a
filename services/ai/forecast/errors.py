# services/ai/forecast/errors.py
from __future__ import annotations

from typing import Optional


GENERIC_FORECAST_MESSAGE = "An error occurred during analysis."
INVALID_DATA_MESSAGE = (
    "Invalid prediction data received. Ensure all tickers are valid financial assets."
)
SAFETY_REJECTION_MESSAGE = (
    "The AI detected inappropriate or non-financial input. "
    "Please use valid stock tickers or company names."
)


class ForecastError(Exception):
    """Base for failures of a single forecast request. `user_message` is safe to show."""

    default_message = GENERIC_FORECAST_MESSAGE

    def __init__(self, user_message: Optional[str] = None, *, detail: Optional[str] = None):
        self.user_message = user_message or self.default_message
        self.detail = detail
        super().__init__(self.user_message)


class ForecastTransportError(ForecastError):
    """Network failure or non-OK answer from the model API."""


class ForecastParseError(ForecastError):
    """Response body was not decodable JSON."""

    default_message = INVALID_DATA_MESSAGE


class ForecastSchemaError(ForecastError):
    """Response decoded but is missing required fields or has wrong types."""

    default_message = INVALID_DATA_MESSAGE


class SafetyRejectionError(ForecastError):
    """The model declined the input as non-financial or unsafe."""

    default_message = SAFETY_REJECTION_MESSAGE
