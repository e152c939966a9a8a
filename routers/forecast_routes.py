# routers/forecast_routes.py
"""
FastAPI routes for one-shot portfolio forecasts.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from middleware.rate_limit import FORECAST_RATE_LIMIT, limiter
from schemas.forecast import ForecastRequest, ForecastResponse
from services.ai.forecast.errors import (
    GENERIC_FORECAST_MESSAGE,
    ForecastError,
    SafetyRejectionError,
)
from services.ai.forecast.forecast_metrics import compute_forecast_metrics
from services.ai.forecast.forecast_service import ForecastService
from services.portfolio.portfolio_form import (
    ForecastInFlightError,
    PortfolioForm,
    PortfolioValidationError,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def get_forecast_service(request: Request) -> ForecastService:
    return request.app.state.forecast_service


def forecast_http_error(exc: Exception) -> HTTPException:
    """Map form and forecast failures onto short user-facing HTTP errors."""
    if isinstance(exc, PortfolioValidationError):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, ForecastInFlightError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, SafetyRejectionError):
        return HTTPException(status_code=422, detail=exc.user_message)
    if isinstance(exc, ForecastError):
        return HTTPException(status_code=502, detail=exc.user_message)
    return HTTPException(status_code=500, detail=GENERIC_FORECAST_MESSAGE)


async def run_form_forecast(form: PortfolioForm, service: ForecastService) -> ForecastResponse:
    investment = form.initial_investment
    try:
        result = await form.request_forecast(service)
    except (PortfolioValidationError, ForecastInFlightError, ForecastError) as e:
        logger.info("forecast_refused kind=%s", type(e).__name__)
        raise forecast_http_error(e)
    except Exception as e:
        logger.exception("forecast_failed: %s", e)
        raise forecast_http_error(e)

    return ForecastResponse(
        result=result,
        metrics=compute_forecast_metrics(result, investment),
    )


@router.post("/forecast", response_model=ForecastResponse)
@limiter.limit(FORECAST_RATE_LIMIT)
async def forecast_endpoint(
    request: Request,
    req: ForecastRequest,
    service: ForecastService = Depends(get_forecast_service),
):
    """
    Forecast a portfolio sent in full with the request.

    Runs the same checks as the stored form, on a throwaway form instance.
    """
    form = PortfolioForm(holdings=[], initial_investment=req.initialInvestment)
    try:
        for h in req.holdings:
            form.add_holding(h.symbol, h.weight)
    except PortfolioValidationError as e:
        raise forecast_http_error(e)

    return await run_form_forecast(form, service)
