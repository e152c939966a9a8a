# routers/portfolio_routes.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from middleware.rate_limit import FORECAST_RATE_LIMIT, limiter
from routers.forecast_routes import forecast_http_error, get_forecast_service, run_form_forecast
from schemas.forecast import (
    ForecastResponse,
    Holding,
    HoldingInput,
    InvestmentInput,
    PortfolioState,
)
from services.ai.forecast.forecast_service import ForecastService
from services.portfolio.portfolio_form import PortfolioForm, PortfolioValidationError

logger = logging.getLogger(__name__)

router = APIRouter()


def get_portfolio_form(request: Request) -> PortfolioForm:
    return request.app.state.portfolio_form


@router.get("", response_model=PortfolioState)
def get_portfolio(form: PortfolioForm = Depends(get_portfolio_form)):
    return form.state()


@router.post("/holdings", response_model=Holding, status_code=201)
def add_holding(req: HoldingInput, form: PortfolioForm = Depends(get_portfolio_form)):
    try:
        holding = form.add_holding(req.symbol, req.weight)
    except PortfolioValidationError as e:
        raise forecast_http_error(e)
    logger.info("holding_added count=%d total_weight=%s", len(form.holdings), form.total_weight())
    return holding


@router.delete("/holdings/{holding_id}")
def delete_holding(holding_id: str, form: PortfolioForm = Depends(get_portfolio_form)):
    if not form.remove_holding(holding_id):
        raise HTTPException(status_code=404, detail="Holding not found")
    return {"message": "Holding deleted successfully"}


@router.put("/investment", response_model=PortfolioState)
def set_investment(req: InvestmentInput, form: PortfolioForm = Depends(get_portfolio_form)):
    form.set_investment(req.amount)
    return form.state()


@router.post("/forecast", response_model=ForecastResponse)
@limiter.limit(FORECAST_RATE_LIMIT)
async def forecast_portfolio(
    request: Request,
    form: PortfolioForm = Depends(get_portfolio_form),
    service: ForecastService = Depends(get_forecast_service),
):
    """Submit the stored form. Only one forecast may be in flight at a time."""
    return await run_form_forecast(form, service)
