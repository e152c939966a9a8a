# main.py
import logging
import os
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from config.logging_config import configure_logging
from middleware.rate_limit import limiter, rate_limit_exceeded_handler
from middleware.request_logging import RequestLoggingMiddleware
from routers.forecast_routes import router as forecast_router
from routers.portfolio_routes import router as portfolio_router
from services.ai.forecast.forecast_service import ForecastService
from services.ai.llm_service import LLMConfig
from services.portfolio.portfolio_form import PortfolioForm

logger = logging.getLogger(__name__)

DEFAULT_ORIGINS = ["http://localhost:3000", "http://localhost:5173"]


def _cors_origins() -> list:
    raw = os.getenv("CORS_ORIGINS", "")
    origins = [o.strip() for o in raw.split(",") if o.strip()]
    return origins or DEFAULT_ORIGINS


def create_app(
    config: Optional[LLMConfig] = None,
    forecast_service: Optional[ForecastService] = None,
) -> FastAPI:
    app = FastAPI(title="Portfolio Forecast API")

    # config is read once here and handed to the service explicitly
    cfg = config or LLMConfig.from_env()
    app.state.forecast_service = forecast_service or ForecastService(cfg)
    app.state.portfolio_form = PortfolioForm.default()

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    # applies RATE_LIMIT_DEFAULT to routes without their own @limiter.limit
    app.add_middleware(SlowAPIMiddleware)

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(portfolio_router, prefix="/api/portfolio")
    app.include_router(forecast_router, prefix="/api")

    @app.get("/health")
    def health():
        return {"status": "ok"}

    logger.info("app_started model=%s use_web=%s", cfg.gemini_model, cfg.gemini_use_web)
    return app


load_dotenv()
configure_logging()
app = create_app()
