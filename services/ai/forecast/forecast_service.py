# services/ai/forecast/forecast_service.py
"""
Portfolio forecast service.

One model call per request: build the prompt, ask Gemini for JSON matching
FORECAST_RESPONSE_SCHEMA, then decode, classify (accepted / rejected) and
validate the payload before handing back an AnalysisResult.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from schemas.forecast import AnalysisResult, ForecastOutcome, GroundingSource, Holding
from services.ai.forecast.errors import (
    ForecastParseError,
    ForecastSchemaError,
    ForecastTransportError,
    SafetyRejectionError,
)
from services.ai.forecast.forecast_prompt import (
    FORECAST_MONTHS,
    FORECAST_RESPONSE_SCHEMA,
    SAFETY_ERROR_PREFIX,
    build_forecast_prompt,
)
from services.ai.llm_service import LLMClient, LLMConfig, build_llm_client, strip_code_fences

logger = logging.getLogger(__name__)


def decode_payload(text: str) -> Dict[str, Any]:
    try:
        data = json.loads(strip_code_fences(text))
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning("forecast_parse_failed error=%s", e)
        raise ForecastParseError(detail=str(e)) from e
    if not isinstance(data, dict):
        logger.warning("forecast_parse_failed error=top-level %s", type(data).__name__)
        raise ForecastParseError(detail="top-level JSON value is not an object")
    return data


def _rejection_reason(data: Dict[str, Any]) -> Optional[str]:
    status = data.get("inputStatus")
    if isinstance(status, str) and status.strip().upper() == "REJECTED":
        reason = data.get("rejectionReason")
        return reason if isinstance(reason, str) and reason.strip() else "rejected by model"

    # older convention: refusal marked inside the insights text
    insights = data.get("insights")
    if isinstance(insights, str) and insights.startswith(SAFETY_ERROR_PREFIX):
        return insights
    return None


def interpret_forecast_payload(
    text: str,
    sources: Optional[List[GroundingSource]] = None,
) -> ForecastOutcome:
    """Decode and classify a raw model response.

    Raises ForecastParseError for undecodable bodies and ForecastSchemaError
    when an accepted payload does not match AnalysisResult.
    """
    data = decode_payload(text)

    reason = _rejection_reason(data)
    if reason is not None:
        return ForecastOutcome.rejected(reason)

    try:
        result = AnalysisResult.model_validate(data)
    except ValidationError as e:
        logger.warning("forecast_schema_invalid errors=%d", e.error_count())
        raise ForecastSchemaError(detail=str(e)) from e

    if sources:
        result.sources = list(sources)
    return ForecastOutcome.accepted(result)


class ForecastService:
    """Turns a validated portfolio into one Gemini forecast."""

    def __init__(self, cfg: Optional[LLMConfig] = None, client: Optional[LLMClient] = None):
        self.cfg = cfg or LLMConfig()
        self.client: LLMClient = client or build_llm_client(self.cfg)

    async def _call_llm(self, prompt: str):
        call = self.client.generate_json(prompt=prompt, response_schema=FORECAST_RESPONSE_SCHEMA)
        if self.cfg.timeout_s is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=self.cfg.timeout_s)
        except asyncio.TimeoutError as e:
            logger.warning("forecast_timeout timeout_s=%s", self.cfg.timeout_s)
            raise ForecastTransportError(detail="model call timed out") from e

    async def get_portfolio_prediction(
        self,
        holdings: Sequence[Holding],
        initial_investment: float,
    ) -> AnalysisResult:
        prompt = build_forecast_prompt(holdings, initial_investment)
        logger.info(
            "forecast_requested holdings=%d model=%s",
            len(holdings), getattr(self.client, "model", "unknown"),
        )

        response = await self._call_llm(prompt)
        outcome = interpret_forecast_payload(response.text, response.sources)

        if outcome.kind == "rejected":
            logger.warning("forecast_safety_rejected reason=%s", (outcome.reason or "")[:200])
            raise SafetyRejectionError(detail=outcome.reason)

        result = outcome.result
        if len(result.predictionData) != FORECAST_MONTHS:
            logger.warning(
                "forecast_point_count_unexpected got=%d expected=%d",
                len(result.predictionData), FORECAST_MONTHS,
            )
        logger.info(
            "forecast_completed points=%d sources=%d",
            len(result.predictionData), len(result.sources),
        )
        return result
