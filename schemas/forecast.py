"""
Types for the portfolio forecast service.

Field names follow the JSON contract shared with the frontend and the model
output schema (camelCase), so the same models validate both.
"""
from __future__ import annotations

from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ============================================================================
# FORM INPUT
# ============================================================================

class Holding(BaseModel):
    id: str
    symbol: str = Field(min_length=1, max_length=50)
    weight: float = Field(gt=0, le=100)


class HoldingInput(BaseModel):
    symbol: str = Field(max_length=200)
    weight: float = Field(allow_inf_nan=False)


class InvestmentInput(BaseModel):
    amount: float = Field(allow_inf_nan=False)


# ============================================================================
# MODEL OUTPUT
# ============================================================================

class RiskLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    EXTREME = "Extreme"


# Labels the model tends to use instead of the four canonical levels.
_RISK_LEVEL_ALIASES = {
    "low": RiskLevel.LOW,
    "medium": RiskLevel.MEDIUM,
    "moderate": RiskLevel.MEDIUM,
    "high": RiskLevel.HIGH,
    "extreme": RiskLevel.EXTREME,
    "very high": RiskLevel.EXTREME,
}


class PredictionPoint(BaseModel):
    model_config = ConfigDict(extra="ignore")

    date: str
    optimistic: float
    expected: float
    pessimistic: float


class ForecastSummary(BaseModel):
    model_config = ConfigDict(extra="ignore")

    expectedReturn: float
    annualizedReturn: float
    riskLevel: RiskLevel
    riskReasoning: str
    topPerformers: List[str]
    potentialRisks: List[str]

    @field_validator("riskLevel", mode="before")
    @classmethod
    def _normalize_risk_level(cls, v):
        """Map case/alias variants onto the four levels; anything else fails."""
        if isinstance(v, str):
            mapped = _RISK_LEVEL_ALIASES.get(v.strip().lower())
            if mapped is not None:
                return mapped
        return v


class GroundingSource(BaseModel):
    title: str = ""
    uri: str


class AnalysisResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    predictionData: List[PredictionPoint] = Field(min_length=1)
    summary: ForecastSummary
    insights: str
    sources: List[GroundingSource] = Field(default_factory=list)


class ForecastOutcome(BaseModel):
    """Tagged result of one model call: an accepted forecast or a rejection."""

    kind: Literal["accepted", "rejected"]
    result: Optional[AnalysisResult] = None
    reason: Optional[str] = None

    @model_validator(mode="after")
    def _check_variant(self) -> "ForecastOutcome":
        if self.kind == "accepted" and self.result is None:
            raise ValueError("accepted outcome requires a result")
        if self.kind == "rejected" and self.result is not None:
            raise ValueError("rejected outcome must not carry a result")
        return self

    @classmethod
    def accepted(cls, result: AnalysisResult) -> "ForecastOutcome":
        return cls(kind="accepted", result=result)

    @classmethod
    def rejected(cls, reason: str) -> "ForecastOutcome":
        return cls(kind="rejected", reason=reason)


# ============================================================================
# API RESPONSES
# ============================================================================

FormStatus = Literal["idle", "loading", "error", "result"]


class ForecastMetrics(BaseModel):
    finalValue: float
    totalRoiPct: float
    cagrPct: float


class ForecastResponse(BaseModel):
    result: AnalysisResult
    metrics: ForecastMetrics


class PortfolioState(BaseModel):
    status: FormStatus
    holdings: List[Holding]
    totalWeight: float
    initialInvestment: float
    error: Optional[str] = None
    result: Optional[AnalysisResult] = None
    metrics: Optional[ForecastMetrics] = None


class ForecastRequest(BaseModel):
    holdings: List[HoldingInput] = Field(max_length=10)
    initialInvestment: float = Field(allow_inf_nan=False)
