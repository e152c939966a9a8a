# services/ai/forecast/forecast_metrics.py
from __future__ import annotations

from schemas.forecast import AnalysisResult, ForecastMetrics

FORECAST_YEARS = 5


def compute_forecast_metrics(result: AnalysisResult, initial_investment: float) -> ForecastMetrics:
    """ROI and CAGR of the final `expected` point against the starting capital."""
    final_value = result.predictionData[-1].expected if result.predictionData else 0.0
    if initial_investment <= 0:
        return ForecastMetrics(finalValue=final_value, totalRoiPct=0.0, cagrPct=0.0)

    total_roi = (final_value - initial_investment) / initial_investment * 100
    growth = final_value / initial_investment
    # a wiped-out portfolio has no real-valued CAGR
    cagr = (growth ** (1 / FORECAST_YEARS) - 1) * 100 if growth > 0 else -100.0

    return ForecastMetrics(
        finalValue=final_value,
        totalRoiPct=round(total_roi, 2),
        cagrPct=round(cagr, 2),
    )
