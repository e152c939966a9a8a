import asyncio
import math
import unittest

from schemas.forecast import AnalysisResult
from services.ai.forecast.errors import SAFETY_REJECTION_MESSAGE, SafetyRejectionError
from services.portfolio.portfolio_form import (
    MAX_HOLDINGS,
    ForecastInFlightError,
    PortfolioForm,
    PortfolioValidationError,
    sanitize_symbol,
)


def _result(final_expected: float = 20000.0) -> AnalysisResult:
    points = [
        {"date": f"M{i + 1}", "optimistic": 10000 + i * 200, "expected": 10000 + i * 150, "pessimistic": 10000}
        for i in range(59)
    ]
    points.append({"date": "M60", "optimistic": final_expected * 1.2, "expected": final_expected, "pessimistic": 9000})
    return AnalysisResult.model_validate(
        {
            "predictionData": points,
            "summary": {
                "expectedReturn": 100,
                "annualizedReturn": 14.87,
                "riskLevel": "Medium",
                "riskReasoning": "Broad index core with single-stock tilt.",
                "topPerformers": ["AAPL"],
                "potentialRisks": ["Tech concentration"],
            },
            "insights": "Steady growth expected.",
        }
    )


class _FakeProvider:
    def __init__(self, result=None, error=None):
        self.result = result or _result()
        self.error = error
        self.calls = []

    async def get_portfolio_prediction(self, holdings, initial_investment):
        self.calls.append(([h.symbol for h in holdings], initial_investment))
        if self.error is not None:
            raise self.error
        return self.result


class _BlockingProvider:
    def __init__(self):
        self.release = asyncio.Event()
        self.started = asyncio.Event()
        self.calls = 0

    async def get_portfolio_prediction(self, holdings, initial_investment):
        self.calls += 1
        self.started.set()
        await self.release.wait()
        return _result()


class TestSanitizeSymbol(unittest.TestCase):
    def test_removes_disallowed_characters_in_order(self):
        self.assertEqual(sanitize_symbol("AAPL$%^&*()"), "AAPL")
        self.assertEqual(sanitize_symbol("BRK.B <script>"), "BRK.B script")
        self.assertEqual(sanitize_symbol("Royal-Dutch_Shell!"), "Royal-DutchShell")

    def test_truncates_to_fifty_characters(self):
        out = sanitize_symbol("A" * 80)
        self.assertEqual(len(out), 50)

    def test_truncates_after_stripping(self):
        out = sanitize_symbol("#" * 30 + "B" * 60)
        self.assertEqual(out, "B" * 50)

    def test_handles_none(self):
        self.assertEqual(sanitize_symbol(None), "")


class TestPortfolioFormHoldings(unittest.TestCase):
    def test_default_form_sums_to_hundred(self):
        form = PortfolioForm.default()
        self.assertEqual([h.symbol for h in form.holdings], ["VOO", "Apple"])
        self.assertEqual(form.total_weight(), 100)
        self.assertEqual(form.initial_investment, 10000)
        self.assertEqual(form.state().status, "idle")

    def test_add_holding_assigns_unique_ids_and_keeps_order(self):
        form = PortfolioForm()
        a = form.add_holding("MSFT", 30)
        b = form.add_holding("  Vanguard Total Bond  ", 70)
        self.assertNotEqual(a.id, b.id)
        self.assertEqual([h.symbol for h in form.holdings], ["MSFT", "Vanguard Total Bond"])
        self.assertEqual(form.total_weight(), 100)

    def test_never_exceeds_max_holdings(self):
        form = PortfolioForm()
        for i in range(MAX_HOLDINGS + 5):
            try:
                form.add_holding(f"T{i}", 1)
            except PortfolioValidationError:
                pass
        self.assertEqual(len(form.holdings), MAX_HOLDINGS)
        self.assertEqual(form.error, "Maximum of 10 holdings allowed for stability.")
        self.assertEqual(form.state().status, "error")

    def test_rejects_out_of_range_weights(self):
        form = PortfolioForm()
        for bad in (0, -5, 100.01, math.nan, math.inf, "abc"):
            with self.assertRaises(PortfolioValidationError):
                form.add_holding("SPY", bad)
        self.assertEqual(form.holdings, [])

    def test_accepts_weights_in_range(self):
        form = PortfolioForm()
        form.add_holding("SPY", 100)
        form.add_holding("QQQ", 0.5)
        self.assertEqual(len(form.holdings), 2)

    def test_rejects_symbol_empty_after_sanitizing(self):
        form = PortfolioForm()
        for bad in ("", "   ", "$$$", "!!!"):
            with self.assertRaises(PortfolioValidationError):
                form.add_holding(bad, 10)
        self.assertEqual(form.holdings, [])

    def test_successful_add_clears_error(self):
        form = PortfolioForm()
        with self.assertRaises(PortfolioValidationError):
            form.add_holding("SPY", 0)
        self.assertIsNotNone(form.error)
        form.add_holding("SPY", 50)
        self.assertIsNone(form.error)
        self.assertEqual(form.state().status, "idle")

    def test_remove_holding(self):
        form = PortfolioForm.default()
        target = form.holdings[0]
        self.assertTrue(form.remove_holding(target.id))
        self.assertEqual([h.symbol for h in form.holdings], ["Apple"])
        self.assertFalse(form.remove_holding("missing"))
        self.assertEqual(len(form.holdings), 1)


class TestPortfolioFormForecast(unittest.TestCase):
    def test_refuses_when_weights_do_not_sum_to_hundred(self):
        form = PortfolioForm.default()
        form.add_holding("MSFT", 10)
        provider = _FakeProvider()
        with self.assertRaises(PortfolioValidationError) as ctx:
            asyncio.run(form.request_forecast(provider))
        self.assertEqual(str(ctx.exception), "Total portfolio weight must equal 100%")
        self.assertEqual(provider.calls, [])

    def test_refuses_when_under_hundred(self):
        form = PortfolioForm.default()
        form.remove_holding(form.holdings[0].id)
        provider = _FakeProvider()
        with self.assertRaises(PortfolioValidationError):
            asyncio.run(form.request_forecast(provider))
        self.assertEqual(provider.calls, [])

    def test_refuses_small_investment(self):
        form = PortfolioForm.default()
        form.set_investment(99.99)
        provider = _FakeProvider()
        with self.assertRaises(PortfolioValidationError) as ctx:
            asyncio.run(form.request_forecast(provider))
        self.assertEqual(str(ctx.exception), "Please enter a minimum investment of $100.")
        self.assertEqual(provider.calls, [])
        self.assertEqual(form.state().status, "error")

    def test_success_stores_result_and_metrics(self):
        form = PortfolioForm.default()
        provider = _FakeProvider()
        result = asyncio.run(form.request_forecast(provider))

        self.assertEqual(provider.calls, [(["VOO", "Apple"], 10000)])
        state = form.state()
        self.assertEqual(state.status, "result")
        self.assertEqual(state.result, result)
        self.assertIsNone(state.error)
        self.assertAlmostEqual(state.metrics.totalRoiPct, 100.0)
        self.assertAlmostEqual(state.metrics.cagrPct, 14.87)

    def test_forecast_failure_moves_to_error_state(self):
        form = PortfolioForm.default()
        provider = _FakeProvider(error=SafetyRejectionError())
        with self.assertRaises(SafetyRejectionError):
            asyncio.run(form.request_forecast(provider))

        state = form.state()
        self.assertEqual(state.status, "error")
        self.assertEqual(state.error, SAFETY_REJECTION_MESSAGE)
        self.assertIsNone(state.result)

    def test_form_usable_after_failure(self):
        form = PortfolioForm.default()
        with self.assertRaises(SafetyRejectionError):
            asyncio.run(form.request_forecast(_FakeProvider(error=SafetyRejectionError())))
        asyncio.run(form.request_forecast(_FakeProvider()))
        self.assertEqual(form.state().status, "result")

    def test_second_request_refused_while_in_flight(self):
        form = PortfolioForm.default()
        provider = _BlockingProvider()

        async def run():
            first = asyncio.create_task(form.request_forecast(provider))
            await provider.started.wait()
            self.assertEqual(form.state().status, "loading")
            with self.assertRaises(ForecastInFlightError):
                await form.request_forecast(provider)
            provider.release.set()
            return await first

        asyncio.run(run())
        self.assertEqual(form.state().status, "result")

    def test_failed_edit_during_forecast_keeps_request_exclusive(self):
        form = PortfolioForm.default()
        provider = _BlockingProvider()

        async def run():
            first = asyncio.create_task(form.request_forecast(provider))
            await provider.started.wait()
            with self.assertRaises(PortfolioValidationError):
                form.add_holding("$$$", 10)
            self.assertEqual(form.state().status, "loading")
            with self.assertRaises(ForecastInFlightError):
                await form.request_forecast(provider)
            provider.release.set()
            return await first

        asyncio.run(run())
        self.assertEqual(provider.calls, 1)
        self.assertEqual(form.state().status, "result")

    def test_cancelled_forecast_frees_form(self):
        form = PortfolioForm.default()
        provider = _BlockingProvider()

        async def run():
            task = asyncio.create_task(form.request_forecast(provider))
            await provider.started.wait()
            task.cancel()
            with self.assertRaises(asyncio.CancelledError):
                await task
            self.assertEqual(form.state().status, "idle")
            return await form.request_forecast(_FakeProvider())

        asyncio.run(run())
        self.assertEqual(form.state().status, "result")

    def test_refuses_infinite_investment(self):
        form = PortfolioForm.default()
        form.set_investment(math.inf)
        provider = _FakeProvider()
        with self.assertRaises(PortfolioValidationError):
            asyncio.run(form.request_forecast(provider))
        self.assertEqual(provider.calls, [])


if __name__ == "__main__":
    unittest.main()
