"""
评级代理与并发扇出测试

覆盖范围：
  - 结构化解读（含 markdown 代码块）
  - 关键字兜底：Buy 优先、其次 Sell、默认 Hold，永不抛错
  - 代理提示词包含代码 / 最新价 / RSI
  - 注册表按名称筛选
  - 全局并发上限、单个代理失败不影响其他代理、计时
"""

import asyncio
from datetime import date, datetime, timezone

import pytest

from rating_service.agents import available_agents, select_agents
from rating_service.agents.base import InterpretationSource, interpret
from rating_service.agents.cathie_wood import CathieWoodAgent
from rating_service.agents.warren_buffett import WarrenBuffettAgent
from rating_service.errors import ConfigurationError
from rating_service.layers.analysis import AnalysisLayer
from rating_service.models.domain import ContextDepth, Recommendation, StockContext, StockRating
from rating_service.services.evaluation import EvaluationFanOut

STRUCTURED = '{"recommendation": "Buy", "confidence": 0.85, "rationale": "Strong innovation potential"}'


def _context(ticker: str = "TEST", closes: dict = None, depth=ContextDepth.FULL) -> StockContext:
    return StockContext(
        ticker=ticker,
        retrieved_at=datetime(2025, 7, 28, tzinfo=timezone.utc),
        fundamentals={"pe": 21.5},
        price_series=closes or {date(2025, 7, 28): 123.45},
        depth=depth,
    )


def _chat(reply: str):
    calls = []

    async def chat(system: str, user: str) -> str:
        calls.append((system, user))
        return reply

    chat.calls = calls
    return chat


# ─────────────────────────────────────────────────────────
# 1. 两阶段解读
# ─────────────────────────────────────────────────────────

class TestInterpret:
    def test_structured(self):
        result = interpret(STRUCTURED, 0.5)
        assert result.source is InterpretationSource.STRUCTURED
        assert result.rating.recommendation is Recommendation.BUY
        assert result.rating.confidence == 0.85
        assert "innovation" in result.rating.rationale
        assert result.rating.key_metrics == {}

    def test_structured_in_code_fence(self):
        content = "```json\n" + STRUCTURED.replace("Buy", "sell") + "\n```"
        result = interpret(content, 0.5)
        assert result.source is InterpretationSource.STRUCTURED
        assert result.rating.recommendation is Recommendation.SELL

    def test_fallback_sell(self):
        text = "I recommend to Sell this stock because margins are strong"
        result = interpret(text, 0.65)
        assert result.source is InterpretationSource.HEURISTIC
        assert result.rating.recommendation is Recommendation.SELL
        assert result.rating.confidence == 0.65
        assert result.rating.rationale == text

    def test_fallback_buy_has_priority(self):
        result = interpret("Sell now? No, BUY the dip.", 0.7)
        assert result.rating.recommendation is Recommendation.BUY

    def test_fallback_default_hold(self):
        result = interpret("No strong view either way.", 0.7)
        assert result.rating.recommendation is Recommendation.HOLD

    @pytest.mark.parametrize("content", [
        None,
        "",
        "[1, 2, 3]",
        '{"recommendation": "Strong Buy", "confidence": 0.9, "rationale": "x"}',
        '{"recommendation": "Hold", "confidence": "high", "rationale": "x"}',
        '{"recommendation": "Hold", "confidence": 0.5}',
        pytest.param("[" * 100000, id="deeply_nested"),
    ])
    def test_malformed_never_raises(self, content):
        result = interpret(content, 0.6)
        assert result.source is InterpretationSource.HEURISTIC
        assert isinstance(result.rating, StockRating)
        assert result.rating.confidence == 0.6


# ─────────────────────────────────────────────────────────
# 2. 代理
# ─────────────────────────────────────────────────────────

class TestAgents:
    @pytest.mark.asyncio
    async def test_cathie_wood_structured(self):
        chat = _chat(STRUCTURED)
        rating = await CathieWoodAgent(chat).evaluate(_context())
        assert rating.recommendation is Recommendation.BUY
        assert rating.confidence == 0.85
        assert "innovation" in rating.rationale

    @pytest.mark.asyncio
    async def test_cathie_wood_fallback(self):
        chat = _chat("I recommend to Sell this stock because...")
        rating = await CathieWoodAgent(chat).evaluate(_context(closes={date(2025, 7, 28): 100.0}))
        assert rating.recommendation is Recommendation.SELL
        assert rating.confidence == 0.65
        assert "Sell" in rating.rationale

    @pytest.mark.asyncio
    async def test_warren_buffett_fallback_constant(self):
        rating = await WarrenBuffettAgent(_chat("hmm")).evaluate(_context())
        assert rating.recommendation is Recommendation.HOLD
        assert rating.confidence == 0.7

    @pytest.mark.asyncio
    async def test_prompt_contents(self):
        chat = _chat(STRUCTURED)
        closes = {date(2025, 7, d): 100.0 + d for d in range(1, 29)}
        await WarrenBuffettAgent(chat).evaluate(_context(closes=closes))
        system, user = chat.calls[0]
        assert "Warren Buffett" in system
        assert "Ticker: TEST" in user
        assert "Current Price: $128.00" in user
        assert "pe:21.5" in user
        assert "Price history:" in user
        assert "RSI14: 100.0" in user

    @pytest.mark.asyncio
    async def test_quote_depth_prompt_has_no_history(self):
        chat = _chat(STRUCTURED)
        await CathieWoodAgent(chat).evaluate(_context(depth=ContextDepth.QUOTE))
        _, user = chat.calls[0]
        assert "Momentum:" not in user
        assert "Current Price: $123.45" in user

    @pytest.mark.asyncio
    async def test_chat_failure_propagates(self):
        async def broken(system, user):
            raise RuntimeError("upstream down")

        with pytest.raises(RuntimeError):
            await CathieWoodAgent(broken).evaluate(_context())


class TestAnalysisLayer:
    def test_rsi_rising_series_is_overbought(self):
        closes = {date(2025, 7, d): 100.0 + d for d in range(1, 29)}
        summary = AnalysisLayer().summarize(_context(closes=closes))
        assert summary["RSI14"] == 100.0

    def test_rsi_falling_series_is_oversold(self):
        closes = {date(2025, 7, d): 200.0 - d for d in range(1, 29)}
        summary = AnalysisLayer().summarize(_context(closes=closes))
        assert summary["RSI14"] == 0.0

    def test_rsi_flat_series_is_neutral(self):
        closes = {date(2025, 7, d): 50.0 for d in range(1, 29)}
        summary = AnalysisLayer().summarize(_context(closes=closes))
        assert summary["RSI14"] == 50.0
        assert summary["change_pct"] == 0.0

    def test_single_point_summary(self):
        summary = AnalysisLayer().summarize(_context())
        assert summary == {"last_close": 123.45, "observations": 1}


class TestRegistry:
    def test_names_unique_lowercase(self):
        agents = available_agents(_chat(""))
        assert set(agents) == {"warren_buffett", "cathie_wood"}
        assert all(name == name.lower() for name in agents)

    def test_select_case_insensitive(self):
        selected = select_agents(["Cathie_Wood"], _chat(""))
        assert [a.name for a in selected] == ["cathie_wood"]

    def test_unknown_agent(self):
        with pytest.raises(ConfigurationError):
            select_agents(["peter_lynch"], _chat(""))


# ─────────────────────────────────────────────────────────
# 3. 并发扇出
# ─────────────────────────────────────────────────────────

class _ProbeAgent:
    """记录同时在途调用数的探针代理"""

    def __init__(self, name: str, probe: dict, delay: float = 0.02, fail: bool = False):
        self.name = name
        self._probe = probe
        self._delay = delay
        self._fail = fail

    async def evaluate(self, context):
        self._probe["current"] += 1
        self._probe["peak"] = max(self._probe["peak"], self._probe["current"])
        try:
            await asyncio.sleep(self._delay)
            if self._fail:
                raise RuntimeError(f"{self.name} exploded")
            return StockRating(recommendation=Recommendation.HOLD, confidence=0.5, rationale=self.name)
        finally:
            self._probe["current"] -= 1


class TestEvaluationFanOut:
    @pytest.mark.asyncio
    async def test_results_keyed_by_agent(self):
        probe = {"current": 0, "peak": 0}
        fan_out = EvaluationFanOut(max_parallel=4)
        agents = [_ProbeAgent("a", probe), _ProbeAgent("b", probe)]
        results = await fan_out.evaluate_all(_context(), agents)
        assert set(results) == {"a", "b"}
        assert all(r.ok for r in results.values())
        assert all(r.elapsed_ms > 0 for r in results.values())

    @pytest.mark.asyncio
    async def test_global_limit_across_contexts(self):
        probe = {"current": 0, "peak": 0}
        fan_out = EvaluationFanOut(max_parallel=2)
        agents = [_ProbeAgent(f"agent{i}", probe) for i in range(4)]
        contexts = [_context(t) for t in ("A", "B", "C")]

        # 两个独立调用共享同一个信号量
        await asyncio.gather(
            fan_out.evaluate_many(contexts, agents),
            fan_out.evaluate_all(_context("D"), agents),
        )
        assert probe["peak"] == 2
        assert probe["current"] == 0

    @pytest.mark.asyncio
    async def test_failure_isolated_and_slot_released(self):
        probe = {"current": 0, "peak": 0}
        fan_out = EvaluationFanOut(max_parallel=1)
        agents = [_ProbeAgent("bad", probe, fail=True), _ProbeAgent("good", probe)]
        results = await fan_out.evaluate_all(_context(), agents)
        assert results["bad"].rating is None
        assert "exploded" in results["bad"].error
        assert results["good"].ok

        # 失败后槽位已归还，后续调用不被阻塞
        again = await asyncio.wait_for(fan_out.evaluate_all(_context(), agents[1:]), timeout=1)
        assert again["good"].ok

    @pytest.mark.asyncio
    async def test_evaluate_many_keeps_context_order(self):
        probe = {"current": 0, "peak": 0}
        fan_out = EvaluationFanOut(max_parallel=3)
        results = await fan_out.evaluate_many([_context("X"), _context("Y")], [_ProbeAgent("a", probe)])
        assert len(results) == 2

    @pytest.mark.asyncio
    async def test_cancellation_releases_slots(self):
        probe = {"current": 0, "peak": 0}
        fan_out = EvaluationFanOut(max_parallel=1)
        slow = [_ProbeAgent("slow", probe, delay=10)]
        task = asyncio.create_task(fan_out.evaluate_all(_context(), slow))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        fast = [_ProbeAgent("fast", probe)]
        done = await asyncio.wait_for(fan_out.evaluate_all(_context(), fast), timeout=1)
        assert done["fast"].ok

    @pytest.mark.asyncio
    async def test_finish_time_follows_completion(self):
        probe = {"current": 0, "peak": 0}
        fan_out = EvaluationFanOut(max_parallel=2)
        agents = [_ProbeAgent("slow", probe, delay=0.05), _ProbeAgent("fast", probe, delay=0.0)]
        results = await fan_out.evaluate_all(_context(), agents)
        assert list(results) == ["slow", "fast"]
        assert results["fast"].finished_at < results["slow"].finished_at

    def test_invalid_limit(self):
        with pytest.raises(ValueError):
            EvaluationFanOut(max_parallel=0)
