"""
评级流水线
  股票列表 → 批量解析（缓存 + 批量报价） → 上下文列表 → 并发评级

批量路径整体失败时降级为逐只获取，单只股票的问题不会中断整个运行。
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import httpx

from rating_service.agents import select_agents
from rating_service.agents.base import Agent, ChatFunc
from rating_service.config import RatingServiceSettings
from rating_service.errors import ConfigurationError, RatingServiceError
from rating_service.layers.acquisition import AlphaVantageClient
from rating_service.layers.cache import TieredCache
from rating_service.models.domain import StockContext
from rating_service.services.evaluation import EvaluationFanOut, EvaluatorResult
from rating_service.services.fetcher import ContextFetcher
from rating_service.services.reconciler import BatchReconciler

logger = logging.getLogger(__name__)

FETCH_BATCH = "batch"
FETCH_SINGLE = "single"


@dataclass
class TickerOutcome:
    ticker: str
    context: Optional[StockContext] = None
    error: Optional[str] = None
    mode: str = FETCH_BATCH


@dataclass
class TickerReport:
    ticker: str
    context: Optional[StockContext] = None
    error: Optional[str] = None
    results: Dict[str, EvaluatorResult] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "ticker": self.ticker,
            "depth": self.context.depth.value if self.context else None,
            "latest_price": self.context.latest_price if self.context else None,
            "error": self.error,
            "ratings": {name: r.to_dict() for name, r in self.results.items()},
        }


@dataclass
class RatingRun:
    reports: List[TickerReport]
    fetch_ms: float
    fetch_mode: str = FETCH_BATCH

    @property
    def resolved(self) -> int:
        return sum(1 for r in self.reports if r.context is not None)


def dedupe(tickers: Sequence[str]) -> List[str]:
    """去除重复代码（不区分大小写），保留首次出现顺序"""
    seen = set()
    out: List[str] = []
    for t in tickers:
        key = t.strip().upper()
        if key and key not in seen:
            seen.add(key)
            out.append(key)
    return out


class RatingPipeline:

    def __init__(
        self,
        fetcher: ContextFetcher,
        reconciler: BatchReconciler,
        fan_out: EvaluationFanOut,
        agents: Sequence[Agent],
        cache: Optional[TieredCache] = None,
    ):
        self.fetcher = fetcher
        self.reconciler = reconciler
        self.fan_out = fan_out
        self.agents = list(agents)
        self.cache = cache

    async def gather_contexts(self, tickers: Sequence[str]) -> List[TickerOutcome]:
        keys = dedupe(tickers)
        try:
            contexts = await self.reconciler.resolve_all(keys)
            return [TickerOutcome(ticker=k, context=c) for k, c in zip(keys, contexts)]
        except RatingServiceError as exc:
            logger.warning(f"批量获取失败，降级为逐只获取: {exc}")

        async def _single(key: str) -> TickerOutcome:
            try:
                return TickerOutcome(ticker=key, context=await self.fetcher.fetch(key), mode=FETCH_SINGLE)
            except RatingServiceError as exc:
                logger.error(f"{key} 获取失败: {exc}")
                return TickerOutcome(ticker=key, error=str(exc), mode=FETCH_SINGLE)

        return list(await asyncio.gather(*(_single(k) for k in keys)))

    def agents_named(self, names: Optional[Sequence[str]]) -> List[Agent]:
        """从已加载的代理中按名称筛选；未知名称视为配置错误"""
        if not names:
            return self.agents
        loaded = {a.name: a for a in self.agents}
        wanted = [n.strip().lower() for n in names]
        unknown = [n for n in wanted if n not in loaded]
        if unknown:
            raise ConfigurationError(f"未加载的代理: {', '.join(unknown)}")
        return [loaded[n] for n in dict.fromkeys(wanted)]

    async def rate(self, tickers: Sequence[str], agents: Optional[Sequence[Agent]] = None) -> RatingRun:
        agents = self.agents if agents is None else list(agents)
        start = time.perf_counter()
        outcomes = await self.gather_contexts(tickers)
        fetch_ms = (time.perf_counter() - start) * 1000
        logger.info(f"Fetched {len(outcomes)} stocks in {fetch_ms:.0f} ms")

        resolved = [o for o in outcomes if o.context is not None]
        evaluations = await self.fan_out.evaluate_many([o.context for o in resolved], agents)
        by_ticker = {o.ticker: res for o, res in zip(resolved, evaluations)}

        reports = [
            TickerReport(
                ticker=o.ticker,
                context=o.context,
                error=o.error,
                results=by_ticker.get(o.ticker, {}),
            )
            for o in outcomes
        ]
        mode = FETCH_SINGLE if any(o.mode == FETCH_SINGLE for o in outcomes) else FETCH_BATCH
        return RatingRun(reports=reports, fetch_ms=fetch_ms, fetch_mode=mode)


def build_pipeline(
    settings: RatingServiceSettings,
    http: httpx.AsyncClient,
    chat: Optional[ChatFunc] = None,
    agent_names: Optional[Sequence[str]] = None,
    max_parallel: Optional[int] = None,
) -> RatingPipeline:
    """按配置组装流水线；缺少必需凭据时抛出 ConfigurationError，不做任何部分初始化"""
    api_key = settings.require_market_data()
    if chat is None:
        from rating_service.agents.llm import openai_chat
        chat = openai_chat(settings)

    agents = select_agents(agent_names or settings.DEFAULT_AGENTS, chat)
    cache = TieredCache(settings.CACHE_DIR, ttl=settings.CACHE_TTL)
    provider = AlphaVantageClient(
        api_key=api_key,
        http=http,
        base_url=settings.ALPHAVANTAGE_BASE_URL,
        output_size=settings.ALPHAVANTAGE_OUTPUT_SIZE,
    )
    return RatingPipeline(
        fetcher=ContextFetcher(cache, provider),
        reconciler=BatchReconciler(cache, provider),
        fan_out=EvaluationFanOut(max_parallel or settings.MAX_PARALLEL),
        agents=agents,
        cache=cache,
    )
