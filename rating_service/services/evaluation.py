"""
并发评级调度

一个全局信号量限制所有股票、所有代理同时在途的评级调用数。
同一只股票的各代理并发执行，全部结束后才返回；单个代理失败不取消其他代理。
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from rating_service.agents.base import Agent
from rating_service.models.domain import StockContext, StockRating

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EvaluatorResult:
    agent: str
    rating: Optional[StockRating] = None
    error: Optional[str] = None
    elapsed_ms: float = 0.0
    # perf_counter 完成时刻，用于按完成顺序输出
    finished_at: float = 0.0

    @property
    def ok(self) -> bool:
        return self.rating is not None

    def to_dict(self) -> dict:
        return {
            "agent": self.agent,
            "rating": self.rating.model_dump(mode="json") if self.rating else None,
            "error": self.error,
            "elapsed_ms": round(self.elapsed_ms, 1),
        }


class EvaluationFanOut:
    """评级扇出：信号量槽位通过 async with 获取，任何退出路径（含取消）都会释放"""

    def __init__(self, max_parallel: int):
        if max_parallel < 1:
            raise ValueError("max_parallel 必须 >= 1")
        self.max_parallel = max_parallel
        self._limiter = asyncio.Semaphore(max_parallel)

    async def _run_one(self, agent: Agent, context: StockContext) -> EvaluatorResult:
        async with self._limiter:
            start = time.perf_counter()
            try:
                rating = await agent.evaluate(context)
            except Exception as exc:
                elapsed = (time.perf_counter() - start) * 1000
                logger.error(f"[{agent.name}] {context.ticker} 评级失败（{elapsed:.0f} ms）: {exc}")
                return EvaluatorResult(
                    agent=agent.name,
                    error=str(exc) or type(exc).__name__,
                    elapsed_ms=elapsed,
                    finished_at=time.perf_counter(),
                )
            elapsed = (time.perf_counter() - start) * 1000
        logger.info(f"[{agent.name}] {context.ticker} completed in {elapsed:.0f} ms")
        return EvaluatorResult(
            agent=agent.name, rating=rating, elapsed_ms=elapsed, finished_at=time.perf_counter()
        )

    async def evaluate_all(
        self, context: StockContext, agents: Sequence[Agent]
    ) -> Dict[str, EvaluatorResult]:
        results = await asyncio.gather(*(self._run_one(a, context) for a in agents))
        return {r.agent: r for r in results}

    async def evaluate_many(
        self, contexts: Sequence[StockContext], agents: Sequence[Agent]
    ) -> List[Dict[str, EvaluatorResult]]:
        """多只股票同时评级，结果顺序与 contexts 一致"""
        return list(await asyncio.gather(*(self.evaluate_all(c, agents) for c in contexts)))
