"""
批量上下文获取与对齐

  1. 逐只查询两级缓存（并发），命中直接收下，未命中放入待获取列表
  2. 待获取列表非空时只发起一次批量请求
  3. 批量结果逐只写回缓存
  4. 按调用方原始顺序（不区分大小写）重组结果；
     任何一只既未命中缓存又不在批量响应中，整个调用失败，绝不静默缩短结果列表

注意：批量来源的上下文只含最新价（depth=quote），不具备完整日线深度。
"""

import asyncio
import logging
from collections import Counter
from typing import Dict, List, Sequence

from rating_service.errors import DuplicateTickerError, ReconciliationError
from rating_service.layers.acquisition import AlphaVantageClient
from rating_service.layers.cache import Clock, TieredCache, utc_now
from rating_service.layers.processing import ShapeError, parse_batch
from rating_service.models.domain import StockContext

logger = logging.getLogger(__name__)


class BatchReconciler:

    def __init__(self, cache: TieredCache, provider: AlphaVantageClient, clock: Clock = utc_now):
        self._cache = cache
        self._provider = provider
        self._clock = clock

    async def resolve_all(self, tickers: Sequence[str]) -> List[StockContext]:
        keys = [t.strip().upper() for t in tickers]
        duplicates = [k for k, n in Counter(keys).items() if n > 1]
        if duplicates:
            raise DuplicateTickerError(duplicates)
        if not keys:
            return []

        entries = await asyncio.gather(*(self._cache.lookup(k) for k in keys))
        resolved: Dict[str, StockContext] = {
            k: e.context for k, e in zip(keys, entries) if e is not None
        }
        misses = [k for k in keys if k not in resolved]
        logger.info(f"批量解析 {len(keys)} 只股票：缓存命中 {len(resolved)}，待获取 {len(misses)}")

        if misses:
            fetched = await self._fetch_batch(misses)
            missing = [k for k in misses if k not in fetched]
            if missing:
                raise ReconciliationError(
                    f"批量响应缺少请求的股票: {', '.join(missing)}", missing=missing
                )
            for k in misses:
                resolved[k] = fetched[k]

        return [resolved[k] for k in keys]

    async def _fetch_batch(self, misses: List[str]) -> Dict[str, StockContext]:
        payload = await self._provider.fetch_batch_quotes(misses)
        parsed = parse_batch(payload, self._clock())
        if isinstance(parsed, ShapeError):
            raise parsed.to_exception()

        by_symbol = parsed.by_symbol()
        extra = set(by_symbol) - set(misses)
        if extra:
            # 未请求的代码不写缓存，避免覆盖已有的完整日线
            logger.debug(f"批量响应包含未请求的代码，已忽略: {sorted(extra)}")
        requested = {k: v for k, v in by_symbol.items() if k not in extra}
        for symbol, context in requested.items():
            await self._cache.store(symbol, context)
        return requested
