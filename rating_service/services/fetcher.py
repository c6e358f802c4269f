"""
单只股票上下文获取
先查两级缓存，未命中时请求完整日线并写回两级缓存。
"""

import logging

from rating_service.layers.acquisition import AlphaVantageClient
from rating_service.layers.cache import Clock, TieredCache, utc_now
from rating_service.layers.processing import ShapeError, parse_series
from rating_service.models.domain import StockContext

logger = logging.getLogger(__name__)


class ContextFetcher:
    """单只股票获取器：不重试、不合并并发请求"""

    def __init__(self, cache: TieredCache, provider: AlphaVantageClient, clock: Clock = utc_now):
        self._cache = cache
        self._provider = provider
        self._clock = clock

    async def fetch(self, ticker: str) -> StockContext:
        ticker = ticker.strip().upper()
        entry = await self._cache.lookup(ticker)
        if entry is not None:
            return entry.context

        payload = await self._provider.fetch_series(ticker)
        parsed = parse_series(ticker, payload, self._clock())
        if isinstance(parsed, ShapeError):
            raise parsed.to_exception()

        await self._cache.store(ticker, parsed.context)
        logger.info(f"{ticker} 日线获取完成，共 {len(parsed.context.price_series)} 个交易日")
        return parsed.context
