"""
测试公共夹具：可控时钟、伪造行情源、示例响应
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

# 确保项目根目录在 sys.path
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)


class FakeClock:
    """可手动推进的 UTC 时钟"""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2025, 7, 28, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def series_payload(closes: dict) -> dict:
    """构造 Alpha Vantage 日线响应：{日期: 收盘价}"""
    return {
        "Meta Data": {"2. Symbol": "TEST"},
        "Time Series (Daily)": {
            day: {"1. open": str(px), "4. close": str(px)} for day, px in closes.items()
        },
    }


def batch_payload(prices: dict) -> dict:
    """构造 Alpha Vantage 批量报价响应：{代码: 价格}"""
    return {
        "Meta Data": {"1. Information": "Batch Stock Market Quotes"},
        "Stock Quotes": [
            {
                "1. symbol": sym,
                "2. price": f"{px:.4f}",
                "3. volume": "--",
                "4. timestamp": "2025-07-28 15:59:59",
            }
            for sym, px in prices.items()
        ],
    }


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(tmp_path, clock):
    from rating_service.layers.cache import TieredCache
    return TieredCache(str(tmp_path / "cache"), ttl=12 * 3600, clock=clock)


@pytest.fixture
def provider():
    """伪造行情源：默认返回单点日线与空批量"""
    p = MagicMock()
    p.fetch_series = AsyncMock(return_value=series_payload({"2025-07-28": 123.45}))
    p.fetch_batch_quotes = AsyncMock(return_value=batch_payload({}))
    return p


@pytest.fixture
def make_context(clock):
    from rating_service.models.domain import ContextDepth, StockContext

    def _make(ticker: str, price: float = 100.0, depth: ContextDepth = ContextDepth.FULL):
        return StockContext(
            ticker=ticker,
            retrieved_at=clock(),
            price_series={clock().date(): price},
            depth=depth,
        )

    return _make
