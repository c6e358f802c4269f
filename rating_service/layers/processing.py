"""
Layer 3 – 数据处理层
将上游原始 JSON 解析为标准 StockContext。
解析结果为带标签的变体（ParsedSeries / ParsedBatch / ShapeError），
字段存在性全部显式检查，不依赖异常流程。
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

from rating_service.errors import UpstreamShapeError
from rating_service.models.domain import ContextDepth, StockContext

logger = logging.getLogger(__name__)

SERIES_FIELD = "Time Series (Daily)"
CLOSE_FIELD = "4. close"
QUOTES_FIELD = "Stock Quotes"
SYMBOL_FIELD = "1. symbol"
PRICE_FIELD = "2. price"
TIMESTAMP_FIELD = "4. timestamp"

# Alpha Vantage 在 HTTP 200 中返回的提示字段（限流 / 参数错误）
_NOTICE_FIELDS = ("Error Message", "Note", "Information")


@dataclass(frozen=True)
class ParsedSeries:
    context: StockContext
    skipped: int = 0


@dataclass(frozen=True)
class ParsedBatch:
    contexts: List[StockContext] = field(default_factory=list)

    def by_symbol(self) -> Dict[str, StockContext]:
        return {ctx.ticker: ctx for ctx in self.contexts}


@dataclass(frozen=True)
class ShapeError:
    reason: str
    ticker: Optional[str] = None
    phase: str = "parse"

    def to_exception(self) -> UpstreamShapeError:
        return UpstreamShapeError(self.reason, ticker=self.ticker, phase=self.phase)


SeriesResult = Union[ParsedSeries, ShapeError]
BatchResult = Union[ParsedBatch, ShapeError]


def _parse_date(text: Any) -> Optional[date]:
    if not isinstance(text, str) or len(text) < 10:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def _parse_price(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    return price if math.isfinite(price) else None


def _notice(payload: Dict[str, Any]) -> Optional[str]:
    for name in _NOTICE_FIELDS:
        if name in payload:
            return f"上游提示 {name}: {payload[name]}"
    return None


def parse_series(ticker: str, payload: Any, now: datetime) -> SeriesResult:
    """解析单只股票日线响应"""
    if not isinstance(payload, dict) or not payload:
        return ShapeError("日线响应为空或不是 JSON 对象", ticker=ticker, phase="series")

    series = payload.get(SERIES_FIELD)
    if not isinstance(series, dict):
        reason = _notice(payload) or f"缺少字段 {SERIES_FIELD!r}"
        return ShapeError(reason, ticker=ticker, phase="series")

    prices: Dict[date, float] = {}
    skipped = 0
    for day, bar in series.items():
        parsed_day = _parse_date(day)
        close = _parse_price(bar.get(CLOSE_FIELD)) if isinstance(bar, dict) else None
        if parsed_day is None or close is None:
            skipped += 1
            continue
        prices[parsed_day] = close

    if not prices:
        return ShapeError("日线序列中没有可用的收盘价", ticker=ticker, phase="series")
    if skipped:
        logger.warning(f"{ticker} 日线中有 {skipped} 条记录无法解析，已跳过")

    context = StockContext(
        ticker=ticker,
        retrieved_at=now,
        price_series=prices,
        depth=ContextDepth.FULL,
    )
    return ParsedSeries(context=context, skipped=skipped)


def parse_batch(payload: Any, now: datetime) -> BatchResult:
    """解析批量报价响应；任一报价异常即整个批次失败"""
    if not isinstance(payload, dict) or not payload:
        return ShapeError("批量响应为空或不是 JSON 对象", phase="batch")

    quotes = payload.get(QUOTES_FIELD)
    if not isinstance(quotes, list):
        reason = _notice(payload) or f"缺少字段 {QUOTES_FIELD!r}"
        return ShapeError(reason, phase="batch")

    contexts: List[StockContext] = []
    seen = set()
    for idx, quote in enumerate(quotes):
        if not isinstance(quote, dict):
            return ShapeError(f"第 {idx} 条报价不是 JSON 对象", phase="batch")
        symbol = quote.get(SYMBOL_FIELD)
        if not isinstance(symbol, str) or not symbol.strip():
            return ShapeError(f"第 {idx} 条报价缺少 {SYMBOL_FIELD!r}", phase="batch")
        symbol = symbol.strip().upper()
        price = _parse_price(quote.get(PRICE_FIELD))
        if price is None:
            return ShapeError(f"报价价格无效: {quote.get(PRICE_FIELD)!r}", ticker=symbol, phase="batch")
        if symbol in seen:
            return ShapeError("批量响应中出现重复代码", ticker=symbol, phase="batch")
        seen.add(symbol)

        quoted_on = _parse_date(quote.get(TIMESTAMP_FIELD)) or now.date()
        contexts.append(StockContext(
            ticker=symbol,
            retrieved_at=now,
            price_series={quoted_on: price},
            depth=ContextDepth.QUOTE,
        ))

    return ParsedBatch(contexts=contexts)
