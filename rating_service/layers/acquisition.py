"""
Layer 1 – 数据获取层
从 Alpha Vantage 拉取原始行情数据（单只日线 / 批量最新报价），
只负责传输，解析交给处理层。
"""

import logging
from typing import Any, Dict, Sequence

import httpx

from rating_service.errors import TransportError, UpstreamShapeError

logger = logging.getLogger(__name__)

SERIES_FUNCTION = "TIME_SERIES_DAILY_ADJUSTED"
BATCH_FUNCTION = "BATCH_STOCK_QUOTES"


class AlphaVantageClient:
    """行情数据提供商：封装 HTTP 请求，不做重试，超时由 httpx 客户端负责"""

    def __init__(
        self,
        api_key: str,
        http: httpx.AsyncClient,
        base_url: str = "https://www.alphavantage.co/query",
        output_size: str = "compact",
    ):
        self._api_key = api_key
        self._http = http
        self._base_url = base_url
        self._output_size = output_size

    async def fetch_series(self, ticker: str) -> Dict[str, Any]:
        """获取单只股票的完整日线序列（原始 JSON）"""
        params = {
            "function": SERIES_FUNCTION,
            "symbol": ticker,
            "outputsize": self._output_size,
        }
        logger.info(f"请求 Alpha Vantage 日线: {ticker}")
        return await self._get(params, ticker=ticker, phase="series")

    async def fetch_batch_quotes(self, tickers: Sequence[str]) -> Dict[str, Any]:
        """一次请求获取多只股票的最新报价（原始 JSON）"""
        params = {
            "function": BATCH_FUNCTION,
            "symbols": ",".join(tickers),
        }
        logger.info(f"批量请求 Alpha Vantage: {len(tickers)} 只股票")
        return await self._get(params, ticker=",".join(tickers), phase="batch")

    async def _get(self, params: Dict[str, str], ticker: str, phase: str) -> Dict[str, Any]:
        # apikey 只放进请求参数，不进入日志
        try:
            resp = await self._http.get(self._base_url, params={**params, "apikey": self._api_key})
        except httpx.HTTPError as exc:
            raise TransportError(f"网络请求失败: {exc}", ticker=ticker, phase=phase) from exc

        if not resp.is_success:
            raise TransportError(
                f"HTTP {resp.status_code}",
                ticker=ticker,
                phase=phase,
                status_code=resp.status_code,
            )

        if not resp.content.strip():
            raise UpstreamShapeError("响应体为空", ticker=ticker, phase=phase)
        try:
            return resp.json()
        except ValueError as exc:
            raise UpstreamShapeError(f"响应不是合法 JSON: {exc}", ticker=ticker, phase=phase) from exc
