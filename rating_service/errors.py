"""
错误分类
  ConfigurationError   : 缺少必需配置，启动即失败
  UpstreamShapeError   : 上游响应结构异常，仅影响当次获取，不写缓存
  TransportError       : 网络 / 非成功状态码，仅影响当次获取，不重试
  ReconciliationError  : 批量结果无法与请求列表对齐，整个批次失败
"""

from typing import Iterable, Optional


class RatingServiceError(Exception):
    """评级服务基础异常"""


class ConfigurationError(RatingServiceError):
    """缺少必需的凭据或配置项"""


class UpstreamShapeError(RatingServiceError):
    """上游响应缺少预期字段"""

    def __init__(self, message: str, ticker: Optional[str] = None, phase: str = "parse"):
        self.ticker = ticker
        self.phase = phase
        prefix = f"[{phase}] {ticker}: " if ticker else f"[{phase}] "
        super().__init__(prefix + message)


class TransportError(RatingServiceError):
    """网络错误或非成功 HTTP 状态"""

    def __init__(
        self,
        message: str,
        ticker: Optional[str] = None,
        phase: str = "fetch",
        status_code: Optional[int] = None,
    ):
        self.ticker = ticker
        self.phase = phase
        self.status_code = status_code
        prefix = f"[{phase}] {ticker}: " if ticker else f"[{phase}] "
        super().__init__(prefix + message)


class ReconciliationError(RatingServiceError):
    """请求的股票既不在缓存中也不在批量响应中"""

    def __init__(self, message: str, missing: Iterable[str] = ()):
        self.missing = sorted(missing)
        super().__init__(message)


class DuplicateTickerError(ReconciliationError):
    """请求列表中包含重复代码（不区分大小写）"""

    def __init__(self, duplicates: Iterable[str]):
        dups = sorted(duplicates)
        super().__init__(f"重复的股票代码: {', '.join(dups)}", missing=())
        self.duplicates = dups
