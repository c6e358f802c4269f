"""领域模型：StockContext / CacheEntry / StockRating"""

from datetime import date, datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Recommendation(str, Enum):
    BUY = "Buy"
    HOLD = "Hold"
    SELL = "Sell"

    @classmethod
    def parse(cls, value: str) -> "Recommendation":
        """不区分大小写解析，无法识别时抛出 ValueError"""
        text = str(value).strip().lower()
        for member in cls:
            if member.value.lower() == text:
                return member
        raise ValueError(f"未知的投资建议: {value!r}")


class ContextDepth(str, Enum):
    """数据深度：单只获取为完整日线，批量报价仅含最新价"""
    FULL = "full"
    QUOTE = "quote"


class StockContext(BaseModel):
    """单只股票的行情上下文（构造后不可变）"""

    model_config = ConfigDict(frozen=True)

    ticker: str
    retrieved_at: datetime
    fundamentals: Dict[str, float] = Field(default_factory=dict)
    price_series: Dict[date, float] = Field(default_factory=dict)
    depth: ContextDepth = ContextDepth.FULL

    @field_validator("ticker")
    @classmethod
    def _normalize_ticker(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("ticker 不能为空")
        return v

    @property
    def latest_date(self) -> Optional[date]:
        return max(self.price_series) if self.price_series else None

    @property
    def latest_price(self) -> Optional[float]:
        latest = self.latest_date
        return self.price_series[latest] if latest is not None else None


class CacheEntry(BaseModel):
    """缓存条目：写入后只整体替换，不做原地修改"""

    model_config = ConfigDict(frozen=True)

    retrieved_at: datetime
    context: StockContext


class StockRating(BaseModel):
    """单个代理对单只股票的评级结果"""

    model_config = ConfigDict(frozen=True)

    recommendation: Recommendation
    confidence: float
    rationale: str
    key_metrics: Dict[str, str] = Field(default_factory=dict)
