"""
评级代理基类

每个代理对应一种投资风格，只在提示词与兜底置信度上有差异：
  1. 拼装系统提示词 + 基于上下文的用户提示词
  2. 调用一次文本生成接口
  3. 两阶段解读响应：
       structured – 响应是含 recommendation / confidence / rationale 的 JSON
       heuristic  – 否则按关键字扫描（先 Buy 后 Sell，均无则 Hold），永不抛错
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from rating_service.layers.analysis import AnalysisLayer
from rating_service.models.domain import Recommendation, StockContext, StockRating

logger = logging.getLogger(__name__)

# (system_prompt, user_prompt) -> 模型原始文本
ChatFunc = Callable[[str, str], Awaitable[str]]

RESPONSE_FORMAT = """Return ONLY a JSON object with these exact fields:
{
  "recommendation": "Buy" | "Hold" | "Sell",
  "confidence": 0.85,
  "rationale": "Your detailed reasoning here"
}"""


class InterpretationSource(str, Enum):
    STRUCTURED = "structured"
    HEURISTIC = "heuristic"


@dataclass(frozen=True)
class Interpretation:
    source: InterpretationSource
    rating: StockRating


def _strip_code_fence(content: str) -> str:
    """去掉 markdown 代码块包裹"""
    if "```json" in content:
        content = content.split("```json", 1)[1].split("```", 1)[0]
    elif content.count("```") >= 2:
        content = content.split("```", 1)[1].split("```", 1)[0]
    return content.strip()


def parse_structured(content: str) -> Optional[StockRating]:
    """结构化解读；字段缺失或类型不符时返回 None"""
    try:
        obj: Any = json.loads(_strip_code_fence(content))
    except (ValueError, RecursionError):
        return None
    if not isinstance(obj, dict):
        return None

    rec, conf, rationale = obj.get("recommendation"), obj.get("confidence"), obj.get("rationale")
    if not isinstance(rec, str) or not isinstance(rationale, str):
        return None
    if isinstance(conf, bool) or not isinstance(conf, (int, float)):
        return None
    try:
        recommendation = Recommendation.parse(rec)
    except ValueError:
        return None
    return StockRating(
        recommendation=recommendation,
        confidence=float(conf),
        rationale=rationale,
        key_metrics={},
    )


def heuristic_rating(content: str, fallback_confidence: float) -> StockRating:
    """关键字兜底：有损但总能给出评级"""
    lowered = content.lower()
    if "buy" in lowered:
        rec = Recommendation.BUY
    elif "sell" in lowered:
        rec = Recommendation.SELL
    else:
        rec = Recommendation.HOLD
    return StockRating(
        recommendation=rec,
        confidence=fallback_confidence,
        rationale=content,
        key_metrics={},
    )


def interpret(content: Optional[str], fallback_confidence: float) -> Interpretation:
    content = content or ""
    rating = parse_structured(content)
    if rating is not None:
        return Interpretation(InterpretationSource.STRUCTURED, rating)
    return Interpretation(InterpretationSource.HEURISTIC, heuristic_rating(content, fallback_confidence))


class Agent(ABC):
    """
    评级代理基类

    子类需提供：
      - name: 稳定的小写名称（用于筛选与结果标注）
      - system_prompt: 投资风格说明
      - fallback_confidence: 兜底解读使用的固定置信度
      - build_user_prompt(context, summary)
    """

    name: str = ""
    fallback_confidence: float = 0.5

    def __init__(self, chat: ChatFunc, analysis: Optional[AnalysisLayer] = None):
        self._chat = chat
        self._analysis = analysis or AnalysisLayer()

    @property
    @abstractmethod
    def system_prompt(self) -> str: ...

    @abstractmethod
    def build_user_prompt(self, context: StockContext, summary: Dict[str, Any]) -> str: ...

    async def evaluate(self, context: StockContext) -> StockRating:
        summary = self._analysis.summarize(context)
        user = self.build_user_prompt(context, summary)
        content = await self._chat(self.system_prompt, user)
        result = interpret(content, self.fallback_confidence)
        if result.source is InterpretationSource.HEURISTIC:
            logger.warning(f"[{self.name}] {context.ticker} 响应不是结构化 JSON，使用关键字兜底")
        return result.rating

    @staticmethod
    def price_line(context: StockContext) -> str:
        price = context.latest_price
        return f"Current Price: ${price:.2f}" if price is not None else "Current Price: n/a"
