"""价值投资风格代理（Warren Buffett）"""

from typing import Any, Dict

from rating_service.agents.base import RESPONSE_FORMAT, Agent
from rating_service.layers.analysis import format_summary
from rating_service.models.domain import ContextDepth, StockContext


class WarrenBuffettAgent(Agent):
    name = "warren_buffett"
    fallback_confidence = 0.7

    @property
    def system_prompt(self) -> str:
        return (
            "You are legendary investor Warren Buffett. Analyze stocks based on:\n"
            "- Long-term value and competitive moats\n"
            "- Strong management and business fundamentals\n"
            "- Reasonable price relative to intrinsic value\n"
            "- Predictable earnings and cash flows\n\n"
            + RESPONSE_FORMAT
        )

    def build_user_prompt(self, context: StockContext, summary: Dict[str, Any]) -> str:
        fundamentals = ", ".join(f"{k}:{v}" for k, v in context.fundamentals.items())
        lines = [
            f"Ticker: {context.ticker}",
            self.price_line(context),
            f"Fundamentals: {fundamentals or 'n/a'}",
        ]
        if context.depth is ContextDepth.FULL and summary:
            lines.append(f"Price history: {format_summary(summary)}")
        return "\n".join(lines)
