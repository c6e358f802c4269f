"""成长 / 颠覆式创新风格代理（Cathie Wood）"""

from typing import Any, Dict

from rating_service.agents.base import RESPONSE_FORMAT, Agent
from rating_service.layers.analysis import format_summary
from rating_service.models.domain import ContextDepth, StockContext


class CathieWoodAgent(Agent):
    name = "cathie_wood"
    fallback_confidence = 0.65

    @property
    def system_prompt(self) -> str:
        return (
            "You are growth-oriented investor Cathie Wood. Focus on:\n"
            "- Disruptive innovation and technological breakthroughs\n"
            "- High growth potential and market expansion\n"
            "- Strong momentum and future scalability\n"
            "- Revolutionary business models\n\n"
            + RESPONSE_FORMAT
        )

    def build_user_prompt(self, context: StockContext, summary: Dict[str, Any]) -> str:
        lines = [f"Ticker: {context.ticker}", self.price_line(context)]
        if context.depth is ContextDepth.FULL and summary:
            lines.append(f"Momentum: {format_summary(summary)}")
        lines.append("Analyze innovation potential and growth momentum.")
        return "\n".join(lines)
