"""文本生成接口（OpenAI 兼容）"""

import logging

from rating_service.agents.base import ChatFunc
from rating_service.config import RatingServiceSettings

logger = logging.getLogger(__name__)


def openai_chat(settings: RatingServiceSettings) -> ChatFunc:
    """构造基于 AsyncOpenAI 的 ChatFunc；缺少 OPENAI_API_KEY 时抛出配置错误"""
    from openai import AsyncOpenAI

    client = AsyncOpenAI(
        api_key=settings.require_openai(),
        base_url=settings.OPENAI_BASE_URL or None,
        timeout=settings.HTTP_TIMEOUT * 4,
    )

    async def chat(system: str, user: str) -> str:
        resp = await client.chat.completions.create(
            model=settings.OPENAI_MODEL,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            temperature=settings.OPENAI_TEMPERATURE,
        )
        return resp.choices[0].message.content or ""

    return chat
