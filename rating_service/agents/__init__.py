"""
评级代理注册表
名称唯一且为小写，既用于筛选也用于结果标注。
"""

from typing import Dict, Iterable, List

from rating_service.agents.base import Agent, ChatFunc
from rating_service.agents.cathie_wood import CathieWoodAgent
from rating_service.agents.warren_buffett import WarrenBuffettAgent
from rating_service.errors import ConfigurationError

AGENT_CLASSES = (WarrenBuffettAgent, CathieWoodAgent)


def available_agents(chat: ChatFunc) -> Dict[str, Agent]:
    return {cls.name: cls(chat) for cls in AGENT_CLASSES}


def select_agents(names: Iterable[str], chat: ChatFunc) -> List[Agent]:
    """按名称（不区分大小写）筛选代理，保持请求顺序；未知名称视为配置错误"""
    registry = available_agents(chat)
    selected: List[Agent] = []
    for name in names:
        key = name.strip().lower()
        if key not in registry:
            raise ConfigurationError(
                f"未知代理: {name}（可选: {', '.join(sorted(registry))}）"
            )
        if registry[key] not in selected:
            selected.append(registry[key])
    return selected
