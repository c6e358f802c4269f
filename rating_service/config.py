"""
评级服务配置模块
支持从环境变量 / .env 读取配置
"""

from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from rating_service.errors import ConfigurationError


class RatingServiceSettings(BaseSettings):
    """评级服务配置"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── 基础配置 ──────────────────────────────────────────
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8002)
    DEBUG: bool = Field(default=False)
    ALLOWED_ORIGINS: List[str] = Field(
        default_factory=lambda: ["*"]
    )

    # ── 行情数据源（Alpha Vantage） ───────────────────────
    ALPHAVANTAGE_API_KEY: str = Field(default="")
    ALPHAVANTAGE_BASE_URL: str = Field(default="https://www.alphavantage.co/query")
    ALPHAVANTAGE_OUTPUT_SIZE: str = Field(default="compact")
    HTTP_TIMEOUT: float = Field(default=15.0)     # 单次请求超时（秒）

    # ── 文本生成（OpenAI 兼容接口） ───────────────────────
    OPENAI_API_KEY: str = Field(default="")
    OPENAI_BASE_URL: str = Field(default="")
    OPENAI_MODEL: str = Field(default="gpt-3.5-turbo")
    OPENAI_TEMPERATURE: float = Field(default=0.2)

    # ── 缓存配置 ──────────────────────────────────────────
    CACHE_TTL: int = Field(default=12 * 3600)     # 两级缓存统一 TTL（秒）
    CACHE_DIR: str = Field(default="./data")      # 文件缓存目录

    # ── 代理调度 ──────────────────────────────────────────
    MAX_PARALLEL: int = Field(default=4, ge=1)    # 全局并发评级上限
    DEFAULT_AGENTS: List[str] = Field(
        default_factory=lambda: ["warren_buffett", "cathie_wood"]
    )

    # ── 日志配置 ──────────────────────────────────────────
    LOG_LEVEL: str = Field(default="INFO")

    def require_market_data(self) -> str:
        """返回行情 API Key，缺失时抛出配置错误"""
        if not self.ALPHAVANTAGE_API_KEY.strip():
            raise ConfigurationError("ALPHAVANTAGE_API_KEY 未配置")
        return self.ALPHAVANTAGE_API_KEY

    def require_openai(self) -> str:
        """返回 OpenAI API Key，缺失时抛出配置错误"""
        if not self.OPENAI_API_KEY.strip():
            raise ConfigurationError("OPENAI_API_KEY 未配置")
        return self.OPENAI_API_KEY


@lru_cache
def get_settings() -> RatingServiceSettings:
    """获取全局配置（单例）"""
    return RatingServiceSettings()
