"""
Flash HedgeFund 评级服务
FastAPI 应用程序入口

启动方式:
    uvicorn rating_service.main:app --host 0.0.0.0 --port 8002
    rating-service serve
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rating_service import __version__
from rating_service.agents.base import ChatFunc
from rating_service.config import RatingServiceSettings, get_settings
from rating_service.errors import (
    ConfigurationError,
    RatingServiceError,
    ReconciliationError,
    TransportError,
    UpstreamShapeError,
)
from rating_service.models.response import ApiResponse
from rating_service.routers import cache, health, ratings, stocks
from rating_service.services.pipeline import build_pipeline

logger = logging.getLogger(__name__)

_ERROR_STATUS = (
    (ConfigurationError, 400),
    (ReconciliationError, 409),
    (UpstreamShapeError, 502),
    (TransportError, 502),
)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def create_app(
    settings: Optional[RatingServiceSettings] = None,
    chat: Optional[ChatFunc] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """创建应用；chat / transport 可注入以便测试"""
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    # ── 生命周期管理 ──────────────────────────────────────
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("=" * 60)
        logger.info(f"🚀 Flash HedgeFund RatingService v{__version__} 启动中")
        logger.info(f"   Cache     : {settings.CACHE_DIR} (TTL {settings.CACHE_TTL}s)")
        logger.info(f"   Parallel  : {settings.MAX_PARALLEL}")
        logger.info("=" * 60)

        # 配置缺失在此处直接失败，不进入部分可用状态
        async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT, transport=transport) as http:
            app.state.pipeline = build_pipeline(settings, http=http, chat=chat)
            logger.info(f"✅ 已加载代理: {', '.join(a.name for a in app.state.pipeline.agents)}")
            yield
            logger.info("🔄 评级服务正在关闭...")
        logger.info("✅ 评级服务已关闭")

    app = FastAPI(
        title="Flash HedgeFund 评级服务",
        description=(
            "多风格 AI 投资代理并发评级服务：\n"
            "- 📊 Alpha Vantage 行情（单只日线 / 批量报价）\n"
            "- 🗄️ 两级缓存（内存 → 文件，统一 TTL）\n"
            "- 🤖 多代理并发评级（全局并发上限）"
        ),
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # ── CORS 中间件 ───────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── 请求计时中间件 ─────────────────────────────────────
    @app.middleware("http")
    async def add_process_time(request: Request, call_next):
        start = time.time()
        response = await call_next(request)
        response.headers["X-Process-Time"] = f"{(time.time() - start) * 1000:.1f}ms"
        return response

    # ── 异常处理 ──────────────────────────────────────────
    @app.exception_handler(RatingServiceError)
    async def rating_error_handler(request: Request, exc: RatingServiceError):
        status_code = next((code for cls, code in _ERROR_STATUS if isinstance(exc, cls)), 500)
        logger.warning(f"请求失败 {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status_code,
            content=ApiResponse.from_exception(exc).model_dump(),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"未处理的异常: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content=ApiResponse.from_exception(exc, message="内部服务错误").model_dump(),
        )

    # ── 注册路由 ──────────────────────────────────────────
    app.include_router(health.router)
    app.include_router(stocks.router)
    app.include_router(ratings.router)
    app.include_router(cache.router)

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "service": "Flash HedgeFund RatingService",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()


# ── 直接运行入口 ──────────────────────────────────────────
if __name__ == "__main__":
    _settings = get_settings()
    uvicorn.run(
        "rating_service.main:app",
        host=_settings.HOST,
        port=_settings.PORT,
        reload=_settings.DEBUG,
        log_level=_settings.LOG_LEVEL.lower(),
    )
