"""健康检查路由"""

import time

from fastapi import APIRouter, Depends

from rating_service import __version__
from rating_service.dependencies import get_pipeline
from rating_service.services.pipeline import RatingPipeline

router = APIRouter(tags=["健康检查"])


@router.get("/health")
async def health(pipeline: RatingPipeline = Depends(get_pipeline)):
    """服务健康检查"""
    return {
        "success": True,
        "data": {
            "status": "ok",
            "version": __version__,
            "timestamp": int(time.time()),
            "service": "Flash HedgeFund RatingService",
            "agents": [a.name for a in pipeline.agents],
            "max_parallel": pipeline.fan_out.max_parallel,
        },
        "message": "服务运行正常",
    }


@router.get("/healthz")
async def healthz():
    """Kubernetes liveness probe"""
    return {"status": "ok"}


@router.get("/readyz")
async def readyz():
    """Kubernetes readiness probe"""
    return {"ready": True}
