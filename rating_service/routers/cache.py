"""
缓存管理路由
GET  /api/cache/stats     - 缓存统计
"""

from fastapi import APIRouter, Depends

from rating_service.dependencies import get_pipeline
from rating_service.models.response import ApiResponse
from rating_service.services.pipeline import RatingPipeline

router = APIRouter(prefix="/api/cache", tags=["缓存管理"])


@router.get("/stats", response_model=ApiResponse)
async def cache_stats(pipeline: RatingPipeline = Depends(get_pipeline)):
    """获取两级缓存统计信息"""
    stats = pipeline.cache.stats() if pipeline.cache else {}
    return ApiResponse.ok(data=stats)
