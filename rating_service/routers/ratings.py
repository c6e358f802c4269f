"""
评级路由
POST /api/ratings   - 对多只股票运行所选代理，返回各代理评级与耗时
"""

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from rating_service.dependencies import get_pipeline
from rating_service.models.response import ApiResponse
from rating_service.services.pipeline import RatingPipeline

router = APIRouter(prefix="/api/ratings", tags=["股票评级"])


class RatingRequest(BaseModel):
    tickers: List[str] = Field(..., min_length=1)
    agents: Optional[List[str]] = None


@router.post("", response_model=ApiResponse)
async def rate_stocks(body: RatingRequest, pipeline: RatingPipeline = Depends(get_pipeline)):
    """单只股票或单个代理的失败体现在对应条目中，不影响整体响应"""
    agents = pipeline.agents_named(body.agents)
    run = await pipeline.rate(body.tickers, agents=agents)
    return ApiResponse.ok(
        data={
            "fetch_ms": round(run.fetch_ms, 1),
            "fetch_mode": run.fetch_mode,
            "resolved": run.resolved,
            "reports": [r.to_dict() for r in run.reports],
        },
        message=f"评级完成：{run.resolved}/{len(run.reports)} 只股票",
    )
