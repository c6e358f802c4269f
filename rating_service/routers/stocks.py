"""
股票上下文路由
GET  /api/stocks/{ticker}/context   - 单只获取（完整日线）
POST /api/stocks/contexts           - 批量获取（缓存 + 批量报价，按请求顺序返回）
"""

from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator

from rating_service.dependencies import get_pipeline
from rating_service.models.response import ApiResponse
from rating_service.services.pipeline import RatingPipeline

router = APIRouter(prefix="/api/stocks", tags=["股票数据"])


class ContextsRequest(BaseModel):
    tickers: List[str] = Field(..., min_length=1)

    @field_validator("tickers")
    @classmethod
    def _no_blank(cls, v: List[str]) -> List[str]:
        stripped = [t.strip() for t in v]
        if any(not t for t in stripped):
            raise ValueError("股票代码不能为空")
        return stripped


@router.get("/{ticker}/context", response_model=ApiResponse)
async def get_context(ticker: str, pipeline: RatingPipeline = Depends(get_pipeline)):
    """获取单只股票上下文"""
    context = await pipeline.fetcher.fetch(ticker)
    return ApiResponse.ok(data=context.model_dump(mode="json"))


@router.post("/contexts", response_model=ApiResponse)
async def resolve_contexts(body: ContextsRequest, pipeline: RatingPipeline = Depends(get_pipeline)):
    """批量获取股票上下文；重复代码返回 409"""
    contexts = await pipeline.reconciler.resolve_all(body.tickers)
    return ApiResponse.ok(
        data={
            "count": len(contexts),
            "contexts": [c.model_dump(mode="json") for c in contexts],
        },
    )
