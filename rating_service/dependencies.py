"""FastAPI 依赖：从 app.state 取出生命周期内构建的流水线"""

from fastapi import Request

from rating_service.services.pipeline import RatingPipeline


def get_pipeline(request: Request) -> RatingPipeline:
    return request.app.state.pipeline
