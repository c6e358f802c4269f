"""统一 API 响应模型"""

from typing import Any, Optional
from pydantic import BaseModel


class ApiResponse(BaseModel):
    """标准 API 响应封装（error_type 为异常类名，便于调用方区分错误类别）"""
    success: bool = True
    data: Optional[Any] = None
    message: str = ""
    error: Optional[str] = None
    error_type: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None, message: str = "success") -> "ApiResponse":
        return cls(success=True, data=data, message=message)

    @classmethod
    def from_exception(cls, exc: BaseException, message: str = "failed") -> "ApiResponse":
        return cls(
            success=False,
            error=str(exc),
            error_type=type(exc).__name__,
            message=message,
        )
