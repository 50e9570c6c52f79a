"""
统一响应包络：成功时携带 data，失败时携带 error（含 request_id，便于支付对账排查）
"""
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, field_serializer

from shared.codes import BusinessCode


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ErrorDetail(BaseModel):
    type: str
    details: Optional[dict[str, Any]] = None
    field: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utc_now)

    @field_serializer("timestamp")
    def _iso_utc(self, value: datetime) -> str:
        # 一律输出 UTC，以 Z 结尾
        value = value.astimezone(timezone.utc) if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return value.isoformat().replace("+00:00", "Z")


class Envelope(BaseModel):
    """接口统一返回体，code 为业务码（0 表示成功）"""
    code: int
    message: str
    data: Any = None
    error: Optional[ErrorDetail] = None


def success_response(
    data: Any = None,
    message: str = "Success",
    code: int = BusinessCode.SUCCESS,
) -> Envelope:
    return Envelope(code=code, message=message, data=data)


def error_response(
    code: int,
    message: str,
    *,
    error_type: str = "BusinessError",
    details: Optional[dict] = None,
    field: Optional[str] = None,
    request_id: Optional[str] = None,
) -> Envelope:
    """失败响应。details 是否对外脱敏由调用方决定（见 core.exceptions）。"""
    error = ErrorDetail(type=error_type, details=details, field=field, request_id=request_id)
    return Envelope(code=code, message=message, error=error)
