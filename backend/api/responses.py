# backend/api/responses.py
# 功能: 统一响应信封 {success, data} / {success: false, error: {code, message}}
# 主要函数: success_response(), error_response()

"""
响应信封

所有响应都带 X-Request-ID 头，便于对照服务端日志。
"""

from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

REQUEST_ID_HEADER = "X-Request-ID"


def success_response(data: Any, request_id: str, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    response = JSONResponse(
        content={"success": True, "data": jsonable_encoder(data)},
        headers=headers,
    )
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


def error_response(
    message: str,
    status_code: int,
    code: str,
    request_id: str,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    response = JSONResponse(
        status_code=status_code,
        content={"success": False, "error": {"code": code, "message": message}},
        headers=headers,
    )
    response.headers[REQUEST_ID_HEADER] = request_id
    return response
