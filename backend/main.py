# backend/main.py
# 功能: FastAPI应用入口，注册路由、错误处理、请求 ID 中间件，启动时建表
# 主要函数: create_app(), register_exception_handlers(), main()
# 数据结构: 无

"""
Aythya Planner - Backend Entry Point
启动命令: python main.py
"""

import logging
import uuid

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from api.responses import REQUEST_ID_HEADER, error_response
from core.config import settings
from core.errors import PlannerError, RateLimited, UpstreamAuthError, ValidationError
from core.logging_config import setup_logging

setup_logging()

logger = logging.getLogger("startup")


def _ensure_db_schema_on_startup():
    """启动时确保限流表存在"""
    if (settings.rate_limit_backend or "database").lower().strip() != "database":
        return
    try:
        from core.database import init_db
        init_db()
        logger.info("数据库 schema 校验完成")
    except Exception as e:
        # 建表失败时限流会降级放行，服务仍可用
        logger.warning(f"启动时校验数据库 schema 失败（限流将降级放行）: {e}")


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


def register_exception_handlers(app: FastAPI) -> None:
    """核心错误 → {success: false, error: {code, message}}"""

    @app.exception_handler(PlannerError)
    async def planner_error_handler(request: Request, exc: PlannerError):
        request_id = _request_id(request)
        if isinstance(exc, UpstreamAuthError):
            logger.error("[%s] [OPERATOR ACTION REQUIRED] 模型服务凭证错误: %s", request_id, exc.message)
        elif exc.status_code >= 500:
            logger.error("[%s] %s: %s", request_id, type(exc).__name__, exc.message)
        else:
            logger.info("[%s] %s (%d): %s", request_id, exc.code, exc.status_code, exc.message)

        headers = None
        if isinstance(exc, RateLimited):
            headers = {"Retry-After": str(exc.reset_in)}
        return error_response(exc.user_message, exc.status_code, exc.code, request_id, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        request_id = _request_id(request)
        message = ", ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg', '')}"
            for err in exc.errors()
        )
        logger.info("[%s] VALIDATION_ERROR: %s", request_id, message)
        return error_response(ValidationError.user_message, 400, ValidationError.code, request_id)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        request_id = _request_id(request)
        logger.exception("[%s] 未处理的异常: %s", request_id, exc)
        return error_response(
            "An unexpected error occurred. Please try again.", 500, "INTERNAL_ERROR", request_id
        )


def create_app() -> FastAPI:
    """创建FastAPI应用实例"""
    app = FastAPI(
        title="Aythya Planner",
        description="AI 引导的个人战略规划访谈后端",
        version="0.1.0",
    )

    # CORS配置 - 允许前端访问
    # 注意：allow_origins 必须在 allow_credentials=True 时明确指定，不能用 ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER, "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"],
    )

    # 请求 ID：沿用上游传入的，否则生成
    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request.state.request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        response = await call_next(request)
        response.headers.setdefault(REQUEST_ID_HEADER, request.state.request_id)
        return response

    register_exception_handlers(app)

    # 健康检查
    @app.get("/health")
    async def health_check():
        return {"status": "ok", "message": "Aythya Planner is running"}

    # 注册路由（前缀已在各模块中定义）
    from api import chat, goals, phases

    app.include_router(chat.router)
    app.include_router(goals.router)
    app.include_router(phases.router)

    @app.on_event("startup")
    def on_startup():
        _ensure_db_schema_on_startup()

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.backend_port,
        reload=settings.debug,
    )
