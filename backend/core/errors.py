# backend/core/errors.py
# 功能: 核心错误分类，调用方据此决定是否重试、如何展示给用户
# 主要类: PlannerError 及其子类
# 数据结构: 每个错误携带 code / status_code / retryable / user_message
#
# 分类:
#   ValidationError        400  不可重试（phase 非法、消息为空、历史超限）
#   AuthenticationRequired 401  不可重试（未登录）
#   PlanNotFound           404  不可重试（计划不存在或不属于当前用户）
#   RateLimited            429  可退避重试（携带 reset_in 秒数）
#   UpstreamAuthError      503  不可重试，需要运维介入（模型服务凭证缺失/错误）
#   UpstreamTransientError 503  可重试（上游 429 / 超时）
#   UpstreamError          503  可重试（其他上游错误）
#   ExtractionFailed       500  本次抽取失败（可用同一 transcript 重新调用）

"""
错误分类

核心模块只抛出这里定义的错误，从不把失败伪装成空结果。
核心自身不做任何自动重试，retryable 字段仅供调用方参考。
"""

from typing import Optional


class PlannerError(Exception):
    """所有核心错误的基类"""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    retryable: bool = False
    user_message: str = "An unexpected error occurred. Please try again."

    def __init__(self, message: str = "", *, user_message: Optional[str] = None):
        super().__init__(message or self.user_message)
        self.message = message or self.user_message
        if user_message is not None:
            self.user_message = user_message


class ValidationError(PlannerError):
    """输入校验失败"""

    code = "VALIDATION_ERROR"
    status_code = 400
    user_message = "The request was invalid."


class UnknownPhaseError(ValidationError):
    """phase 不在规范阶段列表中"""

    code = "UNKNOWN_PHASE"

    def __init__(self, phase: object):
        super().__init__(f"Unknown phase: {phase!r}")
        self.phase = phase


class AuthenticationRequired(PlannerError):
    code = "UNAUTHORIZED"
    status_code = 401
    user_message = "Authentication required"


class PlanNotFound(PlannerError):
    code = "NOT_FOUND"
    status_code = 404
    user_message = "Plan not found or access denied"


class RateLimited(PlannerError):
    """用户超出限流窗口"""

    code = "RATE_LIMIT_EXCEEDED"
    status_code = 429
    retryable = True

    def __init__(self, reset_in: int, limit: int = 0):
        self.reset_in = reset_in
        self.limit = limit
        super().__init__(
            f"Rate limit exceeded ({limit} per window), resets in {reset_in}s",
            user_message=(
                f"Rate limit exceeded. Please wait {reset_in} seconds "
                "before sending another message."
            ),
        )


class UpstreamAuthError(PlannerError):
    """模型服务凭证缺失或被拒绝，属于配置问题"""

    code = "SERVICE_UNAVAILABLE"
    status_code = 503
    retryable = False
    user_message = "Service temporarily unavailable"


class UpstreamTransientError(PlannerError):
    """上游限流或超时，调用方可退避重试"""

    code = "AI_UNAVAILABLE"
    status_code = 503
    retryable = True
    user_message = "AI service temporarily unavailable. Please try again shortly."

    def __init__(self, message: str = "", *, reason: str = "other"):
        super().__init__(message)
        # "rate_limited" | "timeout"
        self.reason = reason


class UpstreamError(PlannerError):
    """其他上游错误"""

    code = "AI_UNAVAILABLE"
    status_code = 503
    retryable = True
    user_message = "AI service temporarily unavailable. Please try again."


class ExtractionFailed(PlannerError):
    """模型回复中找不到可解析的 JSON 对象"""

    code = "EXTRACTION_FAILED"
    status_code = 500
    retryable = True
    user_message = "We couldn't extract goals from this plan. Please try again."

    def __init__(self, message: str = "", *, raw_reply: str = ""):
        super().__init__(message)
        self.raw_reply = raw_reply
