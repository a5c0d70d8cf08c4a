# backend/core/orchestrator.py
# 功能: 访谈对话编排器 —— 一次对话轮次的完整流程
# 主要类: ConversationOrchestrator, TurnInput, TurnResult
# 主要函数: strip_mode_markers(), validate_history()
# 设计原则:
#   1. 无状态: 历史、文档、计划上下文每次调用都由调用方完整传入
#   2. 唯一的挂起点是一次补全服务调用（带超时）
#   3. 错误只分类、只向上抛，从不静默重试，也不伪装成空回复
#   4. 不写存储: 返回新的助手回复，由调用方决定是否持久化

"""
对话编排器

流程:
    validate → rate limit → strip mode markers → build prompt
        → complete(system prompt, history + 新消息) → advance hint → follow-ups
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from core.completion import CompletionService
from core.errors import RateLimited, ValidationError
from core.messages import ConversationMessage, MessageLike, coerce_history
from core.phase_config import DEFAULT_MODE, Mode, Phase
from core.phase_service import PhaseStateMachine, parse_mode, parse_phase, phase_machine
from core.prompt_engine import PromptEngine, prompt_engine
from core.rate_limiter import RateLimiter, RateLimitResult

logger = logging.getLogger("orchestrator")


# 输入上限
MAX_MESSAGE_CHARS = 10000
MAX_HISTORY_MESSAGES = 100
MAX_HISTORY_MESSAGE_CHARS = 50000

# 兼容旧名 short / long
MODE_MARKER_RE = re.compile(r"\[starting (quick|short|deep|long) mode\]", re.IGNORECASE)


@dataclass
class TurnInput:
    user_id: str
    plan_id: str
    message: str
    phase: Union[str, Phase]
    history: List[MessageLike] = field(default_factory=list)
    mode: Union[str, Mode, None] = None
    document_context: Optional[str] = None
    plan_context: Optional[str] = None


@dataclass
class TurnResult:
    message: str
    suggested_next_phase: Optional[Phase]
    follow_up_questions: List[str]
    rate_limit: RateLimitResult
    mode: Mode = DEFAULT_MODE


def strip_mode_markers(message: str) -> Tuple[str, Optional[Mode]]:
    """
    去掉消息中的模式标记，返回 (清理后的消息, 标记指定的模式)。

    多个标记时以最后一个为准。
    """
    found = MODE_MARKER_RE.findall(message)
    if not found:
        return message.strip(), None
    return MODE_MARKER_RE.sub("", message).strip(), parse_mode(found[-1])


def validate_history(history: List[ConversationMessage]) -> None:
    if len(history) > MAX_HISTORY_MESSAGES:
        raise ValidationError(
            f"Conversation history too long ({len(history)} > {MAX_HISTORY_MESSAGES} messages)"
        )
    for index, msg in enumerate(history):
        if len(msg.content) > MAX_HISTORY_MESSAGE_CHARS:
            raise ValidationError(
                f"History message {index} exceeds {MAX_HISTORY_MESSAGE_CHARS} characters"
            )


class ConversationOrchestrator:
    """
    对话编排器（门面）

    所有协作者都通过构造函数注入；选哪种实现由 api/deps.py 决定。
    """

    def __init__(
        self,
        completion: CompletionService,
        rate_limiter: RateLimiter,
        engine: PromptEngine = prompt_engine,
        phases: PhaseStateMachine = phase_machine,
    ):
        self.completion = completion
        self.rate_limiter = rate_limiter
        self.engine = engine
        self.phases = phases

    async def turn(self, turn_input: TurnInput) -> TurnResult:
        """
        执行一轮对话。

        Raises:
            ValidationError / UnknownPhaseError: 输入非法
            RateLimited: 超出限额（携带 reset_in）
            UpstreamAuthError / UpstreamTransientError / UpstreamError: 补全服务失败
        """
        # 1. 校验
        phase = parse_phase(turn_input.phase)
        if not isinstance(turn_input.message, str):
            raise ValidationError("Message must be a string")
        if len(turn_input.message) > MAX_MESSAGE_CHARS:
            raise ValidationError(f"Message exceeds {MAX_MESSAGE_CHARS} characters")
        message, marker_mode = strip_mode_markers(turn_input.message)
        if not message:
            raise ValidationError("Message is required")
        history = coerce_history(turn_input.history)
        validate_history(history)
        requested_mode = parse_mode(turn_input.mode)

        # 2. 限流
        rate = await self.rate_limiter.check(turn_input.user_id)
        if not rate.allowed:
            raise RateLimited(reset_in=rate.reset_in, limit=rate.limit)

        # 3. 模式：标记优先于请求参数
        mode = marker_mode or requested_mode

        # 4. system prompt（事实摘要包含本轮新消息）
        conversation = history + [ConversationMessage(role="user", content=message)]
        system_prompt = self.engine.build(
            phase,
            mode,
            conversation,
            document_context=turn_input.document_context,
            plan_context=turn_input.plan_context,
        )

        # 5. 补全（唯一的挂起点）
        logger.info(
            "[turn] plan=%s phase=%s mode=%s history=%d prompt_chars=%d",
            turn_input.plan_id, phase.value, mode.value, len(history), len(system_prompt),
        )
        reply = await self.completion.complete(
            system_prompt,
            conversation,
            operation="chat_turn",
            plan_id=turn_input.plan_id,
        )

        # 6. 推进建议（仅提示）
        suggested = self.phases.suggest_next_phase(reply, phase)
        if suggested is not None:
            logger.debug("[turn] plan=%s suggest advancing %s → %s", turn_input.plan_id, phase.value, suggested.value)

        # 7. 追问建议（静态表）
        return TurnResult(
            message=reply,
            suggested_next_phase=suggested,
            follow_up_questions=self.phases.follow_up_questions(phase),
            rate_limit=rate,
            mode=mode,
        )
