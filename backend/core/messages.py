# backend/core/messages.py
# 功能: 对话消息数据结构
# 主要类: ConversationMessage
# 主要函数: coerce_message(), coerce_history()

"""
对话消息

历史记录由调用方（持久化层）提供，可能是 dict 也可能是 ConversationMessage，
核心模块入口处统一转换。
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional, Union

from core.errors import ValidationError

ROLES = ("user", "assistant")


@dataclass(frozen=True)
class ConversationMessage:
    """一条对话消息（只追加，核心从不修改）"""
    role: str  # user | assistant
    content: str
    id: str = ""
    timestamp: Optional[datetime] = None

    @property
    def is_user(self) -> bool:
        return self.role == "user"

    @property
    def is_assistant(self) -> bool:
        return self.role == "assistant"


MessageLike = Union[ConversationMessage, Mapping[str, Any]]


def coerce_message(item: MessageLike) -> ConversationMessage:
    if isinstance(item, ConversationMessage):
        msg = item
    elif isinstance(item, Mapping):
        msg = ConversationMessage(
            role=str(item.get("role", "")),
            content=item.get("content") if isinstance(item.get("content"), str) else "",
            id=str(item.get("id") or ""),
            timestamp=item.get("timestamp"),
        )
    else:
        raise ValidationError(f"Invalid message: {type(item).__name__}")
    if msg.role not in ROLES:
        raise ValidationError(f"Invalid message role: {msg.role!r}")
    return msg


def coerce_history(items: Optional[Iterable[MessageLike]]) -> List[ConversationMessage]:
    return [coerce_message(i) for i in (items or [])]
