# backend/core/prompt_engine.py
# 功能: 提示词引擎，把静态规则、对话历史、阶段、模式、文档上下文组装成 system prompt
# 主要类: PromptEngine, PromptLayer
# 主要函数: build_layers(), build()

"""
提示词引擎

核心设计原则:
1. 层级顺序固定（模型对越靠前的指令权重越高，顺序本身是正确性要求）:
   accuracy_rules → fact_summary → anti_repetition → document_context
   → persona(+模式标注) → cross_phase_skip_rules → phase_instructions → plan_context
2. 纯函数: 相同输入永远得到逐字节相同的输出，不读时钟、不读配置
3. 条件层不满足条件时整层省略，不输出空壳
4. 规则文本来自注入的 PromptRules，便于单独测试每一层
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Union

from core.messages import ConversationMessage, MessageLike, coerce_history
from core.phase_config import Mode, Phase
from core.phase_service import parse_mode, parse_phase
from core.prompt_rules import DEFAULT_PROMPT_RULES, PromptRules


LAYER_SEPARATOR = "\n\n"


def escape_closing_tags(text: str) -> str:
    """引用进标签块的文本里 "</" 改写为 "<\\/"，无法提前闭合外层标签"""
    return text.replace("</", "<\\/")


@dataclass(frozen=True)
class PromptLayer:
    """一个命名的指令块"""
    name: str
    content: str


class PromptEngine:
    """
    提示词引擎

    用法:
        engine = PromptEngine()
        system_prompt = engine.build(Phase.ENERGY_AUDIT, Mode.QUICK, history)
    """

    def __init__(self, rules: PromptRules = DEFAULT_PROMPT_RULES):
        self.rules = rules

    # ============== 各层 ==============

    def accuracy_layer(self) -> PromptLayer:
        return PromptLayer("accuracy_rules", self.rules.accuracy_rules)

    def fact_summary_layer(self, history: List[ConversationMessage]) -> Optional[PromptLayer]:
        """
        所有用户消息原文。

        历史少于 2 条时省略（还没有可总结的内容）。
        """
        if len(history) < 2:
            return None
        user_messages = [m.content for m in history if m.is_user]
        if not user_messages:
            return None
        content = self.rules.fact_summary_template.format(
            user_messages="\n".join(f"- {escape_closing_tags(text)}" for text in user_messages)
        )
        return PromptLayer("fact_summary", content)

    def anti_repetition_layer(self, history: List[ConversationMessage]) -> Optional[PromptLayer]:
        """最近 N 条助手回复原文；没有助手回复时省略"""
        assistant_messages = [m.content for m in history if m.is_assistant]
        if not assistant_messages:
            return None
        recent = assistant_messages[-self.rules.recent_assistant_turns:]
        content = self.rules.anti_repetition_template.format(
            assistant_messages="\n---\n".join(escape_closing_tags(text) for text in recent)
        )
        return PromptLayer("anti_repetition", content)

    def document_layer(self, document_context: Optional[str]) -> Optional[PromptLayer]:
        if not document_context or not document_context.strip():
            return None
        text = document_context.strip()
        limit = self.rules.document_context_max_chars
        if len(text) > limit:
            text = text[:limit] + "\n...[truncated]"
        return PromptLayer(
            "document_context",
            self.rules.document_context_template.format(document_context=escape_closing_tags(text)),
        )

    def persona_layer(self, mode: Mode) -> PromptLayer:
        return PromptLayer(
            "persona",
            f"{self.rules.persona}\n\n{self.rules.mode_annotations[mode]}",
        )

    def cross_phase_layer(self) -> PromptLayer:
        return PromptLayer("cross_phase_skip_rules", self.rules.cross_phase_skip_rules)

    def phase_layer(self, phase: Phase, mode: Mode) -> PromptLayer:
        return PromptLayer("phase_instructions", self.rules.phase_prompt(mode, phase))

    def plan_context_layer(self, plan_context: Optional[str]) -> Optional[PromptLayer]:
        if not plan_context or not plan_context.strip():
            return None
        return PromptLayer(
            "plan_context",
            self.rules.plan_context_template.format(plan_context=plan_context.strip()),
        )

    # ============== 组装 ==============

    def build_layers(
        self,
        phase: Union[str, Phase],
        mode: Union[str, Mode, None],
        history: Optional[Iterable[MessageLike]] = None,
        document_context: Optional[str] = None,
        plan_context: Optional[str] = None,
    ) -> List[PromptLayer]:
        """
        按固定顺序返回本次应输出的层。

        phase 非法时抛 UnknownPhaseError。
        """
        phase = parse_phase(phase)
        mode = parse_mode(mode)
        messages = coerce_history(history)

        layers = [
            self.accuracy_layer(),
            self.fact_summary_layer(messages),
            self.anti_repetition_layer(messages),
            self.document_layer(document_context),
            self.persona_layer(mode),
            self.cross_phase_layer(),
            self.phase_layer(phase, mode),
            self.plan_context_layer(plan_context),
        ]
        return [layer for layer in layers if layer is not None]

    def build(
        self,
        phase: Union[str, Phase],
        mode: Union[str, Mode, None],
        history: Optional[Iterable[MessageLike]] = None,
        document_context: Optional[str] = None,
        plan_context: Optional[str] = None,
    ) -> str:
        """构建完整的 system prompt"""
        layers = self.build_layers(phase, mode, history, document_context, plan_context)
        return LAYER_SEPARATOR.join(layer.content for layer in layers)


# 单例
prompt_engine = PromptEngine()
