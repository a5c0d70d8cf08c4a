# backend/core/goal_extraction.py
# 功能: 从完整访谈记录中抽取价值观 / 目标 / 任务，并给出复盘周期建议
# 主要类: GoalExtractor, ExtractionResult, ExtractedValue, ExtractedGoal, ExtractedTask,
#         ReassessmentRecommendation
# 主要函数: find_json_object(), render_transcript(), reassessment_band()
# 设计原则:
#   1. 一次补全调用；模型可能在 JSON 前后加说明文字，必须容忍
#   2. 找不到 / 解析不了 JSON → ExtractionFailed，绝不返回空结果冒充「没有可抽取内容」
#   3. 字段逐个防御性校正，单个字段出错不影响整批
#   4. 标题链接精确匹配、区分大小写；重名视为歧义，不链接
#      目标缺少价值观 → 保留（无父级）；任务缺少目标 → 丢弃并计数

"""
目标抽取流程

transcript → 一次补全 → 第一个完整 JSON 对象 → 字段校正 → 标题链接 → 复盘周期分档
"""

import calendar
import json
import logging
import math
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from core.completion import CompletionService
from core.errors import ExtractionFailed, ValidationError
from core.messages import MessageLike, coerce_history
from core.phase_config import Phase

logger = logging.getLogger("goal_extraction")


class GoalTimeframe(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    CUSTOM = "custom"


DEFAULT_TIMEFRAME = GoalTimeframe.QUARTERLY
DEFAULT_CONFIDENCE = 0.5

PLACEHOLDER_TITLES = {
    "value": "Untitled Value",
    "goal": "Untitled Goal",
    "task": "Untitled Task",
}

# 复盘周期分档: (最少月数, 最多月数, 模型未给出时的默认值)
LIGHT_BAND = (12, 12, 12)
MEDIUM_BAND = (6, 8, 6)
HEAVY_BAND = (3, 4, 3)

# 模型回复的顶层对象至少要有其中一个字段
EXTRACTION_KEYS = ("values", "goals", "tasks", "reassessment_recommendation")


EXTRACTION_PROMPT = """You are analyzing a completed strategic planning conversation to extract actionable goals, values, and tasks.

## Your Task

Based on the conversation transcript, identify and extract:

1. **VALUES** (2-4 core priorities)
   - What matters most to this person
   - Their guiding principles
   - Life priorities they've explicitly or implicitly stated

2. **GOALS** (3-7 specific objectives)
   - Concrete outcomes they want to achieve
   - Should be measurable (quantitative or qualitative)
   - Include "reach goals" for stretch aspirations they mentioned
   - Each goal should connect to a value

3. **TASKS** (1-3 per goal)
   - Specific next actions
   - First steps they can take immediately
   - Clear and actionable

4. **REASSESSMENT RECOMMENDATION**
   - Based on their goal load and timeframes
   - Light load (≤3 goals, yearly timeframe): 12 months
   - Medium load (4-6 goals): 6-8 months
   - Heavy load (7+ goals): 3-4 months

## Output Format

Return ONLY valid JSON in this exact format:

{
  "values": [
    {
      "title": "Value name",
      "description": "Brief description",
      "confidence": 0.9,
      "source_quote": "Direct quote from user that indicates this value"
    }
  ],
  "goals": [
    {
      "title": "Goal name",
      "description": "What success looks like",
      "parent_title": "Related value title (exactly as written in values)",
      "measurement_suggestion": "How to measure progress",
      "timeframe_suggestion": "quarterly",
      "is_reach_goal": false,
      "confidence": 0.85,
      "source_phase": "strategic_pillars",
      "source_quote": "Direct quote from user"
    }
  ],
  "tasks": [
    {
      "title": "Task name",
      "description": "Specific action to take",
      "parent_title": "Related goal title (exactly as written in goals)",
      "confidence": 0.8,
      "source_quote": "Quote indicating this action"
    }
  ],
  "reassessment_recommendation": {
    "months": 6,
    "reason": "You have 5 goals across multiple areas with quarterly deadlines, so a 6-month check-in would help ensure you're on track."
  }
}

## Important Guidelines

- Only extract what the user ACTUALLY said or clearly implied
- Don't make up goals - confidence should reflect certainty
- Use their exact words where possible
- Goals should be SMART-like: Specific, Measurable, Achievable, Relevant, Time-bound
- Mark stretch aspirations as reach goals
- Timeframes: "weekly" | "monthly" | "quarterly" | "yearly" | "custom"
- parent_title must repeat the parent's title character for character
- If something is vague, note it with lower confidence"""

DOCUMENT_CONTEXT_ADDITION = """## User Background (from uploaded documents)
{document_context}

Use this context to better understand the user's situation, but focus extraction on what was discussed in the conversation.

"""


# ============== 数据结构 ==============

@dataclass
class ExtractedValue:
    title: str
    description: Optional[str] = None
    confidence: float = DEFAULT_CONFIDENCE
    source_quote: Optional[str] = None
    type: str = "value"


@dataclass
class ExtractedGoal:
    title: str
    description: Optional[str] = None
    # 仅当唯一匹配到本批次的某个价值观时才有值
    parent_value_title: Optional[str] = None
    measurement_suggestion: Optional[str] = None
    timeframe_suggestion: GoalTimeframe = DEFAULT_TIMEFRAME
    is_reach_goal: bool = False
    confidence: float = DEFAULT_CONFIDENCE
    source_phase: Optional[Phase] = None
    source_quote: Optional[str] = None
    type: str = "goal"

    @property
    def measurement_type(self) -> str:
        """衡量方式里出现数字视为量化目标"""
        if self.measurement_suggestion and any(c.isdigit() for c in self.measurement_suggestion):
            return "quantitative"
        return "qualitative"


@dataclass
class ExtractedTask:
    title: str
    parent_goal_title: str
    description: Optional[str] = None
    confidence: float = DEFAULT_CONFIDENCE
    source_quote: Optional[str] = None
    type: str = "task"


@dataclass
class ReassessmentRecommendation:
    months: int
    reason: str

    def due_date(self, from_date: Optional[date] = None) -> date:
        """from_date + months（月末对齐，如 1/31 + 1 个月 → 2/28）"""
        start = from_date or date.today()
        month_index = start.month - 1 + self.months
        year = start.year + month_index // 12
        month = month_index % 12 + 1
        day = min(start.day, calendar.monthrange(year, month)[1])
        return date(year, month, day)


@dataclass
class ExtractionResult:
    values: List[ExtractedValue] = field(default_factory=list)
    goals: List[ExtractedGoal] = field(default_factory=list)
    tasks: List[ExtractedTask] = field(default_factory=list)
    reassessment_recommendation: Optional[ReassessmentRecommendation] = None
    # 因父目标无法唯一匹配而丢弃的任务数
    dropped_tasks: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for goal, raw in zip(self.goals, data["goals"]):
            raw["timeframe_suggestion"] = goal.timeframe_suggestion.value
            raw["source_phase"] = goal.source_phase.value if goal.source_phase else None
            raw["measurement_type"] = goal.measurement_type
        return data


# ============== JSON 定位 ==============

def _balanced_end(text: str, start: int) -> int:
    """从 text[start] == '{' 开始找匹配的 '}'，返回其下标；不完整返回 -1"""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return -1


def find_json_object(text: str) -> Dict[str, Any]:
    """
    返回文本中第一个可解析、且包含抽取字段的完整 JSON 对象。

    模型常见输出: "Here you go:\\n{...}\\nLet me know!" 或 ```json 代码块。
    说明文字里偶尔出现花括号，所以逐个候选尝试。
    一个完整候选解析失败或不含抽取字段时，跳到它的结尾之后继续，
    不会把外层对象里嵌套的 value / goal 当成整个结果。

    Raises:
        ExtractionFailed: 找不到完整对象，或所有候选都解析失败 / 不含抽取字段
    """
    if not text:
        raise ExtractionFailed("Empty model reply", raw_reply="")

    found_candidate = False
    last_error: Optional[Exception] = None
    start = text.find("{")
    while start != -1:
        end = _balanced_end(text, start)
        if end == -1:
            start = text.find("{", start + 1)
            continue
        found_candidate = True
        try:
            parsed = json.loads(text[start:end + 1])
        except json.JSONDecodeError as e:
            last_error = e
        else:
            if isinstance(parsed, dict) and any(key in parsed for key in EXTRACTION_KEYS):
                return parsed
            last_error = ValueError("object has none of " + ", ".join(EXTRACTION_KEYS))
        start = text.find("{", end + 1)

    if not found_candidate:
        raise ExtractionFailed("No JSON object found in model reply", raw_reply=text)
    raise ExtractionFailed(f"Could not parse JSON object from model reply: {last_error}", raw_reply=text)


# ============== 字段校正 ==============

def _optional_text(value: Any) -> Optional[str]:
    return str(value) if value else None


def _title(item: Dict[str, Any], kind: str) -> str:
    return str(item.get("title") or PLACEHOLDER_TITLES[kind])


def _optional_title(value: Any) -> Optional[str]:
    """父级标题只接受非空字符串"""
    return value if isinstance(value, str) and value else None


def _confidence(value: Any) -> float:
    # bool 是 int 的子类，需要排除
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_CONFIDENCE
    if math.isnan(value) or not 0.0 <= value <= 1.0:
        return DEFAULT_CONFIDENCE
    return float(value)


def _timeframe(value: Any) -> GoalTimeframe:
    try:
        return GoalTimeframe(value)
    except ValueError:
        return DEFAULT_TIMEFRAME


def _source_phase(value: Any) -> Optional[Phase]:
    try:
        return Phase(value)
    except ValueError:
        return None


def _section(data: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    raw = data.get(key)
    if raw is None:
        return []
    if not isinstance(raw, list):
        logger.warning("[extract] %s 不是数组（%s），按空处理", key, type(raw).__name__)
        return []
    items = []
    for item in raw:
        if isinstance(item, dict):
            items.append(item)
        else:
            logger.warning("[extract] 跳过非对象的 %s 条目: %r", key, item)
    return items


def _unique_titles(titles: Iterable[str]) -> set:
    counts = Counter(titles)
    return {title for title, count in counts.items() if count == 1}


# ============== 复盘周期 ==============

def reassessment_band(goals: List[ExtractedGoal]) -> Tuple[int, int, int]:
    """
    按目标数量分档:
        ≤3 → 12 个月；4-6 → 6-8 个月；≥7 → 3-4 个月
    """
    count = len(goals)
    if count >= 7:
        return HEAVY_BAND
    if count >= 4:
        return MEDIUM_BAND
    return LIGHT_BAND


def recommend_reassessment(goals: List[ExtractedGoal], raw: Any) -> ReassessmentRecommendation:
    """模型给出的月数被截到分档范围内；模型给出的理由保留"""
    low, high, default = reassessment_band(goals)
    raw = raw if isinstance(raw, dict) else {}

    months = raw.get("months")
    if isinstance(months, bool) or not isinstance(months, (int, float)) or not math.isfinite(months):
        months = default
    months = min(high, max(low, int(round(months))))

    reason = raw.get("reason")
    if not isinstance(reason, str) or not reason.strip():
        reason = (
            f"Based on your goal load ({len(goals)} goals), "
            f"a {months}-month check-in is recommended."
        )
    return ReassessmentRecommendation(months=months, reason=reason)


def coerce_extraction(data: Dict[str, Any]) -> ExtractionResult:
    """把模型返回的 JSON 校正为 ExtractionResult（含标题链接）"""
    values = [
        ExtractedValue(
            title=_title(item, "value"),
            description=_optional_text(item.get("description")),
            confidence=_confidence(item.get("confidence")),
            source_quote=_optional_text(item.get("source_quote")),
        )
        for item in _section(data, "values")
    ]
    linkable_values = _unique_titles(v.title for v in values)

    goals = []
    for item in _section(data, "goals"):
        parent = _optional_title(item.get("parent_title"))
        if parent is not None and parent not in linkable_values:
            logger.info("[extract] 目标 %r 的父价值观 %r 无法唯一匹配，保留为无父级", item.get("title"), parent)
        goals.append(ExtractedGoal(
            title=_title(item, "goal"),
            description=_optional_text(item.get("description")),
            parent_value_title=parent if parent in linkable_values else None,
            measurement_suggestion=_optional_text(item.get("measurement_suggestion")),
            timeframe_suggestion=_timeframe(item.get("timeframe_suggestion")),
            is_reach_goal=bool(item.get("is_reach_goal")),
            confidence=_confidence(item.get("confidence")),
            source_phase=_source_phase(item.get("source_phase")),
            source_quote=_optional_text(item.get("source_quote")),
        ))
    linkable_goals = _unique_titles(g.title for g in goals)

    tasks = []
    dropped = 0
    for item in _section(data, "tasks"):
        parent = _optional_title(item.get("parent_title"))
        if parent not in linkable_goals:
            dropped += 1
            logger.info("[extract] 丢弃任务 %r：父目标 %r 无法唯一匹配", item.get("title"), parent)
            continue
        tasks.append(ExtractedTask(
            title=_title(item, "task"),
            parent_goal_title=parent,
            description=_optional_text(item.get("description")),
            confidence=_confidence(item.get("confidence")),
            source_quote=_optional_text(item.get("source_quote")),
        ))

    return ExtractionResult(
        values=values,
        goals=goals,
        tasks=tasks,
        reassessment_recommendation=recommend_reassessment(
            goals, data.get("reassessment_recommendation")
        ),
        dropped_tasks=dropped,
    )


def render_transcript(transcript: Iterable[MessageLike]) -> str:
    """ROLE: content，消息之间空一行"""
    return "\n\n".join(
        f"{m.role.upper()}: {m.content}" for m in coerce_history(transcript)
    )


# ============== 抽取器 ==============

class GoalExtractor:
    """
    用法:
        extractor = GoalExtractor(completion)
        result = await extractor.extract(transcript, document_context)
    """

    def __init__(self, completion: CompletionService, prompt: str = EXTRACTION_PROMPT):
        self.completion = completion
        self.prompt = prompt

    def build_request(self, transcript: Iterable[MessageLike], document_context: Optional[str] = None) -> str:
        rendered = render_transcript(transcript)
        if not rendered:
            raise ValidationError("Transcript is empty")
        parts = []
        if document_context and document_context.strip():
            parts.append(DOCUMENT_CONTEXT_ADDITION.format(document_context=document_context.strip()))
        parts.append(f"## Conversation Transcript\n```\n{rendered}\n```")
        return "".join(parts)

    async def extract(
        self,
        transcript: Iterable[MessageLike],
        document_context: Optional[str] = None,
        plan_id: str = "",
    ) -> ExtractionResult:
        """
        Raises:
            ValidationError: transcript 为空
            ExtractionFailed: 回复中没有可解析的 JSON 对象
            UpstreamAuthError / UpstreamTransientError / UpstreamError: 补全服务失败
        """
        request = self.build_request(transcript, document_context)
        reply = await self.completion.complete(
            self.prompt,
            [{"role": "user", "content": request}],
            operation="goal_extraction",
            plan_id=plan_id,
        )

        try:
            data = find_json_object(reply)
        except ExtractionFailed as e:
            logger.error("[extract] plan=%s 解析失败: %s (reply_chars=%d)", plan_id, e.message, len(reply or ""))
            raise

        result = coerce_extraction(data)
        logger.info(
            "[extract] plan=%s values=%d goals=%d tasks=%d dropped_tasks=%d months=%d",
            plan_id, len(result.values), len(result.goals), len(result.tasks),
            result.dropped_tasks, result.reassessment_recommendation.months,
        )
        return result
