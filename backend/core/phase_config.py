# backend/core/phase_config.py
# 功能: 阶段配置的单一真相来源 (Single Source of Truth)
# 主要数据结构: Phase / Mode 枚举, PHASE_DEFINITIONS (有序列表), PHASE_ORDER,
#              MODE_ALIAS, FOLLOW_UP_QUESTIONS
# 设计原则: 所有阶段相关的常量从此文件导入，避免多处重复定义

"""
访谈阶段配置。

全系统唯一的阶段定义来源。新增或修改阶段只需改这一个文件。
8 个工作阶段 + 终止阶段 completed，顺序固定。
"""

from enum import Enum
from typing import Dict, List


class Phase(str, Enum):
    CURRENT_STATE = "current_state"
    ENERGY_AUDIT = "energy_audit"
    MINIMUM_VIABLE_STABILITY = "minimum_viable_stability"
    STRATEGIC_PILLARS = "strategic_pillars"
    TACTICAL_MAPPING = "tactical_mapping"
    GOAL_SETTING = "goal_setting"
    RELATIONSHIP_AUDIT = "relationship_audit"
    REFLECTION = "reflection"
    COMPLETED = "completed"


class Mode(str, Enum):
    """访谈深度。只是选择器，没有状态转换。"""
    QUICK = "quick"
    DEEP = "deep"


DEFAULT_MODE = Mode.DEEP

# 旧名称兼容（早期版本用 short / long）
MODE_ALIAS: Dict[str, Mode] = {
    "quick": Mode.QUICK,
    "short": Mode.QUICK,
    "deep": Mode.DEEP,
    "long": Mode.DEEP,
}

# ---- 阶段完整定义（有序） ----
# 每个阶段包含: code, display_name, quick_minutes / deep_minutes（目标时长，前端展示用）
PHASE_DEFINITIONS: List[Dict] = [
    {"code": Phase.CURRENT_STATE,            "display_name": "Current State",            "quick_minutes": "5-10", "deep_minutes": "20-30"},
    {"code": Phase.ENERGY_AUDIT,             "display_name": "Energy Audit",             "quick_minutes": "5-10", "deep_minutes": "10-15"},
    {"code": Phase.MINIMUM_VIABLE_STABILITY, "display_name": "Minimum Viable Stability", "quick_minutes": "5",    "deep_minutes": "10"},
    {"code": Phase.STRATEGIC_PILLARS,        "display_name": "Strategic Pillars",        "quick_minutes": "5-10", "deep_minutes": "10-15"},
    {"code": Phase.TACTICAL_MAPPING,         "display_name": "Tactical Mapping",         "quick_minutes": "5-10", "deep_minutes": "15-20"},
    {"code": Phase.GOAL_SETTING,             "display_name": "Goal Setting",             "quick_minutes": "5-10", "deep_minutes": "15-20"},
    {"code": Phase.RELATIONSHIP_AUDIT,       "display_name": "Relationship Audit",       "quick_minutes": "5",    "deep_minutes": "10-15"},
    {"code": Phase.REFLECTION,               "display_name": "Reflection",               "quick_minutes": "5",    "deep_minutes": "10-15"},
    {"code": Phase.COMPLETED,                "display_name": "Completed",                "quick_minutes": "",     "deep_minutes": ""},
]

# ---- 派生常量（不要手工维护，全部从 PHASE_DEFINITIONS 自动生成） ----

PHASE_ORDER: List[Phase] = [p["code"] for p in PHASE_DEFINITIONS]

TERMINAL_PHASE = Phase.COMPLETED

# 阶段推进提示词（回复中出现任一短语，视为模型建议进入下一阶段）
# 宁可漏报（用户可手动推进），不可误报
ADVANCE_INDICATORS: List[str] = [
    "ready to move on",
    "next phase",
    "good understanding",
    "comprehensive picture",
    "let's explore",
    "shall we continue",
]

# 每个阶段的固定追问建议（静态内容，非模型生成）
FOLLOW_UP_QUESTIONS: Dict[Phase, List[str]] = {
    Phase.CURRENT_STATE: [
        "Tell me more about what prompted this reflection",
        "What skills do you feel most confident about?",
        "What constraints feel most limiting right now?",
    ],
    Phase.ENERGY_AUDIT: [
        "What activities make you lose track of time?",
        "What do you do that feels like a 'should' rather than a 'want'?",
        "How do you prefer to work - deep focus or variety?",
    ],
    Phase.MINIMUM_VIABLE_STABILITY: [
        'What does "good enough" look like for now?',
        "What's your minimum income need?",
        "What would make the next 6 months feel sustainable?",
    ],
    Phase.STRATEGIC_PILLARS: [
        "What 2-3 areas feel most important right now?",
        "What does progress look like in each area?",
        "How do these pillars connect to your values?",
    ],
    Phase.TACTICAL_MAPPING: [
        "What opportunities are currently 'warm'?",
        "What ideas are you excited about but parking for now?",
        "What seasonal patterns do you notice?",
    ],
    Phase.GOAL_SETTING: [
        "What would meaningful progress look like this year?",
        "Do you prefer rhythm goals or milestone goals?",
        "What's a goal that excites you?",
    ],
    Phase.RELATIONSHIP_AUDIT: [
        "Who energizes you?",
        "What relationships need boundaries?",
        "Who do you want to invest more in?",
    ],
    Phase.REFLECTION: [
        "What surprised you about this past year?",
        "What do you want to carry forward?",
        "What are you ready to leave behind?",
    ],
    Phase.COMPLETED: [
        "Would you like to review any section?",
        "Shall I create a summary document?",
        "What feels most actionable right now?",
    ],
}
