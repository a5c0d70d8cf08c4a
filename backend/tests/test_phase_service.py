# backend/tests/test_phase_service.py
# 功能: 阶段状态机测试
# 覆盖: parse_phase, parse_mode, next_phase, should_advance, suggest_next_phase, follow_up_questions

"""
阶段状态机测试
运行: python -m pytest tests/test_phase_service.py -v
"""

import pytest

from core.errors import UnknownPhaseError, ValidationError
from core.phase_config import (
    ADVANCE_INDICATORS,
    FOLLOW_UP_QUESTIONS,
    PHASE_ORDER,
    TERMINAL_PHASE,
    Mode,
    Phase,
)
from core.phase_service import PhaseStateMachine, parse_mode, parse_phase, phase_machine


class TestPhaseConfig:
    """阶段配置一致性"""

    def test_nine_phases_in_order(self):
        assert [p.value for p in PHASE_ORDER] == [
            "current_state",
            "energy_audit",
            "minimum_viable_stability",
            "strategic_pillars",
            "tactical_mapping",
            "goal_setting",
            "relationship_audit",
            "reflection",
            "completed",
        ]

    def test_terminal_is_last(self):
        assert PHASE_ORDER[-1] == TERMINAL_PHASE == Phase.COMPLETED

    def test_follow_ups_cover_every_phase(self):
        for phase in PHASE_ORDER:
            assert len(FOLLOW_UP_QUESTIONS[phase]) == 3


class TestParse:
    """阶段 / 模式解析"""

    def test_parse_phase_string(self):
        assert parse_phase("energy_audit") == Phase.ENERGY_AUDIT

    def test_parse_phase_enum_passthrough(self):
        assert parse_phase(Phase.REFLECTION) is Phase.REFLECTION

    def test_unknown_phase_raises_typed_error(self):
        with pytest.raises(UnknownPhaseError) as exc_info:
            parse_phase("brainstorming")
        assert exc_info.value.status_code == 400
        assert exc_info.value.code == "UNKNOWN_PHASE"
        assert isinstance(exc_info.value, ValidationError)

    def test_parse_mode_default_is_deep(self):
        assert parse_mode(None) == Mode.DEEP
        assert parse_mode("") == Mode.DEEP

    @pytest.mark.parametrize("raw,expected", [
        ("quick", Mode.QUICK),
        ("short", Mode.QUICK),
        ("DEEP", Mode.DEEP),
        ("long", Mode.DEEP),
    ])
    def test_parse_mode_aliases(self, raw, expected):
        assert parse_mode(raw) == expected

    def test_parse_mode_unknown(self):
        with pytest.raises(ValidationError):
            parse_mode("medium")


class TestNextPhase:
    """next_phase 是全函数，严格递增，终止阶段幂等"""

    def test_each_phase_advances_by_one(self):
        for index, phase in enumerate(PHASE_ORDER[:-1]):
            nxt = phase_machine.next_phase(phase)
            assert nxt == PHASE_ORDER[index + 1]
            assert phase_machine.ordinal(nxt) == phase_machine.ordinal(phase) + 1

    def test_reflection_to_completed(self):
        assert phase_machine.next_phase("reflection") == Phase.COMPLETED

    def test_completed_is_terminal_and_idempotent(self):
        assert phase_machine.next_phase(Phase.COMPLETED) is None
        assert phase_machine.next_phase(Phase.COMPLETED) is None

    def test_unknown_phase(self):
        with pytest.raises(UnknownPhaseError):
            phase_machine.next_phase("nope")


class TestShouldAdvance:
    """关键词启发式"""

    @pytest.mark.parametrize("indicator", ADVANCE_INDICATORS)
    def test_each_indicator_matches(self, indicator):
        assert phase_machine.should_advance(f"Great work. {indicator.upper()}?")

    def test_curly_apostrophe(self):
        assert phase_machine.should_advance("Now let’s explore what energizes you.")

    def test_no_indicator(self):
        assert not phase_machine.should_advance("What else is on your mind?")

    def test_empty_reply(self):
        assert not phase_machine.should_advance("")

    def test_custom_indicators(self):
        machine = PhaseStateMachine(indicators=["onward"])
        assert machine.should_advance("Onward!")
        assert not machine.should_advance("Ready to move on?")


class TestSuggestNextPhase:

    def test_suggests_following_phase(self):
        reply = "I think I have a good understanding of where you are."
        assert phase_machine.suggest_next_phase(reply, "current_state") == Phase.ENERGY_AUDIT

    def test_no_suggestion_without_indicator(self):
        assert phase_machine.suggest_next_phase("Tell me more.", "current_state") is None

    def test_no_suggestion_at_terminal(self):
        assert phase_machine.suggest_next_phase("Ready to move on?", "completed") is None

    def test_follow_up_questions_are_copies(self):
        questions = phase_machine.follow_up_questions("energy_audit")
        questions.append("mutated")
        assert "mutated" not in FOLLOW_UP_QUESTIONS[Phase.ENERGY_AUDIT]
