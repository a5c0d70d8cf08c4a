# backend/tests/test_llm_logger.py
# 功能: 模型调用日志回调测试

"""
CompletionLogCallback 只记录长度和计数，不记录消息原文
"""

import logging
import uuid

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from langchain_core.outputs import ChatGeneration, LLMResult

from core.llm_logger import CompletionLogCallback


@pytest.fixture
def llm_logs(caplog, monkeypatch):
    monkeypatch.setattr(logging.getLogger("llm_logger"), "propagate", True)
    caplog.set_level(logging.DEBUG, logger="llm_logger")
    return caplog


class TestCompletionLogCallback:

    @pytest.mark.asyncio
    async def test_logs_usage_without_content(self, llm_logs):
        callback = CompletionLogCallback(operation="chat_turn", plan_id="plan-1")
        run_id = uuid.uuid4()
        await callback.on_chat_model_start(
            {}, [[SystemMessage(content="rules"), HumanMessage(content="I work in finance")]], run_id=run_id,
        )
        message = AIMessage(
            content="Thanks for sharing.",
            usage_metadata={"input_tokens": 900, "output_tokens": 12, "total_tokens": 912},
            response_metadata={"model_name": "claude-test"},
        )
        await callback.on_llm_end(
            LLMResult(generations=[[ChatGeneration(message=message)]]), run_id=run_id,
        )

        done = [r.getMessage() for r in llm_logs.records if "done" in r.getMessage()]
        assert len(done) == 1
        assert "op=chat_turn" in done[0]
        assert "model=claude-test" in done[0]
        assert "in=900 out=12" in done[0]
        assert all("finance" not in r.getMessage() for r in llm_logs.records)

    @pytest.mark.asyncio
    async def test_estimates_tokens_when_missing(self, llm_logs):
        callback = CompletionLogCallback(operation="goal_extraction")
        run_id = uuid.uuid4()
        await callback.on_chat_model_start({}, [[HumanMessage(content="x" * 400)]], run_id=run_id)
        await callback.on_llm_end(
            LLMResult(generations=[[ChatGeneration(message=AIMessage(content="y" * 40))]]), run_id=run_id,
        )
        done = [r.getMessage() for r in llm_logs.records if "done" in r.getMessage()]
        assert "in=100 out=10" in done[0]

    @pytest.mark.asyncio
    async def test_error_logged_as_warning(self, llm_logs):
        callback = CompletionLogCallback(operation="chat_turn")
        await callback.on_llm_error(TimeoutError("slow"), run_id=uuid.uuid4())
        warnings = [r for r in llm_logs.records if r.levelno == logging.WARNING]
        assert "TimeoutError" in warnings[0].getMessage()
