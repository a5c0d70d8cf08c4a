# backend/tests/test_completion.py
# 功能: 补全服务测试
# 覆盖: classify_error, ChatModelCompletionService（凭证检查 / 超时 / 内容归一化）, MockCompletionService

"""
补全服务测试
不调用真实模型：用假的 ChatModel 替身注入。
"""

import asyncio
import logging

import anthropic
import httpx
import openai
import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from core.completion import (
    MOCK_EXTRACTION_REPLY,
    MOCK_REPLIES,
    ChatModelCompletionService,
    MockCompletionService,
    classify_error,
)
from core.config import settings
from core.errors import UpstreamAuthError, UpstreamError, UpstreamTransientError


REQUEST = httpx.Request("POST", "https://api.example.test/v1/messages")


def _response(status):
    return httpx.Response(status, request=REQUEST)


class FakeChatModel:
    """只实现 ainvoke 的 ChatModel 替身"""

    def __init__(self, reply=None, error=None, delay=0.0):
        self.reply = reply if reply is not None else AIMessage(content="Tell me more.")
        self.error = error
        self.delay = delay
        self.calls = []

    async def ainvoke(self, messages, config=None):
        self.calls.append({"messages": messages, "config": config})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply


class StatusError(Exception):
    def __init__(self, status_code):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


class TestClassifyError:

    @pytest.mark.parametrize("error", [
        anthropic.AuthenticationError("bad key", response=_response(401), body=None),
        anthropic.PermissionDeniedError("forbidden", response=_response(403), body=None),
        openai.AuthenticationError("bad key", response=_response(401), body=None),
        StatusError(401),
        StatusError(403),
    ])
    def test_auth_errors(self, error):
        assert isinstance(classify_error(error), UpstreamAuthError)

    @pytest.mark.parametrize("error", [
        anthropic.RateLimitError("slow down", response=_response(429), body=None),
        openai.RateLimitError("slow down", response=_response(429), body=None),
        StatusError(429),
    ])
    def test_rate_limited(self, error):
        classified = classify_error(error)
        assert isinstance(classified, UpstreamTransientError)
        assert classified.reason == "rate_limited"
        assert classified.retryable

    @pytest.mark.parametrize("error", [
        asyncio.TimeoutError(),
        anthropic.APITimeoutError(request=REQUEST),
        StatusError(504),
    ])
    def test_timeouts(self, error):
        classified = classify_error(error)
        assert isinstance(classified, UpstreamTransientError)
        assert classified.reason == "timeout"

    @pytest.mark.parametrize("error", [
        anthropic.InternalServerError("boom", response=_response(500), body=None),
        RuntimeError("socket closed"),
    ])
    def test_other_errors(self, error):
        classified = classify_error(error)
        assert type(classified) is UpstreamError

    def test_core_errors_pass_through(self):
        error = UpstreamAuthError("missing key")
        assert classify_error(error) is error


class TestCredentials:
    """凭证缺失 / 格式错误在调用前就报 UpstreamAuthError"""

    def test_missing_anthropic_key(self, monkeypatch):
        monkeypatch.setattr(settings, "llm_provider", "anthropic")
        monkeypatch.setattr(settings, "anthropic_api_key", "")
        with pytest.raises(UpstreamAuthError):
            ChatModelCompletionService().model

    def test_malformed_anthropic_key(self, monkeypatch):
        monkeypatch.setattr(settings, "llm_provider", "anthropic")
        monkeypatch.setattr(settings, "anthropic_api_key", "not-a-real-key")
        with pytest.raises(UpstreamAuthError):
            ChatModelCompletionService().model

    def test_missing_openai_key(self, monkeypatch):
        monkeypatch.setattr(settings, "llm_provider", "openai")
        monkeypatch.setattr(settings, "openai_api_key", "")
        with pytest.raises(UpstreamAuthError):
            ChatModelCompletionService().model

    @pytest.mark.asyncio
    async def test_complete_reports_missing_key(self, monkeypatch):
        monkeypatch.setattr(settings, "llm_provider", "anthropic")
        monkeypatch.setattr(settings, "anthropic_api_key", "")
        with pytest.raises(UpstreamAuthError):
            await ChatModelCompletionService().complete("sys", [{"role": "user", "content": "hi"}])


class TestChatModelCompletionService:

    @pytest.mark.asyncio
    async def test_messages_and_callbacks(self):
        model = FakeChatModel()
        service = ChatModelCompletionService(model=model)
        reply = await service.complete(
            "You are a facilitator.",
            [{"role": "user", "content": "Hi"}],
            operation="chat_turn",
            plan_id="plan-1",
        )

        assert reply == "Tell me more."
        messages = model.calls[0]["messages"]
        assert isinstance(messages[0], SystemMessage)
        assert isinstance(messages[1], HumanMessage)
        callback = model.calls[0]["config"]["callbacks"][0]
        assert callback.operation == "chat_turn"
        assert callback.plan_id == "plan-1"

    @pytest.mark.asyncio
    async def test_block_content_normalized(self):
        model = FakeChatModel(reply=AIMessage(content=[
            {"type": "thinking", "thinking": "hmm"},
            {"type": "text", "text": "What matters most?"},
        ]))
        reply = await ChatModelCompletionService(model=model).complete("sys", [{"role": "user", "content": "Hi"}])
        assert reply == "What matters most?"

    @pytest.mark.asyncio
    async def test_timeout(self):
        model = FakeChatModel(delay=1.0)
        service = ChatModelCompletionService(model=model, timeout_seconds=0.01)
        with pytest.raises(UpstreamTransientError) as exc_info:
            await service.complete("sys", [{"role": "user", "content": "Hi"}])
        assert exc_info.value.reason == "timeout"

    @pytest.mark.asyncio
    async def test_provider_error_classified(self):
        error = anthropic.AuthenticationError("invalid x-api-key", response=_response(401), body=None)
        service = ChatModelCompletionService(model=FakeChatModel(error=error))
        with pytest.raises(UpstreamAuthError) as exc_info:
            await service.complete("sys", [{"role": "user", "content": "Hi"}])
        assert exc_info.value.__cause__ is error

    @pytest.mark.asyncio
    async def test_truncation_logged(self, caplog, monkeypatch):
        monkeypatch.setattr(logging.getLogger("completion"), "propagate", True)
        caplog.set_level(logging.WARNING, logger="completion")
        reply = AIMessage(content="Partial", response_metadata={"stop_reason": "max_tokens"})
        service = ChatModelCompletionService(model=FakeChatModel(reply=reply))

        assert await service.complete("sys", [{"role": "user", "content": "Hi"}]) == "Partial"
        assert any("截断" in r.getMessage() for r in caplog.records)


class TestMockCompletionService:

    @pytest.mark.asyncio
    async def test_rotates_by_message_count(self):
        service = MockCompletionService()
        one = await service.complete("sys", [{"role": "user", "content": "a"}])
        assert one == MOCK_REPLIES[1]

    @pytest.mark.asyncio
    async def test_extraction_returns_json(self):
        service = MockCompletionService()
        reply = await service.complete("sys", [{"role": "user", "content": "t"}], operation="goal_extraction")
        assert reply == MOCK_EXTRACTION_REPLY

    @pytest.mark.asyncio
    async def test_custom_replies(self):
        service = MockCompletionService(replies=["only"])
        assert await service.complete("sys", []) == "only"
