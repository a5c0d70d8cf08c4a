# backend/tests/test_api_e2e.py
# 功能: 端到端API测试
# 测试对话、目标抽取、阶段元数据接口，以及错误信封和限流响应头

"""
端到端API测试
运行: python -m pytest tests/test_api_e2e.py -v

补全服务和限流存储通过 app.dependency_overrides 替换为 mock / 进程内实现。
"""

import uuid
from datetime import date

import pytest
from fastapi.testclient import TestClient

from api.deps import PlanAccessPolicy, get_goal_extractor, get_orchestrator, get_plan_access
from core.completion import MOCK_REPLIES, MockCompletionService
from core.errors import UpstreamAuthError
from core.goal_extraction import GoalExtractor, ReassessmentRecommendation
from core.orchestrator import ConversationOrchestrator
from core.rate_limiter import InMemoryRateLimitStore, RateLimiter
from main import app


PLAN_ID = str(uuid.uuid4())
USER_HEADERS = {"X-User-Id": "user-123"}


class RecordingMock(MockCompletionService):
    """记录每次调用收到的消息"""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.calls = []

    async def complete(self, system_prompt, messages, operation="", plan_id=""):
        messages = list(messages)
        self.calls.append({"system_prompt": system_prompt, "messages": messages})
        return await super().complete(system_prompt, messages, operation, plan_id)


class MissingKeyCompletion(MockCompletionService):
    async def complete(self, system_prompt, messages, operation="", plan_id=""):
        raise UpstreamAuthError("ANTHROPIC_API_KEY is not configured")


def _chat_body(**overrides):
    body = {"plan_id": PLAN_ID, "message": "I was laid off in March", "phase": "current_state"}
    body.update(overrides)
    return body


@pytest.fixture
def completion():
    return RecordingMock()


@pytest.fixture
def client(completion):
    """测试客户端（每个测试一个新的限流计数）"""
    limiter = RateLimiter(InMemoryRateLimitStore(), limit=3)
    app.dependency_overrides[get_orchestrator] = lambda: ConversationOrchestrator(completion, limiter)
    app.dependency_overrides[get_goal_extractor] = lambda: GoalExtractor(completion)
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealthAndPhases:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_list_phases(self, client):
        response = client.get("/api/phases")
        assert response.status_code == 200
        phases = response.json()["data"]
        assert len(phases) == 9
        assert phases[0]["code"] == "current_state"
        assert phases[0]["next_phase"] == "energy_audit"
        assert phases[-1]["is_terminal"] is True
        assert phases[-1]["next_phase"] is None


class TestChatAPI:
    """对话接口"""

    def test_chat_success(self, client):
        response = client.post("/api/chat", json=_chat_body(), headers=USER_HEADERS)
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        data = body["data"]
        assert data["message"] == MOCK_REPLIES[1]
        assert data["suggested_next_phase"] is None
        assert len(data["follow_up_questions"]) == 3
        assert data["mode"] == "deep"
        assert data["rate_limit"]["remaining"] == 2
        assert response.headers["X-RateLimit-Limit"] == "3"
        assert response.headers["X-RateLimit-Remaining"] == "2"
        assert int(response.headers["X-RateLimit-Reset"]) > 0

    def test_chat_suggests_next_phase(self, client):
        history = [
            {"role": "assistant", "content": "Welcome"},
            {"role": "user", "content": "I work in finance"},
            {"role": "assistant", "content": "What prompted this?"},
        ]
        response = client.post(
            "/api/chat",
            json=_chat_body(conversation_history=history),
            headers=USER_HEADERS,
        )
        assert response.status_code == 200
        assert response.json()["data"]["suggested_next_phase"] == "energy_audit"

    def test_mode_marker(self, client, completion):
        response = client.post(
            "/api/chat",
            json=_chat_body(message="[starting quick mode] Let's go"),
            headers=USER_HEADERS,
        )
        assert response.json()["data"]["mode"] == "quick"
        assert completion.calls[0]["messages"][-1].content == "Let's go"

    def test_message_sanitized(self, client, completion):
        response = client.post(
            "/api/chat",
            json=_chat_body(message='<script>alert("x")</script>Hello <a onclick=run()>there</a>'),
            headers=USER_HEADERS,
        )
        assert response.status_code == 200
        sent = completion.calls[0]["messages"][-1].content
        assert "<script>" not in sent
        assert "onclick=" not in sent
        assert sent.startswith("Hello")

    def test_documents_reach_prompt(self, client, completion):
        documents = [{"document_type": "resume", "extracted_text": "Senior analyst, 12 years"}]
        client.post("/api/chat", json=_chat_body(documents=documents), headers=USER_HEADERS)
        prompt = completion.calls[0]["system_prompt"]
        assert "### Resume Summary" in prompt
        assert "Senior analyst, 12 years" in prompt

    def test_request_id_echoed(self, client):
        response = client.post(
            "/api/chat",
            json=_chat_body(),
            headers={**USER_HEADERS, "X-Request-ID": "req-abc"},
        )
        assert response.headers["X-Request-ID"] == "req-abc"


class TestChatErrors:
    """错误信封"""

    def test_missing_user(self, client):
        response = client.post("/api/chat", json=_chat_body())
        assert response.status_code == 401
        assert response.json() == {
            "success": False,
            "error": {"code": "UNAUTHORIZED", "message": "Authentication required"},
        }
        assert "X-Request-ID" in response.headers

    def test_body_validation(self, client):
        response = client.post("/api/chat", json={"message": "hi"}, headers=USER_HEADERS)
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["message"] == "The request was invalid."

    def test_message_too_long(self, client):
        response = client.post("/api/chat", json=_chat_body(message="x" * 10001), headers=USER_HEADERS)
        assert response.status_code == 400

    def test_empty_after_sanitization(self, client, completion):
        response = client.post(
            "/api/chat",
            json=_chat_body(message="<script>alert(1)</script>"),
            headers=USER_HEADERS,
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"
        assert completion.calls == []

    def test_unknown_phase(self, client):
        response = client.post("/api/chat", json=_chat_body(phase="warmup"), headers=USER_HEADERS)
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "UNKNOWN_PHASE"
        assert "warmup" not in error["message"]

    def test_rate_limited(self, client, completion):
        for _ in range(3):
            assert client.post("/api/chat", json=_chat_body(), headers=USER_HEADERS).status_code == 200
        response = client.post("/api/chat", json=_chat_body(), headers=USER_HEADERS)

        assert response.status_code == 429
        assert response.json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"
        assert int(response.headers["Retry-After"]) > 0
        assert len(completion.calls) == 3

    def test_upstream_credentials_hidden(self):
        limiter = RateLimiter(InMemoryRateLimitStore())
        app.dependency_overrides[get_orchestrator] = lambda: ConversationOrchestrator(MissingKeyCompletion(), limiter)
        try:
            response = TestClient(app).post("/api/chat", json=_chat_body(), headers=USER_HEADERS)
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 503
        error = response.json()["error"]
        assert error["code"] == "SERVICE_UNAVAILABLE"
        assert "ANTHROPIC_API_KEY" not in error["message"]


class TestGoalsAPI:
    """目标抽取接口"""

    def test_extract(self, client):
        transcript = [
            {"role": "assistant", "content": "What matters most?"},
            {"role": "user", "content": "Growing in my career. I want to finish my certification."},
        ]
        response = client.post(
            "/api/goals/extract",
            json={"transcript": transcript, "plan_id": PLAN_ID},
            headers=USER_HEADERS,
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["values"][0]["title"] == "Growth"
        assert data["goals"][0]["parent_value_title"] == "Growth"
        assert data["tasks"][0]["parent_goal_title"] == "Finish certification"
        assert data["saved_counts"] == {"values": 1, "goals": 1, "tasks": 1, "dropped_tasks": 0}
        assert data["reassessment_recommendation"]["months"] == 12
        expected = ReassessmentRecommendation(months=12, reason="").due_date(date.today())
        assert data["recommended_date"] == expected.isoformat()

    def test_empty_transcript(self, client):
        response = client.post("/api/goals/extract", json={"transcript": []}, headers=USER_HEADERS)
        assert response.status_code == 400

    def test_extraction_failure(self, client):
        class NoJson(MockCompletionService):
            async def complete(self, system_prompt, messages, operation="", plan_id=""):
                return "I'm sorry, I can't produce that."

        app.dependency_overrides[get_goal_extractor] = lambda: GoalExtractor(NoJson())
        response = client.post(
            "/api/goals/extract",
            json={"transcript": [{"role": "user", "content": "hi"}]},
            headers=USER_HEADERS,
        )
        assert response.status_code == 500
        assert response.json()["error"]["code"] == "EXTRACTION_FAILED"


class DenyAllPlans(PlanAccessPolicy):
    async def owns(self, user_id, plan_id):
        return False


class TestPlanAccess:
    """计划不属于当前用户 → 404，且不计入限流、不调用模型"""

    def test_chat_foreign_plan(self, client, completion):
        app.dependency_overrides[get_plan_access] = DenyAllPlans
        response = client.post("/api/chat", json=_chat_body(), headers=USER_HEADERS)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"
        assert completion.calls == []

    def test_extract_foreign_plan(self, client, completion):
        app.dependency_overrides[get_plan_access] = DenyAllPlans
        response = client.post(
            "/api/goals/extract",
            json={"transcript": [{"role": "user", "content": "hi"}], "plan_id": PLAN_ID},
            headers=USER_HEADERS,
        )
        assert response.status_code == 404
        assert completion.calls == []
