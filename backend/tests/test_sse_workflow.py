"""
Tests for the /sse-workflow event stream.

With a deterministic fake upstream the emitted sequence must be
log, llm*, log, data, log, llm*, log; failures end it with one error event.
"""

import pytest
from fastapi.testclient import TestClient
from langchain_core.messages import HumanMessage, SystemMessage

from conftest import FakeChatFactory, FakeChatModel, parse_sse
from streaming_demo.api.demo import get_relay_factory
from streaming_demo.api.workflow import (
    FAKE_QUERY_RESULT,
    SQL_PROMPT,
    build_summary_request,
)
from streaming_demo.core.config import get_settings
from streaming_demo.main import create_app
from streaming_demo.streaming.relay import UpstreamTokenRelay


def make_client(settings, chat_factory: FakeChatFactory) -> TestClient:
    def relay_factory(s):
        return UpstreamTokenRelay(
            api_key=s.dashscope_api_key,
            default_model=s.default_llm_model,
            chat_model_factory=chat_factory,
        )

    app = create_app()
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_relay_factory] = lambda: relay_factory
    return TestClient(app)


@pytest.fixture
def configured_settings(test_settings):
    return test_settings.model_copy(update={"dashscope_api_key": "sk-test"})


class TestWorkflowSequence:
    """Test the happy path."""

    def test_emits_expected_sequence(self, configured_settings):
        sql_model = FakeChatModel(["SELECT ", "count(*)"])
        summary_model = FakeChatModel(["Users ", "grew."])
        chat_factory = FakeChatFactory(sql_model, summary_model)

        response = make_client(configured_settings, chat_factory).get("/sse-workflow")

        assert response.status_code == 200
        assert response.headers["content-type"] == "text/event-stream; charset=utf-8"
        frames = parse_sse(response.text)
        assert frames == [
            ("log", "Generating SQL query..."),
            ("llm", "SELECT "),
            ("llm", "count(*)"),
            ("log", "Executing SQL on warehouse..."),
            ("data", FAKE_QUERY_RESULT),
            ("log", "Summarizing results with LLM..."),
            ("llm", "Users "),
            ("llm", "grew."),
            ("log", "Workflow complete ✅"),
        ]

    def test_relay_invocations(self, configured_settings):
        sql_model = FakeChatModel(["x"])
        summary_model = FakeChatModel(["y"])
        chat_factory = FakeChatFactory(sql_model, summary_model)

        make_client(configured_settings, chat_factory).get("/sse-workflow")

        # Prompt form, then message-list form; both forced to the default model
        assert [c["model"] for c in chat_factory.calls] == [
            "qwen-plus-latest",
            "qwen-plus-latest",
        ]
        assert len(sql_model.received_messages) == 1
        assert isinstance(sql_model.received_messages[0], HumanMessage)
        assert sql_model.received_messages[0].content == SQL_PROMPT
        assert isinstance(summary_model.received_messages[0], SystemMessage)
        assert FAKE_QUERY_RESULT in summary_model.received_messages[1].content
        assert summary_model.bound_kwargs == {"temperature": 0.7}


class TestWorkflowFailures:
    """Test early termination."""

    def test_missing_credential_single_error_event(self, test_settings):
        chat_factory = FakeChatFactory()

        response = make_client(test_settings, chat_factory).get("/sse-workflow")

        frames = parse_sse(response.text)
        assert len(frames) == 1
        kind, data = frames[0]
        assert kind == "error"
        assert data.startswith("DashScope API key not configured")
        assert chat_factory.calls == []

    def test_first_upstream_failure_stops_workflow(self, configured_settings):
        chat_factory = FakeChatFactory(
            FakeChatModel(["SELECT"], error=RuntimeError("Invalid API-key provided."))
        )

        response = make_client(configured_settings, chat_factory).get("/sse-workflow")

        frames = parse_sse(response.text)
        assert frames == [
            ("log", "Generating SQL query..."),
            ("llm", "SELECT"),
            ("error", "Invalid API-key provided."),
        ]
        assert len(chat_factory.calls) == 1

    def test_summary_failure_after_data(self, configured_settings):
        chat_factory = FakeChatFactory(
            FakeChatModel(["SELECT 1"]),
            FakeChatModel([], error=TimeoutError("read timed out")),
        )

        response = make_client(configured_settings, chat_factory).get("/sse-workflow")

        kinds = [kind for kind, _ in parse_sse(response.text)]
        assert kinds == ["log", "llm", "log", "data", "log", "error"]
        assert kinds.count("error") == 1


class TestSummaryRequest:
    """Test the summary prompt builder."""

    def test_system_and_user_messages(self):
        request = build_summary_request("[1, 2]")

        assert [m.role for m in request.messages] == ["system", "user"]
        assert request.messages[0].content == "You are a data analyst."
        assert "Given this JSON data:\n[1, 2]\n" in request.messages[1].content
        assert request.options.temperature == 0.7
