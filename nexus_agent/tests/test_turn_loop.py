import random
from datetime import datetime

import pytest

from nexus_agent.agents.turn_loop import AgentConfig, AgentEngine
from nexus_agent.domain.exceptions import ApiError, AuthError
from nexus_agent.domain.models import ChatChoice, ChatMessage, ChatResult
from nexus_agent.infrastructure.storage.memory_store import InMemoryStore
from nexus_agent.providers.openrouter_client import OpenRouterClient
from nexus_agent.tools.definitions import ToolCall
from nexus_agent.tools.executor import ToolExecutor, default_tools
from nexus_agent.tools.web_search import SearchHit


FIXED_NOW = datetime(2026, 10, 19, 15, 4, 5)


class FakeSearch:
    def search(self, query):
        return [SearchHit("Result for " + query, "snippet")]


class ScriptedProvider:
    """按顺序返回预设回复；条目为函数时按请求动态生成，为异常时直接抛出。"""

    name = "fake"

    def __init__(self, replies):
        self._replies = list(replies)
        self.requests = []

    def chat(self, req):
        self.requests.append(req)
        reply = self._replies.pop(0) if len(self._replies) > 1 else self._replies[0]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply(req)
        return ChatResult(provider="fake", model=req.model, choices=[ChatChoice(index=0, message=reply)])


def assistant(content="", calls=None):
    tool_calls = [ToolCall(id=cid, name=name, arguments=args) for cid, name, args in (calls or [])]
    return ChatMessage(role="assistant", content=content, tool_calls=tool_calls or None)


def make_engine(provider, store=None, max_rounds=5):
    executor = ToolExecutor(
        default_tools(
            store if store is not None else InMemoryStore(),
            search_client=FakeSearch(),
            image_endpoint="https://image.example/prompt",
            rng=random.Random(3),
        )
    )
    return AgentEngine(
        provider_client=provider,
        tool_executor=executor,
        config=AgentConfig(provider="fake", model="nexus-chat", max_tool_rounds=max_rounds),
        clock=lambda: FIXED_NOW,
    )


def test_calculator_scenario():
    provider = ScriptedProvider([
        assistant(calls=[("call_1", "calculate_expression", {"expression": "12 * 7"})]),
        assistant("The answer is 84."),
    ])
    outcome = make_engine(provider).run([], "What is 12 * 7?", "sk-or-key-123")

    assert outcome.text == "The answer is 84."
    assert len(outcome.tool_calls) == 1
    assert outcome.tool_calls[0].name == "calculate_expression"
    assert outcome.tool_calls[0].content == "84"
    assert outcome.rounds == 2
    assert outcome.exhausted is False
    tool_msg = provider.requests[1].messages[-1]
    assert (tool_msg.role, tool_msg.content, tool_msg.tool_call_id) == ("tool", "84", "call_1")


def test_request_layout_system_first_and_errors_filtered():
    provider = ScriptedProvider([assistant("hi again")])
    history = [
        ChatMessage(role="user", content="hello"),
        ChatMessage(role="assistant", content="I encountered an error", is_error=True),
        ChatMessage(role="assistant", content="Hello! How can I help?"),
    ]
    make_engine(provider).run(history, "thanks", "sk-or-key-123")

    req = provider.requests[0]
    assert [(m.role, m.content) for m in req.messages[1:]] == [
        ("user", "hello"),
        ("assistant", "Hello! How can I help?"),
        ("user", "thanks"),
    ]
    assert req.messages[0].role == "system"
    assert "Monday, October 19, 2026 at 3:04:05 PM" in req.messages[0].content
    assert [t.name for t in req.tools][-1] == "web_search"
    assert req.api_key == "sk-or-key-123"


def test_round_bound_stops_endless_tool_calls():
    provider = ScriptedProvider([
        assistant("thinking ", calls=[("loop", "calculate_expression", {"expression": "1+1"})]),
    ])
    starts = []
    outcome = make_engine(provider).run([], "loop forever", "sk-or-key-123", on_tool_start=starts.append)

    assert len(provider.requests) == 5
    assert outcome.rounds == 5
    assert outcome.exhausted is True
    assert len(outcome.tool_calls) == 5
    assert outcome.text == "thinking " * 5
    assert starts == ["calculate_expression"] * 5


def test_auth_error_on_first_round_dispatches_nothing():
    provider = ScriptedProvider([AuthError(code="AUTH_ERROR", message="Invalid API key", http_status=401)])
    starts = []
    with pytest.raises(AuthError):
        make_engine(provider).run([], "hi", "sk-or-key-123", on_tool_start=starts.append)
    assert starts == []
    assert len(provider.requests) == 1


def test_http_401_from_endpoint_raises_auth_error(monkeypatch):
    class Resp:
        status_code = 401

        def json(self):
            return {"error": {"message": "User not found."}}

    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, *a, **kw):
            return Resp()

    class SettingsStub:
        openrouter_api_key = None
        http_timeout = 1.0
        openrouter_base_url = "https://openrouter.ai/api/v1"

    monkeypatch.setattr("httpx.Client", Client)
    ends = []
    with pytest.raises(AuthError):
        make_engine(OpenRouterClient(SettingsStub())).run([], "hi", "sk-or-bad-key", on_tool_end=lambda: ends.append(1))
    assert ends == []


def test_missing_credential_fails_before_any_request():
    provider = ScriptedProvider([assistant("never")])
    with pytest.raises(AuthError):
        make_engine(provider).run([], "hi", "   ")
    assert provider.requests == []


def test_api_error_propagates_after_partial_progress():
    provider = ScriptedProvider([
        assistant(calls=[("c1", "save_to_memory", {"key": "a", "value": "b"})]),
        ApiError(code="API_ERROR", message="OpenRouter API Error: overloaded", http_status=503),
    ])
    store = InMemoryStore()
    with pytest.raises(ApiError) as exc:
        make_engine(provider, store=store).run([], "remember a", "sk-or-key-123")
    assert "overloaded" in exc.value.message
    assert store.read_memory("a") == "b"


def test_tool_results_keep_request_order():
    provider = ScriptedProvider([
        assistant(calls=[
            ("c1", "save_to_memory", {"key": "color", "value": "blue"}),
            ("c2", "read_from_memory", {"key": "color"}),
            ("c3", "calculate_expression", {"expression": "2^3"}),
        ]),
        assistant("Saved blue; 2^3 is 8."),
    ])
    events = []
    outcome = make_engine(provider).run(
        [],
        "remember blue and compute 2^3",
        "sk-or-key-123",
        on_tool_start=lambda name: events.append(("start", name)),
        on_tool_end=lambda: events.append(("end",)),
    )

    tool_msgs = provider.requests[1].messages[-3:]
    assert [m.tool_call_id for m in tool_msgs] == ["c1", "c2", "c3"]
    assert [m.content for m in tool_msgs] == ["Saved to memory: color = blue", "blue", "8"]
    assert provider.requests[1].messages[-4].tool_calls[0].id == "c1"
    assert [r.call_id for r in outcome.tool_calls] == ["c1", "c2", "c3"]
    assert events == [
        ("start", "save_to_memory"), ("end",),
        ("start", "read_from_memory"), ("end",),
        ("start", "calculate_expression"), ("end",),
    ]


def test_content_with_tool_calls_keeps_looping():
    provider = ScriptedProvider([
        assistant("Let me check. ", calls=[("s1", "web_search", {"query": "mars rover"})]),
        assistant("Done."),
    ])
    outcome = make_engine(provider).run([], "latest mars rover news", "sk-or-key-123")
    assert outcome.text == "Let me check. Done."
    assert outcome.rounds == 2
    assert outcome.grounding_sources[0].uri == "https://en.wikipedia.org/wiki/mars%20rover"


def test_images_and_unknown_tools_collected():
    provider = ScriptedProvider([
        assistant(calls=[
            ("i1", "pika_generate_image", {"prompt": "sunset"}),
            ("u1", "launch_rockets", {}),
        ]),
        assistant("Here is your sunset."),
    ])
    outcome = make_engine(provider).run([], "draw a sunset", "sk-or-key-123")
    assert len(outcome.generated_images) == 1
    assert outcome.generated_images[0].startswith("https://image.example/prompt/sunset?seed=")
    unknown = outcome.tool_calls[1]
    assert (unknown.name, unknown.content, unknown.ok) == ("launch_rockets", "", False)


def test_memory_roundtrip_across_turns():
    store = InMemoryStore()
    first = ScriptedProvider([
        assistant(calls=[("c1", "save_to_memory", {"key": "user_name", "value": "Meera"})]),
        assistant("Noted."),
    ])
    make_engine(first, store=store).run([], "My name is Meera", "sk-or-key-123")
    second = ScriptedProvider([
        assistant(calls=[("c2", "read_from_memory", {"key": "user_name"})]),
        assistant("Your name is Meera."),
    ])
    outcome = make_engine(second, store=store).run([], "What's my name?", "sk-or-key-123")
    assert outcome.tool_calls[0].content == "Meera"


def test_outcome_is_immutable():
    provider = ScriptedProvider([assistant("ok")])
    outcome = make_engine(provider).run([], "hi", "sk-or-key-123")
    with pytest.raises(Exception):
        outcome.text = "changed"
