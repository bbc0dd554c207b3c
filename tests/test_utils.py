from __future__ import annotations

import threading
import time

import pytest
from openai import OpenAIError

from projectqa.ai_workflow.utils.json_decode import decode_json_object
from projectqa.ai_workflow.utils.openai_utils import OpenAIOracle, OracleClient
from projectqa.cache import TTLCache
from projectqa.errors import OracleUnavailableError, QuestionCancelledError
from projectqa.utils import as_number, stringify_value

from conftest import ScriptedOracle


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestTTLCache:
    def test_expiry(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=300, clock=clock)
        cache.set("k", "v")

        clock.now = 299
        assert cache.get("k") == "v"
        clock.now = 300
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_least_recently_used_is_evicted(self):
        cache = TTLCache(ttl_seconds=60, max_entries=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)

        assert cache.get("b") is None
        assert cache.get("a") == 1
        assert cache.get("c") == 3

    def test_invalid_policy(self):
        with pytest.raises(ValueError):
            TTLCache(ttl_seconds=0)
        with pytest.raises(ValueError):
            TTLCache(max_entries=0)


class TestJsonDecode:
    def test_object_in_free_text(self):
        result = decode_json_object('Sure! Here is the plan:\n```json\n{"plan": [{"approach": "sql"}]}\n```\nDone.')
        assert result.ok
        assert result.value == {"plan": [{"approach": "sql"}]}

    def test_first_well_formed_object_wins(self):
        result = decode_json_object('{broken {"a": 1} {"b": 2}')
        assert result.value == {"a": 1}

    def test_no_object(self):
        result = decode_json_object("I cannot help with that")
        assert not result.ok
        assert result.error
        assert result.unwrap_or({"fallback": True}) == {"fallback": True}

    def test_empty(self):
        assert not decode_json_object("").ok
        assert not decode_json_object(None).ok


class TestValueHelpers:
    @pytest.mark.parametrize("value,expected", [
        (None, ""),
        (30.0, "30"),
        (2.5, "2.5"),
        (float("nan"), ""),
        (True, "true"),
        ("Eng", "Eng"),
    ])
    def test_stringify_value(self, value, expected):
        assert stringify_value(value) == expected

    def test_as_number(self):
        assert as_number("1,200") == 1200.0
        assert as_number(7) == 7.0
        assert as_number("abc") is None
        assert as_number(True) is None


class TestOracleClient:
    def test_returns_oracle_text(self):
        client = OracleClient(ScriptedOracle(unknown="hello"), timeout_seconds=5)
        assert client.complete("system", "user") == "hello"

    def test_oracle_exception_becomes_unavailable(self):
        client = OracleClient(ScriptedOracle(unknown=RuntimeError("boom")), timeout_seconds=5)
        with pytest.raises(OracleUnavailableError):
            client.complete("system", "user")

    def test_timeout(self):
        def slow(system, user):
            time.sleep(1)
            return "late"

        client = OracleClient(ScriptedOracle(unknown=slow), timeout_seconds=0.1)
        with pytest.raises(OracleUnavailableError):
            client.complete("system", "user")

    def test_cancel_while_waiting(self):
        cancel = threading.Event()

        def slow(system, user):
            cancel.set()
            time.sleep(1)
            return "late"

        client = OracleClient(ScriptedOracle(unknown=slow), timeout_seconds=5)
        started = time.monotonic()
        with pytest.raises(QuestionCancelledError):
            client.complete("system", "user", cancel)
        assert time.monotonic() - started < 1

    def test_cancelled_before_call(self):
        cancel = threading.Event()
        cancel.set()
        oracle = ScriptedOracle(unknown="never")

        with pytest.raises(QuestionCancelledError):
            OracleClient(oracle).complete("system", "user", cancel)
        assert oracle.calls == []


class _Message:
    def __init__(self, content):
        self.content = content


class _Choice:
    def __init__(self, content):
        self.message = _Message(content)


class _Response:
    def __init__(self, content):
        self.choices = [_Choice(content)]


class FlakyCompletions:
    def __init__(self, failures: int):
        self.failures = failures
        self.calls = 0

    def create(self, model, messages):
        self.calls += 1
        if self.calls <= self.failures:
            raise OpenAIError("rate limited")
        return _Response("ok")


class FakeOpenAI:
    def __init__(self, failures: int):
        self.chat = type("Chat", (), {})()
        self.chat.completions = FlakyCompletions(failures)


class TestOpenAIOracle:
    def test_retries_then_succeeds(self):
        client = FakeOpenAI(failures=2)
        oracle = OpenAIOracle(retries=3, backoff=0, client=client)

        assert oracle.complete("system", "user") == "ok"
        assert client.chat.completions.calls == 3

    def test_all_retries_exhausted(self):
        client = FakeOpenAI(failures=5)
        oracle = OpenAIOracle(retries=2, backoff=0, client=client)

        with pytest.raises(OracleUnavailableError):
            oracle.complete("system", "user")
        assert client.chat.completions.calls == 2
