"""Tests for the advisor wrapper and the primary/fallback resolver."""
from __future__ import annotations

import pytest

from app.services.advisor import CoachAdvisor, resolve


def test_resolve_prefers_primary():
    resolution = resolve("demo", lambda: 1, lambda baseline: baseline + 10)

    assert resolution.value == 11
    assert resolution.fallback == 1
    assert resolution.advisor_enhanced is True
    assert resolution.failure is None


def test_resolve_always_computes_fallback_first():
    order = []

    def fallback():
        order.append("fallback")
        return "rule"

    def primary(baseline):
        order.append("primary")
        return f"{baseline}+advisor"

    resolve("demo", fallback, primary)

    assert order == ["fallback", "primary"]


def test_resolve_uses_fallback_when_primary_returns_none():
    resolution = resolve("demo", lambda: "rule", lambda baseline: None)

    assert resolution.value == "rule"
    assert resolution.advisor_enhanced is False
    assert resolution.failure == "advisor unavailable"


def test_resolve_uses_fallback_when_primary_raises():
    def primary(baseline):
        raise ValueError("intensity 9 outside 1-5")

    resolution = resolve("demo", lambda: "rule", primary)

    assert resolution.value == "rule"
    assert resolution.failure == "intensity 9 outside 1-5"


@pytest.mark.parametrize(
    "text, expected",
    [
        ('Sure! {"a": 1, "b": {"c": 2}} Hope that helps.', {"a": 1, "b": {"c": 2}}),
        ("```json\n{\"ok\": true}\n```", {"ok": True}),
        ("{not json}", None),
        ("[1, 2, 3]", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_response(text, expected):
    assert CoachAdvisor._parse_response(text) == expected


def test_disabled_advisor_never_calls_client(disabled_advisor):
    assert disabled_advisor.enabled is False
    assert disabled_advisor.client is None
    assert disabled_advisor.ask_json("workout", "prompt") is None


def test_ask_json_sends_system_prompt(advisor_with_reply):
    advisor = advisor_with_reply({"ok": True})

    assert advisor.ask_json("demo", "Say ok") == {"ok": True}
    request = advisor.client.messages.requests[0]
    assert request["system"].startswith("You are an experienced endurance coach")
    assert request["messages"] == [{"role": "user", "content": "Say ok"}]


def test_ask_json_swallows_transport_errors(advisor_with_reply):
    advisor = advisor_with_reply(TimeoutError("read timeout"))

    assert advisor.ask_json("demo", "prompt") is None


def test_render_rejects_unknown_template(disabled_advisor):
    with pytest.raises(KeyError):
        disabled_advisor.render("no-such-template")
