"""Claude-backed coaching advisor and the advisor-with-fallback resolver."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from anthropic import Anthropic

from app.config import Settings, get_settings
from app.services.coach_config import get_prompt_template, load_coach_config


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Resolution(Generic[T]):
    """Outcome of a primary/fallback decision."""

    value: T
    fallback: T
    advisor_enhanced: bool
    failure: str | None = None


def resolve(
    label: str,
    fallback: Callable[[], T],
    primary: Callable[[T], T | None],
) -> Resolution[T]:
    """
    Compute the deterministic fallback, then try the advisor-backed primary.

    The primary receives the fallback so it can use it as a baseline. Returning
    None or raising anything counts as advisor failure and the fallback wins.

    Args:
        label: Decision name used in logs (e.g. "phase", "workout")
        fallback: Pure function producing the rule-based result
        primary: Advisor strategy returning a validated result or None

    Returns:
        Resolution carrying the chosen value and the retained fallback
    """
    baseline = fallback()

    try:
        candidate = primary(baseline)
    except Exception as err:  # advisor output is untrusted
        logger.warning("Advisor %s rejected, using fallback: %s", label, err)
        return Resolution(value=baseline, fallback=baseline, advisor_enhanced=False, failure=str(err))

    if candidate is None:
        logger.info("Advisor %s unavailable, using fallback", label)
        return Resolution(
            value=baseline,
            fallback=baseline,
            advisor_enhanced=False,
            failure="advisor unavailable",
        )

    logger.info("Advisor %s accepted", label)
    return Resolution(value=candidate, fallback=baseline, advisor_enhanced=True)


class CoachAdvisor:
    """Thin wrapper around the Anthropic client that only ever returns JSON dicts."""

    def __init__(
        self,
        settings: Settings | None = None,
        client: Any | None = None,
        enabled: bool | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.model = settings.advisor_model
        self.max_tokens = settings.advisor_max_tokens
        self.config_path = settings.coach_config_path
        self.enabled = settings.advisor_available if enabled is None else enabled
        self.client = client

        if self.enabled and self.client is None:
            self.client = Anthropic(
                api_key=settings.anthropic_api_key,
                timeout=settings.advisor_timeout_seconds,
                max_retries=1,
            )

    @classmethod
    def disabled(cls, settings: Settings | None = None) -> "CoachAdvisor":
        """Advisor that always reports itself unavailable."""

        return cls(settings=settings, enabled=False)

    def render(self, template_name: str, **fields: Any) -> str:
        """Fill a prompt template from coach.yaml."""

        template = get_prompt_template(template_name, self.config_path)
        return template.format(**fields)

    def ask_json(self, label: str, prompt: str) -> dict[str, Any] | None:
        """
        Send a prompt and parse the first JSON object in the reply.

        Never raises: disabled advisor, transport errors, empty replies and
        unparseable JSON all return None.
        """
        if not self.enabled or self.client is None:
            return None

        request_payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": 0.2,
            "messages": [{"role": "user", "content": prompt}],
        }
        system_prompt = load_coach_config(self.config_path).get("prompts", {}).get("system")
        if system_prompt:
            request_payload["system"] = system_prompt

        try:
            response = self.client.messages.create(**request_payload)
            text = response.content[0].text
        except Exception:
            logger.warning("Advisor call for %s failed", label, exc_info=True)
            return None

        parsed = self._parse_response(text)
        if parsed is None:
            logger.warning("Advisor reply for %s was not valid JSON", label)
        return parsed

    @staticmethod
    def _parse_response(response_text: str | None) -> dict[str, Any] | None:
        """Extract the outermost JSON object from Claude's reply."""

        if not response_text:
            return None

        start = response_text.find("{")
        end = response_text.rfind("}") + 1
        if start < 0 or end <= start:
            return None

        try:
            result = json.loads(response_text[start:end])
        except json.JSONDecodeError:
            return None
        return result if isinstance(result, dict) else None
