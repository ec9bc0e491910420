"""
Planning and verification service for the interactive agent.

Wraps the OpenAI chat-completions API. Replies are expected to contain JSON,
bare or in a code fence. Anything that fails to parse or to validate, and any
API error, is treated as "no answer" and returned as None so the agent can
apply its fallback.
"""

import json
from typing import Any, List, Optional

from openai import OpenAI, OpenAIError
from pydantic import BaseModel, Field, ValidationError

from ...config import Config
from ...unsubscribe.constants import (
    JSON_FENCE_PATTERN, PAGE_TEXT_PROMPT_LIMIT, ERROR_OPENAI_NOT_CONFIGURED
)
from ...unsubscribe.exceptions import CapabilityUnavailableError
from ...unsubscribe.logging import UnsubscribeLogger
from .actions import AgentPlan
from .controls import ControlSnapshot


class VerificationResult(BaseModel):
    unsubscribed: bool = Field(strict=True)
    confidence: float = Field(ge=0, le=1, strict=True)
    reason: Optional[str] = None

    def to_dict(self):
        return self.model_dump(exclude_none=True)


def parse_json_best_effort(text: Optional[str]) -> Any:
    """Parse a reply as JSON, then as the first fenced block; None if neither works."""
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    fence = JSON_FENCE_PATTERN.search(text)
    if fence and fence.group(1):
        try:
            return json.loads(fence.group(1))
        except json.JSONDecodeError:
            return None
    return None


def build_plan_prompt(url: str, page_text: str, user_email: Optional[str],
                      controls: List[ControlSnapshot]) -> str:
    controls_text = '\n'.join(control.describe() for control in controls) or '(none)'
    return '\n'.join([
        "You are an unsubscribe agent operating a web page.",
        "Given the page text and the available UI controls, output JSON ONLY.",
        "Goal: unsubscribe the user from emails/newsletters on this page.",
        "",
        f"URL: {url}",
        f"USER_EMAIL (use if needed): {user_email or '(unknown)'}",
        "",
        "PAGE_TEXT (truncated):",
        page_text[:PAGE_TEXT_PROMPT_LIMIT],
        "",
        "CONTROLS (reference targets by id):",
        controls_text,
        "",
        'Return JSON: {"actions":[ ... ]}',
        "Allowed actions:",
        '- {"type":"click","targetId":"button:3"}',
        '- {"type":"click","targetId":"roleButton:0"}',
        '- {"type":"click","targetId":"clickable:5"}',
        '- {"type":"clickText","text":"Save preferences"}',
        '- {"type":"clickRole","role":"radio","name":"Never"}',
        '- {"type":"fill","targetId":"input:7","value":"..."}',
        '- {"type":"select","targetId":"select:0","value":"Option label or value"}',
        '- {"type":"check","targetId":"checkbox:2"}',
        '- {"type":"uncheck","targetId":"checkbox:2"}',
        '- {"type":"press","key":"Enter"}',
        '- {"type":"wait","ms":1500}',
        "Rules:",
        "- Prefer direct unsubscribe/opt-out actions over 'manage preferences' when available.",
        "- Avoid actions unrelated to unsubscribing (password reset, account deletion, purchases, etc.).",
        "- Use the USER_EMAIL when the page asks for email.",
        "- Only reference targetId values listed under CONTROLS.",
        "- Use select ONLY with target kind=select. For radio groups, use clickRole(role=radio, name=...) or clickText(...).",
        "- Use check/uncheck ONLY with target kind=checkbox.",
        "- 1 to 10 actions max.",
    ])


def build_verify_prompt(url: str, page_text: str, user_email: Optional[str]) -> str:
    return '\n'.join([
        "You verify whether a user has successfully unsubscribed based on the page content.",
        "Output JSON ONLY.",
        "",
        f"URL: {url}",
        f"USER_EMAIL: {user_email or '(unknown)'}",
        "",
        "PAGE_TEXT (truncated):",
        page_text[:PAGE_TEXT_PROMPT_LIMIT],
        "",
        'Return JSON: {"unsubscribed": true|false, "confidence": 0-1, "reason": "..."}',
        "Rules:",
        "- unsubscribed=true only if the page strongly indicates the subscription is removed/unsubscribed "
        "or preferences/settings saved/updated successfully.",
        "- If the page still looks like a form asking to proceed with unsubscribe/preferences, unsubscribed=false.",
    ])


class PlanningService:
    """Plan page actions and verify unsubscribe confirmation with an LLM."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 timeout: Optional[float] = None, client=None):
        self.api_key = api_key if api_key is not None else Config.OPENAI_API_KEY
        self.model = model or Config.OPENAI_MODEL
        self.timeout = timeout if timeout is not None else Config.OPENAI_TIMEOUT
        self._client = client
        self.logger = UnsubscribeLogger("planner")

    @property
    def available(self) -> bool:
        return self._client is not None or bool(self.api_key)

    def _get_client(self):
        if self._client is None:
            if not self.api_key:
                raise CapabilityUnavailableError(
                    "OPENAI_API_KEY is not set",
                    capability='planner',
                    error_code=ERROR_OPENAI_NOT_CONFIGURED,
                )
            self._client = OpenAI(api_key=self.api_key, timeout=self.timeout)
        return self._client

    def _complete(self, prompt: str, purpose: str, timeout: Optional[float] = None) -> Optional[str]:
        client = self._get_client()
        if timeout is not None:
            # Never wait longer than the caller has left
            client = client.with_options(timeout=min(timeout, self.timeout))
        try:
            completion = client.chat.completions.create(
                model=self.model,
                temperature=0,
                messages=[{'role': 'user', 'content': prompt}],
            )
        except OpenAIError as e:
            self.logger.warning("Planning service request failed", {'purpose': purpose, 'error': str(e)})
            self.logger.log_operation_count(purpose, False)
            return None

        if not completion.choices:
            self.logger.warning("Planning service returned no choices", {'purpose': purpose})
            self.logger.log_operation_count(purpose, False)
            return None
        return completion.choices[0].message.content or ''

    def suggest_actions(self, url: str, page_text: str, user_email: Optional[str],
                        controls: List[ControlSnapshot],
                        timeout: Optional[float] = None) -> Optional[AgentPlan]:
        """Ask for an action plan. None when no valid plan came back."""
        content = self._complete(build_plan_prompt(url, page_text, user_email, controls), 'plan', timeout)
        if content is None:
            return None

        data = parse_json_best_effort(content)
        if data is None:
            self.logger.warning("Plan reply was not JSON", {'reply_head': content[:200]})
            self.logger.log_operation_count('plan', False)
            return None

        try:
            plan = AgentPlan.model_validate(data)
        except ValidationError as e:
            self.logger.warning("Plan reply failed validation", {'errors': e.error_count()})
            self.logger.log_operation_count('plan', False)
            return None

        self.logger.log_operation_count('plan', True)
        return plan

    def verify_unsubscribed(self, url: str, page_text: str, user_email: Optional[str],
                            timeout: Optional[float] = None) -> Optional[VerificationResult]:
        """Ask whether the page confirms the unsubscribe. None when unanswered."""
        content = self._complete(build_verify_prompt(url, page_text, user_email), 'verify', timeout)
        if content is None:
            return None

        data = parse_json_best_effort(content)
        if data is None:
            self.logger.log_operation_count('verify', False)
            return None

        try:
            result = VerificationResult.model_validate(data)
        except ValidationError as e:
            self.logger.warning("Verification reply failed validation", {'errors': e.error_count()})
            self.logger.log_operation_count('verify', False)
            return None

        self.logger.log_operation_count('verify', True)
        return result
