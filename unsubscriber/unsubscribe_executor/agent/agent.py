"""
Interactive unsubscribe agent.

Drives a headless browser through an unknown unsubscribe page:

    navigate -> [pre-verify -> plan -> execute -> post-verify] x rounds

Verification asks the planning service whether the page confirms the
unsubscribe (confidence >= 0.6) and falls back to a keyword check when the
service gives no answer. The attempt deadline is checked before every stage
of a round and caps each planning call. Every step is appended to a trace
that is returned with the result, and the browser session is closed on every
exit path.
"""

import json
import time
from typing import Callable, List, Optional
from urllib.parse import urlparse

from ...config import Config
from ...unsubscribe.constants import (
    HTTP_SCHEMES, VERIFY_CONFIDENCE_THRESHOLD, PAGE_TEXT_HEAD_LENGTH,
    NAVIGATION_IDLE_TIMEOUT_MS, POST_ACTION_IDLE_TIMEOUT_MS,
    ERROR_INVALID_URL, ERROR_OPENAI_NOT_CONFIGURED, ERROR_PLAYWRIGHT_NOT_INSTALLED,
    ERROR_AI_PLAN_UNAVAILABLE, ERROR_AGENT_NOT_CONFIRMED, ERROR_AGENT_TIMEOUT
)
from ...unsubscribe.exceptions import CapabilityUnavailableError
from ...unsubscribe.logging import UnsubscribeLogger
from ...unsubscribe.types import AgentResult, AgentStep
from .actions import execute_action
from .browser import open_browser_session
from .controls import build_control_snapshot
from .page_text import capture_page_text, looks_unsubscribed, PageText
from .planner import PlanningService


def is_safe_http_url(url: Optional[str]) -> bool:
    """Only absolute http(s) URLs with a host are navigated to."""
    if not url:
        return False
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False
    return parsed.scheme.lower() in HTTP_SCHEMES and bool(parsed.netloc)


def _dumps(data) -> str:
    return json.dumps(data, default=str)


class _AgentRun:
    """State of one attempt against one live page."""

    def __init__(self, agent: 'InteractiveUnsubscribeAgent', page, url: str,
                 user_email: Optional[str], deadline: float, steps: List[AgentStep]):
        self.agent = agent
        self.page = page
        self.url = url
        self.user_email = user_email
        self.deadline = deadline
        self.steps = steps

    def step(self, step_type: str, detail=None):
        if detail is not None and not isinstance(detail, str):
            detail = _dumps(detail)
        self.steps.append(AgentStep(type=step_type, detail=detail))

    def current_url(self) -> Optional[str]:
        try:
            url = self.page.url
        except Exception:
            return None
        return url if isinstance(url, str) else None

    def _wait_for_idle(self, timeout_ms: int):
        try:
            self.page.wait_for_load_state('networkidle', timeout=timeout_ms)
        except Exception:
            # No network-idle signal within the bound
            pass

    def _title(self) -> Optional[str]:
        try:
            title = self.page.title()
        except Exception:
            return None
        return title if isinstance(title, str) else None

    def success(self) -> AgentResult:
        self.agent.logger.info("Agent confirmed unsubscribe", {'url': self.url, 'steps': len(self.steps)})
        return AgentResult(ok=True, steps=self.steps, final_url=self.current_url())

    def failure(self, error: str) -> AgentResult:
        self.agent.logger.info("Agent did not unsubscribe", {'url': self.url, 'error': error})
        return AgentResult(ok=False, steps=self.steps, error=error, final_url=self.current_url())

    def navigate(self):
        self.step('goto', self.url)
        try:
            response = self.page.goto(self.url, wait_until='domcontentloaded')
        except Exception as e:
            self.step('nav', {'status': None, 'url': self.current_url(), 'title': None, 'error': str(e)})
            raise
        self._wait_for_idle(NAVIGATION_IDLE_TIMEOUT_MS)
        self.step('nav', {
            'status': getattr(response, 'status', None) if response is not None else None,
            'url': self.current_url(),
            'title': self._title(),
        })

    def snapshot(self, step_type: str, round_number: int) -> PageText:
        page_text = capture_page_text(self.page)
        detail = {
            'round': round_number,
            'source': page_text.source,
            'textLen': len(page_text.text),
            'textHead': page_text.text[:PAGE_TEXT_HEAD_LENGTH],
            'url': self.current_url(),
        }
        if page_text.html_snippet is not None:
            detail['htmlSnippet'] = page_text.html_snippet
        self.step(step_type, detail)
        return page_text

    def verify(self, page_text: PageText, phase: str) -> bool:
        """Confirm via the planning service, or the keyword check if it gives no answer."""
        result = self.agent.planner.verify_unsubscribed(
            url=self.current_url() or self.url,
            page_text=page_text.text,
            user_email=self.user_email,
            timeout=self.remaining(),
        )
        if result is not None:
            self.step(f'ai_{phase}', result.to_dict())
            return result.unsubscribed and result.confidence >= VERIFY_CONFIDENCE_THRESHOLD

        matched = looks_unsubscribed(page_text.text)
        self.step(f'heuristic_{phase}', 'true' if matched else 'false')
        return matched

    def remaining(self) -> float:
        return max(0.0, self.deadline - self.agent.clock())

    def timed_out(self, round_number: int, stage: str) -> bool:
        """True, with a ``timeout`` step recorded, once the attempt budget is spent."""
        if self.agent.clock() < self.deadline:
            return False
        self.step('timeout', {'round': round_number, 'stage': stage})
        return True

    def run(self) -> AgentResult:
        self.navigate()

        for round_number in range(1, self.agent.max_rounds + 1):
            if self.timed_out(round_number, 'preverify'):
                return self.failure(ERROR_AGENT_TIMEOUT)

            page_text = self.snapshot('page_snapshot', round_number)
            if self.verify(page_text, 'preverify'):
                return self.success()

            if self.timed_out(round_number, 'plan'):
                return self.failure(ERROR_AGENT_TIMEOUT)

            arena = build_control_snapshot(self.page, round_number)
            self.step('controls', {'round': round_number, 'count': len(arena)})

            plan = self.agent.planner.suggest_actions(
                url=self.current_url() or self.url,
                page_text=page_text.text,
                user_email=self.user_email,
                controls=arena.snapshots(),
                timeout=self.remaining(),
            )
            if plan is not None:
                missing = arena.missing_targets(plan.target_ids())
                if missing:
                    self.step('ai_plan_rejected', {'round': round_number, 'unknown_targets': missing})
                    plan = None
            if plan is None:
                return self.failure(ERROR_AI_PLAN_UNAVAILABLE)

            self.step('ai_plan', {
                'round': round_number,
                'actions': [action.to_dict() for action in plan.actions],
            })
            for action in plan.actions:
                if self.timed_out(round_number, 'action'):
                    return self.failure(ERROR_AGENT_TIMEOUT)
                self.step('ai_action', action.to_dict())
                result = execute_action(self.page, action, arena)
                if not result.ok:
                    self.agent.logger.debug("Agent action failed", result.to_dict())
                    self.step('ai_action_failed', result.to_dict())

            self._wait_for_idle(POST_ACTION_IDLE_TIMEOUT_MS)
            if self.timed_out(round_number, 'verify'):
                return self.failure(ERROR_AGENT_TIMEOUT)

            after_text = self.snapshot('page_snapshot_after', round_number)
            if self.verify(after_text, 'verify'):
                return self.success()

        return self.failure(ERROR_AGENT_NOT_CONFIRMED)


class InteractiveUnsubscribeAgent:
    """Unsubscribe through an unknown page with planned browser actions."""

    def __init__(
        self,
        planner: Optional[PlanningService] = None,
        browser_factory: Optional[Callable] = None,
        timeout: Optional[float] = None,
        max_rounds: Optional[int] = None,
        user_agent: Optional[str] = None,
        headless: Optional[bool] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the agent.

        Args:
            planner: Planning/verification service (defaults to PlanningService())
            browser_factory: Context manager factory yielding a page; called with
                user_agent, timeout_ms and headless (defaults to open_browser_session)
            timeout: Per-attempt budget in seconds (defaults to AGENT_TIMEOUT)
            max_rounds: Plan/execute/verify rounds (defaults to AGENT_MAX_ROUNDS)
            user_agent: User-Agent of the browser context
            headless: Run the browser headless
            clock: Monotonic clock used for the attempt deadline
        """
        self.planner = planner if planner is not None else PlanningService()
        self.browser_factory = browser_factory or open_browser_session
        self.timeout = timeout if timeout is not None else Config.AGENT_TIMEOUT
        self.max_rounds = max_rounds if max_rounds is not None else Config.AGENT_MAX_ROUNDS
        self.user_agent = user_agent or Config.AGENT_USER_AGENT
        self.headless = Config.AGENT_HEADLESS if headless is None else headless
        self.clock = clock
        self.logger = UnsubscribeLogger("agent")

    def attempt(self, url: str, user_email: Optional[str] = None,
                timeout: Optional[float] = None) -> AgentResult:
        """
        Try to unsubscribe via the page at ``url``. Never raises.

        Args:
            url: HTTP(S) unsubscribe page
            user_email: Mailbox address offered to the planner for email fields
            timeout: Cap for this attempt; never extends the agent's own timeout

        Returns:
            AgentResult with ok, error code, final URL and the step trace
        """
        steps: List[AgentStep] = []

        if not is_safe_http_url(url):
            return AgentResult(ok=False, steps=steps, error=ERROR_INVALID_URL)

        if not self.planner.available:
            steps.append(AgentStep(type='openai_not_configured'))
            return AgentResult(ok=False, steps=steps, error=ERROR_OPENAI_NOT_CONFIGURED)

        timeout = self.timeout if timeout is None else max(0.0, min(timeout, self.timeout))
        deadline = self.clock() + timeout
        run = None

        with self.logger.scoped_context({'url': url}):
            try:
                with self.browser_factory(
                    user_agent=self.user_agent,
                    timeout_ms=max(1, int(timeout * 1000)),
                    headless=self.headless,
                ) as page:
                    run = _AgentRun(self, page, url, user_email, deadline, steps)
                    result = run.run()
                self.logger.log_operation_count('agent_attempt', result.ok)
                return result
            except CapabilityUnavailableError as e:
                self.logger.warning("Agent capability unavailable", {'error': str(e)})
                steps.append(AgentStep(type=e.error_code or 'capability_unavailable', detail=str(e)))
                self.logger.log_operation_count('agent_attempt', False)
                return AgentResult(
                    ok=False, steps=steps,
                    error=e.error_code or ERROR_PLAYWRIGHT_NOT_INSTALLED,
                )
            except Exception as e:
                self.logger.log_exception(e, {'url': url})
                self.logger.log_operation_count('agent_attempt', False)
                final_url = run.current_url() if run is not None else None
                return AgentResult(ok=False, steps=steps, error=str(e) or type(e).__name__, final_url=final_url)
