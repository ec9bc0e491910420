"""
Unsubscribe Orchestrator

Resolves a batch of stored messages one at a time:

1. Reuse the cached link extraction (or extract and cache it)
2. Try the one-click POST when the header signals it for the chosen link
3. Fall back to the interactive agent for any HTTP candidate
4. Record mailto-only and link-less messages as unsupported / not found

Every processed message gets exactly one attempt record and one outcome.
Failures are returned as outcomes; nothing raised while handling one message
stops the rest of the batch.
"""

import time
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ..config import Config
from ..config.settings import ONE_CLICK_POLICIES, ONE_CLICK_POLICY_ANY_HEADER_LINK
from ..database.models import Account, EmailMessage, MESSAGE_STATUS_UNSUBSCRIBED
from ..database.store import UnsubscribeStore
from ..unsubscribe.classifiers import OneClickClassifier
from ..unsubscribe.constants import (
    METHOD_ONE_CLICK_POST, METHOD_AGENT, METHOD_MAILTO, METHOD_NONE,
    ERROR_ONE_CLICK_FAILED, ERROR_MAILTO_NOT_SUPPORTED, ERROR_NO_LINK_FOUND,
    ERROR_MESSAGE_NOT_FOUND, ERROR_DEADLINE_EXCEEDED, ERROR_UNSUBSCRIBE_FAILED,
    error_category
)
from ..unsubscribe.exceptions import UnsubscribeExtractionError
from ..unsubscribe.extractors import UnsubscribeLinkExtractor
from ..unsubscribe.logging import UnsubscribeLogger
from ..unsubscribe.types import UnsubscribeLinks, UnsubscribeOutcome
from .agent import InteractiveUnsubscribeAgent
from .one_click_executor import OneClickExecutor


class UnsubscribeOrchestrator:
    """
    Pick and run the unsubscribe strategy for each message.

    Collaborators are injectable so tests can replace the network-facing
    pieces (one-click executor, agent) with fakes.
    """

    def __init__(
        self,
        session: Session,
        extractor: Optional[UnsubscribeLinkExtractor] = None,
        classifier: Optional[OneClickClassifier] = None,
        one_click_executor: Optional[OneClickExecutor] = None,
        agent: Optional[InteractiveUnsubscribeAgent] = None,
        one_click_policy: Optional[str] = None,
        rate_limit_delay: Optional[float] = None,
        dry_run: bool = False,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize orchestrator.

        Args:
            session: Database session
            extractor: Link extractor
            classifier: One-click classifier
            one_click_executor: Executor for the RFC 8058 POST
            agent: Interactive agent used as fallback
            one_click_policy: first_header_link or any_header_link (defaults to ONE_CLICK_POLICY)
            rate_limit_delay: Minimum seconds between messages (defaults to RATE_LIMIT_DELAY)
            dry_run: Resolve and report the strategy without executing or recording
            clock: Monotonic clock for deadlines and rate limiting
            sleep: Sleep function used by rate limiting
        """
        policy = one_click_policy or Config.ONE_CLICK_POLICY
        if policy not in ONE_CLICK_POLICIES:
            raise ValueError(f"Unknown one-click policy {policy!r}")

        self.session = session
        self.store = UnsubscribeStore(session)
        self.extractor = extractor or UnsubscribeLinkExtractor()
        self.classifier = classifier or OneClickClassifier()
        self.one_click_executor = one_click_executor or OneClickExecutor()
        self._agent = agent
        self.one_click_policy = policy
        self.rate_limit_delay = rate_limit_delay if rate_limit_delay is not None else Config.RATE_LIMIT_DELAY
        self.dry_run = dry_run
        self.clock = clock
        self.sleep = sleep
        self._last_message_time: Optional[float] = None
        self.logger = UnsubscribeLogger("orchestrator")

    @property
    def agent(self) -> InteractiveUnsubscribeAgent:
        # Built on first use so one-click-only batches never touch the planner config
        if self._agent is None:
            self._agent = InteractiveUnsubscribeAgent()
        return self._agent

    def run(self, account_id: int, message_ids: Iterable[int],
            deadline_seconds: Optional[float] = None) -> List[UnsubscribeOutcome]:
        """
        Resolve every message in ``message_ids`` on behalf of ``account_id``.

        Args:
            account_id: Owner of the messages; other accounts' messages are not found
            message_ids: Message ids, processed sequentially in the given order
            deadline_seconds: Overall budget; messages not started in time are expired

        Returns:
            One UnsubscribeOutcome per input id, in input order
        """
        message_ids = list(message_ids)
        deadline = self.clock() + deadline_seconds if deadline_seconds is not None else None
        account = self.session.query(Account).filter_by(id=account_id).first()
        user_email = account.email_address if account else None

        self.logger.info("Starting unsubscribe batch", {
            'account_id': account_id,
            'messages': len(message_ids),
            'dry_run': self.dry_run,
            'one_click_policy': self.one_click_policy,
        })

        outcomes = []
        for message_id in message_ids:
            with self.logger.scoped_context({'email_message_id': message_id}):
                outcome = self._run_one(account, message_id, user_email, deadline)
            self.logger.log_operation_count('message', outcome.ok)
            outcomes.append(outcome)

        succeeded = sum(1 for outcome in outcomes if outcome.ok)
        self.logger.info("Finished unsubscribe batch", {
            'account_id': account_id,
            'succeeded': succeeded,
            'failed': len(outcomes) - succeeded,
        })
        return outcomes

    def _run_one(self, account: Optional[Account], message_id: int,
                 user_email: Optional[str], deadline: Optional[float]) -> UnsubscribeOutcome:
        message = self.store.get_message(message_id, account.id) if account else None
        if message is None:
            self.logger.warning("Message not found for account", {'email_message_id': message_id})
            return UnsubscribeOutcome(id=message_id, ok=False, error=ERROR_MESSAGE_NOT_FOUND,
                                      dry_run=self.dry_run)

        if deadline is not None and self.clock() >= deadline:
            return self._expire(message)

        if not self.dry_run:
            self._apply_rate_limit()

        attempt = _MessageAttempt(self, message, user_email, deadline)
        try:
            with self.logger.time_operation('resolve_message'):
                return attempt.resolve()
        except Exception as e:
            return self._record_unexpected_failure(message, attempt.method, e)

    def _apply_rate_limit(self):
        """Keep at least ``rate_limit_delay`` seconds between message starts."""
        if self._last_message_time is not None:
            elapsed = self.clock() - self._last_message_time
            if elapsed < self.rate_limit_delay:
                self.sleep(self.rate_limit_delay - elapsed)

        self._last_message_time = self.clock()

    def _expire(self, message: EmailMessage) -> UnsubscribeOutcome:
        self.logger.warning("Deadline passed before message was started", {'email_message_id': message.id})
        if not self.dry_run:
            self.store.record_attempt(
                message.id, METHOD_NONE, success=False,
                error_message=ERROR_DEADLINE_EXCEEDED,
                details=_failure_details(ERROR_DEADLINE_EXCEEDED),
            )
        return UnsubscribeOutcome(id=message.id, ok=False, method=METHOD_NONE,
                                  error=ERROR_DEADLINE_EXCEEDED, dry_run=self.dry_run)

    def _record_unexpected_failure(self, message: EmailMessage, method: str,
                                   error: Exception) -> UnsubscribeOutcome:
        self.logger.log_exception(error, {'email_message_id': message.id, 'method': method})
        self.session.rollback()
        detail = str(error) or type(error).__name__

        if not self.dry_run:
            try:
                self.store.record_attempt(
                    message.id, method, success=False,
                    error_message=detail,
                    details={'error': ERROR_UNSUBSCRIBE_FAILED, 'category': error_category(ERROR_UNSUBSCRIBE_FAILED),
                             'exception': type(error).__name__},
                )
            except Exception as record_error:
                self.session.rollback()
                self.logger.log_exception(record_error, {'email_message_id': message.id,
                                                         'stage': 'record_attempt'})

        return UnsubscribeOutcome(id=message.id, ok=False, method=method,
                                  error=ERROR_UNSUBSCRIBE_FAILED, error_detail=detail,
                                  dry_run=self.dry_run)

    def resolve_links(self, message: EmailMessage) -> UnsubscribeLinks:
        """Cached extraction if well-formed, otherwise extract (and cache unless dry-run)."""
        links = self.store.get_stored_links(message)
        if links is not None:
            return links

        try:
            links = self.extractor.extract(
                list_unsubscribe=message.list_unsubscribe,
                body_text=message.body_text,
                body_html=message.body_html,
                list_unsubscribe_post=message.list_unsubscribe_post,
            )
        except Exception as e:
            raise UnsubscribeExtractionError(
                f"Link extraction failed: {e}", context={'email_message_id': message.id}
            ) from e
        if not self.dry_run:
            self.store.store_links(message, links)
        return links

    def one_click_urls(self, links: UnsubscribeLinks, candidate: Optional[str]) -> List[str]:
        """Header URLs to try with the one-click POST, in order."""
        post_header = links.list_unsubscribe_post
        if candidate is None or not self.classifier.is_one_click(post_header):
            return []
        if self.one_click_policy == ONE_CLICK_POLICY_ANY_HEADER_LINK:
            return list(links.http_links)

        url = self.classifier.one_click_url(links.http_links, post_header)
        return [url] if url is not None and url == candidate else []


def _failure_details(error: str, **extra) -> Dict[str, Any]:
    details = {'error': error, 'category': error_category(error)}
    details.update(extra)
    return details


class _MessageAttempt:
    """The strategy chain for one message."""

    def __init__(self, orchestrator: UnsubscribeOrchestrator, message: EmailMessage,
                 user_email: Optional[str], deadline: Optional[float]):
        self.orchestrator = orchestrator
        self.store = orchestrator.store
        self.logger = orchestrator.logger
        self.message = message
        self.user_email = user_email
        self.deadline = deadline
        self.method = METHOD_NONE

    def _outcome(self, **fields) -> UnsubscribeOutcome:
        return UnsubscribeOutcome(id=self.message.id, dry_run=self.orchestrator.dry_run, **fields)

    def _remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - self.orchestrator.clock())

    def resolve(self) -> UnsubscribeOutcome:
        links = self.orchestrator.resolve_links(self.message)
        candidate = links.http_candidate
        one_click_urls = self.orchestrator.one_click_urls(links, candidate)

        if self.orchestrator.dry_run:
            return self._dry_run(links, candidate, one_click_urls)

        one_click_attempts = []
        for url in one_click_urls:
            self.method = METHOD_ONE_CLICK_POST
            result = self.orchestrator.one_click_executor.execute(url)
            if result.ok:
                return self._one_click_succeeded(result, one_click_attempts)
            self.logger.info("One-click failed, falling back", result.to_dict())
            one_click_attempts.append(dict(result.to_dict(), error_code=ERROR_ONE_CLICK_FAILED))

        if candidate is not None:
            return self._run_agent(candidate, one_click_attempts)

        mailto = links.mailto_candidate
        if mailto is not None:
            self.method = METHOD_MAILTO
            self.store.record_attempt(
                self.message.id, METHOD_MAILTO, success=False,
                error_message=ERROR_MAILTO_NOT_SUPPORTED,
                details=_failure_details(ERROR_MAILTO_NOT_SUPPORTED, url=mailto),
            )
            return self._outcome(ok=False, method=METHOD_MAILTO, url=mailto,
                                 error=ERROR_MAILTO_NOT_SUPPORTED)

        self.store.record_attempt(
            self.message.id, METHOD_NONE, success=False,
            error_message=ERROR_NO_LINK_FOUND,
            details=_failure_details(ERROR_NO_LINK_FOUND),
        )
        return self._outcome(ok=False, method=METHOD_NONE, error=ERROR_NO_LINK_FOUND)

    def _dry_run(self, links: UnsubscribeLinks, candidate: Optional[str],
                 one_click_urls: List[str]) -> UnsubscribeOutcome:
        if one_click_urls:
            return self._outcome(ok=True, method=METHOD_ONE_CLICK_POST, url=one_click_urls[0])
        if candidate is not None:
            return self._outcome(ok=True, method=METHOD_AGENT, url=candidate)
        if links.mailto_candidate is not None:
            return self._outcome(ok=False, method=METHOD_MAILTO, url=links.mailto_candidate,
                                 error=ERROR_MAILTO_NOT_SUPPORTED)
        return self._outcome(ok=False, method=METHOD_NONE, error=ERROR_NO_LINK_FOUND)

    def _one_click_succeeded(self, result, one_click_attempts) -> UnsubscribeOutcome:
        details = {'url': result.url, 'status': result.status}
        if one_click_attempts:
            details['one_click'] = one_click_attempts
        self.store.record_attempt(
            self.message.id, METHOD_ONE_CLICK_POST, success=True,
            response_code=result.status, details=details,
            message_status=MESSAGE_STATUS_UNSUBSCRIBED,
        )
        self.logger.info("Unsubscribed with one-click POST", {'url': result.url, 'status': result.status})
        return self._outcome(ok=True, method=METHOD_ONE_CLICK_POST, url=result.url, status=result.status)

    def _run_agent(self, url: str, one_click_attempts) -> UnsubscribeOutcome:
        self.method = METHOD_AGENT
        remaining = self._remaining()
        if remaining is not None and remaining <= 0:
            return self._deadline_passed(url, one_click_attempts)

        result = self.orchestrator.agent.attempt(url, user_email=self.user_email, timeout=remaining)

        details = {
            'url': url,
            'final_url': result.final_url,
            'steps': [step.to_dict() for step in result.steps],
        }
        if result.error:
            details['error'] = result.error
            details['category'] = error_category(result.error)
        if one_click_attempts:
            details['one_click'] = one_click_attempts

        self.store.record_attempt(
            self.message.id, METHOD_AGENT, success=result.ok,
            error_message=result.error, details=details,
            message_status=MESSAGE_STATUS_UNSUBSCRIBED if result.ok else None,
        )

        return self._outcome(
            ok=result.ok,
            method=METHOD_AGENT,
            url=url,
            final_url=result.final_url,
            steps=list(result.steps),
            error=result.error,
        )

    def _deadline_passed(self, url: str, one_click_attempts) -> UnsubscribeOutcome:
        """The batch deadline ran out before the agent could start."""
        self.logger.warning("Deadline passed before agent could start", {'url': url})
        details = _failure_details(ERROR_DEADLINE_EXCEEDED, url=url)
        if one_click_attempts:
            details['one_click'] = one_click_attempts
        self.store.record_attempt(
            self.message.id, METHOD_AGENT, success=False,
            error_message=ERROR_DEADLINE_EXCEEDED, details=details,
        )
        return self._outcome(ok=False, method=METHOD_AGENT, url=url, error=ERROR_DEADLINE_EXCEEDED)
