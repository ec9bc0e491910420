"""
Tests for the unsubscribe orchestrator.

One-click executor and agent are mocks; persistence is a real in-memory
database so attempt records and status updates are checked end to end.
"""

import json
from unittest.mock import Mock, patch

import pytest

from unsubscriber.database.models import Account, UnsubscribeAttempt
from unsubscriber.unsubscribe.constants import (
    ERROR_NO_LINK_FOUND, ERROR_MAILTO_NOT_SUPPORTED, ERROR_MESSAGE_NOT_FOUND,
    ERROR_AGENT_NOT_CONFIRMED, ERROR_DEADLINE_EXCEEDED, ERROR_UNSUBSCRIBE_FAILED
)
from unsubscriber.unsubscribe.types import AgentResult, AgentStep, OneClickResult, UnsubscribeLinks
from unsubscriber.unsubscribe_executor.orchestrator import UnsubscribeOrchestrator

ONE_CLICK = 'List-Unsubscribe=One-Click'
HEADER = '<https://sender.example/unsub/1>, <mailto:leave@sender.example>'
HEADER_URL = 'https://sender.example/unsub/1'


def _one_click(status):
    executor = Mock()
    executor.execute.side_effect = lambda url, timeout=None: OneClickResult(
        ok=200 <= status < 400, url=url, status=status
    )
    return executor


def _agent(ok=True, error=None):
    agent = Mock()
    agent.attempt.return_value = AgentResult(
        ok=ok,
        error=error,
        final_url='https://sender.example/done',
        steps=[AgentStep(type='goto', detail='https://sender.example/unsub/1')],
    )
    return agent


def _orchestrator(session, one_click=None, agent=None, **kwargs):
    kwargs.setdefault('rate_limit_delay', 0)
    return UnsubscribeOrchestrator(
        session,
        one_click_executor=one_click or _one_click(200),
        agent=agent or _agent(),
        **kwargs
    )


def _attempts(session, message_id):
    return session.query(UnsubscribeAttempt).filter_by(email_message_id=message_id).all()


class TestStrategySelection:

    def test_no_links(self, session, test_account, make_message):
        message = make_message(body_text='Thanks for reading')
        agent = _agent()

        [outcome] = _orchestrator(session, agent=agent).run(test_account.id, [message.id])

        assert outcome.to_dict() == {'id': message.id, 'ok': False, 'method': 'none', 'error': ERROR_NO_LINK_FOUND}
        agent.attempt.assert_not_called()
        [attempt] = _attempts(session, message.id)
        assert attempt.method_used == 'none'
        assert attempt.status == 'failed'
        assert attempt.error_message == ERROR_NO_LINK_FOUND
        assert json.loads(attempt.details)['category'] == 'no_mechanism_found'

    def test_mailto_only(self, session, test_account, make_message):
        message = make_message(list_unsubscribe='<mailto:leave@sender.example?subject=unsubscribe>')

        [outcome] = _orchestrator(session).run(test_account.id, [message.id])

        assert outcome.ok is False
        assert outcome.method == 'mailto'
        assert outcome.error == ERROR_MAILTO_NOT_SUPPORTED
        assert outcome.url == 'mailto:leave@sender.example?subject=unsubscribe'
        [attempt] = _attempts(session, message.id)
        assert attempt.method_used == 'mailto'
        assert attempt.status == 'failed'

    def test_one_click_success_skips_agent(self, session, test_account, make_message):
        message = make_message(list_unsubscribe=HEADER, list_unsubscribe_post=ONE_CLICK)
        one_click = _one_click(200)
        agent = _agent()

        [outcome] = _orchestrator(session, one_click=one_click, agent=agent).run(test_account.id, [message.id])

        assert outcome.ok is True
        assert outcome.method == 'one_click_post'
        assert outcome.url == HEADER_URL
        assert outcome.status == 200
        one_click.execute.assert_called_once_with(HEADER_URL)
        agent.attempt.assert_not_called()

        session.refresh(message)
        assert message.status == 'unsubscribed'
        [attempt] = _attempts(session, message.id)
        assert attempt.method_used == 'one_click_post'
        assert attempt.status == 'succeeded'
        assert attempt.response_code == 200

    def test_one_click_failure_falls_back_to_agent(self, session, test_account, make_message):
        message = make_message(list_unsubscribe=HEADER, list_unsubscribe_post=ONE_CLICK)
        agent = _agent(ok=True)

        [outcome] = _orchestrator(session, one_click=_one_click(500), agent=agent).run(test_account.id, [message.id])

        agent.attempt.assert_called_once()
        assert agent.attempt.call_args.args[0] == HEADER_URL
        assert agent.attempt.call_args.kwargs['user_email'] == 'test@example.com'
        assert outcome.ok is True
        assert outcome.method == 'agent'
        assert outcome.final_url == 'https://sender.example/done'
        assert [step.type for step in outcome.steps] == ['goto']

        [attempt] = _attempts(session, message.id)
        assert attempt.method_used == 'agent'
        details = json.loads(attempt.details)
        assert details['one_click'][0]['status'] == 500
        assert details['one_click'][0]['error_code'] == 'one_click_post_failed'
        session.refresh(message)
        assert message.status == 'unsubscribed'

    def test_agent_without_one_click_header(self, session, test_account, make_message):
        message = make_message(list_unsubscribe='<https://sender.example/prefs>')
        one_click = _one_click(200)
        agent = _agent(ok=False, error=ERROR_AGENT_NOT_CONFIRMED)

        [outcome] = _orchestrator(session, one_click=one_click, agent=agent).run(test_account.id, [message.id])

        one_click.execute.assert_not_called()
        assert outcome.ok is False
        assert outcome.method == 'agent'
        assert outcome.error == ERROR_AGENT_NOT_CONFIRMED
        session.refresh(message)
        assert message.status == 'imported'
        [attempt] = _attempts(session, message.id)
        assert json.loads(attempt.details)['category'] == 'verification_inconclusive'

    def test_body_guess_goes_to_agent_not_one_click(self, session, test_account, make_message):
        message = make_message(
            list_unsubscribe_post=ONE_CLICK,
            body_html='<p>Stop emails: https://sender.example/unsubscribe?u=5</p>',
        )
        one_click = _one_click(200)
        agent = _agent()

        [outcome] = _orchestrator(session, one_click=one_click, agent=agent).run(test_account.id, [message.id])

        one_click.execute.assert_not_called()
        assert outcome.method == 'agent'
        assert outcome.url == 'https://sender.example/unsubscribe?u=5'

    def test_link_only_in_anchor_href_is_not_found(self, session, test_account, make_message):
        message = make_message(
            body_html='<a href="https://sender.example/unsubscribe?u=1">Click here</a>',
        )
        agent = _agent()

        [outcome] = _orchestrator(session, agent=agent).run(test_account.id, [message.id])

        agent.attempt.assert_not_called()
        assert outcome.ok is False
        assert outcome.method == 'none'
        assert outcome.error == ERROR_NO_LINK_FOUND

    def test_any_header_link_policy_tries_every_header_link(self, session, test_account, make_message):
        message = make_message(
            list_unsubscribe='<https://a.example/u>, <https://b.example/u>',
            list_unsubscribe_post=ONE_CLICK,
        )
        one_click = Mock()
        one_click.execute.side_effect = [
            OneClickResult(ok=False, url='https://a.example/u', status=404),
            OneClickResult(ok=True, url='https://b.example/u', status=200),
        ]

        [outcome] = _orchestrator(
            session, one_click=one_click, one_click_policy='any_header_link'
        ).run(test_account.id, [message.id])

        assert outcome.ok is True
        assert outcome.url == 'https://b.example/u'
        assert one_click.execute.call_count == 2
        [attempt] = _attempts(session, message.id)
        assert json.loads(attempt.details)['one_click'][0]['status'] == 404

    def test_unknown_policy_is_rejected(self, session):
        with pytest.raises(ValueError):
            _orchestrator(session, one_click_policy='every_link')


class TestLinkCache:

    def test_extraction_is_cached(self, session, test_account, make_message):
        message = make_message(list_unsubscribe='<https://sender.example/prefs>')

        _orchestrator(session).run(test_account.id, [message.id])

        session.refresh(message)
        cached = UnsubscribeLinks.from_dict(json.loads(message.unsubscribe_links_found))
        assert cached.http_links == ['https://sender.example/prefs']

    def test_stored_extraction_is_reused(self, session, test_account, make_message):
        stored = UnsubscribeLinks(http_links=['https://cached.example/u'])
        message = make_message(
            list_unsubscribe='<https://header.example/u>',
            unsubscribe_links_found=json.dumps(stored.to_dict()),
        )
        agent = _agent()

        _orchestrator(session, agent=agent).run(test_account.id, [message.id])

        assert agent.attempt.call_args.args[0] == 'https://cached.example/u'

    def test_malformed_stored_extraction_is_recomputed(self, session, test_account, make_message):
        message = make_message(
            list_unsubscribe='<https://header.example/u>',
            unsubscribe_links_found='{"http_links": "oops"}',
        )
        agent = _agent()

        _orchestrator(session, agent=agent).run(test_account.id, [message.id])

        assert agent.attempt.call_args.args[0] == 'https://header.example/u'
        session.refresh(message)
        assert json.loads(message.unsubscribe_links_found)['http_links'] == ['https://header.example/u']


class TestBatchBehaviour:

    def test_one_failing_message_does_not_stop_the_batch(self, session, test_account, make_message):
        first = make_message(list_unsubscribe='<https://one.example/u>')
        second = make_message(list_unsubscribe='<https://two.example/u>')
        agent = Mock()
        agent.attempt.side_effect = [
            RuntimeError('browser crashed'),
            AgentResult(ok=True, final_url='https://two.example/done'),
        ]

        outcomes = _orchestrator(session, agent=agent).run(test_account.id, [first.id, second.id])

        assert [outcome.id for outcome in outcomes] == [first.id, second.id]
        assert outcomes[0].ok is False
        assert outcomes[0].method == 'agent'
        assert outcomes[0].error == ERROR_UNSUBSCRIBE_FAILED
        assert outcomes[0].error_detail == 'browser crashed'
        assert outcomes[1].ok is True

        [failed] = _attempts(session, first.id)
        assert failed.status == 'failed'
        assert failed.error_message == 'browser crashed'

    def test_foreign_and_missing_messages_are_not_found(self, session, test_account, make_message):
        other = Account(email_address='someone-else@example.com')
        session.add(other)
        session.commit()
        foreign = make_message(account_id=other.id, list_unsubscribe='<https://x.example/u>')
        agent = _agent()

        outcomes = _orchestrator(session, agent=agent).run(test_account.id, [foreign.id, 9999])

        assert [outcome.error for outcome in outcomes] == [ERROR_MESSAGE_NOT_FOUND] * 2
        agent.attempt.assert_not_called()
        assert _attempts(session, foreign.id) == []

    def test_dry_run_has_no_side_effects(self, session, test_account, make_message):
        one_click_message = make_message(list_unsubscribe=HEADER, list_unsubscribe_post=ONE_CLICK)
        agent_message = make_message(list_unsubscribe='<https://sender.example/prefs>')
        one_click = _one_click(200)
        agent = _agent()

        outcomes = _orchestrator(session, one_click=one_click, agent=agent, dry_run=True).run(
            test_account.id, [one_click_message.id, agent_message.id]
        )

        assert [(o.method, o.dry_run) for o in outcomes] == [('one_click_post', True), ('agent', True)]
        one_click.execute.assert_not_called()
        agent.attempt.assert_not_called()
        assert session.query(UnsubscribeAttempt).count() == 0
        session.refresh(agent_message)
        assert agent_message.unsubscribe_links_found is None

    def test_overall_deadline_expires_remaining_messages(self, session, test_account, make_message):
        first = make_message(list_unsubscribe='<https://one.example/u>')
        second = make_message(list_unsubscribe='<https://two.example/u>')
        now = [0.0]
        agent = Mock()

        def slow_attempt(url, user_email=None, timeout=None):
            now[0] += 30.0
            return AgentResult(ok=False, error=ERROR_AGENT_NOT_CONFIRMED)
        agent.attempt.side_effect = slow_attempt

        outcomes = _orchestrator(session, agent=agent, clock=lambda: now[0]).run(
            test_account.id, [first.id, second.id], deadline_seconds=20
        )

        assert agent.attempt.call_args.kwargs['timeout'] == 20
        assert outcomes[1].error == ERROR_DEADLINE_EXCEEDED
        [expired] = _attempts(session, second.id)
        assert expired.error_message == ERROR_DEADLINE_EXCEEDED

    def test_rate_limit_sleeps_between_messages(self, session, test_account, make_message):
        first = make_message(body_text='nothing')
        second = make_message(body_text='nothing')
        sleep = Mock()

        _orchestrator(session, rate_limit_delay=2.0, clock=lambda: 100.0, sleep=sleep).run(
            test_account.id, [first.id, second.id]
        )

        sleep.assert_called_once_with(2.0)

    def test_extraction_failure_is_recorded(self, session, test_account, make_message):
        message = make_message(body_html='<p>x</p>')
        extractor = Mock()
        extractor.extract.side_effect = RuntimeError('parser exploded')

        [outcome] = _orchestrator(session, extractor=extractor).run(test_account.id, [message.id])

        assert outcome.ok is False
        assert outcome.method == 'none'
        assert outcome.error == ERROR_UNSUBSCRIBE_FAILED
        assert 'Link extraction failed: parser exploded' in outcome.error_detail
        [attempt] = _attempts(session, message.id)
        assert json.loads(attempt.details)['exception'] == 'UnsubscribeExtractionError'

    def test_deadline_passed_during_one_click_skips_agent(self, session, test_account, make_message):
        message = make_message(list_unsubscribe=HEADER, list_unsubscribe_post=ONE_CLICK)
        now = [0.0]
        one_click = Mock()

        def slow_post(url, timeout=None):
            now[0] += 25.0
            return OneClickResult(ok=False, url=url, status=None, error='Read timed out')
        one_click.execute.side_effect = slow_post
        agent = _agent()

        [outcome] = _orchestrator(session, one_click=one_click, agent=agent, clock=lambda: now[0]).run(
            test_account.id, [message.id], deadline_seconds=20
        )

        agent.attempt.assert_not_called()
        assert outcome.ok is False
        assert outcome.method == 'agent'
        assert outcome.error == ERROR_DEADLINE_EXCEEDED
        [attempt] = _attempts(session, message.id)
        assert attempt.error_message == ERROR_DEADLINE_EXCEEDED
        assert json.loads(attempt.details)['one_click'][0]['url'] == HEADER_URL

    def test_failed_commit_of_success_leaves_one_failed_attempt(self, session, test_account, make_message):
        message = make_message(list_unsubscribe=HEADER, list_unsubscribe_post=ONE_CLICK)
        real_commit = session.commit

        def commit():
            if any(isinstance(obj, UnsubscribeAttempt) and obj.status == 'succeeded' for obj in session.new):
                raise RuntimeError('database is locked')
            real_commit()

        with patch.object(session, 'commit', side_effect=commit):
            [outcome] = _orchestrator(session).run(test_account.id, [message.id])

        assert outcome.ok is False
        assert outcome.method == 'one_click_post'
        assert outcome.error_detail == 'database is locked'
        [attempt] = _attempts(session, message.id)
        assert attempt.status == 'failed'
        session.refresh(message)
        assert message.status == 'imported'
