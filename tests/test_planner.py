"""
Tests for the planning/verification service.

The OpenAI client is replaced with a mock; no network access.
"""

import pytest
from unittest.mock import MagicMock, Mock

import httpx
from openai import APIConnectionError

from unsubscriber.unsubscribe.constants import ERROR_OPENAI_NOT_CONFIGURED
from unsubscriber.unsubscribe.exceptions import CapabilityUnavailableError
from unsubscriber.unsubscribe_executor.agent.controls import ControlSnapshot
from unsubscriber.unsubscribe_executor.agent.planner import (
    PlanningService, parse_json_best_effort, build_plan_prompt
)


def _client_replying(*contents):
    client = MagicMock()
    client.chat.completions.create.side_effect = [
        Mock(choices=[Mock(message=Mock(content=content))]) for content in contents
    ]
    return client


class TestParseJsonBestEffort:

    def test_bare_json(self):
        assert parse_json_best_effort('{"a": 1}') == {'a': 1}

    def test_fenced_json(self):
        reply = 'Here you go:\n```json\n{"unsubscribed": true, "confidence": 0.8}\n```'
        assert parse_json_best_effort(reply) == {'unsubscribed': True, 'confidence': 0.8}

    def test_unlabelled_fence(self):
        assert parse_json_best_effort('```\n[1, 2]\n```') == [1, 2]

    @pytest.mark.parametrize('reply', [None, '', 'I cannot help with that', '```json\nnot json\n```'])
    def test_unparseable(self, reply):
        assert parse_json_best_effort(reply) is None


class TestPlanPrompt:

    def test_prompt_lists_controls_and_truncates_text(self):
        controls = [ControlSnapshot(id='button:0', kind='button', text='Unsubscribe', tag='button')]
        prompt = build_plan_prompt('https://example.com/u', 'x' * 10000, 'me@example.com', controls)

        assert '- id=button:0 | kind=button | text="Unsubscribe"' in prompt
        assert 'USER_EMAIL (use if needed): me@example.com' in prompt
        assert 'x' * 6000 in prompt
        assert 'x' * 6001 not in prompt

    def test_prompt_without_controls_or_email(self):
        prompt = build_plan_prompt('https://example.com/u', 'text', None, [])

        assert '(none)' in prompt
        assert '(unknown)' in prompt


class TestPlanningService:

    def test_unavailable_without_key(self):
        service = PlanningService(api_key='')

        assert service.available is False
        with pytest.raises(CapabilityUnavailableError) as exc_info:
            service.suggest_actions('https://example.com', 'text', None, [])
        assert exc_info.value.error_code == ERROR_OPENAI_NOT_CONFIGURED

    def test_suggest_actions_parses_plan(self):
        client = _client_replying('{"actions": [{"type": "click", "targetId": "button:0"}]}')
        service = PlanningService(api_key='sk-test', model='test-model', client=client)

        plan = service.suggest_actions('https://example.com', 'text', 'me@example.com', [])

        assert plan is not None
        assert plan.target_ids() == ['button:0']
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs['model'] == 'test-model'
        assert kwargs['temperature'] == 0
        assert kwargs['messages'][0]['role'] == 'user'

    @pytest.mark.parametrize('reply', [
        'no json here',
        '{"actions": []}',
        '{"actions": [{"type": "teleport"}]}',
    ])
    def test_suggest_actions_returns_none_for_bad_replies(self, reply):
        service = PlanningService(api_key='sk-test', client=_client_replying(reply))

        assert service.suggest_actions('https://example.com', 'text', None, []) is None

    def test_verify_fenced_reply(self):
        reply = '```json\n{"unsubscribed": true, "confidence": 0.9, "reason": "confirmation shown"}\n```'
        service = PlanningService(api_key='sk-test', client=_client_replying(reply))

        result = service.verify_unsubscribed('https://example.com', 'Done', None)

        assert result.unsubscribed is True
        assert result.confidence == 0.9
        assert result.reason == 'confirmation shown'

    @pytest.mark.parametrize('reply', [
        '{"unsubscribed": "yes", "confidence": 0.9}',
        '{"unsubscribed": true, "confidence": 1.5}',
        '{"unsubscribed": true}',
        'maybe',
    ])
    def test_verify_schema_violations_are_no_answer(self, reply):
        service = PlanningService(api_key='sk-test', client=_client_replying(reply))

        assert service.verify_unsubscribed('https://example.com', 'text', None) is None

    def test_api_errors_are_no_answer(self):
        client = MagicMock()
        client.chat.completions.create.side_effect = APIConnectionError(
            request=httpx.Request('POST', 'https://api.openai.com/v1/chat/completions')
        )
        service = PlanningService(api_key='sk-test', client=client)

        assert service.verify_unsubscribed('https://example.com', 'text', None) is None
        assert service.suggest_actions('https://example.com', 'text', None, []) is None

    def test_call_timeout_is_capped_by_caller_budget(self):
        client = MagicMock()
        scoped = client.with_options.return_value
        scoped.chat.completions.create.return_value = Mock(
            choices=[Mock(message=Mock(content='{"unsubscribed": false, "confidence": 0.9}'))]
        )
        service = PlanningService(api_key='sk-test', timeout=30, client=client)

        result = service.verify_unsubscribed('https://example.com', 'text', None, timeout=4.5)

        assert result.unsubscribed is False
        client.with_options.assert_called_once_with(timeout=4.5)
        client.chat.completions.create.assert_not_called()

    def test_call_timeout_never_exceeds_service_timeout(self):
        client = MagicMock()
        client.with_options.return_value.chat.completions.create.return_value = Mock(
            choices=[Mock(message=Mock(content='{"actions": [{"type": "wait", "ms": 10}]}'))]
        )
        service = PlanningService(api_key='sk-test', timeout=30, client=client)

        plan = service.suggest_actions('https://example.com', 'text', None, [], timeout=120)

        assert plan is not None
        client.with_options.assert_called_once_with(timeout=30)
