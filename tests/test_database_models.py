"""
Tests for the database models and the unsubscribe store.
"""

import json

import pytest

from unsubscriber.database import DatabaseManager
from unsubscriber.database.models import Account, EmailMessage, UnsubscribeAttempt
from unsubscriber.database.store import UnsubscribeStore
from unsubscriber.unsubscribe.exceptions import AttemptRecordImmutableError, ProcessingError
from unsubscriber.unsubscribe.types import UnsubscribeLinks


def test_database_models():
    """Models can be created and related through the manager's sessions."""
    db_manager = DatabaseManager("sqlite:///:memory:")
    db_manager.initialize_database()

    with db_manager.get_session() as session:
        account = Account(email_address="test@example.com")
        session.add(account)
        session.commit()
        session.refresh(account)

        assert account.id is not None

        message = EmailMessage(
            account_id=account.id,
            message_id="<test-message-id@example.com>",
            sender_email="sender@example.com",
            subject="Test Subject",
            list_unsubscribe="<https://example.com/u>",
        )
        session.add(message)
        session.commit()

        assert len(account.email_messages) == 1
        assert account.email_messages[0].subject == "Test Subject"
        assert message.status == 'imported'
        assert message.has_unsubscribe_header is True


class TestAttemptRecords:

    def test_attempts_are_append_only(self, session, make_message):
        message = make_message()
        attempt = UnsubscribeStore(session).record_attempt(message.id, 'none', success=False,
                                                           error_message='no_unsubscribe_link_found')

        attempt.status = 'succeeded'
        with pytest.raises(AttemptRecordImmutableError):
            session.commit()
        session.rollback()

        session.refresh(attempt)
        assert attempt.status == 'failed'

    def test_record_attempt_serializes_details(self, session, make_message):
        message = make_message()
        store = UnsubscribeStore(session)

        attempt = store.record_attempt(message.id, 'one_click_post', success=True, response_code=202,
                                       details={'url': 'https://example.com/u', 'status': 202})

        assert attempt.succeeded is True
        assert attempt.response_code == 202
        assert json.loads(attempt.details) == {'url': 'https://example.com/u', 'status': 202}

    def test_list_attempts_in_insertion_order(self, session, make_message):
        message = make_message()
        store = UnsubscribeStore(session)
        store.record_attempt(message.id, 'one_click_post', success=False)
        store.record_attempt(message.id, 'agent', success=True)

        assert [a.method_used for a in store.list_attempts(message.id)] == ['one_click_post', 'agent']
        assert store.list_attempts(9999) == []


class TestUnsubscribeStore:

    def test_get_message_is_scoped_to_account(self, session, test_account, make_message):
        message = make_message()
        store = UnsubscribeStore(session)

        assert store.get_message(message.id, test_account.id) is message
        assert store.get_message(message.id, test_account.id + 1) is None
        assert store.get_message(message.id) is message

    def test_store_and_read_links(self, session, make_message):
        message = make_message()
        store = UnsubscribeStore(session)
        links = UnsubscribeLinks(http_links=['https://example.com/u'], list_unsubscribe_post='List-Unsubscribe=One-Click')

        assert store.get_stored_links(message) is None
        store.store_links(message, links)

        assert store.get_stored_links(message) == links

    @pytest.mark.parametrize('raw', ['not json', '[]', '{"http_links": [1], "mailto_links": [], "guessed_links": []}'])
    def test_malformed_links_read_as_missing(self, session, make_message, raw):
        message = make_message(unsubscribe_links_found=raw)

        assert UnsubscribeStore(session).get_stored_links(message) is None

    def test_attempt_and_message_status_commit_together(self, session, make_message):
        message = make_message()
        store = UnsubscribeStore(session)

        store.record_attempt(message.id, 'agent', success=True, message_status='unsubscribed')

        session.refresh(message)
        assert message.status == 'unsubscribed'
        assert len(store.list_attempts(message.id)) == 1

    def test_status_for_missing_message_records_nothing(self, session):
        store = UnsubscribeStore(session)

        with pytest.raises(ProcessingError):
            store.record_attempt(9999, 'agent', success=True, message_status='unsubscribed')

        session.rollback()
        assert session.query(UnsubscribeAttempt).count() == 0
