"""
Shared fixtures: in-memory database, accounts and messages.
"""

import pytest

from unsubscriber.database.models import (
    Account, EmailMessage, create_database_engine, create_tables, get_session_maker
)


@pytest.fixture
def test_db():
    """Create in-memory test database."""
    engine = create_database_engine("sqlite:///:memory:")
    create_tables(engine)
    SessionMaker = get_session_maker(engine)
    return SessionMaker


@pytest.fixture
def session(test_db):
    """Create database session."""
    session = test_db()
    yield session
    session.close()


@pytest.fixture
def test_account(session):
    """Create test account."""
    account = Account(email_address='test@example.com')
    session.add(account)
    session.commit()
    return account


@pytest.fixture
def make_message(session, test_account):
    """Factory for stored messages of the test account."""
    def _make(**fields):
        fields.setdefault('account_id', test_account.id)
        fields.setdefault('sender_email', 'news@sender.example')
        fields.setdefault('subject', 'Weekly news')
        message = EmailMessage(**fields)
        session.add(message)
        session.commit()
        return message
    return _make
