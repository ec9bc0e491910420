"""
Database models for the unsubscriber.
"""

from sqlalchemy import (
    Column, Integer, String, DateTime, Text, ForeignKey,
    create_engine, Index, event
)
from sqlalchemy.orm import relationship, sessionmaker, declarative_base
from sqlalchemy.sql import func

from ..unsubscribe.exceptions import AttemptRecordImmutableError

Base = declarative_base()

MESSAGE_STATUS_IMPORTED = 'imported'
MESSAGE_STATUS_UNSUBSCRIBED = 'unsubscribed'

ATTEMPT_STATUS_SUCCEEDED = 'succeeded'
ATTEMPT_STATUS_FAILED = 'failed'


class Account(Base):
    """Mailbox owner; messages are only processed on behalf of their account."""
    __tablename__ = 'accounts'

    id = Column(Integer, primary_key=True)
    email_address = Column(String(255), unique=True, nullable=False)
    created_at = Column(DateTime, default=func.now())

    # Relationships
    email_messages = relationship("EmailMessage", back_populates="account", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Account(email='{self.email_address}')>"


class EmailMessage(Base):
    """A stored email message with the fields needed to resolve its unsubscribe mechanism."""
    __tablename__ = 'email_messages'

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey('accounts.id'), nullable=False)
    message_id = Column(String(255))  # Email Message-ID header
    sender_email = Column(String(255))
    sender_name = Column(String(255))
    subject = Column(Text)
    date_sent = Column(DateTime)
    list_unsubscribe = Column(Text)       # Raw List-Unsubscribe header
    list_unsubscribe_post = Column(Text)  # Raw List-Unsubscribe-Post header
    body_text = Column(Text)
    body_html = Column(Text)
    status = Column(String(50), default=MESSAGE_STATUS_IMPORTED)  # imported, unsubscribed
    # Cached UnsubscribeLinks JSON, written on first extraction
    unsubscribe_links_found = Column(Text, nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    account = relationship("Account", back_populates="email_messages")
    unsubscribe_attempts = relationship("UnsubscribeAttempt", back_populates="email_message", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_account_message_id', 'account_id', 'message_id'),
        Index('idx_message_status', 'status'),
    )

    @property
    def has_unsubscribe_header(self) -> bool:
        return bool(self.list_unsubscribe and self.list_unsubscribe.strip())

    def __repr__(self):
        subject = (self.subject or '')[:50]
        return f"<EmailMessage(sender='{self.sender_email}', subject='{subject}...')>"


class UnsubscribeAttempt(Base):
    """Append-only audit record of one unsubscribe attempt for one message."""
    __tablename__ = 'unsubscribe_attempts'

    id = Column(Integer, primary_key=True)
    email_message_id = Column(Integer, ForeignKey('email_messages.id'), nullable=False)
    attempted_at = Column(DateTime, default=func.now())
    method_used = Column(String(50), nullable=False)  # one_click_post, agent, mailto, none
    status = Column(String(50), nullable=False)  # succeeded, failed
    response_code = Column(Integer)
    error_message = Column(Text)
    details = Column(Text)  # JSON diagnostics (status code, final URL, step trace, error code)

    # Relationships
    email_message = relationship("EmailMessage", back_populates="unsubscribe_attempts")

    __table_args__ = (
        Index('idx_attempt_message', 'email_message_id', 'attempted_at'),
    )

    @property
    def succeeded(self) -> bool:
        return self.status == ATTEMPT_STATUS_SUCCEEDED

    def __repr__(self):
        return f"<UnsubscribeAttempt(email_message_id={self.email_message_id}, method='{self.method_used}', status='{self.status}')>"


@event.listens_for(UnsubscribeAttempt, 'before_update')
def _reject_attempt_update(mapper, connection, target):
    raise AttemptRecordImmutableError(
        "Unsubscribe attempts are append-only",
        attempt_id=target.id,
    )


def create_database_engine(database_url: str = "sqlite:///unsubscriber.db"):
    """Create and return a database engine."""
    engine = create_engine(
        database_url,
        echo=False,  # Set to True for SQL debugging
        pool_pre_ping=True,
        connect_args={"check_same_thread": False} if database_url.startswith("sqlite") else {}
    )
    return engine


def create_tables(engine):
    """Create all tables in the database."""
    Base.metadata.create_all(engine)


def get_session_maker(engine):
    """Get a session maker for the database."""
    return sessionmaker(bind=engine)
