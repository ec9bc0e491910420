"""
RFC 822 message parsing and storage.
"""

import email
from datetime import timezone
from email.message import Message
from email.utils import parsedate_to_datetime, parseaddr
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..database.models import Account, EmailMessage
from ..unsubscribe.logging import UnsubscribeLogger

logger = UnsubscribeLogger("message_parser")

# Bodies are truncated before storage
MAX_BODY_LENGTH = 200_000


def _decode_part(part: Message) -> str:
    payload = part.get_payload(decode=True)
    if payload is None:
        return ''
    charset = part.get_content_charset() or 'utf-8'
    try:
        return payload.decode(charset, errors='ignore')
    except LookupError:
        return payload.decode('utf-8', errors='ignore')


def _extract_bodies(email_msg: Message):
    """Return (text, html) concatenated across all non-attachment parts."""
    body_text, body_html = '', ''
    parts = email_msg.walk() if email_msg.is_multipart() else [email_msg]
    for part in parts:
        if part.is_multipart() or part.get_content_disposition() == 'attachment':
            continue
        content_type = part.get_content_type()
        if content_type == 'text/plain':
            body_text += _decode_part(part)
        elif content_type == 'text/html':
            body_html += _decode_part(part)
    return body_text[:MAX_BODY_LENGTH] or None, body_html[:MAX_BODY_LENGTH] or None


def _parse_date(date_header: Optional[str]):
    if not date_header:
        return None
    try:
        date_sent = parsedate_to_datetime(date_header)
    except (TypeError, ValueError):
        return None
    if date_sent.tzinfo is not None:
        date_sent = date_sent.astimezone(timezone.utc).replace(tzinfo=None)
    return date_sent


def _header(email_msg: Message, name: str) -> Optional[str]:
    value = email_msg.get(name)
    if value is None:
        return None
    # Unfold continuation lines of long headers
    return ' '.join(str(value).split()) or None


def parse_email_bytes(raw: bytes) -> Dict[str, Any]:
    """Parse a raw message into EmailMessage column values."""
    email_msg = email.message_from_bytes(raw)

    sender_name, sender_email = parseaddr(email_msg.get('From', ''))
    body_text, body_html = _extract_bodies(email_msg)

    return {
        'message_id': _header(email_msg, 'Message-ID'),
        'sender_email': sender_email.lower() if sender_email else None,
        'sender_name': sender_name.strip('"') or None,
        'subject': _header(email_msg, 'Subject'),
        'date_sent': _parse_date(email_msg.get('Date')),
        'list_unsubscribe': _header(email_msg, 'List-Unsubscribe'),
        'list_unsubscribe_post': _header(email_msg, 'List-Unsubscribe-Post'),
        'body_text': body_text,
        'body_html': body_html,
    }


def import_message(session: Session, account_email: str, raw: bytes) -> EmailMessage:
    """
    Store a raw message for an account, creating the account if needed.

    Args:
        session: Database session
        account_email: Mailbox address the message belongs to
        raw: RFC 822 bytes

    Returns:
        The persisted EmailMessage
    """
    account_email = account_email.strip().lower()
    account = session.query(Account).filter_by(email_address=account_email).first()
    if account is None:
        account = Account(email_address=account_email)
        session.add(account)
        session.flush()

    fields = parse_email_bytes(raw)
    message = EmailMessage(account_id=account.id, **fields)
    session.add(message)
    session.commit()

    logger.info("Imported email message", {
        'email_message_id': message.id,
        'account_id': account.id,
        'has_list_unsubscribe': message.has_unsubscribe_header,
    })
    return message
