"""
Email message intake.

Parses RFC 822 messages into the fields stored on ``EmailMessage``.
"""

from .message_parser import parse_email_bytes, import_message

__all__ = ['parse_email_bytes', 'import_message']
