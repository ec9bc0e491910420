"""
Constants and shared configuration for unsubscribe functionality.

This module contains the shared patterns, keywords, error codes and limits
used across link extraction, one-click execution and the interactive agent.
"""

import re
from typing import Dict, List, Pattern

# Body heuristic: a scanned URL is a guessed unsubscribe link when it contains this
GUESS_KEYWORD = 'unsub'

# Pre-compiled regex patterns
BODY_URL_PATTERN: Pattern = re.compile(r'https?://[^\s"\'<>]+', re.IGNORECASE)

HEADER_URL_PATTERN: Pattern = re.compile(r'<([^>]+)>')

ONE_CLICK_PATTERN: Pattern = re.compile(r'list-unsubscribe\s*=\s*one-click')

JSON_FENCE_PATTERN: Pattern = re.compile(r'```(?:json)?\s*([\s\S]*?)\s*```', re.IGNORECASE)

# Schemes
MAILTO_PREFIX = 'mailto:'
HTTP_PREFIXES = ('http://', 'https://')
HTTP_SCHEMES = ('http', 'https')

# One-click request (RFC 8058)
ONE_CLICK_BODY = 'List-Unsubscribe=One-Click'
ONE_CLICK_CONTENT_TYPE = 'application/x-www-form-urlencoded'

# Unsubscribe strategies recorded on each attempt
METHOD_ONE_CLICK_POST = 'one_click_post'
METHOD_AGENT = 'agent'
METHOD_MAILTO = 'mailto'
METHOD_NONE = 'none'

# Error codes returned to callers and stored on attempts
ERROR_INVALID_URL = 'invalid_url'
ERROR_PLAYWRIGHT_NOT_INSTALLED = 'playwright_not_installed'
ERROR_OPENAI_NOT_CONFIGURED = 'openai_not_configured'
ERROR_AI_PLAN_UNAVAILABLE = 'ai_plan_unavailable'
ERROR_AGENT_NOT_CONFIRMED = 'agent_did_not_confirm_unsubscribe'
ERROR_AGENT_TIMEOUT = 'agent_timeout'
ERROR_ONE_CLICK_FAILED = 'one_click_post_failed'
ERROR_MAILTO_NOT_SUPPORTED = 'mailto_unsubscribe_not_supported'
ERROR_NO_LINK_FOUND = 'no_unsubscribe_link_found'
ERROR_MESSAGE_NOT_FOUND = 'message_not_found'
ERROR_DEADLINE_EXCEEDED = 'deadline_exceeded'
ERROR_UNSUBSCRIBE_FAILED = 'unsubscribe_failed'

# Failure categories
CATEGORY_INVALID_URL = 'invalid_url'
CATEGORY_CAPABILITY_UNAVAILABLE = 'capability_unavailable'
CATEGORY_PLAN_UNAVAILABLE = 'plan_unavailable'
CATEGORY_VERIFICATION_INCONCLUSIVE = 'verification_inconclusive'
CATEGORY_TRANSPORT_FAILURE = 'transport_failure'
CATEGORY_UNSUPPORTED_MECHANISM = 'unsupported_mechanism'
CATEGORY_NO_MECHANISM_FOUND = 'no_mechanism_found'
CATEGORY_UNEXPECTED = 'unexpected_error'

ERROR_CATEGORIES: Dict[str, str] = {
    ERROR_INVALID_URL: CATEGORY_INVALID_URL,
    ERROR_PLAYWRIGHT_NOT_INSTALLED: CATEGORY_CAPABILITY_UNAVAILABLE,
    ERROR_OPENAI_NOT_CONFIGURED: CATEGORY_CAPABILITY_UNAVAILABLE,
    ERROR_AI_PLAN_UNAVAILABLE: CATEGORY_PLAN_UNAVAILABLE,
    ERROR_AGENT_NOT_CONFIRMED: CATEGORY_VERIFICATION_INCONCLUSIVE,
    ERROR_AGENT_TIMEOUT: CATEGORY_TRANSPORT_FAILURE,
    ERROR_ONE_CLICK_FAILED: CATEGORY_TRANSPORT_FAILURE,
    ERROR_MAILTO_NOT_SUPPORTED: CATEGORY_UNSUPPORTED_MECHANISM,
    ERROR_NO_LINK_FOUND: CATEGORY_NO_MECHANISM_FOUND,
    ERROR_DEADLINE_EXCEEDED: CATEGORY_TRANSPORT_FAILURE,
}


def error_category(error: str) -> str:
    """Map an error code (or stringified exception) to its failure category."""
    return ERROR_CATEGORIES.get(error, CATEGORY_UNEXPECTED)


# Verification
VERIFY_CONFIDENCE_THRESHOLD = 0.6

UNSUBSCRIBED_PHRASES: List[str] = [
    'you have been unsubscribed',
    'you are unsubscribed',
    'successfully unsubscribed',
    'unsubscribe successful',
    'preferences have been updated',
    'subscription updated',
]

# Agent limits
MAX_PLAN_ACTIONS = 10
MAX_WAIT_MS = 30_000
PAGE_TEXT_PROMPT_LIMIT = 6000
PAGE_TEXT_HEAD_LENGTH = 200
HTML_SNIPPET_LENGTH = 6000
NAVIGATION_IDLE_TIMEOUT_MS = 5_000
POST_ACTION_IDLE_TIMEOUT_MS = 2_000
ACTION_CLICK_TIMEOUT_MS = 10_000
