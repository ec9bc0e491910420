"""
Unsubscribe resolution building blocks.

- Link extraction from the List-Unsubscribe header and message bodies
- One-click (RFC 8058) classification
- Shared constants, result types, exceptions and structured logging
"""

from .extractors import UnsubscribeLinkExtractor
from .classifiers import OneClickClassifier, is_list_unsubscribe_one_click
from .types import (
    UnsubscribeLinks, OneClickResult, AgentStep, AgentResult, UnsubscribeOutcome
)

__all__ = [
    'UnsubscribeLinkExtractor',
    'OneClickClassifier',
    'is_list_unsubscribe_one_click',
    'UnsubscribeLinks',
    'OneClickResult',
    'AgentStep',
    'AgentResult',
    'UnsubscribeOutcome',
]
