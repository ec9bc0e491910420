"""
Unsubscribe Executor Module

Carries out unsubscribe requests for stored messages: the one-click POST,
the interactive browser agent, and the orchestrator that picks between them
and records every attempt.
"""

from .one_click_executor import OneClickExecutor
from .agent import InteractiveUnsubscribeAgent
from .orchestrator import UnsubscribeOrchestrator

__all__ = ['OneClickExecutor', 'InteractiveUnsubscribeAgent', 'UnsubscribeOrchestrator']
