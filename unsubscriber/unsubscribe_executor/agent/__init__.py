"""
Interactive unsubscribe agent.

Browser automation with an LLM plan/verify loop for unsubscribe pages that
need more than a single request.
"""

from .agent import InteractiveUnsubscribeAgent, is_safe_http_url
from .planner import PlanningService, VerificationResult
from .actions import AgentPlan, ActionResult, execute_action
from .controls import ControlArena, ControlSnapshot, build_control_snapshot
from .browser import open_browser_session

__all__ = [
    'InteractiveUnsubscribeAgent',
    'is_safe_http_url',
    'PlanningService',
    'VerificationResult',
    'AgentPlan',
    'ActionResult',
    'execute_action',
    'ControlArena',
    'ControlSnapshot',
    'build_control_snapshot',
    'open_browser_session',
]
