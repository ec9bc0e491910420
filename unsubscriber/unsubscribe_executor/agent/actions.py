"""
Agent action vocabulary and execution.

Plans from the planning service are validated against a closed set of tagged
action models; a plan that does not validate is rejected whole. Executing an
action never raises: each one yields an ``ActionResult`` that the agent logs
and records in its step trace before moving on to the next action.
"""

from dataclasses import dataclass
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ...unsubscribe.constants import (
    MAX_PLAN_ACTIONS, MAX_WAIT_MS, ACTION_CLICK_TIMEOUT_MS
)
from .controls import ControlArena, KIND_RADIO


class _Action(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ClickAction(_Action):
    type: Literal['click']
    target_id: str = Field(alias='targetId', min_length=1, strict=True)


class ClickTextAction(_Action):
    type: Literal['clickText']
    text: str = Field(min_length=1, strict=True)


class ClickRoleAction(_Action):
    type: Literal['clickRole']
    role: Literal['button', 'link', 'radio', 'checkbox', 'option', 'combobox']
    name: str = Field(min_length=1, strict=True)
    exact: Optional[bool] = Field(default=None, strict=True)


class FillAction(_Action):
    type: Literal['fill']
    target_id: str = Field(alias='targetId', min_length=1, strict=True)
    value: str = Field(strict=True)


class SelectAction(_Action):
    type: Literal['select']
    target_id: str = Field(alias='targetId', min_length=1, strict=True)
    value: str = Field(strict=True)


class CheckAction(_Action):
    type: Literal['check']
    target_id: str = Field(alias='targetId', min_length=1, strict=True)


class UncheckAction(_Action):
    type: Literal['uncheck']
    target_id: str = Field(alias='targetId', min_length=1, strict=True)


class PressAction(_Action):
    type: Literal['press']
    key: str = Field(min_length=1, strict=True)


class WaitAction(_Action):
    type: Literal['wait']
    ms: int = Field(ge=0, le=MAX_WAIT_MS, strict=True)


AgentAction = Annotated[
    Union[
        ClickAction, ClickTextAction, ClickRoleAction, FillAction, SelectAction,
        CheckAction, UncheckAction, PressAction, WaitAction,
    ],
    Field(discriminator='type'),
]


class AgentPlan(BaseModel):
    """A validated plan of 1 to 10 actions."""

    actions: List[AgentAction] = Field(min_length=1, max_length=MAX_PLAN_ACTIONS)

    def target_ids(self) -> List[str]:
        return [action.target_id for action in self.actions if hasattr(action, 'target_id')]


@dataclass(frozen=True)
class ActionResult:
    action: Any
    ok: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {'action': self.action.type, 'ok': self.ok}
        if self.error:
            result['error'] = self.error
        return result


def _wait_for_dom(page):
    try:
        page.wait_for_load_state('domcontentloaded')
    except Exception:
        pass


def _click_radio_by_label(page, label: str):
    try:
        page.get_by_role('radio', name=label, exact=False).first.click(timeout=ACTION_CLICK_TIMEOUT_MS)
    except Exception:
        page.get_by_text(label, exact=False).first.click(timeout=ACTION_CLICK_TIMEOUT_MS)


def _select_option(locator, value: str):
    try:
        locator.select_option(label=value)
    except Exception:
        locator.select_option(value=value)


def _resolve(arena: ControlArena, target_id: str):
    handle = arena.get(target_id)
    if handle is None:
        raise LookupError(f"Unknown control id {target_id!r}")
    return handle


def _perform(page, action, arena: ControlArena):
    if isinstance(action, WaitAction):
        page.wait_for_timeout(action.ms)
    elif isinstance(action, PressAction):
        page.keyboard.press(action.key)
        _wait_for_dom(page)
    elif isinstance(action, ClickTextAction):
        page.get_by_text(action.text, exact=False).first.click(timeout=ACTION_CLICK_TIMEOUT_MS)
        _wait_for_dom(page)
    elif isinstance(action, ClickRoleAction):
        page.get_by_role(action.role, name=action.name, exact=bool(action.exact)).first.click(
            timeout=ACTION_CLICK_TIMEOUT_MS
        )
        _wait_for_dom(page)
    elif isinstance(action, ClickAction):
        _resolve(arena, action.target_id).locator.click(timeout=ACTION_CLICK_TIMEOUT_MS)
        _wait_for_dom(page)
    elif isinstance(action, FillAction):
        _resolve(arena, action.target_id).locator.fill(action.value)
    elif isinstance(action, SelectAction):
        handle = _resolve(arena, action.target_id)
        if handle.snapshot.kind == KIND_RADIO:
            # Radio groups are chosen by label, not with select_option
            _click_radio_by_label(page, action.value)
            _wait_for_dom(page)
        else:
            _select_option(handle.locator, action.value)
    elif isinstance(action, CheckAction):
        _resolve(arena, action.target_id).locator.check()
    elif isinstance(action, UncheckAction):
        _resolve(arena, action.target_id).locator.uncheck()
    else:
        raise TypeError(f"Unsupported action {type(action).__name__}")


def execute_action(page, action, arena: ControlArena) -> ActionResult:
    """Apply one action to the live page. Failures are returned, not raised."""
    try:
        _perform(page, action, arena)
    except Exception as e:
        return ActionResult(action=action, ok=False, error=str(e) or type(e).__name__)
    return ActionResult(action=action, ok=True)
