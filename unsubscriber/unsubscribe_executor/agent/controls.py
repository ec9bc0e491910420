"""
Control snapshots: the interactive elements the planner may target.

Each planning round enumerates buttons, links, role=button elements,
onclick-bearing div/span elements, inputs, textareas and selects into a
round-scoped ``ControlArena``. The arena hands out ids of the form
``<kind>:<index>`` for the prompt and keeps the element handle behind each id,
so actions resolve by lookup instead of re-parsing the id against a page whose
DOM may have changed.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from ...unsubscribe.logging import UnsubscribeLogger

logger = UnsubscribeLogger("controls")

KIND_BUTTON = 'button'
KIND_LINK = 'link'
KIND_ROLE_BUTTON = 'roleButton'
KIND_CLICKABLE = 'clickable'
KIND_INPUT = 'input'
KIND_TEXTAREA = 'textarea'
KIND_SELECT = 'select'
KIND_CHECKBOX = 'checkbox'
KIND_RADIO = 'radio'

# (kind, selector, max elements inspected, fixed tag); elements without text are skipped
TEXT_CONTROL_GROUPS = [
    (KIND_BUTTON, 'button', 30, 'button'),
    (KIND_LINK, 'a', 30, 'a'),
    (KIND_ROLE_BUTTON, '[role="button"]', 30, None),
    (KIND_CLICKABLE, 'div[onclick], span[onclick]', 30, None),
]
INPUT_SELECTOR, INPUT_LIMIT = 'input', 40
TEXTAREA_SELECTOR, TEXTAREA_LIMIT = 'textarea', 20
SELECT_SELECTOR, SELECT_LIMIT = 'select', 20


@dataclass(frozen=True)
class ControlSnapshot:
    """One interactive element as shown to the planner."""

    id: str
    kind: str
    text: Optional[str] = None
    tag: Optional[str] = None
    type: Optional[str] = None
    name: Optional[str] = None
    placeholder: Optional[str] = None

    def describe(self) -> str:
        """Prompt line for this control."""
        bits = [f"id={self.id}", f"kind={self.kind}"]
        for label in ('text', 'type', 'name', 'placeholder'):
            value = getattr(self, label)
            if value:
                bits.append(f'{label}="{value}"')
        return '- ' + ' | '.join(bits)

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in self.__dict__.items() if v is not None}


@dataclass(frozen=True)
class ControlHandle:
    snapshot: ControlSnapshot
    locator: Any


class ControlArena:
    """Controls of one planning round, keyed by their round-scoped id."""

    def __init__(self, round_number: int = 1):
        self.round_number = round_number
        self._handles: Dict[str, ControlHandle] = {}

    def add(self, kind: str, index: int, locator, **attributes) -> ControlSnapshot:
        snapshot = ControlSnapshot(id=f"{kind}:{index}", kind=kind, **attributes)
        self._handles[snapshot.id] = ControlHandle(snapshot=snapshot, locator=locator)
        return snapshot

    def get(self, control_id: str) -> Optional[ControlHandle]:
        return self._handles.get(control_id)

    def snapshots(self) -> List[ControlSnapshot]:
        return [handle.snapshot for handle in self._handles.values()]

    def missing_targets(self, target_ids: Iterable[str]) -> List[str]:
        """Ids referenced by a plan that this round never produced."""
        return [target_id for target_id in target_ids if target_id not in self._handles]

    def __contains__(self, control_id: str) -> bool:
        return control_id in self._handles

    def __len__(self) -> int:
        return len(self._handles)


def _elements(page, selector: str, limit: int) -> List[Any]:
    try:
        found = page.locator(selector).all()
    except Exception as e:
        logger.debug("Control lookup failed", {'selector': selector, 'error': str(e)})
        return []
    elements = []
    for element in found:
        if len(elements) >= limit:
            break
        elements.append(element)
    return elements


def _text(element) -> str:
    try:
        value = element.inner_text()
    except Exception:
        return ''
    return value.strip() if isinstance(value, str) else ''


def _attribute(element, name: str) -> Optional[str]:
    try:
        value = element.get_attribute(name)
    except Exception:
        return None
    return value if isinstance(value, str) else None


def _tag(element) -> Optional[str]:
    try:
        value = element.evaluate('node => node.tagName')
    except Exception:
        return None
    return value.lower() if isinstance(value, str) else None


def build_control_snapshot(page, round_number: int = 1) -> ControlArena:
    """Enumerate the page's interactive elements. Never raises."""
    arena = ControlArena(round_number)

    for kind, selector, limit, fixed_tag in TEXT_CONTROL_GROUPS:
        for index, element in enumerate(_elements(page, selector, limit)):
            text = _text(element)
            if not text:
                continue
            arena.add(kind, index, element, text=text, tag=fixed_tag or _tag(element))

    for index, element in enumerate(_elements(page, INPUT_SELECTOR, INPUT_LIMIT)):
        input_type = _attribute(element, 'type')
        lowered = (input_type or '').lower()
        if lowered == 'checkbox':
            kind = KIND_CHECKBOX
        elif lowered == 'radio':
            kind = KIND_RADIO
        else:
            kind = KIND_INPUT
        arena.add(
            kind, index, element,
            tag='input',
            type=input_type,
            name=_attribute(element, 'name'),
            placeholder=_attribute(element, 'placeholder'),
        )

    for index, element in enumerate(_elements(page, TEXTAREA_SELECTOR, TEXTAREA_LIMIT)):
        arena.add(
            KIND_TEXTAREA, index, element,
            tag='textarea',
            name=_attribute(element, 'name'),
            placeholder=_attribute(element, 'placeholder'),
        )

    for index, element in enumerate(_elements(page, SELECT_SELECTOR, SELECT_LIMIT)):
        arena.add(KIND_SELECT, index, element, tag='select', name=_attribute(element, 'name'))

    logger.debug("Built control snapshot", {'round': round_number, 'controls': len(arena)})
    return arena
