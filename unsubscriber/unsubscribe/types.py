"""
Type-safe dataclasses for unsubscribe processing results.

Structured results passed between the extractor, the executors, the
interactive agent and the orchestrator.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional


def _dedupe(values) -> List[str]:
    """Remove duplicates while preserving first occurrence."""
    return list(dict.fromkeys(values))


@dataclass(frozen=True)
class UnsubscribeLinks:
    """Unsubscribe endpoints found in one message.

    ``http_links`` and ``mailto_links`` come from the List-Unsubscribe header,
    ``guessed_links`` from the message body. Each list is an ordered set.
    """

    http_links: List[str] = field(default_factory=list)
    mailto_links: List[str] = field(default_factory=list)
    guessed_links: List[str] = field(default_factory=list)
    list_unsubscribe_post: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'http_links', _dedupe(self.http_links))
        object.__setattr__(self, 'mailto_links', _dedupe(self.mailto_links))
        object.__setattr__(self, 'guessed_links', _dedupe(self.guessed_links))

    @property
    def http_candidate(self) -> Optional[str]:
        """First HTTP endpoint to act on: header link first, then body guess."""
        if self.http_links:
            return self.http_links[0]
        if self.guessed_links:
            return self.guessed_links[0]
        return None

    @property
    def mailto_candidate(self) -> Optional[str]:
        return self.mailto_links[0] if self.mailto_links else None

    def is_empty(self) -> bool:
        return not (self.http_links or self.mailto_links or self.guessed_links)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'http_links': list(self.http_links),
            'mailto_links': list(self.mailto_links),
            'guessed_links': list(self.guessed_links),
            'list_unsubscribe_post': self.list_unsubscribe_post,
        }

    @classmethod
    def from_dict(cls, data: Any) -> 'UnsubscribeLinks':
        """Rebuild from a stored dict, raising ValueError when it is malformed."""
        if not isinstance(data, dict):
            raise ValueError("Stored unsubscribe links must be an object")

        lists = {}
        for key in ('http_links', 'mailto_links', 'guessed_links'):
            value = data.get(key)
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise ValueError(f"Stored unsubscribe links field '{key}' must be a list of strings")
            lists[key] = value

        post = data.get('list_unsubscribe_post')
        if post is not None and not isinstance(post, str):
            raise ValueError("Stored unsubscribe links field 'list_unsubscribe_post' must be a string")

        return cls(list_unsubscribe_post=post, **lists)


@dataclass(frozen=True)
class OneClickResult:
    """Result of a one-click POST. ``status`` is None on transport failure."""

    ok: bool
    url: str
    status: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {'ok': self.ok, 'url': self.url, 'status': self.status}
        if self.error:
            result['error'] = self.error
        return result


@dataclass(frozen=True)
class AgentStep:
    """One entry of the interactive agent's step trace."""

    type: str
    detail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {'type': self.type}
        if self.detail is not None:
            result['detail'] = self.detail
        return result


@dataclass(frozen=True)
class AgentResult:
    """Outcome of one interactive agent attempt."""

    ok: bool
    steps: List[AgentStep] = field(default_factory=list)
    error: Optional[str] = None
    final_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'ok': self.ok,
            'final_url': self.final_url,
            'steps': [step.to_dict() for step in self.steps],
        }
        if self.error:
            result['error'] = self.error
        return result


@dataclass(frozen=True)
class UnsubscribeOutcome:
    """Per-message result returned by the orchestrator."""

    id: int
    ok: bool
    method: Optional[str] = None
    url: Optional[str] = None
    status: Optional[int] = None
    final_url: Optional[str] = None
    steps: List[AgentStep] = field(default_factory=list)
    error: Optional[str] = None
    error_detail: Optional[str] = None
    dry_run: bool = False

    def to_dict(self) -> Dict[str, Any]:
        result = {'id': self.id, 'ok': self.ok}
        if self.method:
            result['method'] = self.method
        if self.url:
            result['url'] = self.url
        if self.status is not None:
            result['status'] = self.status
        if self.final_url:
            result['final_url'] = self.final_url
        if self.steps:
            result['steps'] = [step.to_dict() for step in self.steps]
        if self.error:
            result['error'] = self.error
        if self.error_detail:
            result['error_detail'] = self.error_detail
        if self.dry_run:
            result['dry_run'] = True
        return result
