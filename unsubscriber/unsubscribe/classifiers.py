"""
One-click unsubscribe classification (RFC 8058).
"""

from typing import Optional

from .constants import ONE_CLICK_PATTERN


def is_list_unsubscribe_one_click(list_unsubscribe_post: Optional[str]) -> bool:
    """True when a List-Unsubscribe-Post value signals one-click support.

    Matching is case-insensitive and tolerates whitespace around '='.
    """
    value = (list_unsubscribe_post or '').strip()
    if not value:
        return False
    return ONE_CLICK_PATTERN.search(value.casefold()) is not None


class OneClickClassifier:
    """Decide whether a message's header link can be unsubscribed with one POST."""

    def is_one_click(self, list_unsubscribe_post: Optional[str]) -> bool:
        return is_list_unsubscribe_one_click(list_unsubscribe_post)

    def one_click_url(self, http_links, list_unsubscribe_post: Optional[str]) -> Optional[str]:
        """The header URL the one-click signal applies to, if any."""
        if not http_links or not self.is_one_click(list_unsubscribe_post):
            return None
        return http_links[0]
