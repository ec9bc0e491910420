"""
One-Click Unsubscribe Executor

Sends the RFC 8058 one-click POST (``List-Unsubscribe=One-Click``) to a
List-Unsubscribe URL. Any 2xx/3xx response counts as success; error statuses,
timeouts and transport errors are failures. Nothing is raised to the caller.
"""

from typing import Optional

import requests

from ..config import Config
from ..unsubscribe.constants import ONE_CLICK_BODY, ONE_CLICK_CONTENT_TYPE
from ..unsubscribe.logging import UnsubscribeLogger
from ..unsubscribe.types import OneClickResult


def is_success_status(status_code: int) -> bool:
    """Providers answer one-click with 2xx or a redirect; both count."""
    return 200 <= status_code < 400


class OneClickExecutor:
    """Execute one-click unsubscribe POST requests."""

    def __init__(
        self,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
    ):
        """
        Initialize one-click executor.

        Args:
            timeout: Request timeout in seconds (defaults to ONE_CLICK_TIMEOUT)
            user_agent: User-Agent header value (defaults to ONE_CLICK_USER_AGENT)
        """
        self.timeout = timeout if timeout is not None else Config.ONE_CLICK_TIMEOUT
        self.user_agent = user_agent or Config.ONE_CLICK_USER_AGENT
        self.logger = UnsubscribeLogger("one_click_executor")

    def execute(self, url: str, timeout: Optional[float] = None) -> OneClickResult:
        """
        POST the one-click body to ``url``.

        Args:
            url: List-Unsubscribe HTTP(S) URL
            timeout: Per-call override of the request timeout

        Returns:
            OneClickResult with ok/status; status is None when no response arrived
        """
        timeout = timeout if timeout is not None else self.timeout
        headers = {
            'Content-Type': ONE_CLICK_CONTENT_TYPE,
            'User-Agent': self.user_agent,
        }

        try:
            response = requests.post(
                url,
                data=ONE_CLICK_BODY,
                headers=headers,
                timeout=timeout,
                allow_redirects=True
            )
        except requests.exceptions.Timeout:
            self.logger.warning("One-click request timed out", {'url': url, 'timeout': timeout})
            self.logger.log_operation_count('one_click_post', False)
            return OneClickResult(ok=False, url=url, error=f'Request timed out after {timeout} seconds')
        except requests.exceptions.RequestException as e:
            self.logger.warning("One-click request failed", {'url': url, 'error': str(e)})
            self.logger.log_operation_count('one_click_post', False)
            return OneClickResult(ok=False, url=url, error=f'Request failed: {e}')
        except Exception as e:
            # requests raises non-RequestException errors for some malformed URLs
            self.logger.warning("One-click request errored", {'url': url, 'error': str(e)})
            self.logger.log_operation_count('one_click_post', False)
            return OneClickResult(ok=False, url=url, error=f'Unexpected error: {e}')

        ok = is_success_status(response.status_code)
        self.logger.info("One-click request completed", {
            'url': url,
            'status_code': response.status_code,
            'ok': ok,
        })
        self.logger.log_operation_count('one_click_post', ok)
        return OneClickResult(ok=ok, url=url, status=response.status_code)
