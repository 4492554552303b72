"""HTTP transport for the Mobilizon API with crash-tolerant retries."""
import logging
import time
from typing import Callable, Optional

import requests

logger = logging.getLogger(__name__)


class RetriesExhaustedError(requests.RequestException):
    """Raised when a request still fails after all retries."""


class MobilizonTransport:
    """
    Sends requests to Mobilizon, retrying while the server recovers.

    Mobilizon tends to crash under ActivityPub load and takes about a
    minute to come back, so retries wait a constant minute instead of
    backing off exponentially.
    """

    RETRY_WAIT = 60
    RETRY_WAIT_MAX = 600
    RETRY_MAX = 120

    def __init__(
        self,
        token_provider: Callable[[], str],
        on_unauthorized: Optional[Callable[[], bool]] = None,
        session: Optional[requests.Session] = None,
        timeout: Optional[int] = None
    ):
        """
        Initialize the transport.

        Args:
            token_provider: Returns the current access token
            on_unauthorized: Refreshes the token after a 401, returns success
            session: requests session to send with (default: new session)
            timeout: Per-request timeout in seconds (default: none)
        """
        self.token_provider = token_provider
        self.on_unauthorized = on_unauthorized
        self.session = session or requests.Session()
        self.timeout = timeout

    def compute_backoff(self, attempt: int) -> int:
        """Seconds to wait before the given retry (1-based)."""
        return min(self.RETRY_WAIT, self.RETRY_WAIT_MAX)

    def request(self, method: str, url: str, **kwargs) -> requests.Response:
        """
        Send a request, retrying on network errors, 401 and 5xx.

        A 401 refreshes the token at most once per request; a second 401
        is returned to the caller.

        Args:
            method: HTTP method
            url: Request URL
            **kwargs: Passed to requests.Session.request

        Returns:
            The first response which is not retried

        Raises:
            RetriesExhaustedError: If all retry attempts fail
        """
        kwargs.setdefault('timeout', self.timeout)
        headers = dict(kwargs.pop('headers', None) or {})
        refreshed = False

        for attempt in range(self.RETRY_MAX + 1):
            # read the token on every attempt so a refresh is picked up
            headers['Authorization'] = f"Bearer {self.token_provider()}"
            try:
                response = self.session.request(method, url, headers=headers, **kwargs)
            except (requests.ConnectionError, requests.Timeout) as e:
                cause = f"{type(e).__name__}: {e}"
                response = None
            else:
                if response.status_code == 401:
                    if refreshed or not self._refresh():
                        return response
                    refreshed = True
                elif response.status_code < 500:
                    return response
                cause = f"HTTP {response.status_code}"

            if attempt == self.RETRY_MAX:
                logger.error(
                    f"All {self.RETRY_MAX} retry attempts failed for {method} {url}. "
                    f"Last error: {cause}"
                )
                raise RetriesExhaustedError(
                    f"Giving up on {method} {url} after {self.RETRY_MAX} retries: {cause}",
                    response=response
                )

            delay = self.compute_backoff(attempt + 1)
            logger.warning(
                f"Request failed (attempt {attempt + 1}/{self.RETRY_MAX}): {cause}. "
                f"Retrying in {delay} seconds...",
                extra={'url': url, 'method': method}
            )
            time.sleep(delay)

    def post(self, url: str, **kwargs) -> requests.Response:
        return self.request('POST', url, **kwargs)

    def _refresh(self) -> bool:
        if self.on_unauthorized is None:
            return False
        logger.info("Received 401, refreshing authorization")
        self.on_unauthorized()
        return True
