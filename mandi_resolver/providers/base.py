"""Base provider class with common HTTP and error handling logic."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, List
from datetime import date, datetime, timedelta

import httpx

from ..exceptions import RemoteUnavailableError
from ..models import PriceRecord, RecordFilter

logger = logging.getLogger(__name__)


class BaseProvider(ABC):
    """Base class for remote price sources.

    Provides common functionality:
    - Single bounded GET per lookup (idempotent, safe for a caller to retry)
    - Error mapping: every transport or status failure becomes
      RemoteUnavailableError
    - Rate limiting awareness: after a 429 the provider refuses calls until
      the server's Retry-After has passed, without touching the network

    Subclasses implement ``provider_name`` and ``fetch_records``. Retrying is
    the caller's concern; nothing here loops.
    """

    DEFAULT_TIMEOUT = 5.0

    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        """Initialize base provider.

        Args:
            timeout: Request timeout in seconds
        """
        self.timeout = timeout
        self.last_request_time: Optional[datetime] = None
        self.rate_limit_reset: Optional[datetime] = None

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the canonical provider name, used for logging and error details."""
        pass

    @abstractmethod
    async def fetch_records(
        self,
        record_filter: RecordFilter,
        on: Optional[date] = None,
    ) -> List[PriceRecord]:
        """Fetch price records matching the filter, optionally for one arrival date."""
        pass

    def _unavailable(self, message: str, status: Optional[int] = None) -> RemoteUnavailableError:
        return RemoteUnavailableError(message, provider=self.provider_name, status=status)

    async def _get(
        self,
        client: httpx.AsyncClient,
        url: str,
        **kwargs
    ) -> httpx.Response:
        """Issue one GET request.

        Raises:
            RemoteUnavailableError: on timeout, connection failure, any
                non-2xx status, or while a previous 429 is still in effect
        """
        if self._is_rate_limited():
            raise self._unavailable(
                f"{self.provider_name} rate limited until {self.rate_limit_reset.isoformat()}"
            )

        self.last_request_time = datetime.now()
        try:
            response = await client.get(url, **kwargs, timeout=self.timeout)

            if response.status_code == 429:
                retry_after = response.headers.get("Retry-After", "60")
                seconds = int(retry_after) if str(retry_after).isdigit() else 60
                self.rate_limit_reset = datetime.now() + timedelta(seconds=seconds)
                logger.warning(f"{self.provider_name} rate limited. Retry after {seconds}s")

            response.raise_for_status()
            return response

        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise self._unavailable(
                f"{self.provider_name} returned {status}: {e.response.text[:200]}",
                status=status,
            ) from e
        except httpx.TimeoutException as e:
            raise self._unavailable(f"{self.provider_name} timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise self._unavailable(f"{self.provider_name} request failed: {e}") from e

    def _is_rate_limited(self) -> bool:
        """Check if provider is currently rate limited."""
        return self.rate_limit_reset is not None and datetime.now() < self.rate_limit_reset

    def _parse_json_safe(self, response: httpx.Response) -> Dict[str, Any]:
        """Safely parse JSON response with error handling.

        Raises:
            RemoteUnavailableError: If JSON parsing fails
        """
        try:
            return response.json()
        except ValueError as e:
            raise self._unavailable(f"Failed to parse {self.provider_name} response: {e}") from e
