from __future__ import annotations

import asyncio
import datetime as dt
from typing import Any, Dict, Iterable, List, Optional

import httpx

from mandi_resolver.models import PriceRecord

# "Today" for every engine test
TODAY = dt.date(2025, 10, 22)


class MockAsyncResponse:
    def __init__(
        self,
        json_data: Any,
        *,
        headers: Optional[Dict[str, str]] = None,
        request_url: Optional[str] = None,
        status_code: int = 200,
        text: str = "",
    ) -> None:
        self._json = json_data
        self.headers = headers or {}
        self.request = httpx.Request("GET", request_url or "https://example.com/mock")
        self.status_code = status_code
        self.text = text

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise httpx.HTTPStatusError(
                f"HTTP {self.status_code}",
                request=self.request,
                response=self,
            )

    def json(self) -> Any:
        if isinstance(self._json, Exception):
            raise self._json
        return self._json


class MockAsyncClient:
    def __init__(self, responses: Iterable[Any]) -> None:
        self._responses: List[Any] = list(responses)
        self.calls: List[Dict[str, Any]] = []

    async def get(self, url: str, *, params: Optional[Dict[str, Any]] = None, **kwargs) -> MockAsyncResponse:
        self.calls.append({"url": str(url), "params": dict(params or {}), **kwargs})
        if not self._responses:
            raise AssertionError("No more mock responses available")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        response.request = httpx.Request("GET", str(url))
        return response


def make_record(**overrides: Any) -> PriceRecord:
    """A Cotton@Adoni record; override any field."""
    values: Dict[str, Any] = {
        "commodity": "Cotton",
        "variety": "Other",
        "market": "Adoni",
        "district": "Kurnool",
        "state": "Andhra Pradesh",
        "date": dt.date(2025, 10, 18),
        "min_price": "6500",
        "max_price": "7621",
        "modal_price": "7250",
        "arrival_quantity": "120",
    }
    values.update(overrides)
    return PriceRecord(**values)


def run(coro):
    """Helper to run async functions in synchronous tests."""
    return asyncio.run(coro)
