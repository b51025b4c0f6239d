from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional
import logging

from pydantic import ValidationError

from ..config import get_settings
from ..models import PriceRecord, RecordFilter
from ..services.http_pool import get_http_client
from ..utils.text import title_case
from .base import BaseProvider

logger = logging.getLogger(__name__)


class AgmarknetProvider(BaseProvider):
    """AGMARKNET daily mandi prices published through the data.gov.in resource API.

    One call per lookup: the API is filtered server-side on the exact
    (title-cased) names, sorted newest first, and limited to a single page.
    """

    # The dataset has shipped both capitalised and lower-case field names
    FIELD_ALIASES: Dict[str, tuple[str, ...]] = {
        "state": ("State", "state"),
        "district": ("District", "district"),
        "market": ("Market", "market"),
        "commodity": ("Commodity", "commodity"),
        "variety": ("Variety", "variety"),
        "grade": ("Grade", "grade"),
        "date": ("Arrival_Date", "arrival_date"),
        "min_price": ("Min_Price", "min_price", "Min_x0020_Price"),
        "max_price": ("Max_Price", "max_price", "Max_x0020_Price"),
        "modal_price": ("Modal_Price", "modal_price", "Modal_x0020_Price"),
        "arrival_quantity": ("Arrivals_in_Quintal", "arrivals_in_quintal", "Arrivals", "arrivals"),
    }

    REQUIRED_FIELDS = ("state", "district", "market", "commodity", "date")

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        page_size: Optional[int] = None,
    ):
        settings = get_settings()
        super().__init__(timeout=timeout or settings.remote_timeout_seconds)
        self.api_key = api_key if api_key is not None else settings.data_gov_api_key
        self.base_url = base_url or settings.data_gov_api_url
        self.page_size = page_size or settings.remote_page_size

    @property
    def provider_name(self) -> str:
        return "AGMARKNET"

    def _build_params(self, record_filter: RecordFilter, on: Optional[date]) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "api-key": self.api_key or "",
            "format": "json",
            "limit": self.page_size,
            "offset": 0,
            "sort[Arrival_Date]": "desc",
        }
        if record_filter.commodity:
            params["filters[Commodity]"] = title_case(record_filter.commodity)
        if record_filter.state:
            params["filters[State]"] = title_case(record_filter.state)
        if record_filter.district:
            params["filters[District]"] = title_case(record_filter.district)
        if record_filter.market:
            params["filters[Market]"] = title_case(record_filter.market)
        if on:
            params["filters[Arrival_Date]"] = on.strftime("%d-%m-%Y")
        return params

    async def fetch_records(
        self,
        record_filter: RecordFilter,
        on: Optional[date] = None,
    ) -> List[PriceRecord]:
        """Fetch matching price rows.

        Raises:
            RemoteUnavailableError: if the API key is missing or the call fails
        """
        if not self.api_key:
            raise self._unavailable("DATA_GOV_API_KEY is not configured")

        params = self._build_params(record_filter, on)
        logger.debug(f"AGMARKNET request filters={record_filter.as_params()} date={on}")

        client = get_http_client()
        response = await self._get(client, self.base_url, params=params)
        payload = self._parse_json_safe(response)

        records = self._transform_records(payload.get("records") or [])
        if on is not None:
            records = [r for r in records if r.date == on]
        logger.info(f"AGMARKNET returned {len(records)} records for {record_filter.as_params()}")
        return records

    def _field(self, raw: Dict[str, Any], name: str) -> Any:
        for key in self.FIELD_ALIASES[name]:
            value = raw.get(key)
            if value not in (None, ""):
                return value
        return None

    def _transform_records(self, raw_records: List[Dict[str, Any]]) -> List[PriceRecord]:
        """Normalize API rows; rows without location, commodity or date are dropped."""
        records: List[PriceRecord] = []
        skipped = 0
        for raw in raw_records:
            values = {name: self._field(raw, name) for name in self.FIELD_ALIASES}
            if any(not values[name] for name in self.REQUIRED_FIELDS):
                skipped += 1
                continue
            values["variety"] = values["variety"] or "Unknown"
            if values["arrival_quantity"] is None:
                values["arrival_quantity"] = "0"
            try:
                records.append(PriceRecord(**values))
            except ValidationError as e:
                skipped += 1
                logger.debug(f"Skipping malformed AGMARKNET row {raw}: {e}")
        if skipped:
            logger.warning(f"Skipped {skipped} incomplete AGMARKNET rows")
        return records
