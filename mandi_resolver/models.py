"""
Resolution data model.

Typed shapes shared by the record store, the remote client and the
resolution engine. Everything here is immutable once constructed.
"""
from __future__ import annotations

import datetime as dt
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any, FrozenSet, List, Literal, Mapping, Optional, Protocol, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationInfo, field_validator
from pydantic import ValidationError as PydanticValidationError

from .exceptions import InvalidIntentError
from .utils.text import clean_optional_text, normalize_name

PRICE_QUANTUM = Decimal("0.01")
INTENT_DATE_FORMATS = ("%Y-%m-%d", "%d-%m-%Y", "%d/%m/%Y")


def _parse_date(value: Any) -> Optional[dt.date]:
    if value is None or value == "":
        return None
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if isinstance(value, str):
        text = value.strip()
        for fmt in INTENT_DATE_FORMATS:
            try:
                return dt.datetime.strptime(text, fmt).date()
            except ValueError:
                continue
    raise ValueError(f"unrecognised date: {value!r}")


def _to_decimal(value: Any) -> Optional[Decimal]:
    """Prices are fixed-point; floats go through str() so 4500.1 stays 4500.10."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError("price must be numeric")
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(str(value).replace(",", "").strip()).quantize(PRICE_QUANTUM)
    except InvalidOperation as exc:
        raise ValueError(f"not a price: {value!r}") from exc


class NameKind(str, Enum):
    """What a NameEntry names."""
    MARKET = "market"
    COMMODITY = "commodity"
    DISTRICT = "district"


class CandidateSource(str, Enum):
    SPELLING = "spelling"
    GEOGRAPHIC = "geographic"


class Tier(str, Enum):
    """Ordered stages of the resolution fallback chain."""
    EXACT = "exact"
    ALIAS_EXPANSION = "alias_expansion"
    SPELLING_CORRECTION = "spelling_correction"
    GEOGRAPHIC = "geographic"
    HISTORICAL = "historical"


class DisambiguationReason(str, Enum):
    NO_EXACT_MATCH = "no_exact_match"
    NO_DATA_FOR_EXACT_MATCH = "no_data_for_exact_match"


class Intent(BaseModel):
    """Structured query handed over by the natural-language extractor.

    All location and commodity fields are optional; blank strings are
    treated as absent. ``aliases_tried`` holds commodity aliases an earlier
    turn already tried, so alias expansion can skip them.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    commodity: Optional[str] = None
    market: Optional[str] = None
    district: Optional[str] = None
    state: Optional[str] = None
    date: Optional[dt.date] = None
    date_is_range: bool = Field(default=False, alias="dateIsRange")
    aliases_tried: FrozenSet[str] = Field(default_factory=frozenset, alias="aliasesTried")

    @field_validator("commodity", "market", "district", "state", mode="before")
    @classmethod
    def _clean_name(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        if not isinstance(v, str):
            raise ValueError("must be a string")
        return clean_optional_text(v)

    @field_validator("date", mode="before")
    @classmethod
    def _coerce_date(cls, v: Any) -> Optional[dt.date]:
        return _parse_date(v)

    @field_validator("aliases_tried", mode="before")
    @classmethod
    def _coerce_aliases(cls, v: Any) -> FrozenSet[str]:
        if v is None:
            return frozenset()
        if isinstance(v, str):
            v = [v]
        if not isinstance(v, (list, tuple, set, frozenset)):
            raise ValueError("must be a list of strings")
        if any(not isinstance(item, str) for item in v):
            raise ValueError("must be a list of strings")
        return frozenset(normalize_name(item) for item in v if normalize_name(item))

    @classmethod
    def from_untrusted(cls, payload: Any) -> "Intent":
        """Validate extractor output at the boundary.

        Raises:
            InvalidIntentError: if the payload is not a mapping or a field has
                the wrong type.
        """
        if isinstance(payload, Intent):
            return payload
        if not isinstance(payload, Mapping):
            raise InvalidIntentError("Intent payload must be an object")
        try:
            return cls.model_validate(dict(payload))
        except PydanticValidationError as exc:
            first = exc.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ())) or None
            raise InvalidIntentError(
                f"Invalid intent field '{field}': {first.get('msg')}",
                field=field,
            ) from exc

    @property
    def location_name(self) -> Optional[str]:
        """The most specific location the user named."""
        return self.market or self.district

    @property
    def has_usable_fields(self) -> bool:
        return any((self.commodity, self.market, self.district, self.state, self.date))


class RecordFilter(BaseModel):
    """Case-insensitive exact-match filter shared by the store and the remote client."""

    model_config = ConfigDict(frozen=True)

    commodity: Optional[str] = None
    market: Optional[str] = None
    district: Optional[str] = None
    state: Optional[str] = None

    @classmethod
    def from_intent(cls, intent: Intent) -> "RecordFilter":
        return cls(
            commodity=intent.commodity,
            market=intent.market,
            district=intent.district,
            state=intent.state,
        )

    def replace(self, **changes: Optional[str]) -> "RecordFilter":
        return self.model_copy(update=changes)

    def as_params(self) -> dict[str, str]:
        """Non-empty fields only, for logging and query building."""
        return {k: v for k, v in self.model_dump().items() if v}

    @property
    def is_empty(self) -> bool:
        return not self.as_params()


class PriceRecord(BaseModel):
    """One day's price quotation for a commodity variety at a market (per quintal)."""

    model_config = ConfigDict(frozen=True)

    commodity: str
    variety: str = "Unknown"
    grade: Optional[str] = None
    market: str
    district: str
    state: str
    date: dt.date
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    modal_price: Optional[Decimal] = None
    arrival_quantity: Decimal = Decimal("0")

    @field_validator("min_price", "max_price", "modal_price", mode="before")
    @classmethod
    def _price(cls, v: Any) -> Optional[Decimal]:
        return _to_decimal(v)

    @field_validator("arrival_quantity", mode="before")
    @classmethod
    def _quantity(cls, v: Any) -> Decimal:
        return _to_decimal(v) or Decimal("0")

    @field_validator("date", mode="before")
    @classmethod
    def _record_date(cls, v: Any) -> dt.date:
        parsed = _parse_date(v)
        if parsed is None:
            raise ValueError("date is required")
        return parsed


class NameEntry(BaseModel):
    """A known market, district or commodity name with its aliases."""

    model_config = ConfigDict(frozen=True)

    kind: NameKind
    canonical_name: str
    district: str = ""
    state: str = ""
    aliases: FrozenSet[str] = Field(default_factory=frozenset)
    last_seen_date: Optional[dt.date] = None

    @field_validator("aliases", mode="before")
    @classmethod
    def _drop_canonical_alias(cls, v: Any, info: ValidationInfo) -> FrozenSet[str]:
        canonical = normalize_name(info.data.get("canonical_name"))
        aliases = v or ()
        return frozenset(
            alias.strip() for alias in aliases
            if alias and alias.strip() and normalize_name(alias) != canonical
        )

    @property
    def key(self) -> Tuple[str, str, str, str]:
        return (
            self.kind.value,
            normalize_name(self.canonical_name),
            normalize_name(self.district),
            normalize_name(self.state),
        )

    @property
    def has_data(self) -> bool:
        return self.last_seen_date is not None


class Candidate(BaseModel):
    """A proposed correction or alternative, not yet confirmed by the user."""

    model_config = ConfigDict(frozen=True)

    name_entry: NameEntry
    similarity: float = Field(ge=0.0, le=1.0)
    distance_rank: int = Field(ge=0)
    source: CandidateSource


class Resolved(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["resolved"] = "resolved"
    records: List[PriceRecord] = Field(min_length=1)
    matched_exactly: bool
    used_fallback_tier: Tier = Tier.EXACT
    tiers_used: List[Tier] = Field(default_factory=list)


class NeedsDisambiguation(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["needs_disambiguation"] = "needs_disambiguation"
    candidates: List[Candidate] = Field(min_length=1)
    reason: DisambiguationReason


class NotFound(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["not_found"] = "not_found"
    reason: str


ResolutionResult = Annotated[
    Union[Resolved, NeedsDisambiguation, NotFound],
    Field(discriminator="kind"),
]

resolution_result_adapter: TypeAdapter[ResolutionResult] = TypeAdapter(ResolutionResult)


class IntentExtractor(Protocol):
    """External natural-language component; its output is untrusted."""

    def extract_intent(self, free_text: str) -> Mapping[str, Any]:
        ...


class ResolveRequest(BaseModel):
    """Body of ``POST /api/resolve``: the raw intent as produced by the extractor."""

    intent: dict[str, Any]


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    environment: str
    services: dict[str, bool]
    names: dict[str, int]
