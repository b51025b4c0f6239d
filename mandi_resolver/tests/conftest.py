"""
Shared pytest fixtures for mandi-resolver tests.

This module provides common fixtures used across all test modules.
Import fixtures from here instead of defining them in individual test files.
"""
from __future__ import annotations

import datetime as dt
import os
from typing import List

import pytest

# Set test environment before importing application modules
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("RECORD_STORE_PATH", ":memory:")
os.environ.pop("DATA_GOV_API_KEY", None)

from mandi_resolver.config import get_settings  # noqa: E402
from mandi_resolver.models import PriceRecord  # noqa: E402
from mandi_resolver.services.record_store import RecordStore  # noqa: E402
from mandi_resolver.tests.utils import make_record  # noqa: E402


# ============================================================================
# Environment Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def test_environment():
    """Ensure test environment is set for all tests."""
    old_env = os.environ.copy()
    os.environ["ENVIRONMENT"] = "test"
    os.environ["RECORD_STORE_PATH"] = ":memory:"
    os.environ.pop("DATA_GOV_API_KEY", None)
    get_settings.cache_clear()
    yield
    os.environ.clear()
    os.environ.update(old_env)
    get_settings.cache_clear()


# ============================================================================
# Data Fixtures
# ============================================================================

def _d(day: int) -> dt.date:
    return dt.date(2025, 10, day)


@pytest.fixture
def sample_records() -> List[PriceRecord]:
    """A small slice of Andhra Pradesh and Telangana mandi prices."""
    return [
        make_record(),
        make_record(market="Yemmiganur", date=_d(19), modal_price="7100"),
        make_record(commodity="Onion", variety="Local", market="Kurnool", date=_d(21),
                    min_price="1200", max_price="1800", modal_price="1500"),
        make_record(commodity="Banana", variety="Karpura", market="Ravulapelem", district="Konaseema",
                    date=_d(20), min_price="1800", max_price="2600", modal_price="2200"),
        make_record(commodity="Dry Chillies", variety="Teja", market="Guntur", district="Guntur",
                    date=_d(21), min_price="13000", max_price="17500", modal_price="15500"),
        make_record(commodity="Rice", variety="Sona Masoori", market="Tadepalligudem",
                    district="West Godavari", date=_d(21), min_price="3300", max_price="3900",
                    modal_price="3600"),
        make_record(commodity="Maize", variety="Hybrid", market="Nizamabad", district="Nizamabad",
                    state="Telangana", date=_d(21), min_price="2050", max_price="2310",
                    modal_price="2225"),
    ]


@pytest.fixture
def seeded_store(sample_records) -> RecordStore:
    """In-memory store holding sample_records plus a master-list market without prices."""
    store = RecordStore(":memory:")
    store.append_records(sample_records)
    store.register_market("Pattikonda", "Kurnool", "Andhra Pradesh")
    store.register_market("Tadepalligudem", "West Godavari", "Andhra Pradesh", aliases=["TPG"])
    yield store
    store.close()


# ============================================================================
# Cleanup Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset singleton services between tests."""
    yield
    import mandi_resolver.services.name_index as name_index
    import mandi_resolver.services.record_store as record_store
    import mandi_resolver.services.resolution_engine as resolution_engine
    from mandi_resolver.services.http_pool import HTTPClientPool

    if record_store._record_store is not None:
        record_store._record_store.close()
    record_store._record_store = None
    name_index._name_index = None
    resolution_engine._engine = None
    HTTPClientPool._client = None
    HTTPClientPool._loop = None
