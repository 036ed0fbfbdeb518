import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Mapping, Sequence

import pytest

from pickup_engine.models.domain import PickupRecord
from pickup_engine.persistence import PickupStore
from pickup_engine.services.index import LocationIndex

START = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


class FixedClock:
    """Clock that only moves when a test says so."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeFetcher:
    def __init__(
        self,
        responses: Mapping[str, Sequence[PickupRecord]] | None = None,
        *,
        failures: Iterable[str] = (),
        delay: float = 0.0,
    ) -> None:
        self.responses = dict(responses or {})
        self.failures = set(failures)
        self.delay = delay
        self.calls: list[str] = []

    async def __call__(self, product_code: str) -> list[PickupRecord]:
        self.calls.append(product_code)
        if self.delay:
            await asyncio.sleep(self.delay)
        if product_code in self.failures:
            raise RuntimeError(f"upstream unavailable for {product_code}")
        return list(self.responses.get(product_code, []))


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def make_fetcher():
    return FakeFetcher


@pytest.fixture
def store(tmp_path: Path, clock: FixedClock) -> PickupStore:
    return PickupStore(
        tmp_path / "pickups",
        clock=clock,
        refresh_after=timedelta(hours=12),
        expire_after=timedelta(hours=24),
        retry_delay=0.0,
        fetch_timeout=1.0,
    )


@pytest.fixture
def index(store: PickupStore, clock: FixedClock) -> LocationIndex:
    return LocationIndex(store, clock=clock)
