"""Fixtures for the unit tests."""

from __future__ import annotations

import pytest
from fakes import FakeClock, InMemoryVectorIndex


@pytest.fixture()
def memory_index() -> InMemoryVectorIndex:
    return InMemoryVectorIndex()


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()
