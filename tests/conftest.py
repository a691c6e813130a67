from __future__ import annotations

import pytest

from fakes import FakeScheduler, Harness, make_harness


@pytest.fixture
def harness() -> Harness:
    return make_harness()


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()
