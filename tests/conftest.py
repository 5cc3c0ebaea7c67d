from __future__ import annotations

import pytest
from counter_samples import CounterState, make_counter_feature

from pyfluxstore import Feature, Store


@pytest.fixture
def counter_feature() -> Feature[CounterState]:
    return make_counter_feature()


@pytest.fixture
def store(counter_feature: Feature[CounterState]) -> Store:
    store = Store()
    store.add_feature(counter_feature)
    return store
