"""Fixtures for the dashboard engine tests.

No test touches the network: HTTP goes through ``FakeSession`` and time
through ``FakeClock``.
"""

import dataclasses

import pytest

from situation_monitor.config import Settings

from .fakes import FALLBACK, PRIMARY, FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    return dataclasses.replace(
        Settings(),
        data_dir=tmp_path,
        proxy_primary_url=PRIMARY,
        proxy_fallback_url=FALLBACK,
        api_delay_between_categories_ms=0,
        polymarket_tags=[2, 120],
        source_timeout_sec=5.0,
        markets_timeout_sec=5.0,
    )
