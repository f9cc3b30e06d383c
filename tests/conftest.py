import pytest

import fanout.executor.handle as handle
from fanout.executor.config import settings


@pytest.fixture(autouse=True)
def no_dangling_workers():
    yield
    handle._terminate_all()


@pytest.fixture(scope="function")
def small_threshold(monkeypatch):
    """Makes every payload beyond a handful of characters count as large"""
    monkeypatch.setattr(settings, "large_payload_threshold", 16)
    return settings.large_payload_threshold
