from __future__ import annotations

import pytest

from minerwatch.config import get_settings


@pytest.fixture(autouse=True)
def _isolate_settings_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("MINERWATCH_CONFIG", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
