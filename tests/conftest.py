import os
import sys
from typing import Any, Dict, List, Optional

import pytest

# Make the repository root importable (function_app.py lives there)
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from ha_twin_ingest.adt_helper import APPLIED, TwinStoreResult
from ha_twin_ingest.config import get_settings


class FakeTwinStore:
    """
    In-memory TwinStore.

    Results are scripted per twin and per operation; unscripted calls
    return APPLIED. Every call is recorded in ``calls``.
    """

    def __init__(self):
        self.calls: List[tuple] = []
        self._updates: Dict[str, List[TwinStoreResult]] = {}
        self._creates: Dict[str, List[TwinStoreResult]] = {}

    def script_update(self, twin_id: str, *results: TwinStoreResult) -> None:
        self._updates.setdefault(twin_id, []).extend(results)

    def script_create(self, twin_id: str, *results: TwinStoreResult) -> None:
        self._creates.setdefault(twin_id, []).extend(results)

    def update_twin(self, twin_id: str, patch: List[Dict[str, Any]]) -> TwinStoreResult:
        self.calls.append(("update", twin_id, patch))
        return self._next(self._updates, twin_id)

    def create_twin(self, twin_id: str, twin: Dict[str, Any]) -> TwinStoreResult:
        self.calls.append(("create", twin_id, twin))
        return self._next(self._creates, twin_id)

    @staticmethod
    def _next(scripted: Dict[str, List[TwinStoreResult]], twin_id: str) -> TwinStoreResult:
        queue = scripted.get(twin_id)
        if queue:
            return queue.pop(0)
        return APPLIED


def make_event(
    entity_id: str = "sensor.kitchen_temp",
    state: str = "21.5",
    device_class: Optional[str] = "temperature",
    last_changed: str = "2024-01-01T00:00:00Z",
    **extra
) -> Dict[str, Any]:
    attributes = {"friendly_name": entity_id}
    if device_class is not None:
        attributes["device_class"] = device_class
    event = {
        "entity_id": entity_id,
        "state": state,
        "attributes": attributes,
        "last_changed": last_changed,
    }
    event.update(extra)
    return event


@pytest.fixture
def fake_store():
    return FakeTwinStore()


@pytest.fixture(autouse=True)
def clear_settings_cache(monkeypatch):
    """Keep settings from leaking between tests."""
    monkeypatch.delenv("ADT_INSTANCE_URL", raising=False)
    monkeypatch.delenv("DEBUG", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
