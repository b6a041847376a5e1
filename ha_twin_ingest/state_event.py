"""
Home Assistant State Events.

Parses state-change messages forwarded from Home Assistant and turns them
into Azure Digital Twins documents.

Expected Message Format:
    {
        "entity_id": "sensor.hue_motion_sensor_4_illuminance",
        "state": "21.5",
        "attributes": {"device_class": "illuminance", ...},
        "last_changed": "2024-01-01T00:00:00+00:00",
        ...
    }

The section of the entity ID before the first period is the domain
("sensor"); the rest is the user-settable entity name, which is used
verbatim as the twin ID. Only ``last_changed`` is used as the reading's
timestamp; ``last_updated`` is ignored.
"""
import json
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from ha_twin_ingest.device_classes import ClassificationTable, ValueKind
from ha_twin_ingest.errors import MalformedEventError

REQUIRED_FIELDS = ("entity_id", "state", "attributes", "last_changed")

VALUE_PATH = "/lastKnownValue/value"
TIMESTAMP_PATH = "/lastKnownValue/timestamp"
LAST_KNOWN_VALUE_PATH = "/lastKnownValue"

# Plain ASCII decimal with optional exponent; no digit grouping
NUMERIC_STATE = re.compile(r"\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?\s*", re.ASCII)


@dataclass(frozen=True)
class StateEvent:
    entity_id: str
    domain: str
    entity_name: str
    state: str
    device_class: Optional[str]
    last_changed: datetime

    @property
    def twin_id(self) -> str:
        return self.entity_name


# ==========================================
# Readings
# ==========================================

@dataclass(frozen=True)
class NumericReading:
    value: float


@dataclass(frozen=True)
class BooleanReading:
    value: bool


@dataclass(frozen=True)
class Unmapped:
    reason: str


Reading = Union[NumericReading, BooleanReading, Unmapped]


# ==========================================
# Parsing
# ==========================================

def _parse_timestamp(raw: Any) -> datetime:
    if not isinstance(raw, str):
        raise MalformedEventError(f"last_changed must be a string, got {type(raw).__name__}")
    try:
        parsed = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    except ValueError as e:
        raise MalformedEventError(f"Invalid last_changed timestamp '{raw}': {e}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _split_entity_id(entity_id: Any) -> Tuple[str, str]:
    if not isinstance(entity_id, str):
        raise MalformedEventError(f"entity_id must be a string, got {type(entity_id).__name__}")
    domain, sep, entity_name = entity_id.partition(".")
    if not sep:
        raise MalformedEventError(f"entity_id '{entity_id}' is not of the form '<domain>.<name>'")
    return domain, entity_name


def parse_state_event(payload: Union[str, bytes, Dict[str, Any]]) -> Optional[StateEvent]:
    """
    Parse a raw Home Assistant state message.

    Args:
        payload: JSON text, UTF-8 bytes, or an already decoded dict

    Returns:
        The parsed StateEvent, or None if a required field is absent

    Raises:
        MalformedEventError: If the payload is not a JSON object, a field has
            the wrong type, or the timestamp cannot be parsed
    """
    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedEventError(f"Message body is not valid UTF-8: {e}") from e

    if isinstance(payload, str):
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise MalformedEventError(f"Message body is not valid JSON: {e}") from e
    else:
        data = payload

    if not isinstance(data, dict):
        raise MalformedEventError(f"Message must be a JSON object, got {type(data).__name__}")

    if any(name not in data for name in REQUIRED_FIELDS):
        return None

    domain, entity_name = _split_entity_id(data["entity_id"])
    last_changed = _parse_timestamp(data["last_changed"])

    state = data["state"]
    if not isinstance(state, str):
        raise MalformedEventError(f"state must be a string, got {type(state).__name__}")

    attributes = data["attributes"]
    if not isinstance(attributes, dict):
        raise MalformedEventError(f"attributes must be an object, got {type(attributes).__name__}")

    device_class = attributes.get("device_class")
    if device_class is not None and not isinstance(device_class, str):
        raise MalformedEventError(
            f"device_class must be a string, got {type(device_class).__name__}"
        )

    return StateEvent(
        entity_id=data["entity_id"],
        domain=domain,
        entity_name=entity_name,
        state=state,
        device_class=device_class,
        last_changed=last_changed,
    )


def classify_reading(event: StateEvent, table: ClassificationTable) -> Reading:
    """
    Map the event's state string to a typed reading.

    Readings that cannot be mapped are returned as Unmapped rather than
    raised; the caller skips them.
    """
    if event.device_class is None:
        return Unmapped("no device_class")

    rule = table.rule_for(event.device_class)
    if rule is None:
        return Unmapped(f"device_class '{event.device_class}' is not ingested")

    if rule.value_kind is ValueKind.NUMBER:
        if not NUMERIC_STATE.fullmatch(event.state):
            return Unmapped(f"state '{event.state}' is not numeric")
        value = float(event.state)
        if not math.isfinite(value):
            return Unmapped(f"state '{event.state}' is not a finite number")
        return NumericReading(value)

    if rule.value_kind is ValueKind.BOOLEAN:
        return BooleanReading(event.state.lower() == "on")

    return Unmapped(f"unsupported value kind {rule.value_kind}")


# ==========================================
# Twin Documents
# ==========================================

def format_timestamp(timestamp: datetime) -> str:
    """Format a timestamp as ISO 8601 in UTC with a 'Z' suffix."""
    utc = timestamp.astimezone(timezone.utc)
    return utc.isoformat().replace("+00:00", "Z")


def _reading_value(reading: Reading) -> Union[float, bool]:
    if isinstance(reading, (NumericReading, BooleanReading)):
        return reading.value
    raise ValueError(f"Cannot build a twin document from an unmapped reading: {reading.reason}")


def last_known_value(reading: Reading, timestamp: datetime) -> Dict[str, Any]:
    return {
        "value": _reading_value(reading),
        "timestamp": format_timestamp(timestamp),
    }


def build_twin_patch(reading: Reading, timestamp: datetime) -> List[Dict[str, Any]]:
    """
    Build the JSON Patch that replaces the twin's last known value.

    Example:
        >>> build_twin_patch(NumericReading(21.5), datetime(2024, 1, 1, tzinfo=timezone.utc))
        [
            {"op": "replace", "path": "/lastKnownValue/value", "value": 21.5},
            {"op": "replace", "path": "/lastKnownValue/timestamp", "value": "2024-01-01T00:00:00Z"}
        ]
    """
    record = last_known_value(reading, timestamp)
    return [
        {"op": "replace", "path": VALUE_PATH, "value": record["value"]},
        {"op": "replace", "path": TIMESTAMP_PATH, "value": record["timestamp"]},
    ]


def build_initialize_patch(reading: Reading, timestamp: datetime) -> List[Dict[str, Any]]:
    """Build a JSON Patch that adds the whole lastKnownValue component."""
    return [
        {"op": "add", "path": LAST_KNOWN_VALUE_PATH, "value": last_known_value(reading, timestamp)},
    ]


def build_initial_twin(reading: Reading, timestamp: datetime, model_id: str) -> Dict[str, Any]:
    """Build the document used to create a twin that does not exist yet."""
    return {
        "$metadata": {"$model": model_id},
        "lastKnownValue": last_known_value(reading, timestamp),
    }
