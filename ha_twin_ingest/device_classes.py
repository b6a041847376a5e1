"""
Device Class Classification Table.

Home Assistant attaches a ``device_class`` attribute to most sensors. It
decides how the raw ``state`` string is interpreted and which DTDL model a
newly created twin is based on.

Only the classes listed in DEFAULT_CLASSIFICATION are ingested. See
https://www.home-assistant.io/integrations/sensor and
https://www.home-assistant.io/integrations/binary_sensor/ for the values
Home Assistant can report.
"""
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from ha_twin_ingest.errors import UnknownModelError


class ValueKind(Enum):
    """How a sensor's state string is mapped to a twin value."""
    NUMBER = "number"     # float(state)
    BOOLEAN = "boolean"   # state == "on", case-insensitive


@dataclass(frozen=True)
class DeviceClassRule:
    device_class: str
    value_kind: ValueKind
    model_id: Optional[str] = None


@dataclass(frozen=True)
class ClassificationTable:
    """
    Immutable lookup from device class to its ingestion rule.

    Passed into the batch processor at construction so tests can swap the
    rules without touching module state.
    """
    rules: Mapping[str, DeviceClassRule] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self):
        # Detach from the caller's mapping
        object.__setattr__(self, "rules", MappingProxyType(dict(self.rules)))

    @classmethod
    def from_rules(cls, rules: Iterable[DeviceClassRule]) -> "ClassificationTable":
        """
        Build a table from a sequence of rules.

        Raises:
            ValueError: If a device class appears more than once
        """
        by_class = {}
        for rule in rules:
            if rule.device_class in by_class:
                raise ValueError(f"Duplicate rule for device class '{rule.device_class}'")
            by_class[rule.device_class] = rule
        return cls(rules=MappingProxyType(by_class))

    def rule_for(self, device_class: Optional[str]) -> Optional[DeviceClassRule]:
        if device_class is None:
            return None
        return self.rules.get(device_class)

    def model_id_for(self, device_class: Optional[str]) -> str:
        """
        Get the DTDL model identifier used when creating a twin.

        Raises:
            UnknownModelError: If the class is not in the table or has no model
        """
        rule = self.rule_for(device_class)
        if rule is None or not rule.model_id:
            raise UnknownModelError(device_class)
        return rule.model_id

    def __contains__(self, device_class: object) -> bool:
        return device_class in self.rules

    def __len__(self) -> int:
        return len(self.rules)


DEFAULT_CLASSIFICATION = ClassificationTable.from_rules([
    DeviceClassRule("illuminance", ValueKind.NUMBER, "dtmi:homeassistant:IlluminanceSensor;1"),
    DeviceClassRule("temperature", ValueKind.NUMBER, "dtmi:homeassistant:TemperatureSensor;1"),
    DeviceClassRule("motion", ValueKind.BOOLEAN, "dtmi:homeassistant:MotionSensor;1"),
])
