"""
Event Batch Processor.

Applies a batch of Home Assistant state events to Azure Digital Twins.

Flow per event:
    parse → classify by device class → build JSON Patch → update twin
        ├── applied                → done
        ├── twin not found         → create twin from the classification model
        ├── lastKnownValue missing → add the whole component
        └── other error            → recorded as a failure

Events are processed one at a time in input order. A failing event never
stops the batch; every outcome is returned to the caller, and
raise_for_failures() turns the failed ones into a single exception.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from ha_twin_ingest.adt_helper import TwinStore, TwinStoreResult, TwinStoreStatus
from ha_twin_ingest.device_classes import DEFAULT_CLASSIFICATION, ClassificationTable
from ha_twin_ingest.errors import BatchProcessingError, TwinStoreError
from ha_twin_ingest.state_event import (
    Unmapped,
    build_initial_twin,
    build_initialize_patch,
    build_twin_patch,
    classify_reading,
    parse_state_event,
)

logger = logging.getLogger(__name__)


class EventStatus(str, Enum):
    UPDATED = "updated"
    CREATED = "created"
    INITIALIZED = "initialized"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class EventOutcome:
    """Result of processing one event of a batch."""
    index: int
    status: EventStatus
    twin_id: Optional[str] = None
    detail: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def succeeded(self) -> bool:
        return self.status is not EventStatus.FAILED


def _store_error(twin_id: str, action: str, result: TwinStoreResult) -> TwinStoreError:
    return TwinStoreError(
        twin_id,
        f"{action} failed ({result.status.value}): {result.detail}",
        status_code=result.status_code,
        error_code=result.error_code,
    )


class EventBatchProcessor:
    """
    Maps Home Assistant state events onto twin updates.

    Args:
        store: TwinStore the updates are sent to
        classification: Device class rules; defaults to DEFAULT_CLASSIFICATION
    """

    def __init__(self, store: TwinStore, classification: ClassificationTable = DEFAULT_CLASSIFICATION):
        if store is None:
            raise ValueError("store is required")
        self.store = store
        self.classification = classification

    def process_event(self, payload: Any, index: int = 0) -> EventOutcome:
        """
        Process a single raw event.

        Never raises; errors are returned in a FAILED outcome.
        """
        twin_id = None
        try:
            event = parse_state_event(payload)
            if event is None:
                return EventOutcome(index, EventStatus.SKIPPED, detail="missing required fields")

            twin_id = event.twin_id
            reading = classify_reading(event, self.classification)
            if isinstance(reading, Unmapped):
                logger.debug(f"Skipping '{event.entity_id}': {reading.reason}")
                return EventOutcome(index, EventStatus.SKIPPED, twin_id, reading.reason)

            patch = build_twin_patch(reading, event.last_changed)
            result = self.store.update_twin(twin_id, patch)

            if result.status is TwinStoreStatus.APPLIED:
                return EventOutcome(index, EventStatus.UPDATED, twin_id)

            if result.status is TwinStoreStatus.NOT_FOUND:
                model_id = self.classification.model_id_for(event.device_class)
                logger.info(f"Twin '{twin_id}' not found, creating it with model '{model_id}'")
                twin = build_initial_twin(reading, event.last_changed, model_id)
                created = self.store.create_twin(twin_id, twin)
                if not created.applied:
                    raise _store_error(twin_id, "create", created)
                return EventOutcome(index, EventStatus.CREATED, twin_id)

            if result.status is TwinStoreStatus.FIELD_NOT_INITIALIZED:
                logger.info(f"Twin '{twin_id}' has no lastKnownValue, adding it")
                initialized = self.store.update_twin(
                    twin_id, build_initialize_patch(reading, event.last_changed)
                )
                if not initialized.applied:
                    raise _store_error(twin_id, "initialize lastKnownValue", initialized)
                return EventOutcome(index, EventStatus.INITIALIZED, twin_id)

            raise _store_error(twin_id, "update", result)

        except Exception as e:
            # Keep processing the rest of the batch
            logger.error(f"Event {index} failed: {type(e).__name__}: {e}")
            return EventOutcome(index, EventStatus.FAILED, twin_id, str(e), e)

    def process_batch(self, payloads: Iterable[Any]) -> List[EventOutcome]:
        """Process every event in order and return one outcome per event."""
        outcomes = []
        for index, payload in enumerate(payloads):
            logger.info(f"Processing incoming message: {_preview(payload)}")
            outcomes.append(self.process_event(payload, index))
        return outcomes


def _preview(payload: Any) -> str:
    if isinstance(payload, (bytes, bytearray)):
        return payload.decode("utf-8", errors="replace")
    return str(payload)


def summarize(outcomes: Iterable[EventOutcome]) -> Dict[str, int]:
    """Count outcomes per status."""
    counts = Counter(outcome.status.value for outcome in outcomes)
    return {status.value: counts.get(status.value, 0) for status in EventStatus}


def raise_for_failures(outcomes: Iterable[EventOutcome]) -> None:
    """
    Escalate failed events to the caller.

    Raises:
        Exception: The original error if exactly one event failed
        BatchProcessingError: Carrying every error if more than one failed
    """
    errors = [outcome.error for outcome in outcomes if outcome.status is EventStatus.FAILED]
    if len(errors) > 1:
        raise BatchProcessingError(errors)
    if len(errors) == 1:
        raise errors[0]
