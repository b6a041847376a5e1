"""
Home Assistant State Ingestion Azure Function.

Event Hub triggered function that receives batches of Home Assistant state
changes and applies sensor readings to Azure Digital Twins.

Architecture:
    Home Assistant → Event Hub → ingest-homeassistant-state → Azure Digital Twins

Application Settings Required:
    - ADT_INSTANCE_URL: Azure Digital Twins endpoint URL
    - EVENTHUB_NAME: Event Hub the state changes are published to
    - EVENTHUB_CONNECTION: Event Hub connection (string or identity prefix)

Authentication:
    Uses DefaultAzureCredential via Managed Identity.
"""

import logging
from typing import List, Optional

import azure.functions as func

from ha_twin_ingest.adt_helper import AdtTwinStore, create_adt_client
from ha_twin_ingest.config import get_settings
from ha_twin_ingest.processor import EventBatchProcessor, raise_for_failures, summarize

app = func.FunctionApp()

# Created on first invocation so the host can index the function without ADT settings
_processor: Optional[EventBatchProcessor] = None


def _get_processor() -> EventBatchProcessor:
    global _processor
    if _processor is None:
        adt_url = get_settings().require_adt_instance_url()
        _processor = EventBatchProcessor(AdtTwinStore(create_adt_client(adt_url)))
    return _processor


def event_bodies(events: List[func.EventHubEvent]) -> List[bytes]:
    return [event.get_body() for event in events]


@app.function_name(name="ingest-homeassistant-state")
@app.event_hub_message_trigger(
    arg_name="events",
    event_hub_name="%EVENTHUB_NAME%",
    connection="EVENTHUB_CONNECTION",
    cardinality=func.Cardinality.MANY,
)
def ingest_homeassistant_state(events: List[func.EventHubEvent]) -> None:
    """
    Apply a batch of Home Assistant state events to Azure Digital Twins.

    All events are attempted. If any failed, the error (or a
    BatchProcessingError carrying all of them) is raised afterwards so the
    Functions host records the failed invocation.
    """
    logging.info(f"Ingest: Received batch of {len(events)} events")

    outcomes = _get_processor().process_batch(event_bodies(events))

    logging.info(f"Ingest: Batch summary {summarize(outcomes)}")
    raise_for_failures(outcomes)
