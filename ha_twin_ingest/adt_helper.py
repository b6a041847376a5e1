"""
Azure Digital Twins Helper Module.

Wraps the Azure Digital Twins data plane client behind a small TwinStore
interface. Every call returns a TwinStoreResult instead of raising, so the
batch processor decides between patching, creating and initializing a twin
by looking at the result status.

Architecture:
    ┌─────────────────────┐
    │ EventBatchProcessor │
    └──────────┬──────────┘
               │ TwinStore
               ▼
    ┌─────────────────────┐     ┌─────────────────────┐
    │    AdtTwinStore     │ ──► │ Azure Digital Twins │
    └─────────────────────┘     └─────────────────────┘
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Tuple

from azure.core.exceptions import AzureError, HttpResponseError, ResourceNotFoundError

logger = logging.getLogger(__name__)

# ADT rejects a patch whose path points into a component that is not set on the twin.
FIELD_NOT_INITIALIZED_ERROR_CODES = frozenset({"JsonPatchInvalid"})


class TwinStoreStatus(Enum):
    APPLIED = "applied"
    NOT_FOUND = "not_found"
    FIELD_NOT_INITIALIZED = "field_not_initialized"
    OTHER_ERROR = "other_error"


@dataclass(frozen=True)
class TwinStoreResult:
    status: TwinStoreStatus
    detail: Optional[str] = None
    status_code: Optional[int] = None
    error_code: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.status is TwinStoreStatus.APPLIED


APPLIED = TwinStoreResult(TwinStoreStatus.APPLIED)


class TwinStore(Protocol):
    """Operations the batch processor needs from a twin store."""

    def update_twin(self, twin_id: str, patch: List[Dict[str, Any]]) -> TwinStoreResult:
        """Apply a JSON Patch to an existing twin."""
        ...

    def create_twin(self, twin_id: str, twin: Dict[str, Any]) -> TwinStoreResult:
        """Create a twin, replacing it if it already exists."""
        ...


# ==========================================
# Azure Digital Twins
# ==========================================

def _error_details(error: AzureError) -> Tuple[Optional[int], Optional[str]]:
    status_code = getattr(error, "status_code", None)
    error_code = getattr(error, "error_code", None)
    if error_code is None:
        odata_error = getattr(error, "error", None)
        error_code = getattr(odata_error, "code", None)
    return status_code, error_code


def classify_azure_error(error: AzureError) -> TwinStoreResult:
    """
    Map an Azure SDK exception onto a TwinStoreResult.

    Args:
        error: Exception raised by DigitalTwinsClient

    Returns:
        NOT_FOUND for a missing twin, FIELD_NOT_INITIALIZED for a patch into
        a missing component, OTHER_ERROR for anything else
    """
    status_code, error_code = _error_details(error)
    detail = f"{type(error).__name__}: {error}"

    if isinstance(error, ResourceNotFoundError) or status_code == 404:
        return TwinStoreResult(TwinStoreStatus.NOT_FOUND, detail, status_code, error_code)

    if status_code == 400 and error_code in FIELD_NOT_INITIALIZED_ERROR_CODES:
        return TwinStoreResult(TwinStoreStatus.FIELD_NOT_INITIALIZED, detail, status_code, error_code)

    return TwinStoreResult(TwinStoreStatus.OTHER_ERROR, detail, status_code, error_code)


class AdtTwinStore:
    """TwinStore backed by an Azure Digital Twins instance."""

    def __init__(self, client):
        if client is None:
            raise ValueError("client is required")
        self._client = client

    def update_twin(self, twin_id: str, patch: List[Dict[str, Any]]) -> TwinStoreResult:
        logger.info(f"Updating twin '{twin_id}' with operation '{json.dumps(patch)}'")
        try:
            self._client.update_digital_twin(twin_id, patch)
        except AzureError as e:
            result = classify_azure_error(e)
            logger.warning(f"✗ Update of twin '{twin_id}' returned {result.status.value}: {result.detail}")
            return result

        logger.info(f"✓ Successfully updated twin '{twin_id}'")
        return APPLIED

    def create_twin(self, twin_id: str, twin: Dict[str, Any]) -> TwinStoreResult:
        logger.info(f"Creating twin '{twin_id}' with model '{twin.get('$metadata', {}).get('$model')}'")
        try:
            self._client.upsert_digital_twin(twin_id, twin)
        except AzureError as e:
            result = classify_azure_error(e)
            logger.error(f"✗ Creation of twin '{twin_id}' failed: {result.detail}")
            return result

        logger.info(f"✓ Created twin '{twin_id}'")
        return APPLIED


class DryRunTwinStore:
    """
    TwinStore that only logs operations.

    Used by the replay CLI to preview what a batch would send. Every call is
    kept in ``calls`` as (operation, twin_id, document).
    """

    def __init__(self):
        self.calls: List[Tuple[str, str, Any]] = []

    def update_twin(self, twin_id: str, patch: List[Dict[str, Any]]) -> TwinStoreResult:
        logger.info(f"[dry-run] update '{twin_id}': {json.dumps(patch)}")
        self.calls.append(("update", twin_id, patch))
        return APPLIED

    def create_twin(self, twin_id: str, twin: Dict[str, Any]) -> TwinStoreResult:
        logger.info(f"[dry-run] create '{twin_id}': {json.dumps(twin)}")
        self.calls.append(("create", twin_id, twin))
        return APPLIED


def create_adt_client(adt_instance_url: str):
    """
    Create an Azure Digital Twins client using DefaultAzureCredential.

    Uses managed identity when running in Azure Functions,
    or falls back to developer credentials locally.

    Args:
        adt_instance_url: The ADT instance endpoint URL
            Format: https://{instance-name}.api.{region}.digitaltwins.azure.net

    Returns:
        Initialized DigitalTwinsClient

    Raises:
        ValueError: If adt_instance_url is missing
    """
    if not adt_instance_url:
        raise ValueError("adt_instance_url is required")

    from azure.digitaltwins.core import DigitalTwinsClient
    from azure.identity import DefaultAzureCredential

    credential = DefaultAzureCredential()
    client = DigitalTwinsClient(adt_instance_url, credential)

    logger.info(f"Created ADT client for: {adt_instance_url}")
    return client
