"""
Unit tests for the Azure Digital Twins helper module.

Tests cover:
- classify_azure_error() maps SDK exceptions to TwinStoreResult variants
- AdtTwinStore forwards patches and twins to DigitalTwinsClient
- create_adt_client() validates its input
"""
from unittest.mock import MagicMock, patch

import pytest
from azure.core.exceptions import (
    ClientAuthenticationError,
    HttpResponseError,
    ResourceNotFoundError,
    ServiceRequestError,
)

from ha_twin_ingest.adt_helper import (
    AdtTwinStore,
    DryRunTwinStore,
    TwinStoreStatus,
    classify_azure_error,
    create_adt_client,
)

PATCH = [{"op": "replace", "path": "/lastKnownValue/value", "value": 1.0}]
TWIN = {"$metadata": {"$model": "dtmi:homeassistant:TemperatureSensor;1"}, "lastKnownValue": {}}


def _http_error(status_code, error_code=None, message="request failed"):
    error = HttpResponseError(message=message)
    error.status_code = status_code
    error.error_code = error_code
    return error


class TestClassifyAzureError:
    """Tests for classify_azure_error function."""

    def test_resource_not_found(self):
        result = classify_azure_error(ResourceNotFoundError(message="DigitalTwinNotFound"))
        assert result.status is TwinStoreStatus.NOT_FOUND

    def test_plain_404(self):
        assert classify_azure_error(_http_error(404)).status is TwinStoreStatus.NOT_FOUND

    def test_invalid_patch_is_field_not_initialized(self):
        result = classify_azure_error(_http_error(400, "JsonPatchInvalid"))

        assert result.status is TwinStoreStatus.FIELD_NOT_INITIALIZED
        assert result.status_code == 400
        assert result.error_code == "JsonPatchInvalid"

    def test_other_bad_request_is_other_error(self):
        result = classify_azure_error(_http_error(400, "ValidationFailed"))
        assert result.status is TwinStoreStatus.OTHER_ERROR

    def test_server_error_keeps_details(self):
        result = classify_azure_error(_http_error(503, "ServiceUnavailable", message="try later"))

        assert result.status is TwinStoreStatus.OTHER_ERROR
        assert result.status_code == 503
        assert "try later" in result.detail

    def test_authentication_error(self):
        result = classify_azure_error(ClientAuthenticationError(message="denied"))
        assert result.status is TwinStoreStatus.OTHER_ERROR

    def test_connection_error(self):
        result = classify_azure_error(ServiceRequestError(message="connection refused"))

        assert result.status is TwinStoreStatus.OTHER_ERROR
        assert result.status_code is None


class TestAdtTwinStore:
    """Tests for AdtTwinStore."""

    def test_requires_client(self):
        with pytest.raises(ValueError, match="client is required"):
            AdtTwinStore(None)

    def test_update_applied(self):
        client = MagicMock()
        store = AdtTwinStore(client)

        result = store.update_twin("kitchen_temp", PATCH)

        assert result.applied
        client.update_digital_twin.assert_called_once_with("kitchen_temp", PATCH)

    def test_update_not_found(self):
        client = MagicMock()
        client.update_digital_twin.side_effect = ResourceNotFoundError(message="not found")

        result = AdtTwinStore(client).update_twin("kitchen_temp", PATCH)

        assert result.status is TwinStoreStatus.NOT_FOUND
        assert not result.applied

    def test_update_field_not_initialized(self):
        client = MagicMock()
        client.update_digital_twin.side_effect = _http_error(400, "JsonPatchInvalid")

        result = AdtTwinStore(client).update_twin("kitchen_temp", PATCH)

        assert result.status is TwinStoreStatus.FIELD_NOT_INITIALIZED

    def test_non_azure_errors_propagate(self):
        client = MagicMock()
        client.update_digital_twin.side_effect = TypeError("boom")

        with pytest.raises(TypeError):
            AdtTwinStore(client).update_twin("kitchen_temp", PATCH)

    def test_create_upserts_twin(self):
        client = MagicMock()

        result = AdtTwinStore(client).create_twin("kitchen_temp", TWIN)

        assert result.applied
        client.upsert_digital_twin.assert_called_once_with("kitchen_temp", TWIN)

    def test_create_failure(self):
        client = MagicMock()
        client.upsert_digital_twin.side_effect = _http_error(400, "ModelNotFound")

        result = AdtTwinStore(client).create_twin("kitchen_temp", TWIN)

        assert result.status is TwinStoreStatus.OTHER_ERROR
        assert result.error_code == "ModelNotFound"


class TestDryRunTwinStore:
    """Tests for DryRunTwinStore."""

    def test_records_calls(self):
        store = DryRunTwinStore()

        assert store.update_twin("a", PATCH).applied
        assert store.create_twin("b", TWIN).applied
        assert store.calls == [("update", "a", PATCH), ("create", "b", TWIN)]


class TestCreateAdtClient:
    """Tests for create_adt_client function."""

    def test_requires_url(self):
        with pytest.raises(ValueError, match="adt_instance_url is required"):
            create_adt_client("")

    @patch("azure.identity.DefaultAzureCredential")
    @patch("azure.digitaltwins.core.DigitalTwinsClient")
    def test_uses_default_credential(self, mock_client_cls, mock_credential_cls):
        url = "https://u2-adt.api.neu.digitaltwins.azure.net"

        client = create_adt_client(url)

        mock_client_cls.assert_called_once_with(url, mock_credential_cls.return_value)
        assert client is mock_client_cls.return_value
