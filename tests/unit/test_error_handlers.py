"""Unit tests for Error Handlers."""

import json
from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError

from vmworker.models.errors import (
    ErrorType,
    PoolNotConfiguredError,
    StoreUnavailable,
    VMWorkerException,
)
from vmworker.utils.error_handlers import (
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    vmworker_exception_handler,
)


@pytest.fixture
def mock_request():
    """Create a mock request."""
    request = MagicMock()
    request.url.path = "/assignVM"
    request.method = "POST"
    request.client = MagicMock()
    request.client.host = "127.0.0.1"
    return request


class TestVMWorkerExceptionHandler:
    """Tests for vmworker_exception_handler."""

    @pytest.mark.asyncio
    async def test_keeps_existing_request_id(self, mock_request):
        """Test handling exception that already has request_id."""
        exc = VMWorkerException(
            message="Test error",
            error_type=ErrorType.VALIDATION,
            status_code=400,
            request_id="existing-id",
        )

        response = await vmworker_exception_handler(mock_request, exc)

        assert response.status_code == 400
        assert exc.request_id == "existing-id"

    @pytest.mark.asyncio
    async def test_unconfigured_pool(self, mock_request):
        """Test an unconfigured pool maps to 400 with a validation error type."""
        response = await vmworker_exception_handler(
            mock_request, PoolNotConfiguredError("DOUS")
        )

        body = json.loads(response.body)
        assert response.status_code == 400
        assert body["error_type"] == "validation"
        assert "DOUS" in body["error"]
        assert body["request_id"]

    @pytest.mark.asyncio
    async def test_server_error(self, mock_request):
        """Test 5xx exceptions keep their status."""
        response = await vmworker_exception_handler(mock_request, StoreUnavailable())

        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_request_without_client(self, mock_request):
        """Test handling when the request has no client address."""
        mock_request.client = None

        response = await vmworker_exception_handler(mock_request, StoreUnavailable())

        assert response.status_code == 503


class TestHTTPExceptionHandler:
    """Tests for http_exception_handler."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status_code,error_type",
        [(404, "resource_not_found"), (409, "resource_conflict"), (418, "internal_server")],
    )
    async def test_status_mapping(self, mock_request, status_code, error_type):
        response = await http_exception_handler(
            mock_request, HTTPException(status_code=status_code, detail="nope")
        )

        body = json.loads(response.body)
        assert response.status_code == status_code
        assert body["error_type"] == error_type
        assert body["error"] == "nope"


class TestValidationExceptionHandler:
    """Tests for validation_exception_handler."""

    @pytest.mark.asyncio
    async def test_malformed_body_is_400(self, mock_request):
        """Test malformed coordination requests are answered with 400."""
        exc = RequestValidationError(
            [
                {
                    "loc": ("body", "uid"),
                    "msg": "Field required",
                    "type": "missing",
                }
            ]
        )

        response = await validation_exception_handler(mock_request, exc)

        body = json.loads(response.body)
        assert response.status_code == 400
        assert body["details"][0]["field"] == "body -> uid"
        assert body["details"][0]["code"] == "missing"


class TestGeneralExceptionHandler:
    """Tests for general_exception_handler."""

    @pytest.mark.asyncio
    async def test_hides_internals(self, mock_request):
        response = await general_exception_handler(mock_request, RuntimeError("secret detail"))

        body = json.loads(response.body)
        assert response.status_code == 500
        assert body["error"] == "An unexpected error occurred"
        assert "secret detail" not in response.body.decode()
