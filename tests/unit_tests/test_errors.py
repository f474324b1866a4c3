"""Unit tests for errors.py error handlers."""

from unittest.mock import MagicMock
from unittest.mock import patch

import pydantic
import pytest
from fastapi import Request

from scim_mirror.errors import handle_broad_exceptions
from scim_mirror.errors import handle_directory_unavailable
from scim_mirror.errors import handle_pydantic_validation_errors
from scim_mirror.exceptions import DirectoryUnavailable


class TestHandleBroadExceptions:
    """Tests for handle_broad_exceptions middleware."""

    @pytest.mark.asyncio
    @patch("scim_mirror.errors.log_response_info")
    async def test_successful_request(self, mock_log):
        """Test middleware passes through successful requests."""
        mock_request = MagicMock(spec=Request)
        mock_response = MagicMock()

        async def mock_call_next(request):
            return mock_response

        result = await handle_broad_exceptions(mock_request, mock_call_next)

        assert result == mock_response
        mock_log.assert_not_called()

    @pytest.mark.asyncio
    @patch("scim_mirror.errors.log_response_info")
    async def test_exception_returns_500(self, mock_log):
        """Test middleware catches exceptions and returns 500."""
        mock_request = MagicMock(spec=Request)
        mock_request.state.request_body = None

        async def mock_call_next(request):
            raise ValueError("Test error")

        result = await handle_broad_exceptions(mock_request, mock_call_next)

        assert result.status_code == 500
        assert b"ValueError" in result.body
        mock_log.assert_called_once()

    def test_unhandled_route_error_returns_500(self, client, mock_store):
        mock_store.users.get.side_effect = RuntimeError("pool exhausted")

        response = client.get("/api/users/u1")

        assert response.status_code == 500
        assert response.json() == {"detail": "Internal server error", "error_type": "RuntimeError"}


class TestHandlePydanticValidationErrors:
    """Tests for handle_pydantic_validation_errors handler."""

    @pytest.mark.asyncio
    @patch("scim_mirror.errors.log_response_info")
    async def test_validation_error(self, mock_log):
        """Test handling pydantic validation errors."""
        mock_request = MagicMock(spec=Request)
        mock_request.state.request_body = None

        class TestModel(pydantic.BaseModel):
            name: str
            value: int

        with pytest.raises(pydantic.ValidationError) as exc_info:
            TestModel(name=123, value="not_int")

        result = await handle_pydantic_validation_errors(mock_request, exc_info.value)

        assert result.status_code == 422
        mock_log.assert_called_once()


class TestHandleDirectoryUnavailable:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status_code",
        [403, 500, None],
        ids=["forbidden", "server_error", "transport_error"],
    )
    @patch("scim_mirror.errors.log_response_info")
    async def test_maps_to_502(self, mock_log, status_code):
        mock_request = MagicMock(spec=Request)
        mock_request.url.path = "/api/groups/g1/members"
        mock_request.state.request_body = {"userIds": ["u1"]}

        exc = DirectoryUnavailable("Directory request failed", status_code=status_code, body="oops")
        result = await handle_directory_unavailable(mock_request, exc)

        assert result.status_code == 502
        assert f'"upstream_status":{"null" if status_code is None else status_code}'.encode() in result.body
        mock_log.assert_called_once()
