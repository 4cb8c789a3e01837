"""Tests for the Gemini client."""

from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest

from activity_ai.errors import TransportFailure
from activity_ai.gemini_client import GeminiClient


@pytest.fixture
def gemini_client(test_settings):
    """Create GeminiClient instance."""
    return GeminiClient(test_settings)


@pytest.fixture
def mock_httpx_client():
    """Create mock httpx client."""
    mock_client = AsyncMock()
    mock_response = Mock()
    mock_response.status_code = 200
    mock_response.text = '{"candidates": []}'
    mock_response.raise_for_status = Mock()
    mock_client.post.return_value = mock_response
    mock_client.get.return_value = mock_response
    return mock_client


def _status_error(status_code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "https://example.test")
    response = httpx.Response(status_code, request=request)
    return httpx.HTTPStatusError("error", request=request, response=response)


class TestGeminiClient:
    def test_init(self, gemini_client, test_settings):
        assert gemini_client.api_url == test_settings.gemini_api_url
        assert gemini_client.api_key == "test-key"
        assert gemini_client.timeout == test_settings.gemini_timeout_seconds

    def test_request_body(self):
        assert GeminiClient.build_request_body("hi") == {
            "contents": [{"parts": [{"text": "hi"}]}]
        }

    @patch("activity_ai.gemini_client.httpx.AsyncClient")
    async def test_get_answer_returns_raw_body(
        self, mock_client_class, gemini_client, mock_httpx_client
    ):
        mock_client_class.return_value.__aenter__.return_value = mock_httpx_client

        result = await gemini_client.get_answer("Analyze this")

        assert result == '{"candidates": []}'
        mock_client_class.assert_called_once_with(timeout=gemini_client.timeout)
        call = mock_httpx_client.post.call_args
        assert call.args[0] == gemini_client.api_url
        assert call.kwargs["params"] == {"key": "test-key"}
        assert call.kwargs["json"] == {"contents": [{"parts": [{"text": "Analyze this"}]}]}

    @patch("activity_ai.gemini_client.httpx.AsyncClient")
    async def test_http_error_becomes_transport_failure(self, mock_client_class, gemini_client):
        mock_client = AsyncMock()
        mock_response = Mock()
        mock_response.raise_for_status.side_effect = _status_error(503)
        mock_client.post.return_value = mock_response
        mock_client_class.return_value.__aenter__.return_value = mock_client

        with pytest.raises(TransportFailure) as exc_info:
            await gemini_client.get_answer("prompt")

        assert exc_info.value.status_code == 503

    @pytest.mark.parametrize(
        "error",
        [
            httpx.ConnectError("refused"),
            httpx.ReadTimeout("slow"),
        ],
    )
    @patch("activity_ai.gemini_client.httpx.AsyncClient")
    async def test_network_errors_become_transport_failure(
        self, mock_client_class, gemini_client, error
    ):
        mock_client = AsyncMock()
        mock_client.post.side_effect = error
        mock_client_class.return_value.__aenter__.return_value = mock_client

        with pytest.raises(TransportFailure) as exc_info:
            await gemini_client.get_answer("prompt")

        assert exc_info.value.status_code is None
        assert exc_info.value.__cause__ is error

    @patch("activity_ai.gemini_client.httpx.AsyncClient")
    async def test_health_check_success(
        self, mock_client_class, gemini_client, mock_httpx_client
    ):
        mock_client_class.return_value.__aenter__.return_value = mock_httpx_client

        assert await gemini_client.health_check() is True
        url = mock_httpx_client.get.call_args.args[0]
        assert url == "https://generativelanguage.googleapis.com/v1beta/models"

    @patch("activity_ai.gemini_client.httpx.AsyncClient")
    async def test_health_check_failure(self, mock_client_class, gemini_client):
        mock_client = AsyncMock()
        mock_client.get.side_effect = Exception("Connection error")
        mock_client_class.return_value.__aenter__.return_value = mock_client

        assert await gemini_client.health_check() is False
