"""Tests for ZeroBounce API client."""

import pytest
from unittest.mock import patch, AsyncMock, MagicMock

from leadcrm.clients.zerobounce import estimate_cost, get_credits, map_status, validate, validate_batch


def _mock_response(payload):
    mock_response = MagicMock()
    mock_response.json.return_value = payload
    return mock_response


@pytest.mark.asyncio
async def test_validate_returns_result():
    with patch("leadcrm.clients.zerobounce.ZEROBOUNCE_API_KEY", "test-key"):
        with patch("leadcrm.clients.zerobounce.httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_instance.request.return_value = _mock_response(
                {"address": "a@ehpad.fr", "status": "valid", "sub_status": ""}
            )
            mock_client.return_value.__aenter__.return_value = mock_instance

            result = await validate("a@ehpad.fr")

            assert result["status"] == "valid"
            args, kwargs = mock_instance.request.call_args
            assert args[0] == "GET"
            assert kwargs["params"]["email"] == "a@ehpad.fr"


@pytest.mark.asyncio
async def test_validate_no_api_key_returns_none():
    with patch("leadcrm.clients.zerobounce.ZEROBOUNCE_API_KEY", ""):
        assert await validate("a@ehpad.fr") is None


@pytest.mark.asyncio
async def test_validate_batch_posts_all_addresses():
    with patch("leadcrm.clients.zerobounce.ZEROBOUNCE_API_KEY", "test-key"):
        with patch("leadcrm.clients.zerobounce.httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_instance.request.return_value = _mock_response({
                "email_batch": [
                    {"address": "a@ehpad.fr", "status": "valid"},
                    {"address": "b@ehpad.fr", "status": "invalid"},
                ],
                "errors": [],
            })
            mock_client.return_value.__aenter__.return_value = mock_instance

            results = await validate_batch(["a@ehpad.fr", "b@ehpad.fr"])

            assert [r["status"] for r in results] == ["valid", "invalid"]
            payload = mock_instance.request.call_args[1]["json"]
            assert payload["email_batch"] == [
                {"email_address": "a@ehpad.fr"},
                {"email_address": "b@ehpad.fr"},
            ]


@pytest.mark.asyncio
async def test_validate_batch_empty_list_skips_call():
    with patch("leadcrm.clients.zerobounce.httpx.AsyncClient") as mock_client:
        assert await validate_batch([]) == []
        mock_client.assert_not_called()


@pytest.mark.asyncio
async def test_get_credits():
    with patch("leadcrm.clients.zerobounce.ZEROBOUNCE_API_KEY", "test-key"):
        with patch("leadcrm.clients.zerobounce.httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_instance.request.return_value = _mock_response({"Credits": "42"})
            mock_client.return_value.__aenter__.return_value = mock_instance

            assert await get_credits() == 42


@pytest.mark.asyncio
async def test_get_credits_invalid_key_reports_zero():
    with patch("leadcrm.clients.zerobounce.ZEROBOUNCE_API_KEY", "bad-key"):
        with patch("leadcrm.clients.zerobounce.httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_instance.request.return_value = _mock_response({"Credits": "-1"})
            mock_client.return_value.__aenter__.return_value = mock_instance

            assert await get_credits() == 0


def test_map_status():
    assert map_status("valid") == "valide"
    assert map_status("invalid") == "invalide"
    assert map_status("spamtrap") == "invalide"
    assert map_status("catch-all") == "a_verifier"
    assert map_status("unknown") == "a_verifier"


def test_estimate_cost():
    assert estimate_cost(100) == {"credits": 100, "estimated_cost": "$0.80 (~1€)"}
