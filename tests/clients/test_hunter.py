"""Tests for Hunter.io API client."""

import pytest
from unittest.mock import patch, AsyncMock, MagicMock

from leadcrm.clients.hunter import (
    available_searches,
    domain_search,
    find_domain,
    find_email,
    generate_email_formats,
    map_verifier_result,
    verify_email,
)


def _mock_response(payload):
    mock_response = MagicMock()
    mock_response.json.return_value = payload
    mock_response.raise_for_status.return_value = None
    return mock_response


@pytest.mark.asyncio
async def test_domain_search_returns_data():
    payload = {"data": {
        "domain": "ehpad-tilleuls.fr",
        "emails": [{"value": "marie.durand@ehpad-tilleuls.fr", "confidence": 92, "position": "Directrice"}],
    }}

    with patch("leadcrm.clients.hunter.HUNTER_API_KEY", "test-key"):
        with patch("leadcrm.clients.hunter.httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_instance.request.return_value = _mock_response(payload)
            mock_client.return_value.__aenter__.return_value = mock_instance

            data = await domain_search("ehpad-tilleuls.fr", limit=10)

            assert data["emails"][0]["value"] == "marie.durand@ehpad-tilleuls.fr"
            params = mock_instance.request.call_args[1]["params"]
            assert params == {"domain": "ehpad-tilleuls.fr", "limit": 10, "api_key": "test-key"}


@pytest.mark.asyncio
async def test_domain_search_no_api_key_returns_none():
    with patch("leadcrm.clients.hunter.HUNTER_API_KEY", ""):
        assert await domain_search("ehpad-tilleuls.fr") is None


@pytest.mark.asyncio
async def test_find_domain_from_company_name():
    with patch("leadcrm.clients.hunter.HUNTER_API_KEY", "test-key"):
        with patch("leadcrm.clients.hunter.httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_instance.request.return_value = _mock_response({"data": {"domain": "ime-lephare.org"}})
            mock_client.return_value.__aenter__.return_value = mock_instance

            assert await find_domain("IME Le Phare Lille") == "ime-lephare.org"


@pytest.mark.asyncio
async def test_find_email_without_result_returns_none():
    with patch("leadcrm.clients.hunter.HUNTER_API_KEY", "test-key"):
        with patch("leadcrm.clients.hunter.httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_instance.request.return_value = _mock_response({"data": {"email": None, "score": 0}})
            mock_client.return_value.__aenter__.return_value = mock_instance

            assert await find_email("ime-lephare.org", full_name="Directeur") is None


@pytest.mark.asyncio
async def test_verify_email_returns_result_and_score():
    with patch("leadcrm.clients.hunter.HUNTER_API_KEY", "test-key"):
        with patch("leadcrm.clients.hunter.httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_instance.request.return_value = _mock_response(
                {"data": {"result": "deliverable", "score": 95}}
            )
            mock_client.return_value.__aenter__.return_value = mock_instance

            result = await verify_email("marie.durand@ehpad-tilleuls.fr")

            assert result["result"] == "deliverable"
            assert result["score"] == 95


def test_available_searches():
    account = {"requests": {"searches": {"used": 20, "available": 30}}}

    assert available_searches(account) == 30
    assert available_searches(None) == 0


def test_generate_email_formats_strips_accents():
    formats = generate_email_formats("Hélène", "Lefèvre", "ehpad.fr")

    assert formats[0] == "helene.lefevre@ehpad.fr"
    assert "h.lefevre@ehpad.fr" in formats
    assert formats[-2:] == ["direction@ehpad.fr", "contact@ehpad.fr"]
    assert len(formats) == 10


def test_map_verifier_result():
    assert map_verifier_result("deliverable", 90, 80) == "valide"
    assert map_verifier_result("deliverable", 70, 80) == "invalide"
    assert map_verifier_result("risky", 95, 80) == "invalide"
    assert map_verifier_result(None, None, 80) == "invalide"
