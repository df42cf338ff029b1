from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from shared.identity import HttpProofVerifier, ProofRequest, ProofVerificationError


@pytest.fixture
def request_body():
    return ProofRequest(proof="0xproof", nullifier_hash="n-1", merkle_root="0xroot", signal_hash="0xsignal")


def _response(status_code):
    response = MagicMock()
    response.status_code = status_code
    response.text = "detail"
    return response


async def test_posts_proof_to_app_endpoint(request_body):
    verifier = HttpProofVerifier("https://portal.test/", "app_123")

    with patch("httpx.AsyncClient") as mock_client:
        mock_instance = AsyncMock()
        mock_instance.post.return_value = _response(200)
        mock_client.return_value.__aenter__.return_value = mock_instance

        assert await verifier.verify(request_body) is True

    url = mock_instance.post.call_args.args[0]
    body = mock_instance.post.call_args.kwargs["json"]
    assert url == "https://portal.test/api/v2/verify/app_123"
    assert body["nullifier_hash"] == "n-1"
    assert body["action"] == "trivia_game_access"
    assert body["verification_level"] == "orb"
    assert body["signal_hash"] == "0xsignal"


async def test_bad_request_means_invalid_proof(request_body):
    verifier = HttpProofVerifier("https://portal.test", "app_123")

    with patch("httpx.AsyncClient") as mock_client:
        mock_instance = AsyncMock()
        mock_instance.post.return_value = _response(400)
        mock_client.return_value.__aenter__.return_value = mock_instance

        assert await verifier.verify(request_body) is False


@pytest.mark.parametrize("status_code", [401, 500, 503])
async def test_unexpected_status_raises(request_body, status_code):
    verifier = HttpProofVerifier("https://portal.test", "app_123")

    with patch("httpx.AsyncClient") as mock_client:
        mock_instance = AsyncMock()
        mock_instance.post.return_value = _response(status_code)
        mock_client.return_value.__aenter__.return_value = mock_instance

        with pytest.raises(ProofVerificationError):
            await verifier.verify(request_body)


async def test_transport_error_raises(request_body):
    verifier = HttpProofVerifier("https://portal.test", "app_123")

    with patch("httpx.AsyncClient") as mock_client:
        mock_instance = AsyncMock()
        mock_instance.post.side_effect = httpx.ConnectError("refused")
        mock_client.return_value.__aenter__.return_value = mock_instance

        with pytest.raises(ProofVerificationError):
            await verifier.verify(request_body)
