# tests/conftest.py
from typing import Any, Dict
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
import pytest_asyncio

from badge_oauth.main import create_app
from badge_oauth.oauth.pkce import generate_pkce_code_challenge, generate_pkce_code_verifier
from badge_oauth.oauth.scopes import RECOGNIZED_SCOPES, join_scopes
from badge_oauth.oauth.storage import create_in_memory_state
from badge_oauth.oauth.token_issuer import JwtTokenIssuer

TEST_JWT_SECRET = "unit-test-signing-key-0123456789abcdef"
TEST_REDIRECT_URI = "https://wallet.example.com/callback"


def location_params(response: httpx.Response) -> Dict[str, str]:
    """Query parameters of a redirect's Location header, blanks kept."""
    query = urlsplit(response.headers["location"]).query
    return {k: v[0] for k, v in parse_qs(query, keep_blank_values=True).items()}


@pytest.fixture
def state():
    return create_in_memory_state()


@pytest.fixture
def token_issuer(state):
    return JwtTokenIssuer(secret_key=TEST_JWT_SECRET, revocation_store=state.revocation_store)


@pytest.fixture
def app(state, token_issuer):
    return create_app(state=state, token_issuer=token_issuer)


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http_client:
        yield http_client


@pytest_asyncio.fixture
async def registered_client(client) -> Dict[str, Any]:
    response = await client.post("/oauth2/register", json={
        "client_name": "Test Wallet",
        "redirect_uris": [TEST_REDIRECT_URI],
        "scope": join_scopes(RECOGNIZED_SCOPES),
    })
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def pkce_pair():
    verifier = generate_pkce_code_verifier()
    return verifier, generate_pkce_code_challenge(verifier, "S256")


@pytest.fixture
def obtain_code(client, registered_client):
    """Runs the authorization endpoint and returns the issued code."""

    async def _obtain_code(
        code_challenge: str,
        code_challenge_method: str = "S256",
        scope: str = join_scopes(RECOGNIZED_SCOPES),
        redirect_uri: str = TEST_REDIRECT_URI,
    ) -> str:
        response = await client.get("/oauth2/authorize", params={
            "response_type": "code",
            "client_id": registered_client["client_id"],
            "redirect_uri": redirect_uri,
            "scope": scope,
            "state": "xyz",
            "code_challenge": code_challenge,
            "code_challenge_method": code_challenge_method,
        })
        assert response.status_code == 302, response.text
        return location_params(response)["code"]

    return _obtain_code


@pytest.fixture
def client_auth(registered_client):
    return (registered_client["client_id"], registered_client["client_secret"])


@pytest.fixture
def redirect_uri() -> str:
    return TEST_REDIRECT_URI


@pytest.fixture
def parse_location():
    return location_params
