# tests/test_token_endpoint.py
import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from badge_oauth.oauth.models import AuthCodeData, RefreshTokenData
from badge_oauth.oauth.pkce import generate_pkce_code_challenge, generate_pkce_code_verifier
from badge_oauth.oauth.provider import ACCESS_TOKEN_LIFETIME_SECONDS
from badge_oauth.oauth.scopes import (
    CREDENTIAL_READONLY_SCOPE,
    CREDENTIAL_UPSERT_SCOPE,
    OFFLINE_ACCESS_SCOPE,
    PASSWORD_GRANT_SCOPES,
    PROFILE_READONLY_SCOPE,
    RECOGNIZED_SCOPES,
    join_scopes,
)


def _code_exchange(code, redirect_uri, client_id, verifier):
    return {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri,
        "client_id": client_id,
        "code_verifier": verifier,
    }


async def _issue_tokens(client, obtain_code, client_auth, redirect_uri, scope):
    verifier = generate_pkce_code_verifier()
    code = await obtain_code(generate_pkce_code_challenge(verifier), scope=scope)
    response = await client.post(
        "/oauth2/token", data=_code_exchange(code, redirect_uri, client_auth[0], verifier), auth=client_auth
    )
    assert response.status_code == 200, response.text
    return response.json()


class TestAuthorizationCodeGrant:

    async def test_happy_path(self, client, obtain_code, client_auth, redirect_uri, pkce_pair, token_issuer, state):
        verifier, challenge = pkce_pair
        code = await obtain_code(challenge)
        response = await client.post(
            "/oauth2/token", data=_code_exchange(code, redirect_uri, client_auth[0], verifier), auth=client_auth
        )
        assert response.status_code == 200
        assert response.headers["cache-control"] == "no-store"
        body = response.json()
        assert body["token_type"] == "Bearer"
        assert body["expires_in"] == ACCESS_TOKEN_LIFETIME_SECONDS
        assert body["scope"] == join_scopes(RECOGNIZED_SCOPES)
        assert len(body["refresh_token"]) == 64

        payload = await token_issuer.verify_token(body["access_token"])
        assert payload.sub.startswith("demo-user-")
        assert payload.scope == RECOGNIZED_SCOPES

        stored_refresh = await state.refresh_token_store.load_refresh_token(body["refresh_token"])
        assert stored_refresh.client_id == client_auth[0]
        assert await state.auth_code_store.load_auth_code(code) is None

    async def test_code_is_single_use(self, client, obtain_code, client_auth, redirect_uri, pkce_pair):
        verifier, challenge = pkce_pair
        code = await obtain_code(challenge)
        exchange = _code_exchange(code, redirect_uri, client_auth[0], verifier)
        first = await client.post("/oauth2/token", data=exchange, auth=client_auth)
        second = await client.post("/oauth2/token", data=exchange, auth=client_auth)
        assert first.status_code == 200
        assert second.status_code == 400
        assert second.json()["error"] == "invalid_grant"

    async def test_concurrent_redemptions_yield_one_success(
        self, client, obtain_code, client_auth, redirect_uri, pkce_pair
    ):
        verifier, challenge = pkce_pair
        code = await obtain_code(challenge)
        exchange = _code_exchange(code, redirect_uri, client_auth[0], verifier)
        responses = await asyncio.gather(*[
            client.post("/oauth2/token", data=exchange, auth=client_auth) for _ in range(8)
        ])
        statuses = sorted(r.status_code for r in responses)
        assert statuses == [200] + [400] * 7
        assert all(r.json()["error"] == "invalid_grant" for r in responses if r.status_code == 400)

    async def test_wrong_verifier_keeps_code_redeemable(
        self, client, obtain_code, client_auth, redirect_uri, pkce_pair
    ):
        verifier, challenge = pkce_pair
        code = await obtain_code(challenge)
        wrong = await client.post(
            "/oauth2/token",
            data=_code_exchange(code, redirect_uri, client_auth[0], generate_pkce_code_verifier()),
            auth=client_auth
        )
        assert wrong.status_code == 400
        assert wrong.json() == {"error": "invalid_grant", "error_description": "Invalid code_verifier"}

        retry = await client.post(
            "/oauth2/token", data=_code_exchange(code, redirect_uri, client_auth[0], verifier), auth=client_auth
        )
        assert retry.status_code == 200

    async def test_unencodable_verifier_is_invalid_grant(
        self, client, obtain_code, client_auth, redirect_uri, pkce_pair
    ):
        _, challenge = pkce_pair
        code = await obtain_code(challenge)
        response = await client.post(
            "/oauth2/token",
            content=json.dumps(_code_exchange(code, redirect_uri, client_auth[0], "\ud800")),
            headers={"content-type": "application/json"},
            auth=client_auth
        )
        assert response.status_code == 400
        assert response.json() == {"error": "invalid_grant", "error_description": "Invalid code_verifier"}

    @pytest.mark.parametrize("suffix", ["/", "?x=1", "-other"])
    async def test_redirect_uri_must_match_exactly(
        self, client, obtain_code, client_auth, redirect_uri, pkce_pair, suffix
    ):
        verifier, challenge = pkce_pair
        code = await obtain_code(challenge)
        response = await client.post(
            "/oauth2/token",
            data=_code_exchange(code, redirect_uri + suffix, client_auth[0], verifier),
            auth=client_auth
        )
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_grant"

    async def test_plain_pkce(self, client, obtain_code, client_auth, redirect_uri):
        verifier = generate_pkce_code_verifier()
        code = await obtain_code(verifier, code_challenge_method="plain")
        response = await client.post(
            "/oauth2/token", data=_code_exchange(code, redirect_uri, client_auth[0], verifier), auth=client_auth
        )
        assert response.status_code == 200

    async def test_s256_challenge_declared_plain_fails(self, client, obtain_code, client_auth, redirect_uri, pkce_pair):
        verifier, challenge = pkce_pair
        code = await obtain_code(challenge, code_challenge_method="plain")
        response = await client.post(
            "/oauth2/token", data=_code_exchange(code, redirect_uri, client_auth[0], verifier), auth=client_auth
        )
        assert response.json()["error"] == "invalid_grant"

    async def test_unknown_challenge_method_fails_closed(self, client, obtain_code, client_auth, redirect_uri):
        verifier = generate_pkce_code_verifier()
        code = await obtain_code(verifier, code_challenge_method="S512")
        response = await client.post(
            "/oauth2/token", data=_code_exchange(code, redirect_uri, client_auth[0], verifier), auth=client_auth
        )
        assert response.json()["error"] == "invalid_grant"

    async def test_expired_code(self, client, state, client_auth, redirect_uri, pkce_pair):
        verifier, challenge = pkce_pair
        await state.auth_code_store.save_auth_code(AuthCodeData(
            code="expired-code",
            client_id=client_auth[0],
            redirect_uri=redirect_uri,
            code_challenge=challenge,
            code_challenge_method="S256",
            user_id="demo-user-1",
            expires_at=datetime.now(timezone.utc) - timedelta(seconds=1),
        ))
        response = await client.post(
            "/oauth2/token",
            data=_code_exchange("expired-code", redirect_uri, client_auth[0], verifier),
            auth=client_auth
        )
        assert response.json() == {"error": "invalid_grant", "error_description": "Invalid or expired authorization code"}
        assert await state.auth_code_store.load_auth_code("expired-code") is None

    async def test_code_bound_to_issuing_client(self, client, obtain_code, redirect_uri, pkce_pair):
        verifier, challenge = pkce_pair
        code = await obtain_code(challenge)
        other = (await client.post("/oauth2/register", json={
            "client_name": "Other", "redirect_uris": [redirect_uri]
        })).json()
        response = await client.post(
            "/oauth2/token",
            data=_code_exchange(code, redirect_uri, other["client_id"], verifier),
            auth=(other["client_id"], other["client_secret"])
        )
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_grant"

    @pytest.mark.parametrize("missing", ["code", "redirect_uri", "client_id", "code_verifier"])
    async def test_missing_parameters(self, client, client_auth, redirect_uri, missing):
        exchange = _code_exchange("some-code", redirect_uri, client_auth[0], "v" * 43)
        del exchange[missing]
        response = await client.post("/oauth2/token", data=exchange, auth=client_auth)
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"

    async def test_client_secret_post(self, client, obtain_code, client_auth, redirect_uri, pkce_pair):
        verifier, challenge = pkce_pair
        code = await obtain_code(challenge)
        exchange = _code_exchange(code, redirect_uri, client_auth[0], verifier)
        exchange["client_secret"] = client_auth[1]
        response = await client.post("/oauth2/token", data=exchange)
        assert response.status_code == 200

    async def test_json_body(self, client, obtain_code, client_auth, redirect_uri, pkce_pair):
        verifier, challenge = pkce_pair
        code = await obtain_code(challenge)
        response = await client.post(
            "/oauth2/token", json=_code_exchange(code, redirect_uri, client_auth[0], verifier), auth=client_auth
        )
        assert response.status_code == 200


class TestClientAuthentication:

    async def test_wrong_secret(self, client, obtain_code, client_auth, redirect_uri, pkce_pair):
        verifier, challenge = pkce_pair
        code = await obtain_code(challenge)
        response = await client.post(
            "/oauth2/token",
            data=_code_exchange(code, redirect_uri, client_auth[0], verifier),
            auth=(client_auth[0], "wrong-secret")
        )
        assert response.status_code == 401
        assert response.json() == {"error": "invalid_client", "error_description": "Invalid client credentials."}
        assert response.headers["www-authenticate"].startswith("Basic")

    async def test_missing_credentials(self, client, client_auth, redirect_uri):
        response = await client.post(
            "/oauth2/token", data=_code_exchange("some-code", redirect_uri, client_auth[0], "v" * 43)
        )
        assert response.status_code == 401
        assert response.json()["error_description"] == "Missing client credentials."

    async def test_non_ascii_basic_header(self, client, client_auth, redirect_uri):
        response = await client.post(
            "/oauth2/token",
            data=_code_exchange("some-code", redirect_uri, client_auth[0], "v" * 43),
            headers={"Authorization": "Basic éééé".encode("latin-1")}
        )
        assert response.status_code == 401
        assert response.json()["error"] == "invalid_client"

    async def test_unencodable_client_secret(self, client, client_auth, redirect_uri):
        exchange = _code_exchange("some-code", redirect_uri, client_auth[0], "v" * 43)
        exchange["client_secret"] = "\ud800"
        response = await client.post(
            "/oauth2/token", content=json.dumps(exchange), headers={"content-type": "application/json"}
        )
        assert response.status_code == 401
        assert response.json()["error"] == "invalid_client"

    async def test_authenticated_client_must_match_client_id(self, client, client_auth, redirect_uri):
        response = await client.post(
            "/oauth2/token",
            data=_code_exchange("some-code", redirect_uri, "ffffffffffffffff", "v" * 43),
            auth=client_auth
        )
        assert response.status_code == 401
        assert response.json()["error"] == "invalid_client"


class TestRefreshTokenGrant:

    async def test_refresh_keeps_original_scope(self, client, obtain_code, client_auth, redirect_uri):
        scope = join_scopes([CREDENTIAL_READONLY_SCOPE, OFFLINE_ACCESS_SCOPE])
        tokens = await _issue_tokens(client, obtain_code, client_auth, redirect_uri, scope)
        response = await client.post("/oauth2/token", data={
            "grant_type": "refresh_token", "refresh_token": tokens["refresh_token"]
        }, auth=client_auth)
        assert response.status_code == 200
        body = response.json()
        assert body["scope"] == scope
        assert body["expires_in"] == ACCESS_TOKEN_LIFETIME_SECONDS
        assert "refresh_token" not in body
        assert body["access_token"] != tokens["access_token"]

    async def test_refresh_can_narrow_scope(self, client, obtain_code, client_auth, redirect_uri, token_issuer):
        scope = join_scopes([CREDENTIAL_READONLY_SCOPE, PROFILE_READONLY_SCOPE, OFFLINE_ACCESS_SCOPE])
        tokens = await _issue_tokens(client, obtain_code, client_auth, redirect_uri, scope)
        response = await client.post("/oauth2/token", data={
            "grant_type": "refresh_token", "refresh_token": tokens["refresh_token"],
            "scope": PROFILE_READONLY_SCOPE,
        }, auth=client_auth)
        assert response.json()["scope"] == PROFILE_READONLY_SCOPE
        payload = await token_issuer.verify_token(response.json()["access_token"])
        assert payload.scope == [PROFILE_READONLY_SCOPE]

    async def test_refresh_never_widens_scope(self, client, obtain_code, client_auth, redirect_uri):
        scope = join_scopes([CREDENTIAL_READONLY_SCOPE, OFFLINE_ACCESS_SCOPE])
        tokens = await _issue_tokens(client, obtain_code, client_auth, redirect_uri, scope)
        response = await client.post("/oauth2/token", data={
            "grant_type": "refresh_token", "refresh_token": tokens["refresh_token"],
            "scope": join_scopes([CREDENTIAL_READONLY_SCOPE, CREDENTIAL_UPSERT_SCOPE]),
        }, auth=client_auth)
        assert response.json()["scope"] == CREDENTIAL_READONLY_SCOPE

    async def test_disjoint_scope_falls_back_to_original(self, client, obtain_code, client_auth, redirect_uri):
        scope = join_scopes([CREDENTIAL_READONLY_SCOPE, OFFLINE_ACCESS_SCOPE])
        tokens = await _issue_tokens(client, obtain_code, client_auth, redirect_uri, scope)
        response = await client.post("/oauth2/token", data={
            "grant_type": "refresh_token", "refresh_token": tokens["refresh_token"],
            "scope": f"{CREDENTIAL_UPSERT_SCOPE} openid",
        }, auth=client_auth)
        assert response.json()["scope"] == scope

    async def test_refresh_token_bound_to_client(self, client, obtain_code, client_auth, redirect_uri):
        tokens = await _issue_tokens(client, obtain_code, client_auth, redirect_uri, OFFLINE_ACCESS_SCOPE)
        other = (await client.post("/oauth2/register", json={
            "client_name": "Other", "redirect_uris": [redirect_uri]
        })).json()
        response = await client.post("/oauth2/token", data={
            "grant_type": "refresh_token", "refresh_token": tokens["refresh_token"]
        }, auth=(other["client_id"], other["client_secret"]))
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_grant"

    async def test_unknown_and_expired_refresh_tokens(self, client, state, client_auth):
        await state.refresh_token_store.save_refresh_token(RefreshTokenData(
            token="expired-refresh",
            client_id=client_auth[0],
            user_id="demo-user-1",
            expires_at=datetime.now(timezone.utc) - timedelta(seconds=1),
        ))
        for refresh_token in ("expired-refresh", "never-issued"):
            response = await client.post("/oauth2/token", data={
                "grant_type": "refresh_token", "refresh_token": refresh_token
            }, auth=client_auth)
            assert response.status_code == 400
            assert response.json()["error"] == "invalid_grant"
        assert await state.refresh_token_store.load_refresh_token("expired-refresh") is None

    async def test_missing_refresh_token(self, client, client_auth):
        response = await client.post("/oauth2/token", data={"grant_type": "refresh_token"}, auth=client_auth)
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"


class TestPasswordGrant:

    async def test_password_grant(self, client, token_issuer):
        response = await client.post("/oauth2/token", data={
            "grant_type": "password", "username": "alice", "password": "secret1"
        })
        assert response.status_code == 200
        body = response.json()
        assert body["scope"] == join_scopes(PASSWORD_GRANT_SCOPES)
        assert "refresh_token" not in body
        payload = await token_issuer.verify_token(body["access_token"])
        assert payload.sub == "user-alice"
        assert payload.name == "alice"
        assert OFFLINE_ACCESS_SCOPE not in payload.scope

    async def test_short_password(self, client):
        response = await client.post("/oauth2/token", data={
            "grant_type": "password", "username": "alice", "password": "12345"
        })
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_grant"

    async def test_missing_credentials(self, client):
        response = await client.post("/oauth2/token", data={"grant_type": "password", "username": "alice"})
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"


class TestGrantTypeDispatch:

    async def test_missing_grant_type(self, client):
        response = await client.post("/oauth2/token", data={"code": "abc"})
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"

    async def test_unsupported_grant_type(self, client):
        response = await client.post("/oauth2/token", data={"grant_type": "client_credentials"})
        assert response.status_code == 400
        assert response.json() == {
            "error": "unsupported_grant_type",
            "error_description": "Grant type client_credentials is not supported",
        }

    async def test_non_string_json_values(self, client):
        response = await client.post("/oauth2/token", json={"grant_type": "password", "username": ["a"]})
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"

    async def test_unexpected_failure_is_server_error(self, client, app, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("signing backend down")

        monkeypatch.setattr(app.state.oauth_provider.token_issuer, "issue_token", explode)
        response = await client.post("/oauth2/token", data={
            "grant_type": "password", "username": "alice", "password": "secret1"
        })
        assert response.status_code == 500
        assert response.json()["error"] == "server_error"
        assert "signing backend down" not in response.text
