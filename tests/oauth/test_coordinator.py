"""Tests for OAuth coordinator module."""

from datetime import datetime, timedelta, timezone
from unittest import mock
from urllib.parse import parse_qs, urlparse

import pytest
import requests

from src.oauth.config import MarketplaceOAuthConfig
from src.oauth.coordinator import (
    AccountState,
    AuthorizationRequest,
    OAuthCoordinator,
    state_of,
)
from src.oauth.exceptions import (
    AccountNotFoundError,
    ConfigurationError,
    CredentialsRequiredError,
    DecryptionError,
    InvalidStateError,
    MissingParameterError,
    StateMismatchError,
    TokenNotAvailableError,
    UpstreamRejectedError,
    UpstreamUnavailableError,
)
from src.oauth.pkce import challenge_for
from src.oauth.token_client import TokenSet
from src.server.models.account import AccountCreate

TENANT = "tenant-1"


def make_response(status_code, body=None):
    """Build a mock requests.Response."""
    response = mock.Mock()
    response.status_code = status_code
    if body is None:
        response.json.side_effect = ValueError("No JSON")
    else:
        response.json.return_value = body
    return response


def token_response(**overrides):
    body = {
        "access_token": "access-1",
        "refresh_token": "refresh-1",
        "token_type": "bearer",
        "expires_in": 3600,
        "scope": "orders:read",
    }
    body.update(overrides)
    return make_response(200, body)


@pytest.fixture
def coordinator(test_db, cipher, oauth_config):
    return OAuthCoordinator(test_db, cipher, oauth_config)


@pytest.fixture
def account(coordinator):
    return coordinator.accounts.create_account(
        TENANT,
        AccountCreate(name="Main shop", client_id="abc123", client_secret="client-secret-1"),
    )


@pytest.fixture
def authorized_account(coordinator, account):
    coordinator.accounts.save_token_set(
        account.id,
        TokenSet(access_token="access-1", refresh_token="refresh-1", expires_in=3600),
    )
    return account


class TestInitiate:
    """Tests for OAuthCoordinator.initiate."""

    def test_initiate_builds_authorize_url(self, coordinator, account):
        request = coordinator.initiate(account.id, TENANT)

        assert isinstance(request, AuthorizationRequest)
        parsed = urlparse(request.authorize_url)
        params = parse_qs(parsed.query)
        assert parsed.netloc == "marketplace.example.com"
        assert params["response_type"] == ["code"]
        assert params["client_id"] == ["abc123"]
        assert params["redirect_uri"] == ["https://app.example.com/oauth/callback"]
        assert params["state"] == [request.state]
        assert params["code_challenge_method"] == ["S256"]
        assert len(params["code_challenge"][0]) == 43
        assert "scope" not in params

    def test_initiate_stores_pending_session(self, coordinator, account, cipher):
        request = coordinator.initiate(account.id)

        assert account.oauth_state == request.state
        verifier = cipher.decrypt(account.oauth_code_verifier)
        params = parse_qs(urlparse(request.authorize_url).query)
        assert challenge_for(verifier) == params["code_challenge"][0]
        assert state_of(account) == AccountState.PENDING

    def test_initiate_requires_credentials(self, coordinator, account, test_db):
        account.client_secret = None
        test_db.commit()

        with pytest.raises(CredentialsRequiredError):
            coordinator.initiate(account.id)

        assert account.oauth_state is None

    def test_initiate_requires_redirect_uri(self, test_db, cipher, account):
        config = MarketplaceOAuthConfig(
            authorize_url="https://marketplace.example.com/authorize",
            token_url="https://marketplace.example.com/token",
        )
        coordinator = OAuthCoordinator(test_db, cipher, config)

        with pytest.raises(ConfigurationError, match="MARKETPLACE_REDIRECT_URI"):
            coordinator.initiate(account.id)

    def test_initiate_checks_tenant(self, coordinator, account):
        with pytest.raises(AccountNotFoundError):
            coordinator.initiate(account.id, "another-tenant")

    def test_initiate_unknown_account(self, coordinator):
        with pytest.raises(AccountNotFoundError):
            coordinator.initiate("missing")

    def test_initiate_includes_scopes(self, test_db, cipher, oauth_config, account):
        oauth_config.scopes = ["orders:read", "offers:write"]
        coordinator = OAuthCoordinator(test_db, cipher, oauth_config)

        request = coordinator.initiate(account.id)

        params = parse_qs(urlparse(request.authorize_url).query)
        assert params["scope"] == ["orders:read offers:write"]


class TestComplete:
    """Tests for OAuthCoordinator.complete."""

    @mock.patch("requests.post")
    def test_end_to_end_authorization(self, mock_post, coordinator, account, cipher):
        """initiate then complete leaves the account authorized for about an hour."""
        request = coordinator.initiate(account.id, TENANT)
        params = parse_qs(urlparse(request.authorize_url).query)
        mock_post.return_value = token_response()

        coordinator.complete("X", request.state)

        data = mock_post.call_args[1]["data"]
        assert data["grant_type"] == "authorization_code"
        assert data["code"] == "X"
        assert data["redirect_uri"] == "https://app.example.com/oauth/callback"
        assert challenge_for(data["code_verifier"]) == params["code_challenge"][0]

        status = coordinator.status(account.id)
        assert status.authorized
        assert status.state == AccountState.AUTHORIZED
        assert status.scopes == "orders:read"
        expected = datetime.now(timezone.utc) + timedelta(hours=1)
        assert abs((status.expires_at - expected).total_seconds()) < 60

        assert account.oauth_state is None
        assert account.oauth_code_verifier is None
        assert account.access_token != "access-1"
        assert cipher.decrypt(account.access_token) == "access-1"
        assert cipher.decrypt(account.refresh_token) == "refresh-1"

    @mock.patch("requests.post")
    def test_complete_trims_parameters(self, mock_post, coordinator, account):
        request = coordinator.initiate(account.id)
        mock_post.return_value = token_response()

        coordinator.complete("  X \n", f" {request.state} ")

        assert mock_post.call_args[1]["data"]["code"] == "X"
        assert coordinator.status(account.id).authorized

    @mock.patch("requests.post")
    def test_second_initiate_invalidates_first_state(self, mock_post, coordinator, account):
        first = coordinator.initiate(account.id)
        second = coordinator.initiate(account.id)

        assert first.state != second.state
        with pytest.raises(InvalidStateError):
            coordinator.complete("X", first.state)
        mock_post.assert_not_called()

        mock_post.return_value = token_response()
        coordinator.complete("X", second.state)
        assert coordinator.status(account.id).authorized

    @mock.patch("requests.post")
    def test_unknown_state(self, mock_post, coordinator, account):
        coordinator.initiate(account.id)

        with pytest.raises(InvalidStateError):
            coordinator.complete("X", "not-a-known-state")

        mock_post.assert_not_called()
        assert account.oauth_state is not None

    @pytest.mark.parametrize("state", [None, "", "  "])
    def test_missing_state(self, coordinator, state):
        with pytest.raises(InvalidStateError):
            coordinator.complete("X", state)

    @pytest.mark.parametrize("code", [None, "", "  "])
    def test_missing_code(self, coordinator, account, code):
        request = coordinator.initiate(account.id)

        with pytest.raises(MissingParameterError) as exc_info:
            coordinator.complete(code, request.state)

        assert exc_info.value.field == "code"

    @mock.patch("requests.post")
    def test_verifier_from_other_key_clears_session(
        self, mock_post, coordinator, account, other_cipher, test_db
    ):
        """A verifier that cannot be decrypted ends the attempt."""
        request = coordinator.initiate(account.id)
        account.oauth_code_verifier = other_cipher.encrypt("verifier from before rotation")
        test_db.commit()

        with pytest.raises(DecryptionError):
            coordinator.complete("X", request.state)

        mock_post.assert_not_called()
        assert account.oauth_state is None
        assert account.oauth_code_verifier is None
        assert not coordinator.status(account.id).authorized

    @mock.patch("requests.post")
    def test_corrupt_client_secret_clears_session(
        self, mock_post, coordinator, account, test_db
    ):
        request = coordinator.initiate(account.id)
        account.client_secret = "not-a-ciphertext"
        test_db.commit()

        with pytest.raises(DecryptionError):
            coordinator.complete("X", request.state)

        mock_post.assert_not_called()
        assert account.oauth_state is None

    @mock.patch("requests.post")
    def test_rejected_code_clears_session(self, mock_post, coordinator, account):
        request = coordinator.initiate(account.id)
        mock_post.return_value = make_response(
            400, {"error": "invalid_grant", "error_description": "Code expired"}
        )

        with pytest.raises(UpstreamRejectedError, match="Code expired"):
            coordinator.complete("X", request.state)

        assert account.oauth_state is None
        assert not coordinator.status(account.id).authorized

    @pytest.mark.parametrize(
        "response",
        [
            make_response(400, {"error": "invalid_request", "error_description": "Code used"}),
            make_response(401, {"error": "invalid_client"}),
            make_response(400),
            make_response(200, {"token_type": "bearer", "expires_in": 3600}),
        ],
        ids=["invalid_request", "invalid_client", "no_json_body", "no_access_token"],
    )
    @mock.patch("requests.post")
    def test_any_rejection_clears_session(self, mock_post, response, coordinator, account):
        """The callback code is single-use, so only transport failures keep the state."""
        request = coordinator.initiate(account.id)
        mock_post.return_value = response

        with pytest.raises(UpstreamRejectedError):
            coordinator.complete("X", request.state)

        assert account.oauth_state is None
        assert account.oauth_code_verifier is None
        assert account.access_token is None

        with pytest.raises(InvalidStateError):
            coordinator.complete("X", request.state)

    @mock.patch("requests.post")
    def test_state_mismatch_after_lookup(self, mock_post, coordinator, account):
        request = coordinator.initiate(account.id)
        account.oauth_state = "0" * 32

        with mock.patch.object(coordinator.sessions, "find_by_state", return_value=account):
            with pytest.raises(StateMismatchError):
                coordinator.complete("X", request.state)

        mock_post.assert_not_called()
        assert account.access_token is None

    @mock.patch("requests.post")
    def test_unavailable_upstream_keeps_session(self, mock_post, coordinator, account):
        """A transport failure can be retried with the same state."""
        request = coordinator.initiate(account.id)
        mock_post.side_effect = requests.Timeout("read timed out")

        with pytest.raises(UpstreamUnavailableError):
            coordinator.complete("X", request.state)

        assert account.oauth_state == request.state
        assert account.access_token is None

        mock_post.side_effect = None
        mock_post.return_value = token_response()
        coordinator.complete("X", request.state)

        assert coordinator.status(account.id).authorized

    @mock.patch("requests.post")
    def test_server_error_keeps_session(self, mock_post, coordinator, account):
        request = coordinator.initiate(account.id)
        mock_post.return_value = make_response(502)

        with pytest.raises(UpstreamUnavailableError):
            coordinator.complete("X", request.state)

        assert account.oauth_state == request.state


class TestStatusAndRevoke:
    """Tests for OAuthCoordinator.status and revoke."""

    def test_status_unauthorized(self, coordinator, account):
        status = coordinator.status(account.id)

        assert not status.authorized
        assert status.state == AccountState.CONFIGURED
        assert status.to_dict() == {"authorized": False, "state": "configured"}

    def test_status_ignores_expiry(self, coordinator, account):
        """An expired token still reports authorized; no network is used."""
        coordinator.accounts.save_token_set(
            account.id,
            TokenSet(
                access_token="a",
                expires_in=60,
                issued_at=datetime.now(timezone.utc) - timedelta(hours=2),
            ),
        )

        status = coordinator.status(account.id)

        assert status.authorized
        assert status.expires_at < datetime.now(timezone.utc)
        assert "expires_at" in status.to_dict()

    def test_revoke_is_idempotent(self, coordinator, authorized_account):
        coordinator.revoke(authorized_account.id)
        coordinator.revoke(authorized_account.id)

        status = coordinator.status(authorized_account.id)
        assert not status.authorized
        assert status.state == AccountState.CONFIGURED

    def test_revoke_keeps_client_credentials(self, coordinator, authorized_account):
        coordinator.initiate(authorized_account.id)

        coordinator.revoke(authorized_account.id)

        credentials = coordinator.accounts.get_decrypted(authorized_account.id)
        assert credentials.client_id == "abc123"
        assert credentials.client_secret.value == "client-secret-1"
        assert not credentials.has_token_set
        assert authorized_account.oauth_state is None

    def test_revoke_unconfigured_account(self, coordinator, account, test_db):
        account.client_secret = None
        test_db.commit()

        coordinator.revoke(account.id)

        assert state_of(account) == AccountState.UNCONFIGURED


class TestValidateCredentials:
    """Tests for OAuthCoordinator.validate_credentials."""

    @mock.patch("requests.post")
    def test_valid(self, mock_post, coordinator):
        mock_post.return_value = token_response()

        result = coordinator.validate_credentials("abc123", "shh")

        assert result.valid
        assert result.error_code is None

    @mock.patch("requests.post")
    def test_invalid_client(self, mock_post, coordinator):
        mock_post.return_value = make_response(401, {"error": "invalid_client"})

        result = coordinator.validate_credentials("abc123", "wrong")

        assert not result.valid
        assert "Invalid API credentials" in result.message

    @mock.patch("requests.post")
    def test_endpoint_not_found(self, mock_post, coordinator):
        mock_post.return_value = make_response(404)

        result = coordinator.validate_credentials("abc123", "shh")

        assert not result.valid
        assert result.error_code == "CONFIG_ERROR"

    @mock.patch("requests.post")
    def test_network_failure(self, mock_post, coordinator):
        mock_post.side_effect = requests.ConnectionError("refused")

        result = coordinator.validate_credentials("abc123", "shh")

        assert not result.valid
        assert result.error_code == "UPSTREAM_UNAVAILABLE"

    def test_missing_secret(self, coordinator):
        result = coordinator.validate_credentials("abc123", "")

        assert result.to_dict() == {
            "valid": False,
            "message": "Missing required parameter: client_secret",
            "error_code": "MISSING_PARAMETER",
        }


class TestRefresh:
    """Tests for OAuthCoordinator.refresh and get_access_token."""

    @mock.patch("requests.post")
    def test_refresh_keeps_refresh_token_when_not_rotated(
        self, mock_post, coordinator, authorized_account, cipher
    ):
        mock_post.return_value = make_response(
            200, {"access_token": "access-2", "expires_in": 3600}
        )

        token_set = coordinator.refresh(authorized_account.id)

        assert mock_post.call_args[1]["data"] == {
            "grant_type": "refresh_token",
            "refresh_token": "refresh-1",
        }
        assert token_set.access_token == "access-2"
        assert cipher.decrypt(authorized_account.access_token) == "access-2"
        assert cipher.decrypt(authorized_account.refresh_token) == "refresh-1"

    @mock.patch("requests.post")
    def test_refresh_stores_rotated_token(
        self, mock_post, coordinator, authorized_account, cipher
    ):
        mock_post.return_value = token_response(
            access_token="access-2", refresh_token="refresh-2"
        )

        coordinator.refresh(authorized_account.id)

        assert cipher.decrypt(authorized_account.refresh_token) == "refresh-2"

    def test_refresh_without_refresh_token(self, coordinator, account):
        with pytest.raises(TokenNotAvailableError):
            coordinator.refresh(account.id)

    @mock.patch("requests.post")
    def test_corrupt_refresh_token_clears_token_set(
        self, mock_post, coordinator, authorized_account, test_db
    ):
        authorized_account.refresh_token = "deadbeef:cafe"
        test_db.commit()

        with pytest.raises(DecryptionError):
            coordinator.refresh(authorized_account.id)

        mock_post.assert_not_called()
        assert not coordinator.status(authorized_account.id).authorized

    @mock.patch("requests.post")
    def test_rejected_refresh_clears_token_set(
        self, mock_post, coordinator, authorized_account
    ):
        mock_post.return_value = make_response(400, {"error": "invalid_grant"})

        with pytest.raises(UpstreamRejectedError):
            coordinator.refresh(authorized_account.id)

        assert not coordinator.status(authorized_account.id).authorized

    @mock.patch("requests.post")
    def test_get_access_token_without_refresh(
        self, mock_post, coordinator, authorized_account
    ):
        assert coordinator.get_access_token(authorized_account.id) == "access-1"
        mock_post.assert_not_called()

    @mock.patch("requests.post")
    def test_get_access_token_refreshes_when_expiring(
        self, mock_post, coordinator, account
    ):
        coordinator.accounts.save_token_set(
            account.id,
            TokenSet(access_token="old", refresh_token="refresh-1", expires_in=60),
        )
        mock_post.return_value = token_response(access_token="fresh")

        assert coordinator.get_access_token(account.id) == "fresh"
        mock_post.assert_called_once()

    def test_get_access_token_unauthorized(self, coordinator, account):
        with pytest.raises(TokenNotAvailableError):
            coordinator.get_access_token(account.id)

    def test_authorization_header(self, coordinator, authorized_account):
        header = coordinator.get_authorization_header(authorized_account.id, TENANT)
        assert header == {"Authorization": "Bearer access-1"}
