"""
OAuth exception classes for the marketplace integration.

This module defines the exception hierarchy for all OAuth and credential
vault errors. Every exception carries a stable machine-readable ``code`` in
addition to its human-readable message, so the surrounding HTTP layer can map
failures without parsing text.

Messages must never contain keys, tokens or client secrets.
"""

from typing import Optional


class MarketplaceOAuthError(Exception):
    """Base exception for all marketplace OAuth errors."""

    code = "OAUTH_ERROR"

    def to_dict(self) -> dict:
        """
        Convert to a serializable error payload.

        Returns:
            Dictionary with ``code`` and ``message`` keys
        """
        return {"code": self.code, "message": str(self)}


class ConfigurationError(MarketplaceOAuthError):
    """Missing or invalid configuration (key, endpoints, redirect URI)."""

    code = "CONFIG_ERROR"


class CredentialsRequiredError(MarketplaceOAuthError):
    """Account has no client id / client secret configured."""

    code = "CREDENTIALS_REQUIRED"


class InvalidStateError(MarketplaceOAuthError):
    """Callback state is absent or not recognized."""

    code = "INVALID_STATE"


class StateMismatchError(MarketplaceOAuthError):
    """Stored state does not equal the state supplied on callback."""

    code = "STATE_MISMATCH"


class DecryptionError(MarketplaceOAuthError):
    """Stored ciphertext is unreadable with the current key."""

    code = "DECRYPTION_FAILED"


class MalformedCiphertextError(DecryptionError):
    """Ciphertext is not in ``iv:payload`` hex form."""

    code = "MALFORMED_CIPHERTEXT"


class UpstreamRejectedError(MarketplaceOAuthError):
    """Token endpoint answered with an OAuth error body."""

    code = "UPSTREAM_REJECTED"

    def __init__(
        self,
        message: str,
        error: Optional[str] = None,
        error_description: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.error = error
        self.error_description = error_description
        self.status_code = status_code

    @property
    def rejects_grant(self) -> bool:
        """True if the upstream refused the grant (authorization code or refresh token)."""
        return self.error == "invalid_grant"

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["error"] = self.error
        payload["error_description"] = self.error_description
        return payload


class UpstreamUnavailableError(MarketplaceOAuthError):
    """Network failure, timeout or server error talking to the token endpoint."""

    code = "UPSTREAM_UNAVAILABLE"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AccountNotFoundError(MarketplaceOAuthError):
    """Account does not exist or does not belong to the caller's tenant."""

    code = "NOT_FOUND"


class MissingParameterError(MarketplaceOAuthError):
    """A required value for a token request is empty."""

    code = "MISSING_PARAMETER"

    def __init__(self, field: str):
        super().__init__(f"Missing required parameter: {field}")
        self.field = field

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["field"] = self.field
        return payload


class DuplicateAccountNameError(MarketplaceOAuthError):
    """Tenant already has an account with this name."""

    code = "ACCOUNT_NAME_TAKEN"


class TokenNotAvailableError(MarketplaceOAuthError):
    """No refresh token stored (need to authorize first)."""

    code = "TOKEN_NOT_AVAILABLE"
