"""Data access layer repositories."""

from src.server.repositories.account import (
    AccountRepository,
    DecryptedCredentials,
    DecryptedField,
)

__all__ = [
    "AccountRepository",
    "DecryptedCredentials",
    "DecryptedField",
]
