"""Pydantic request models."""

from src.server.models.account import AccountCreate, AccountUpdate

__all__ = [
    "AccountCreate",
    "AccountUpdate",
]
