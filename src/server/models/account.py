"""Pydantic models for marketplace account requests.

This module contains request schemas for account CRUD operations,
including validation rules.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class AccountCreate(BaseModel):
    """Request schema for creating a marketplace account.

    Attributes:
        name: Account name (required, unique per tenant)
        client_id: Marketplace client id
        client_secret: Marketplace client secret (encrypted before storage)

    Example:
        >>> AccountCreate(name="Main shop", client_id="abc123", client_secret="s3cret")
    """

    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Account name",
    )
    client_id: str = Field(
        ...,
        min_length=1,
        description="Marketplace client id",
    )
    client_secret: str = Field(
        ...,
        min_length=1,
        repr=False,
        description="Marketplace client secret",
    )

    @field_validator("name", "client_id", "client_secret")
    @classmethod
    def must_not_be_blank(cls, v: str) -> str:
        """Validate that a value is not blank or whitespace only.

        Args:
            v: Value to validate

        Returns:
            Stripped value

        Raises:
            ValueError: If value is blank or whitespace only
        """
        if not v or not v.strip():
            raise ValueError("Value cannot be blank")
        return v.strip()


class AccountUpdate(BaseModel):
    """Request schema for updating a marketplace account.

    All fields are optional; only provided fields are changed.

    Attributes:
        name: New account name
        client_id: New client id
        client_secret: New client secret
    """

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    client_id: Optional[str] = Field(None, min_length=1)
    client_secret: Optional[str] = Field(None, min_length=1, repr=False)

    @field_validator("name", "client_id", "client_secret")
    @classmethod
    def must_not_be_blank(cls, v: Optional[str]) -> Optional[str]:
        """Validate that a provided value is not blank.

        Args:
            v: Value to validate

        Returns:
            Stripped value or None

        Raises:
            ValueError: If value is blank or whitespace only
        """
        if v is None:
            return v
        if not v.strip():
            raise ValueError("Value cannot be blank")
        return v.strip()
