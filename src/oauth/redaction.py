"""Helpers for describing secrets in logs without exposing them."""

from typing import Optional


def mask(value: Optional[str], visible: int = 4) -> str:
    """
    Describe a secret by its first characters and length.

    Args:
        value: Secret value (key, token, client id/secret)
        visible: Number of leading characters to keep

    Returns:
        String like ``"abcd...(len=43)"``, or ``"<empty>"``
    """
    if not value:
        return "<empty>"
    if len(value) <= visible:
        return f"***(len={len(value)})"
    return f"{value[:visible]}...(len={len(value)})"
