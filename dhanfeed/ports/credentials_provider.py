"""CredentialsProvider Port Interface.

Contract: Retrieve feed credentials by logical name; no persistence here.
"""

from __future__ import annotations

from typing import Protocol


class CredentialsProvider(Protocol):
    def get(self, name: str) -> str: ...

    """
    Retrieve a credential value using its logical name.
    Raises a ValueError subclass when the credential is unavailable.
    """
