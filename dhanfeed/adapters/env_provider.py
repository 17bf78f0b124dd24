from __future__ import annotations

import logging
import os

from dhanfeed.ports.credentials_provider import CredentialsProvider

_LOGGER = logging.getLogger(__name__)


class MissingCredentialError(ValueError):
    """
    Raised when a logical credential cannot be resolved from the environment.
    """

    def __init__(self, name: str, env_var: str | None = None) -> None:
        super().__init__(name)
        self.name = name
        self.env_var = env_var

    def __str__(self) -> str:
        if self.env_var:
            return f"Credential '{self.name}' is unavailable (set {self.env_var})"
        return f"Credential '{self.name}' is unavailable"


class EnvCredentialsProvider(CredentialsProvider):
    def __init__(
        self,
        prefix: str = "DHAN_",
        allowed: dict[str, str] | None = None,
        environ: dict[str, str] | None = None,
    ) -> None:
        """
        Configure lookup rules for environment-backed feed credentials.
        """

        if not prefix:
            raise ValueError("Environment prefix must be a non-empty string")
        self._prefix = prefix
        # logical credential name -> environment variable suffix
        base_allowed: dict[str, str] = {
            "access_token": "ACCESS_TOKEN",
            "client_id": "CLIENT_ID",
            "ws_version": "WS_VERSION",
        }
        if allowed:
            base_allowed.update(allowed)
        self._allowed = base_allowed
        self._environ = environ

    def env_var(self, name: str) -> str:
        """Environment variable consulted for a logical credential name."""
        if name not in self._allowed:
            raise MissingCredentialError(name)
        return f"{self._prefix}{self._allowed[name]}"

    def get(self, name: str) -> str:
        """Resolve a logical credential name to a non-empty environment value."""

        env_var = self.env_var(name)
        environ = os.environ if self._environ is None else self._environ
        value = environ.get(env_var, "").strip()
        if not value:
            raise MissingCredentialError(name, env_var)

        _LOGGER.debug(
            "credential_resolved",
            extra={
                "event": "credential_resolved",
                "credential_name": name,
                "source": "env",
            },
        )
        return value
