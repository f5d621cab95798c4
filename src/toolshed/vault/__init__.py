"""Write-once secret storage for tool credentials."""

from toolshed.vault.secret_store import SecretStore, SqliteSecretStore, secret_key

__all__ = [
    "SecretStore",
    "SqliteSecretStore",
    "secret_key",
]
