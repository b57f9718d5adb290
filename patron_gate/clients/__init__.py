"""Expose constructed client wrappers."""

from .dynamodb import DynamoDBCredentialStore
from .patreon import (
    ExchangeErrorKind,
    FetchErrorKind,
    OAuthTokenExchangeError,
    PatreonFetchError,
    PatreonOAuthClient,
)
from .sqlite_store import SQLiteCredentialStore
from .storage import CredentialBackend, CredentialStoreUnavailableError

__all__ = [
    "CredentialBackend",
    "CredentialStoreUnavailableError",
    "DynamoDBCredentialStore",
    "ExchangeErrorKind",
    "FetchErrorKind",
    "OAuthTokenExchangeError",
    "PatreonFetchError",
    "PatreonOAuthClient",
    "SQLiteCredentialStore",
]
