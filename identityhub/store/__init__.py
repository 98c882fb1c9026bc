"""Credential store implementations."""

from identityhub.store.base import CredentialStore
from identityhub.store.memory import InMemoryCredentialStore
from identityhub.store.postgres import PostgresCredentialStore

__all__ = ["CredentialStore", "InMemoryCredentialStore", "PostgresCredentialStore"]
