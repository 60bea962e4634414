"""Custom exceptions for client identity resolution."""

from __future__ import annotations


class ClientResolutionError(Exception):
    """Base exception for client resolution errors."""

    pass


class AccountScopeError(ClientResolutionError):
    """Raised when a resolver is used without a valid account scope."""

    pass


class ConcurrentResolutionError(ClientResolutionError):
    """Raised when a second resolve is started for an account already in flight."""

    def __init__(self, account_id: str):
        super().__init__(
            f"A client resolution is already running for account {account_id!r}; "
            "resolutions for the same account must be serialized"
        )
        self.account_id = account_id


class ResolverStateError(ClientResolutionError):
    """Raised when resolver methods are called out of order."""

    pass


class ClientStorageError(ClientResolutionError):
    """Base exception for persistence collaborator failures."""

    pass


class ClientLoadError(ClientStorageError):
    """Raised when persisted clients cannot be loaded for an account."""

    pass


class ClientWriteError(ClientStorageError):
    """Raised when the upsert of client rows fails."""

    pass
