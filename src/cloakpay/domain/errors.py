"""Domain-specific exceptions."""

from __future__ import annotations


class ConfigurationError(Exception):
    """Raised when a required secret or setting is missing or malformed."""


class EntityNotFoundError(Exception):
    """Raised when an entity lookup fails."""


class InvalidStateError(Exception):
    """Raised when an entity cannot make the requested status transition."""


class CallbackAuthenticationError(Exception):
    """Raised when an inbound MPC callback carries a missing or invalid signature."""


class DecryptionError(Exception):
    """Raised when a ciphertext fails authentication or is malformed."""


class ChainTransactionError(Exception):
    """Raised when an on-chain transaction is rejected or fails to confirm."""


class ComputationLookupError(Exception):
    """Raised when the MPC cluster cannot answer a computation status lookup."""
