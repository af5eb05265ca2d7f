"""Custom exceptions for the token bind tool."""

from __future__ import annotations

from typing import Any


class BindToolError(Exception):
    """Base exception for bind tool errors."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class ConfigurationError(BindToolError):
    """Missing or invalid configuration (raised before any transaction)."""

    pass


class SignerError(BindToolError):
    """Signing backend unavailable or refused to sign."""

    pass


class SubmissionError(BindToolError):
    """Transaction rejected before entering the chain."""

    pass


class ConfirmationTimeout(BindToolError):
    """No receipt was found before the confirmation deadline."""

    def __init__(self, message: str, tx_hash: str, details: Any = None):
        super().__init__(message, details)
        self.tx_hash = tx_hash


class OnChainFailure(BindToolError):
    """Transaction was mined but its receipt status indicates a revert."""

    def __init__(self, message: str, tx_hash: str | None = None, details: Any = None):
        super().__init__(message, details)
        self.tx_hash = tx_hash


class WorkflowPreconditionError(BindToolError):
    """On-chain state does not allow the workflow to start."""

    pass


class WorkflowError(BindToolError):
    """Illegal state transition or duplicate pending transaction."""

    pass
