"""Token bind tool - binds a BEP2 token to a newly deployed BEP20 contract."""

from .exceptions import (
    BindToolError,
    ConfigurationError,
    ConfirmationTimeout,
    OnChainFailure,
    SignerError,
    SubmissionError,
    WorkflowError,
    WorkflowPreconditionError,
)
from .models import (
    BindRequest,
    PendingTransaction,
    Receipt,
    TransactionOutcome,
    WorkflowRun,
    WorkflowState,
    WorkflowStep,
)

__version__ = "0.1.0"

__all__ = [
    # Exceptions
    "BindToolError",
    "ConfigurationError",
    "ConfirmationTimeout",
    "OnChainFailure",
    "SignerError",
    "SubmissionError",
    "WorkflowError",
    "WorkflowPreconditionError",
    # Models
    "BindRequest",
    "PendingTransaction",
    "Receipt",
    "TransactionOutcome",
    "WorkflowRun",
    "WorkflowState",
    "WorkflowStep",
]
