"""Rain card-issuing integration: provisioning and secret reveal."""

from .client import RainIssuingClient
from .config import RainSettings, get_settings
from .crypto import create_session, decrypt_block
from .exceptions import (
    CardNotActivatable,
    ConfigurationError,
    DecryptionFailed,
    InvalidInput,
    InvalidKeyFormat,
    IssuerRejected,
    IssuerUnavailable,
    NotFoundAfterRetries,
    RainIssuingError,
    RetryCancelled,
)
from .models import (
    ApplicationStatus,
    Card,
    CardBalance,
    CardStatus,
    ContractReadiness,
    CreditBalances,
    DecryptedCardSecrets,
    DepositContract,
    ProvisioningResult,
    User,
)
from .retry import RetryConfig, retry_async
from .store import CardStore, InMemoryCardStore
from .workflow import ProvisioningWorkflow

__all__ = [
    "ApplicationStatus",
    "Card",
    "CardBalance",
    "CardNotActivatable",
    "CardStatus",
    "CardStore",
    "ConfigurationError",
    "ContractReadiness",
    "CreditBalances",
    "DecryptedCardSecrets",
    "DecryptionFailed",
    "DepositContract",
    "InMemoryCardStore",
    "InvalidInput",
    "InvalidKeyFormat",
    "IssuerRejected",
    "IssuerUnavailable",
    "NotFoundAfterRetries",
    "ProvisioningResult",
    "ProvisioningWorkflow",
    "RainIssuingClient",
    "RainIssuingError",
    "RainSettings",
    "RetryCancelled",
    "RetryConfig",
    "User",
    "create_session",
    "decrypt_block",
    "get_settings",
    "retry_async",
]
