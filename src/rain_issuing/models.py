"""Data models for the Rain issuing integration."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

_CENT = Decimal("0.01")


def _cents_to_dollars(value: Any) -> Decimal:
    """Convert issuer integer cents to dollars; non-numeric values become 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return Decimal("0")
    try:
        return (Decimal(str(value)) / Decimal(100)).quantize(_CENT)
    except InvalidOperation:
        return Decimal("0")


def _to_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


class ApplicationStatus(str, Enum):
    """User application status, driven by the issuer."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @classmethod
    def parse(cls, value: Any) -> "ApplicationStatus":
        raw = str(value or "").strip().lower()
        for member in cls:
            if member.value == raw:
                return member
        return cls.PENDING


class CardStatus(str, Enum):
    """Card lifecycle status as reported by the issuer."""
    PENDING = "pending"
    NOT_ACTIVATED = "notActivated"
    ACTIVE = "active"
    SUSPENDED = "suspended"

    @classmethod
    def parse(cls, value: Any) -> "CardStatus":
        raw = str(value or "").strip()
        for member in cls:
            if member.value.lower() == raw.lower():
                return member
        return cls.PENDING


@dataclass
class User:
    """Issuer user created by submitting an application."""

    id: str
    application_status: ApplicationStatus = ApplicationStatus.PENDING
    wallet_address: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "User":
        return cls(
            id=str(raw.get("id") or ""),
            application_status=ApplicationStatus.parse(raw.get("applicationStatus")),
            wallet_address=_optional_str(raw.get("walletAddress")),
            email=_optional_str(raw.get("email")),
        )


@dataclass
class TokenBalance:
    """Collateral token held by a deposit contract."""

    address: str
    balance: str = "0"
    exchange_rate: Optional[float] = None
    advance_rate: Optional[float] = None

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "TokenBalance":
        return cls(
            address=str(raw.get("address") or ""),
            balance=str(raw.get("balance") if raw.get("balance") is not None else "0"),
            exchange_rate=raw.get("exchangeRate"),
            advance_rate=raw.get("advanceRate"),
        )


@dataclass
class DepositContract:
    """On-chain deposit contract scoped to a (user, chain) pair."""

    id: str
    chain_id: int
    deposit_address: str = ""
    tokens: list[TokenBalance] = field(default_factory=list)
    proxy_address: Optional[str] = None
    controller_address: Optional[str] = None
    contract_version: Optional[str] = None

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "DepositContract":
        tokens = raw.get("tokens") or []
        return cls(
            id=str(raw.get("id") or ""),
            chain_id=_to_int(raw.get("chainId")),
            deposit_address=str(raw.get("depositAddress") or ""),
            tokens=[TokenBalance.from_api(t) for t in tokens if isinstance(t, dict)],
            proxy_address=_optional_str(raw.get("proxyAddress")),
            controller_address=_optional_str(raw.get("controllerAddress")),
            contract_version=_optional_str(raw.get("contractVersion")),
        )


@dataclass
class Card:
    """Masked card snapshot returned to callers."""

    id: str
    status: CardStatus = CardStatus.PENDING
    last4: str = ""
    brand: str = ""
    exp_month: int = 0
    exp_year: int = 0
    user_id: Optional[str] = None

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "Card":
        # The issuer uses last4 and lastFour interchangeably
        return cls(
            id=str(raw.get("id") or ""),
            status=CardStatus.parse(raw.get("status")),
            last4=str(raw.get("last4") or raw.get("lastFour") or ""),
            brand=str(raw.get("brand") or ""),
            exp_month=_to_int(raw.get("expMonth")),
            exp_year=_to_int(raw.get("expYear")),
            user_id=_optional_str(raw.get("userId")),
        )

    @property
    def is_active(self) -> bool:
        return self.status == CardStatus.ACTIVE

    def to_dict(self) -> dict[str, Any]:
        return {
            "rainCardId": self.id,
            "status": self.status.value,
            "last4": self.last4,
            "brand": self.brand,
            "expMonth": self.exp_month,
            "expYear": self.exp_year,
        }


@dataclass
class CreditBalances:
    """User credit position, in dollars."""

    credit_limit: Decimal = field(default_factory=lambda: Decimal("0"))
    pending_charges: Decimal = field(default_factory=lambda: Decimal("0"))
    posted_charges: Decimal = field(default_factory=lambda: Decimal("0"))
    balance_due: Decimal = field(default_factory=lambda: Decimal("0"))
    spending_power: Decimal = field(default_factory=lambda: Decimal("0"))

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "CreditBalances":
        return cls(
            credit_limit=_cents_to_dollars(raw.get("creditLimit")),
            pending_charges=_cents_to_dollars(raw.get("pendingCharges")),
            posted_charges=_cents_to_dollars(raw.get("postedCharges")),
            balance_due=_cents_to_dollars(raw.get("balanceDue")),
            spending_power=_cents_to_dollars(raw.get("spendingPower")),
        )


@dataclass
class CardBalance:
    """Card-level balance, in dollars."""

    currency: str = "USD"
    available: Decimal = field(default_factory=lambda: Decimal("0"))
    current: Decimal = field(default_factory=lambda: Decimal("0"))

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "CardBalance":
        return cls(
            currency=str(raw.get("currency") or "USD"),
            available=_cents_to_dollars(raw.get("available")),
            current=_cents_to_dollars(raw.get("current")),
        )


@dataclass(frozen=True)
class SessionKey:
    """Ephemeral key for one secret-reveal handshake. Never persist it."""

    secret_key_hex: str = field(repr=False)
    session_id: str = field(repr=False)


@dataclass(frozen=True)
class EncryptedSecretBlock:
    """AES-GCM ciphertext (tag appended) and IV, both base64."""

    data: str
    iv: str

    @classmethod
    def from_api(cls, raw: Any) -> "EncryptedSecretBlock":
        raw = raw if isinstance(raw, dict) else {}
        return cls(data=str(raw.get("data") or ""), iv=str(raw.get("iv") or ""))


@dataclass(frozen=True)
class EncryptedCardSecrets:
    """Encrypted PAN and CVC as returned by the secrets endpoint."""

    encrypted_pan: EncryptedSecretBlock
    encrypted_cvc: EncryptedSecretBlock

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "EncryptedCardSecrets":
        return cls(
            encrypted_pan=EncryptedSecretBlock.from_api(raw.get("encryptedPan")),
            encrypted_cvc=EncryptedSecretBlock.from_api(raw.get("encryptedCvc")),
        )


@dataclass(frozen=True)
class DecryptedCardSecrets:
    """Plaintext card numbers. Caller-owned and short-lived; never log."""

    card_number: str
    cvc: str

    def __repr__(self) -> str:
        last4 = self.card_number[-4:] if len(self.card_number) >= 4 else ""
        return f"DecryptedCardSecrets(card_number='****{last4}', cvc='***')"

    __str__ = __repr__


@dataclass(frozen=True)
class ContractReadiness:
    """Whether a user's deposit contract on a chain is visible yet."""

    user_id: str
    chain_id: int
    contract: Optional[DepositContract] = None

    @property
    def ready(self) -> bool:
        return self.contract is not None

    @property
    def deposit_address(self) -> Optional[str]:
        return self.contract.deposit_address if self.contract else None


@dataclass
class ProvisioningResult:
    """Outcome of the full user -> contract -> card sequence."""

    user_id: str
    card: Card
    user: Optional[User] = None
    contract: Optional[DepositContract] = None

    @property
    def contract_ready(self) -> bool:
        return self.contract is not None
