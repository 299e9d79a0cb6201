"""Constants for the Rain issuing integration.

Groups fixed protocol values (issuer key, chain ids, token addresses) and
default tuning knobs so they are not scattered as literals.
"""
from __future__ import annotations

from typing import Final


class Chains:
    """Chain ids and token addresses used for deposit contracts."""

    BASE_SEPOLIA_CHAIN_ID: Final[int] = 84532
    BASE_SEPOLIA_USDC: Final[str] = "0x036CbD53842c5426634e7929541eC2318f3dCF7e"
    BASE_SEPOLIA_RUSD: Final[str] = "0x10b5Be494C2962A7B318aFB63f0Ee30b959D000b"


class IssuerDefaults:
    """Defaults for talking to the Rain issuing API."""

    API_BASE_URL: Final[str] = "https://api-dev.raincards.xyz/v1"
    TIMEOUT_SECONDS: Final[float] = 20.0
    USER_AGENT: Final[str] = "rain-issuing/0.1.0"

    # Card issuance
    CARD_TYPE: Final[str] = "virtual"
    CARD_LIMIT_FREQUENCY: Final[str] = "allTime"
    CARD_LIMIT_AMOUNT: Final[int] = 1000
    CARD_DISPLAY_NAME: Final[str] = "Virtual Card"
    CARD_LIST_LIMIT: Final[int] = 20
    USER_LIST_LIMIT: Final[int] = 100

    # Secrets are padded to fixed widths by the issuer
    PAN_LENGTH: Final[int] = 16
    CVC_LENGTH: Final[int] = 3


class ContractPolling:
    """Backoff settings for waiting on deposit contract creation."""

    MAX_RETRIES: Final[int] = 5
    BASE_DELAY: Final[float] = 1.0
    EXPONENTIAL_BASE: Final[float] = 2.0
    MAX_DELAY: Final[float] = 60.0


class Handshake:
    """Parameters of the secret-reveal handshake."""

    SESSION_KEY_BYTES: Final[int] = 16
    GCM_TAG_BYTES: Final[int] = 16
    GCM_IV_BYTES: Final[int] = 12
    SESSION_HEADER: Final[str] = "SessionId"


class LoggingConfig:
    """Logging-related constants."""

    SENSITIVE_FIELDS: Final[frozenset[str]] = frozenset({
        "api_key",
        "apikey",
        "api-key",
        "authorization",
        "sessionid",
        "session_id",
        "secret_key",
        "secretkey",
        "card_number",
        "cardnumber",
        "cvc",
        "cvv",
        "pan",
        "encryptedpan",
        "encryptedcvc",
        "credential",
        "credentials",
        # Identity data carried by user applications
        "ssn",
        "social_security",
        "nationalid",
        "national_id",
        "birthdate",
        "birth_date",
        "dateofbirth",
        "date_of_birth",
    })
    MASK_PATTERN: Final[str] = "***MASKED***"


# Rain public key for the RSA handshake (1024-bit, PEM)
RAIN_PUBLIC_KEY_PEM: Final[str] = """-----BEGIN PUBLIC KEY-----
MIGfMA0GCSqGSIb3DQEBAQUAA4GNADCBiQKBgQCAP192809jZyaw62g/eTzJ3P9H
+RmT88sXUYjQ0K8Bx+rJ83f22+9isKx+lo5UuV8tvOlKwvdDS/pVbzpG7D7NO45c
0zkLOXwDHZkou8fuj8xhDO5Tq3GzcrabNLRLVz3dkx0znfzGOhnY4lkOMIdKxlQb
LuVM/dGDC9UpulF+UwIDAQAB
-----END PUBLIC KEY-----
"""
