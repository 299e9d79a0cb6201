"""
Pytest configuration and fixtures for rain-issuing tests.
"""
from __future__ import annotations

import base64
import json
import os
import sys
from pathlib import Path
from typing import Any, Callable, Optional

import httpx
import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

# Add package source to path
package_src = Path(__file__).parent.parent / "src"
if str(package_src) not in sys.path:
    sys.path.insert(0, str(package_src))

# Keep host credentials out of the test run
os.environ.pop("RAIN_API_KEY", None)

from rain_issuing.config import RainSettings  # noqa: E402
from rain_issuing.crypto import encrypt_block  # noqa: E402
from rain_issuing.exceptions import IssuerRejected  # noqa: E402
from rain_issuing.models import (  # noqa: E402
    Card,
    CardStatus,
    CreditBalances,
    DepositContract,
    EncryptedCardSecrets,
    User,
)

BASE_URL = "https://rain.test/v1"
API_KEY = "rain_test_key"
TEST_PAN = "4111111111111111"
TEST_CVC = "123"


@pytest.fixture(scope="session")
def issuer_private_key() -> rsa.RSAPrivateKey:
    """1024-bit RSA key standing in for the issuer's key pair."""
    return rsa.generate_private_key(public_exponent=65537, key_size=1024)


@pytest.fixture(scope="session")
def issuer_public_pem(issuer_private_key) -> str:
    return issuer_private_key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")


def unwrap_session_id(private_key: rsa.RSAPrivateKey, session_id: str) -> bytes:
    """Do what the issuer does with a SessionId header: recover the raw key."""
    key_b64 = private_key.decrypt(
        base64.b64decode(session_id),
        padding.OAEP(
            mgf=padding.MGF1(algorithm=hashes.SHA1()),
            algorithm=hashes.SHA1(),
            label=None,
        ),
    )
    return base64.b64decode(key_b64)


@pytest.fixture
def settings(issuer_public_pem) -> RainSettings:
    return RainSettings(
        _env_file=None,
        api_key=API_KEY,
        api_base_url=BASE_URL,
        public_key_pem=issuer_public_pem,
        contract_poll_base_delay=0.0,
    )


class FakeIssuer:
    """In-memory stand-in for RainIssuingClient with call recording.

    Contracts appear on the ``contract_visible_after``-th listing call
    (None means never), mimicking asynchronous creation by the issuer.
    """

    def __init__(self, private_key: Optional[rsa.RSAPrivateKey] = None) -> None:
        self.private_key = private_key
        self.calls: list[tuple[str, tuple]] = []
        self.users: dict[str, User] = {}
        self.cards: dict[str, Card] = {}
        self.contracts: dict[str, list[DepositContract]] = {}
        self.pending_contracts: dict[str, list[DepositContract]] = {}
        self.contract_visible_after: Optional[int] = 1
        self.list_contract_calls = 0
        self.next_user_id = "u1"
        self.duplicate_application = False
        self.activation_result: Optional[CardStatus] = CardStatus.ACTIVE
        self.activation_error: Optional[Exception] = None
        self.initial_card_status = CardStatus.ACTIVE
        self.pan = TEST_PAN
        self.cvc = TEST_CVC
        self.on_list_contracts: Optional[Callable[[int], None]] = None

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)

    def add_card(self, user_id: str, card_id: str, status: CardStatus = CardStatus.ACTIVE) -> Card:
        card = Card(id=card_id, status=status, last4="4242", brand="visa", exp_month=12, exp_year=2030, user_id=user_id)
        self.cards[card_id] = card
        return card

    async def create_user_application(self, payload: dict[str, Any]) -> Optional[User]:
        self.calls.append(("create_user_application", (payload,)))
        if self.duplicate_application:
            raise IssuerRejected(409, '{"message":"User already exists"}')
        user = User(id=self.next_user_id, wallet_address=payload.get("walletAddress"))
        self.users[user.id] = user
        return user

    async def get_user_application(self, user_id: str) -> Optional[User]:
        self.calls.append(("get_user_application", (user_id,)))
        return self.users.get(user_id) or User(id=user_id)

    async def create_user_contract(self, user_id: str, chain_id: int) -> None:
        self.calls.append(("create_user_contract", (user_id, chain_id)))
        self.pending_contracts.setdefault(user_id, []).append(
            DepositContract(id=f"ctr_{user_id}_{chain_id}", chain_id=chain_id, deposit_address="0xdeposit")
        )

    async def list_user_contracts(self, user_id: str) -> list[DepositContract]:
        self.calls.append(("list_user_contracts", (user_id,)))
        self.list_contract_calls += 1
        if self.on_list_contracts:
            self.on_list_contracts(self.list_contract_calls)
        visible = self.contract_visible_after is not None and self.list_contract_calls >= self.contract_visible_after
        if visible and self.pending_contracts.get(user_id):
            self.contracts.setdefault(user_id, []).extend(self.pending_contracts.pop(user_id))
        return list(self.contracts.get(user_id, []))

    async def create_card_for_user(self, user_id: str, display_name=None, limit_amount=1000, status="active") -> Card:
        self.calls.append(("create_card_for_user", (user_id, display_name, limit_amount, status)))
        card_id = f"card_{len(self.cards) + 1}"
        card = self.add_card(user_id, card_id, CardStatus.parse(status))
        return card

    async def list_cards_for_user(self, user_id: str, limit: int = 20) -> list[Card]:
        self.calls.append(("list_cards_for_user", (user_id, limit)))
        return [c for c in self.cards.values() if c.user_id == user_id][:limit]

    async def get_card(self, card_id: str) -> Optional[Card]:
        self.calls.append(("get_card", (card_id,)))
        return self.cards.get(card_id)

    async def activate_card(self, card_id: str) -> Optional[Card]:
        self.calls.append(("activate_card", (card_id,)))
        if self.activation_error is not None:
            raise self.activation_error
        card = self.cards[card_id]
        if self.activation_result is not None:
            card.status = self.activation_result
        return card

    async def get_user_credit_balances(self, user_id: str) -> CreditBalances:
        self.calls.append(("get_user_credit_balances", (user_id,)))
        return CreditBalances.from_api({"creditLimit": 100000, "spendingPower": 2550})

    async def get_card_secrets(self, card_id: str, session_id: str) -> EncryptedCardSecrets:
        self.calls.append(("get_card_secrets", (card_id, session_id)))
        assert self.private_key is not None, "FakeIssuer needs a private key to serve secrets"
        key_hex = unwrap_session_id(self.private_key, session_id).hex()
        # The issuer pads fields to fixed widths with NUL bytes
        return EncryptedCardSecrets(
            encrypted_pan=encrypt_block(self.pan.ljust(19, "\x00"), key_hex),
            encrypted_cvc=encrypt_block(self.cvc.ljust(4, "\x00"), key_hex),
        )


@pytest.fixture
def fake_issuer(issuer_private_key) -> FakeIssuer:
    return FakeIssuer(private_key=issuer_private_key)


def json_response(payload: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code,
        content=json.dumps(payload).encode("utf-8"),
        headers={"content-type": "application/json"},
    )


@pytest.fixture
def mock_http():
    """Build an httpx.AsyncClient whose requests are answered by a handler.

    Returns (factory, requests) where ``factory(handler)`` yields the client
    and ``requests`` collects every httpx.Request seen.
    """
    requests: list[httpx.Request] = []
    clients: list[httpx.AsyncClient] = []

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        def recording(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return handler(request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(recording))
        clients.append(client)
        return client

    return factory, requests
