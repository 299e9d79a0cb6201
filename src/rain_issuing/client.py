"""Typed async client for the Rain issuing API.

The client maps each issuer endpoint to a method returning the models in
``rain_issuing.models``. It carries no business policy and no retries:
transport failures surface as IssuerUnavailable, non-2xx answers as
IssuerRejected, and empty success bodies as None.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Optional

import httpx

from .config import RainSettings, get_settings
from .constants import Handshake, IssuerDefaults
from .exceptions import ConfigurationError, IssuerRejected, IssuerUnavailable, RainIssuingError
from .logging import log_request, log_response
from .models import (
    Card,
    CardBalance,
    CreditBalances,
    DepositContract,
    EncryptedCardSecrets,
    User,
)

logger = logging.getLogger(__name__)


def _rows(response: Any) -> list[dict[str, Any]]:
    """Extract list rows from a bare array or a wrapped list response."""
    if isinstance(response, list):
        rows = response
    elif isinstance(response, dict):
        rows = response.get("data") or response.get("items") or []
    else:
        rows = []
    return [row for row in rows if isinstance(row, dict)]


class RainIssuingClient:
    """Async HTTP client for the Rain issuing API.

    Build one per process from validated settings and pass it to the
    workflow; there is no module-level singleton.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = IssuerDefaults.API_BASE_URL,
        timeout_seconds: float = IssuerDefaults.TIMEOUT_SECONDS,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not api_key:
            raise ConfigurationError("Rain API key is required", setting="RAIN_API_KEY")
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = httpx.Timeout(timeout_seconds)
        self._client = http_client
        self._owns_client = http_client is None

    @classmethod
    def from_settings(
        cls,
        settings: Optional[RainSettings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "RainIssuingClient":
        """Build a client from settings, failing if the API key is missing."""
        settings = settings or get_settings()
        return cls(
            api_key=settings.require_api_key(),
            base_url=settings.api_base_url,
            timeout_seconds=settings.timeout_seconds,
            http_client=http_client,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def __aenter__(self) -> "RainIssuingClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None if self._owns_client else self._client

    # ------------------------------------------------------------------
    # Low-level HTTP
    # ------------------------------------------------------------------

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout)
            self._owns_client = True
        return self._client

    def _headers(self, extra: Optional[dict[str, str]] = None) -> dict[str, str]:
        headers = {
            "Api-Key": self._api_key,
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": IssuerDefaults.USER_AGENT,
        }
        if extra:
            headers.update(extra)
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        payload: Optional[dict[str, Any]] = None,
        query: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        url = f"{self._base_url}/{path.lstrip('/')}"
        request_headers = self._headers(headers)
        log_request(logger, method, url, headers=request_headers, body=payload)

        started = time.monotonic()
        try:
            response = await self._get_client().request(
                method,
                url,
                headers=request_headers,
                json=payload,
                params=query,
            )
        except httpx.TransportError as e:
            logger.warning(f"Rain API unreachable at {method} {url}: {type(e).__name__}")
            raise IssuerUnavailable(f"Rain API unreachable: {type(e).__name__}: {e}", url=url) from e
        duration_ms = (time.monotonic() - started) * 1000

        if not response.is_success:
            log_response(logger, response.status_code, duration_ms, error=response.reason_phrase)
            raise IssuerRejected(response.status_code, response.text, url=url)
        log_response(logger, response.status_code, duration_ms)

        # Empty responses (e.g. 204 No Content)
        if "application/json" not in response.headers.get("content-type", ""):
            return None
        if not response.content.strip():
            return None
        try:
            return response.json()
        except ValueError:
            raise IssuerRejected(response.status_code, "invalid JSON body", url=url) from None

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def list_users(self, limit: int = IssuerDefaults.USER_LIST_LIMIT) -> list[User]:
        response = await self._request("GET", "/issuing/users", query={"limit": limit})
        return [User.from_api(row) for row in _rows(response)]

    async def create_user_application(self, payload: dict[str, Any]) -> Optional[User]:
        """Submit a user application (arbitrary profile payload)."""
        response = await self._request("POST", "/issuing/applications/user", payload=payload)
        return User.from_api(response) if isinstance(response, dict) else None

    async def get_user_application(self, user_id: str) -> Optional[User]:
        response = await self._request("GET", f"/issuing/applications/user/{user_id}")
        return User.from_api(response) if isinstance(response, dict) else None

    # ------------------------------------------------------------------
    # Contracts
    # ------------------------------------------------------------------

    async def create_user_contract(self, user_id: str, chain_id: int) -> None:
        """Request a deposit contract; the issuer creates it asynchronously."""
        await self._request(
            "POST",
            f"/issuing/users/{user_id}/contracts",
            payload={"chainId": chain_id},
        )

    async def list_user_contracts(self, user_id: str) -> list[DepositContract]:
        response = await self._request("GET", f"/issuing/users/{user_id}/contracts")
        return [DepositContract.from_api(row) for row in _rows(response)]

    # ------------------------------------------------------------------
    # Cards
    # ------------------------------------------------------------------

    async def create_card_for_user(
        self,
        user_id: str,
        display_name: Optional[str] = None,
        limit_amount: int = IssuerDefaults.CARD_LIMIT_AMOUNT,
        status: str = "active",
    ) -> Optional[Card]:
        payload: dict[str, Any] = {
            "type": IssuerDefaults.CARD_TYPE,
            "limit": {
                "frequency": IssuerDefaults.CARD_LIMIT_FREQUENCY,
                "amount": limit_amount,
            },
            "status": status,
        }
        if display_name:
            payload["displayName"] = display_name
        response = await self._request("POST", f"/issuing/users/{user_id}/cards", payload=payload)
        return Card.from_api(response) if isinstance(response, dict) else None

    async def list_cards_for_user(
        self,
        user_id: str,
        limit: int = IssuerDefaults.CARD_LIST_LIMIT,
    ) -> list[Card]:
        response = await self._request(
            "GET",
            "/issuing/cards",
            query={"userId": user_id, "limit": limit},
        )
        return [Card.from_api(row) for row in _rows(response)]

    async def get_card(self, card_id: str) -> Optional[Card]:
        response = await self._request("GET", f"/issuing/cards/{card_id}")
        return Card.from_api(response) if isinstance(response, dict) else None

    async def activate_card(self, card_id: str) -> Optional[Card]:
        """PATCH the card to active. May return None on an empty body."""
        response = await self._request(
            "PATCH",
            f"/issuing/cards/{card_id}",
            payload={"status": "active"},
        )
        return Card.from_api(response) if isinstance(response, dict) else None

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    async def get_user_credit_balances(self, user_id: str) -> CreditBalances:
        response = await self._request("GET", f"/issuing/users/{user_id}/balances")
        return CreditBalances.from_api(response if isinstance(response, dict) else {})

    async def get_card_balance(self, card_id: str) -> CardBalance:
        response = await self._request("GET", f"/issuing/cards/{card_id}/balance")
        return CardBalance.from_api(response if isinstance(response, dict) else {})

    # ------------------------------------------------------------------
    # Secrets
    # ------------------------------------------------------------------

    async def get_card_secrets(self, card_id: str, session_id: str) -> EncryptedCardSecrets:
        """Fetch encrypted PAN/CVC blocks for a wrapped session id."""
        response = await self._request(
            "GET",
            f"/issuing/cards/{card_id}/secrets",
            headers={Handshake.SESSION_HEADER: session_id},
        )
        if not isinstance(response, dict):
            raise RainIssuingError(
                "Rain API returned an empty secrets payload",
                error_code="EMPTY_SECRETS",
                details={"card_id": card_id},
            )
        return EncryptedCardSecrets.from_api(response)


__all__ = ["RainIssuingClient"]
