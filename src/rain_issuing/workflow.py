"""Provisioning workflow: user -> deposit contract -> card -> secrets."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from .client import RainIssuingClient
from .config import RainSettings, get_settings
from .constants import IssuerDefaults
from .crypto import create_session, decrypt_block
from .exceptions import (
    CardNotActivatable,
    InvalidInput,
    IssuerRejected,
    IssuerUnavailable,
    NotFoundAfterRetries,
    RainIssuingError,
)
from .models import (
    Card,
    ContractReadiness,
    CreditBalances,
    DecryptedCardSecrets,
    DepositContract,
    ProvisioningResult,
    User,
)
from .retry import RetryConfig, retry_async
from .store import CardStore, InMemoryCardStore

logger = logging.getLogger(__name__)


def _find_contract(contracts: list[DepositContract], chain_id: int) -> Optional[DepositContract]:
    # Only the first contract on a chain is ever consumed
    return next((c for c in contracts if c.chain_id == chain_id), None)


class ProvisioningWorkflow:
    """
    Idempotent provisioning of issuer resources for one end user.

    Every stage can be re-entered safely: existing users, contracts and
    cards are reused rather than duplicated.
    """

    def __init__(
        self,
        client: RainIssuingClient,
        store: Optional[CardStore] = None,
        *,
        settings: Optional[RainSettings] = None,
        public_key_pem: Optional[str] = None,
        contract_retry: Optional[RetryConfig] = None,
        single_flight: bool = False,
    ) -> None:
        self._client = client
        self._store = store if store is not None else InMemoryCardStore()
        self._settings = settings or get_settings()
        self._public_key_pem = public_key_pem or self._settings.public_key_pem
        self._contract_retry = contract_retry or RetryConfig(
            max_retries=self._settings.contract_poll_retries,
            base_delay=self._settings.contract_poll_base_delay,
        )
        self._single_flight = single_flight
        self._user_locks: dict[str, asyncio.Lock] = {}
        # Callers holding or waiting on each user's lock
        self._lock_users: dict[str, int] = {}

    @property
    def store(self) -> CardStore:
        return self._store

    # ------------------------------------------------------------------
    # EnsureUser
    # ------------------------------------------------------------------

    async def ensure_user(
        self,
        profile: dict[str, Any],
        user_id: Optional[str] = None,
    ) -> Optional[User]:
        """
        Submit a user application, treating "already exists" as success.

        Args:
            profile: Application payload forwarded to the issuer
            user_id: Known issuer user id, used to fetch the existing user
                when the application is a duplicate

        Returns:
            The created or existing user, or None when the issuer reported a
            duplicate and no user_id was supplied to look it up
        """
        try:
            user = await self._client.create_user_application(profile)
        except IssuerRejected as e:
            if not e.is_duplicate:
                raise
            logger.info(f"User application already exists (status={e.status})")
            if user_id:
                return await self._client.get_user_application(user_id)
            return None

        if user is not None:
            logger.info(f"User application {user.id} is {user.application_status.value}")
        return user

    # ------------------------------------------------------------------
    # EnsureContract
    # ------------------------------------------------------------------

    async def ensure_contract(
        self,
        user_id: str,
        chain_id: Optional[int] = None,
        *,
        max_attempts: Optional[int] = None,
        required: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Optional[DepositContract]:
        """
        Request a deposit contract and poll until the issuer lists it.

        Args:
            user_id: Issuer user id
            chain_id: Target chain (defaults to the configured chain)
            max_attempts: Retries after the first listing call
            required: Propagate polling failures instead of returning None
            cancel_event: Stops further polls once set

        Returns:
            The first contract on the chain, or None if it never appeared
            and ``required`` is False
        """
        chain_id = chain_id if chain_id is not None else self._settings.default_chain_id

        # Duplicate requests are tolerated by the issuer; any failure here is
        # decided by the polling below
        try:
            await self._client.create_user_contract(user_id, chain_id)
        except (IssuerRejected, IssuerUnavailable) as e:
            logger.warning(f"Create contract for user {user_id} on chain {chain_id} failed: {e}")

        config = self._contract_retry
        if max_attempts is not None:
            config = RetryConfig(
                max_retries=max_attempts,
                base_delay=config.base_delay,
                max_delay=config.max_delay,
                exponential_base=config.exponential_base,
                jitter=config.jitter,
                backoff=config.backoff,
            )

        try:
            contracts = await retry_async(
                lambda: self._client.list_user_contracts(user_id),
                config,
                is_acceptable=lambda rows: _find_contract(rows, chain_id) is not None,
                cancel_event=cancel_event,
                description=f"contract for user {user_id} on chain {chain_id}",
            )
        except (NotFoundAfterRetries, IssuerRejected, IssuerUnavailable) as e:
            if required:
                raise
            logger.warning(f"Deposit contract not ready for user {user_id} on chain {chain_id}: {e}")
            return None

        contract = _find_contract(contracts, chain_id)
        logger.info(f"Deposit contract {contract.id} ready for user {user_id} on chain {chain_id}")
        return contract

    async def contract_status(self, user_id: str, chain_id: Optional[int] = None) -> ContractReadiness:
        """Check once, without retries, whether the deposit contract exists."""
        chain_id = chain_id if chain_id is not None else self._settings.default_chain_id
        contracts = await self._client.list_user_contracts(user_id)
        return ContractReadiness(
            user_id=user_id,
            chain_id=chain_id,
            contract=_find_contract(contracts, chain_id),
        )

    # ------------------------------------------------------------------
    # EnsureCard
    # ------------------------------------------------------------------

    def _claim_lock(self, user_id: str) -> asyncio.Lock:
        lock = self._user_locks.get(user_id)
        if lock is None:
            lock = self._user_locks[user_id] = asyncio.Lock()
        self._lock_users[user_id] = self._lock_users.get(user_id, 0) + 1
        return lock

    def _release_lock(self, user_id: str) -> None:
        remaining = self._lock_users[user_id] - 1
        if remaining:
            self._lock_users[user_id] = remaining
            return
        # Last caller out drops the lock so idle users hold no state
        del self._lock_users[user_id]
        del self._user_locks[user_id]

    async def ensure_card(self, user_id: str, display_name: Optional[str] = None) -> Card:
        """
        Return the user's single working card, creating it only if none exists.

        Lookup order: local idempotency store, then the issuer's card list,
        then creation.
        """
        if not self._single_flight:
            return await self._ensure_card(user_id, display_name)

        lock = self._claim_lock(user_id)
        try:
            async with lock:
                return await self._ensure_card(user_id, display_name)
        finally:
            self._release_lock(user_id)

    async def _ensure_card(self, user_id: str, display_name: Optional[str]) -> Card:
        cached_id = await self._store.get(user_id)
        if cached_id:
            card = await self._client.get_card(cached_id)
            if card is not None:
                return card
            logger.warning(f"Cached card {cached_id} for user {user_id} returned no body")
            return Card(id=cached_id, user_id=user_id)

        # Guards against duplicate issuance when the local store was lost
        existing = await self._client.list_cards_for_user(user_id, limit=self._settings.card_list_limit)
        if existing:
            card = existing[0]
            await self._store.set(user_id, card.id)
            logger.info(f"Reusing existing card {card.id} for user {user_id}")
            return card

        card = await self._client.create_card_for_user(
            user_id,
            display_name=display_name or IssuerDefaults.CARD_DISPLAY_NAME,
            limit_amount=self._settings.card_limit_amount,
            status="active",
        )
        if card is None or not card.id:
            raise RainIssuingError(
                "Rain API returned no card for create request",
                error_code="EMPTY_CARD",
                details={"user_id": user_id},
            )
        await self._store.set(user_id, card.id)
        logger.info(f"Issued card {card.id} for user {user_id}")
        return card

    # ------------------------------------------------------------------
    # RevealSecrets
    # ------------------------------------------------------------------

    async def _activate_if_needed(self, card_id: str) -> None:
        card = await self._client.get_card(card_id)
        if card is None:
            raise InvalidInput(f"Card {card_id} not found", field="card_id")
        if card.is_active:
            return

        current = card.status.value
        logger.info(f"Card {card_id} is {current}; activating before reveal")
        try:
            activated = await self._client.activate_card(card_id)
        except IssuerUnavailable as e:
            logger.error(f"Failed to activate card {card_id}: {e}")
            raise CardNotActivatable(current, hint=CardNotActivatable.RETRY_SHORTLY) from e
        except IssuerRejected as e:
            logger.error(f"Failed to activate card {card_id}: {e}")
            raise CardNotActivatable(current, hint=CardNotActivatable.NEEDS_ACTIVATION) from e

        if activated is not None and not activated.is_active:
            raise CardNotActivatable(activated.status.value, hint=CardNotActivatable.RETRY_SHORTLY)

    async def reveal_secrets(self, card_id: str) -> DecryptedCardSecrets:
        """
        Decrypt the card's PAN and CVC through a one-time session key.

        The card is activated first if needed. Failures are surfaced as-is
        and never retried; the session key does not outlive this call.
        """
        await self._activate_if_needed(card_id)

        session = create_session(self._public_key_pem)
        encrypted = await self._client.get_card_secrets(card_id, session.session_id)

        card_number = decrypt_block(
            encrypted.encrypted_pan.data,
            encrypted.encrypted_pan.iv,
            session.secret_key_hex,
        )
        cvc = decrypt_block(
            encrypted.encrypted_cvc.data,
            encrypted.encrypted_cvc.iv,
            session.secret_key_hex,
        )
        logger.info(f"Revealed secrets for card {card_id}")
        return DecryptedCardSecrets(
            card_number=card_number[: IssuerDefaults.PAN_LENGTH],
            cvc=cvc[: IssuerDefaults.CVC_LENGTH],
        )

    # ------------------------------------------------------------------
    # Full sequence
    # ------------------------------------------------------------------

    async def provision(
        self,
        profile: dict[str, Any],
        chain_id: Optional[int] = None,
        *,
        user_id: Optional[str] = None,
        display_name: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ProvisioningResult:
        """
        Run EnsureUser, EnsureContract and EnsureCard in order.

        A deposit contract that never appears does not block card issuance;
        check ``ProvisioningResult.contract_ready`` or ``contract_status``.
        """
        user = await self.ensure_user(profile, user_id=user_id)
        resolved_id = user.id if user is not None and user.id else user_id
        if not resolved_id:
            raise InvalidInput(
                "User already exists but no user_id was supplied to resume provisioning",
                field="user_id",
            )

        contract = await self.ensure_contract(resolved_id, chain_id, cancel_event=cancel_event)
        card = await self.ensure_card(resolved_id, display_name=display_name)
        return ProvisioningResult(user_id=resolved_id, card=card, user=user, contract=contract)

    async def get_balances(self, user_id: str) -> CreditBalances:
        return await self._client.get_user_credit_balances(user_id)


__all__ = ["ProvisioningWorkflow"]
