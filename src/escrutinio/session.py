"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/session.py`.
Este módulo forma parte de Escrutinio y está documentado para facilitar
la navegación, mantenimiento y auditoría técnica.

Componentes detectados:
  - SessionManager

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `src/escrutinio/session.py`.
This module is part of Escrutinio and is documented to improve
navigation, maintenance, and technical auditability.

Detected components:
  - SessionManager

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

from __future__ import annotations

import inspect
from contextlib import ExitStack
from dataclasses import replace
from typing import Any, Callable, List, Optional, Union

import structlog

from .clients.wallet import ACCOUNTS_CHANGED, CHAIN_CHANGED, WalletProvider, parse_chain_id
from .errors import (
    NoAccountsError,
    NoProviderError,
    UserRejectedError,
    WalletConnectionError,
    WrongNetworkError,
    is_user_rejection,
)
from .models import Session

logger = structlog.get_logger(__name__)

AccountChangedHandler = Callable[[Optional[str]], Any]
NetworkChangedHandler = Callable[[int], Any]


async def _notify(handler: Optional[Callable[..., Any]], *args: Any) -> None:
    if handler is None:
        return
    result = handler(*args)
    if inspect.isawaitable(result):
        await result


class SessionManager:
    """Ciclo de vida de la conexión de wallet.

    Es dueño exclusivo de la ``Session``. Mantiene como máximo una pareja de
    suscripciones (``accountsChanged`` y ``chainChanged``) por sesión activa y
    las libera en cualquier camino de cierre.

    English:
        Wallet connection lifecycle. Exclusive owner of the ``Session``; holds
        at most one pair of standing subscriptions per active session and
        releases them on every teardown path.
    """

    def __init__(
        self,
        provider: Optional[WalletProvider],
        *,
        on_account_changed: Optional[AccountChangedHandler] = None,
        on_network_changed: Optional[NetworkChangedHandler] = None,
    ) -> None:
        self._provider = provider
        self._on_account_changed = on_account_changed
        self._on_network_changed = on_network_changed
        self._session = Session.disconnected()
        self._subscriptions: Optional[ExitStack] = None

    @property
    def session(self) -> Session:
        return self._session

    @property
    def provider(self) -> Optional[WalletProvider]:
        return self._provider

    @property
    def subscribed(self) -> bool:
        return self._subscriptions is not None

    async def connect(self) -> str:
        """Solicita acceso a cuentas y registra las suscripciones.

        English: Request account access and register the standing subscriptions.
        """
        if self._provider is None:
            raise NoProviderError()
        try:
            accounts = await self._provider.request_accounts()
            if not accounts:
                raise NoAccountsError()
            chain_id = parse_chain_id(await self._provider.get_chain_id())
            self._subscribe()
        except WalletConnectionError:
            self.disconnect()
            raise
        except Exception as exc:  # noqa: BLE001
            self.disconnect()
            if is_user_rejection(exc):
                raise UserRejectedError("Connection request rejected by user") from exc
            raise WalletConnectionError(f"Error connecting: {exc}") from exc

        self._session = Session(account=accounts[0], network_id=chain_id, connected=True)
        logger.info("session_connected", account=accounts[0], chain_id=chain_id)
        return accounts[0]

    def disconnect(self) -> None:
        """Libera las suscripciones. Idempotente.

        English: Release both subscriptions. Idempotent and safe when never connected.
        """
        if self._subscriptions is not None:
            stack, self._subscriptions = self._subscriptions, None
            stack.close()
            logger.info("session_listeners_released")
        self._session = Session.disconnected(self._session.network_id)

    async def ensure_network(self, expected: int) -> None:
        """Verifica la red y pide el cambio al proveedor si no coincide.

        English:
            Check the provider network and request a provider-level switch on
            mismatch. Raises ``WrongNetworkError`` if the switch fails; callers
            must not submit ledger transactions in that case.
        """
        if self._provider is None:
            raise NoProviderError()
        actual = parse_chain_id(await self._provider.get_chain_id())
        if actual != expected:
            logger.warning("network_mismatch", expected=expected, actual=actual)
            try:
                await self._provider.switch_chain(expected)
            except Exception as exc:  # noqa: BLE001
                logger.error("network_switch_failed", expected=expected, error=str(exc))
                raise WrongNetworkError(
                    f"Please switch to the required network (chain {expected}); connected to {actual}",
                    expected=expected,
                    actual=actual,
                ) from exc
            actual = parse_chain_id(await self._provider.get_chain_id())
            if actual != expected:
                raise WrongNetworkError(expected=expected, actual=actual)
        self._session = replace(self._session, network_id=actual)

    async def __aenter__(self) -> "SessionManager":
        await self.connect()
        return self

    async def __aexit__(self, *_exc_info: Any) -> None:
        self.disconnect()

    def _subscribe(self) -> None:
        if self._subscriptions is not None:
            return
        assert self._provider is not None
        stack = ExitStack()
        try:
            stack.enter_context(self._provider.subscribe(ACCOUNTS_CHANGED, self._handle_accounts_changed))
            stack.enter_context(self._provider.subscribe(CHAIN_CHANGED, self._handle_chain_changed))
        except BaseException:
            stack.close()
            raise
        self._subscriptions = stack

    async def _handle_accounts_changed(self, accounts: List[str]) -> None:
        if accounts:
            self._session = Session(account=accounts[0], network_id=self._session.network_id, connected=True)
        else:
            self._session = Session.disconnected(self._session.network_id)
        logger.info("session_account_changed", account=self._session.account or "")
        await _notify(self._on_account_changed, self._session.account)

    async def _handle_chain_changed(self, chain_id: Union[int, str]) -> None:
        network_id = parse_chain_id(chain_id)
        self._session = replace(self._session, network_id=network_id)
        logger.info("session_network_changed", chain_id=network_id)
        await _notify(self._on_network_changed, network_id)
