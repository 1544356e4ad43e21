"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/clients/wallet.py`.
Este módulo forma parte de Escrutinio y está documentado para facilitar
la navegación, mantenimiento y auditoría técnica.

Componentes detectados:
  - ACCOUNTS_CHANGED / CHAIN_CHANGED
  - ProviderRpcError
  - WalletProvider
  - parse_chain_id
  - LocalAccountWallet

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `src/escrutinio/clients/wallet.py`.
This module is part of Escrutinio and is documented to improve
navigation, maintenance, and technical auditability.

Detected components:
  - ACCOUNTS_CHANGED / CHAIN_CHANGED
  - ProviderRpcError
  - WalletProvider
  - parse_chain_id
  - LocalAccountWallet

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Protocol, Sequence, Union

import structlog
from eth_account import Account

from ..events import ListenerRegistry, Subscription
from ..logging import obfuscate_identifier

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount
    from web3 import Web3

logger = structlog.get_logger(__name__)

ACCOUNTS_CHANGED = "accountsChanged"
CHAIN_CHANGED = "chainChanged"
UNRECOGNIZED_CHAIN_CODE = 4902


class ProviderRpcError(Exception):
    """Error JSON-RPC devuelto por el proveedor de wallet.

    English: JSON-RPC error raised by a wallet provider (EIP-1193 style ``code``).
    """

    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code


class WalletProvider(Protocol):
    """Capacidades consumidas del proveedor de wallet.

    English: Capabilities consumed from the wallet/session provider.
    """

    async def request_accounts(self) -> List[str]: ...

    async def get_chain_id(self) -> Union[int, str]: ...

    async def switch_chain(self, chain_id: int) -> None: ...

    def subscribe(self, event: str, handler: Callable[..., Any]) -> Subscription: ...


def parse_chain_id(value: Union[int, str]) -> int:
    """Normaliza un chain ID entero o hexadecimal (``0xaa36a7``).

    English: Normalize an integer or hex chain id.
    """
    if isinstance(value, int):
        return value
    text = str(value).strip().lower()
    return int(text, 16) if text.startswith("0x") else int(text)


class LocalAccountWallet:
    """Wallet respaldada por claves locales de ``eth_account``.

    Sustituye a la wallet del navegador en procesos sin interfaz: la cuenta
    activa firma las transacciones y los cambios de cuenta se notifican a los
    suscriptores igual que ``accountsChanged``.

    English:
        Wallet backed by local ``eth_account`` keys, standing in for a browser
        wallet in headless processes. The active account signs transactions
        and account switches are broadcast like ``accountsChanged``.
    """

    def __init__(self, web3: "Web3", private_keys: Sequence[str], *, active: int = 0) -> None:
        self._web3 = web3
        self._accounts: List["LocalAccount"] = [Account.from_key(key) for key in private_keys]
        if self._accounts and not 0 <= active < len(self._accounts):
            raise ProviderRpcError(4100, f"Unknown account index {active}")
        self._active = active
        self._listeners = ListenerRegistry()

    @property
    def address(self) -> str:
        if not self._accounts:
            raise ProviderRpcError(4100, "No account available to sign")
        return self._accounts[self._active].address

    @property
    def addresses(self) -> List[str]:
        return [account.address for account in self._accounts]

    async def request_accounts(self) -> List[str]:
        if not self._accounts:
            return []
        return [self.address]

    async def get_chain_id(self) -> int:
        return await asyncio.to_thread(lambda: self._web3.eth.chain_id)

    async def switch_chain(self, chain_id: int) -> None:
        current = await self.get_chain_id()
        if current != chain_id:
            # Un endpoint RPC fijo no puede cambiar de red. / A fixed RPC endpoint cannot change networks.
            raise ProviderRpcError(UNRECOGNIZED_CHAIN_CODE, f"Unrecognized chain ID {chain_id}")

    def subscribe(self, event: str, handler: Callable[..., Any]) -> Subscription:
        return self._listeners.subscribe(event, handler)

    async def select_account(self, index: int) -> str:
        """Cambia la cuenta activa y notifica ``accountsChanged``.

        English: Switch the active account and broadcast ``accountsChanged``.
        """
        if not 0 <= index < len(self._accounts):
            raise ProviderRpcError(4100, f"Unknown account index {index}")
        self._active = index
        logger.info("wallet_account_selected", account=obfuscate_identifier(self.address))
        await self._listeners.emit(ACCOUNTS_CHANGED, [self.address])
        return self.address

    def sign_transaction(self, tx: Dict[str, Any]) -> bytes:
        signed = self._accounts[self._active].sign_transaction(tx)
        return getattr(signed, "raw_transaction", None) or signed.rawTransaction
