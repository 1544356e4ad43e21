"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/clients/ledger.py`.
Este módulo forma parte de Escrutinio y está documentado para facilitar
la navegación, mantenimiento y auditoría técnica.

Componentes detectados:
  - PendingTransaction
  - LedgerClient
  - TransactionSigner
  - await_finality
  - Web3PendingTransaction
  - Web3LedgerClient

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `src/escrutinio/clients/ledger.py`.
This module is part of Escrutinio and is documented to improve
navigation, maintenance, and technical auditability.

Detected components:
  - PendingTransaction
  - LedgerClient
  - TransactionSigner
  - await_finality
  - Web3PendingTransaction
  - Web3LedgerClient

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

# Ledger Module
# AUTO-DOC-INDEX
#
# ES: Índice rápido
#   1) Propósito del módulo
#   2) Componentes principales
#   3) Puntos de extensión
#
# EN: Quick index
#   1) Module purpose
#   2) Main components
#   3) Extension points
#
# Secciones / Sections:
#   - Configuración / Configuration
#   - Lógica principal / Core logic
#   - Integraciones / Integrations



from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Protocol, Sequence, TypeVar

import structlog
from web3.exceptions import ContractLogicError, TimeExhausted

from ..errors import (
    TransactionError,
    TransactionFailedError,
    TransactionTimeoutError,
    UserRejectedError,
    is_user_rejection,
)
from ..models import TransactionReceipt

if TYPE_CHECKING:
    from web3 import Web3

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class PendingTransaction(Protocol):
    """Transacción enviada, pendiente de finalidad.

    English: Submitted transaction awaiting finality.
    """

    tx_hash: str

    async def wait(self) -> TransactionReceipt: ...


class LedgerClient(Protocol):
    """Capacidades consumidas del contrato de votación.

    Cada método corresponde a la función homónima del contrato
    (``hasVoted`` -> ``has_voted``, ``electionResultsIPFSHash`` ->
    ``election_results_ipfs_hash``, ...).

    English:
        Capabilities consumed from the voting contract. Each method maps onto
        the contract function of the same (camelCase) name.
    """

    async def admin(self) -> str: ...

    async def voters(self, address: str) -> bool: ...

    async def has_voted(self, address: str) -> bool: ...

    async def get_candidates(self) -> List[str]: ...

    async def get_votes(self, name: str) -> int: ...

    async def get_final_results(self, name: str) -> int: ...

    async def election_active(self) -> bool: ...

    async def election_ended(self) -> bool: ...

    async def election_results_ipfs_hash(self) -> str: ...

    async def register_candidate(self, name: str) -> PendingTransaction: ...

    async def register_voter(self, address: str) -> PendingTransaction: ...

    async def vote(self, name: str) -> PendingTransaction: ...

    async def close_election(self) -> PendingTransaction: ...

    async def store_election_results_ipfs(self, content_hash: str) -> PendingTransaction: ...


class TransactionSigner(Protocol):
    address: str

    def sign_transaction(self, tx: Dict[str, Any]) -> bytes: ...


async def await_finality(tx: PendingTransaction) -> TransactionReceipt:
    """Espera la confirmación y valida el estado del recibo.

    English:
        Wait for finality and check the receipt status. A failed status raises
        ``TransactionFailedError``, kept distinct from a user rejection.
    """
    receipt = await tx.wait()
    if not receipt.succeeded:
        logger.warning("transaction_reverted", tx_hash=receipt.tx_hash, status=receipt.status)
        raise TransactionFailedError("Transaction failed", tx_hash=receipt.tx_hash)
    logger.debug("transaction_confirmed", tx_hash=receipt.tx_hash, block=receipt.block_number)
    return receipt


class Web3PendingTransaction:
    """Transacción enviada vía web3.

    English: Transaction submitted through web3.
    """

    def __init__(self, web3: "Web3", tx_hash: str, *, timeout: float = 120.0) -> None:
        self._web3 = web3
        self.tx_hash = tx_hash
        self._timeout = timeout

    async def wait(self) -> TransactionReceipt:
        try:
            raw = await asyncio.to_thread(
                self._web3.eth.wait_for_transaction_receipt,
                self.tx_hash,
                timeout=self._timeout,
            )
        except TimeExhausted as exc:
            raise TransactionTimeoutError(
                f"Transaction {self.tx_hash} not confirmed after {self._timeout}s", tx_hash=self.tx_hash
            ) from exc
        return TransactionReceipt(
            tx_hash=self.tx_hash,
            status=int(raw["status"]),
            block_number=raw.get("blockNumber"),
        )


class Web3LedgerClient:
    """Cliente del contrato de votación sobre ``web3``.

    Las llamadas síncronas de web3 se ejecutan en un hilo para no bloquear el
    bucle de eventos del coordinador.

    English:
        Voting contract client built on ``web3``. Synchronous web3 calls run in
        a worker thread so the coordinator's event loop is never blocked.
    """

    def __init__(
        self,
        web3: "Web3",
        contract_address: str,
        abi: Sequence[Dict[str, Any]],
        signer: TransactionSigner,
        *,
        receipt_timeout: float = 120.0,
    ) -> None:
        self._web3 = web3
        self._address = web3.to_checksum_address(contract_address)
        self._contract = web3.eth.contract(address=self._address, abi=list(abi))
        self._signer = signer
        self._receipt_timeout = receipt_timeout

    @property
    def contract_address(self) -> str:
        return self._address

    async def _call(self, name: str, *args: Any) -> Any:
        function = getattr(self._contract.functions, name)(*args)
        return await asyncio.to_thread(function.call)

    async def admin(self) -> str:
        return str(await self._call("admin"))

    async def voters(self, address: str) -> bool:
        return bool(await self._call("voters", self._web3.to_checksum_address(address)))

    async def has_voted(self, address: str) -> bool:
        return bool(await self._call("hasVoted", self._web3.to_checksum_address(address)))

    async def get_candidates(self) -> List[str]:
        return [str(name) for name in await self._call("getCandidates")]

    async def get_votes(self, name: str) -> int:
        return int(await self._call("getVotes", name))

    async def get_final_results(self, name: str) -> int:
        return int(await self._call("getFinalResults", name))

    async def election_active(self) -> bool:
        return bool(await self._call("electionActive"))

    async def election_ended(self) -> bool:
        return bool(await self._call("electionEnded"))

    async def election_results_ipfs_hash(self) -> str:
        return str(await self._call("electionResultsIPFSHash") or "")

    async def register_candidate(self, name: str) -> Web3PendingTransaction:
        return await self._transact("registerCandidate", name)

    async def register_voter(self, address: str) -> Web3PendingTransaction:
        return await self._transact("registerVoter", self._web3.to_checksum_address(address))

    async def vote(self, name: str) -> Web3PendingTransaction:
        return await self._transact("vote", name)

    async def close_election(self) -> Web3PendingTransaction:
        return await self._transact("closeElection")

    async def store_election_results_ipfs(self, content_hash: str) -> Web3PendingTransaction:
        return await self._transact("storeElectionResultsIPFS", content_hash)

    async def _transact(self, name: str, *args: Any) -> Web3PendingTransaction:
        logger.info("ledger_transaction_start", function=name)
        tx_hash = await _translate_errors(
            lambda: self._send(name, *args),
        )
        logger.info("ledger_transaction_sent", function=name, tx_hash=tx_hash)
        return Web3PendingTransaction(self._web3, tx_hash, timeout=self._receipt_timeout)

    def _send(self, name: str, *args: Any) -> str:
        function = getattr(self._contract.functions, name)(*args)
        sender = self._signer.address
        tx = function.build_transaction(
            {
                "from": sender,
                "nonce": self._web3.eth.get_transaction_count(sender),
                "chainId": self._web3.eth.chain_id,
                "gasPrice": self._web3.eth.gas_price,
            }
        )
        tx["gas"] = function.estimate_gas({"from": sender})
        raw_tx = self._signer.sign_transaction(tx)
        tx_hash = self._web3.eth.send_raw_transaction(raw_tx)
        return self._web3.to_hex(tx_hash)


async def _translate_errors(operation: Callable[[], T]) -> T:
    try:
        return await asyncio.to_thread(operation)
    except ContractLogicError as exc:
        raise TransactionFailedError(f"Transaction reverted: {exc}") from exc
    except Exception as exc:  # noqa: BLE001
        if is_user_rejection(exc):
            raise UserRejectedError("Transaction rejected by user") from exc
        raise TransactionError(f"Transaction submission failed: {exc}") from exc
