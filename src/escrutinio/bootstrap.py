"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/bootstrap.py`.
Este módulo forma parte de Escrutinio y está documentado para facilitar
la navegación, mantenimiento y auditoría técnica.

Componentes detectados:
  - build_web3_client
  - build_coordinator

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `src/escrutinio/bootstrap.py`.
This module is part of Escrutinio and is documented to improve
navigation, maintenance, and technical auditability.

Detected components:
  - build_web3_client
  - build_coordinator

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

from __future__ import annotations

from typing import Optional, Tuple

import structlog
from web3 import Web3

from .clients.ledger import Web3LedgerClient
from .clients.publication import PinataPublicationClient
from .clients.wallet import LocalAccountWallet
from .config import EscrutinioSettings, load_contract_abi
from .coordinator import ElectionCoordinator
from .errors import ConfigurationError, NoProviderError, WalletConnectionError

logger = structlog.get_logger(__name__)


def build_web3_client(rpc_url: str) -> Web3:
    """Construye un cliente Web3 conectado al RPC.

    :param rpc_url: URL RPC del ledger.
    :return: Instancia Web3 conectada.

    English:
        Builds a Web3 client connected to the RPC.

    :param rpc_url: Ledger RPC URL.
    :return: Connected Web3 instance.
    """
    web3 = Web3(Web3.HTTPProvider(rpc_url))
    if not web3.is_connected():
        raise WalletConnectionError("Unable to connect to the ledger RPC endpoint.")
    return web3


def build_coordinator(
    settings: EscrutinioSettings,
    *,
    web3: Optional[Web3] = None,
    account_index: int = 0,
) -> Tuple[ElectionCoordinator, PinataPublicationClient]:
    """Conecta clientes de capacidades y coordinador desde la configuración.

    La credencial de publicación se valida antes de cualquier llamada de red.

    English:
        Wire capability clients and the coordinator from configuration. The
        publication credential is checked before any network call. Returns the
        publisher too so callers can close its HTTP client.
    """
    jwt = settings.require_publication_credential()
    abi = load_contract_abi(settings.CONTRACT_ABI_PATH)
    keys = settings.private_keys()
    if not keys:
        raise NoProviderError("No wallet keys configured; set WALLET_PRIVATE_KEYS")
    if not 0 <= account_index < len(keys):
        raise ConfigurationError(f"Account index {account_index} out of range (0..{len(keys) - 1})")

    web3 = web3 or build_web3_client(settings.RPC_URL)
    wallet = LocalAccountWallet(web3, keys, active=account_index)
    ledger = Web3LedgerClient(
        web3,
        settings.CONTRACT_ADDRESS,
        abi,
        wallet,
        receipt_timeout=settings.RECEIPT_TIMEOUT_SECONDS,
    )
    publisher = PinataPublicationClient(
        jwt,
        api_url=settings.PINATA_API_URL,
        gateway_url=settings.PINATA_GATEWAY_URL,
    )
    coordinator = ElectionCoordinator(
        wallet,
        ledger,
        publisher,
        expected_chain_id=settings.CHAIN_ID,
        poll_interval=settings.POLL_INTERVAL_SECONDS,
    )
    logger.info("coordinator_built", chain_id=settings.CHAIN_ID, contract=ledger.contract_address)
    return coordinator, publisher
