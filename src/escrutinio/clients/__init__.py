"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/clients/__init__.py`.
Clientes de capacidades: wallet, ledger y servicio de publicación.

======================== ENGLISH ========================
File: `src/escrutinio/clients/__init__.py`.
Capability clients: wallet, ledger and publication service.
"""

from .ledger import LedgerClient, PendingTransaction, Web3LedgerClient, await_finality
from .publication import PinataPublicationClient, PublicationClient
from .wallet import (
    ACCOUNTS_CHANGED,
    CHAIN_CHANGED,
    LocalAccountWallet,
    ProviderRpcError,
    WalletProvider,
    parse_chain_id,
)

__all__ = [
    "ACCOUNTS_CHANGED",
    "CHAIN_CHANGED",
    "LedgerClient",
    "LocalAccountWallet",
    "PendingTransaction",
    "PinataPublicationClient",
    "ProviderRpcError",
    "PublicationClient",
    "WalletProvider",
    "Web3LedgerClient",
    "await_finality",
    "parse_chain_id",
]
