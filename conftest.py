"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `conftest.py`.
Este módulo forma parte de Escrutinio y está documentado para facilitar
la navegación, mantenimiento y auditoría técnica.

Componentes detectados:
  - block_network
  - ledger
  - wallet
  - publisher
  - make_coordinator

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `conftest.py`.
This module is part of Escrutinio and is documented to improve
navigation, maintenance, and technical auditability.

Detected components:
  - block_network
  - ledger
  - wallet
  - publisher
  - make_coordinator

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

from __future__ import annotations

from pathlib import Path
import socket
import sys
from typing import Any, Callable

import pytest

REPO_ROOT = Path(__file__).resolve().parent
for extra in (REPO_ROOT / "src", REPO_ROOT / "tests"):
    if str(extra) not in sys.path:
        sys.path.insert(0, str(extra))

from escrutinio.coordinator import ElectionCoordinator  # noqa: E402
from fakes import SEPOLIA, FakeLedger, FakeWallet, InMemoryPublisher  # noqa: E402


@pytest.fixture(autouse=True)
def block_network(monkeypatch: pytest.MonkeyPatch) -> None:
    """Impide conexiones de red reales en tests.

    English:
        Prevents real network connections in tests.
    """

    def guarded_connect(*args: Any, **kwargs: Any) -> None:
        raise RuntimeError("Network access is disabled during tests.")

    def guarded_create_connection(*args: Any, **kwargs: Any) -> None:
        raise RuntimeError("Network access is disabled during tests.")

    monkeypatch.setattr(socket.socket, "connect", guarded_connect, raising=True)
    monkeypatch.setattr(socket, "create_connection", guarded_create_connection, raising=True)


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def wallet(ledger: FakeLedger) -> FakeWallet:
    return FakeWallet(ledger=ledger)


@pytest.fixture
def publisher() -> InMemoryPublisher:
    return InMemoryPublisher()


@pytest.fixture
def make_coordinator(
    wallet: FakeWallet, ledger: FakeLedger, publisher: InMemoryPublisher
) -> Callable[..., ElectionCoordinator]:
    """Fábrica de coordinadores sobre los dobles en memoria.

    English: Coordinator factory over the in-memory doubles.
    """

    def factory(**kwargs: Any) -> ElectionCoordinator:
        kwargs.setdefault("expected_chain_id", SEPOLIA)
        kwargs.setdefault("poll_interval", 60.0)
        return ElectionCoordinator(wallet, ledger, publisher, **kwargs)

    return factory
