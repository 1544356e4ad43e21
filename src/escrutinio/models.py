"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/models.py`.
Este módulo forma parte de Escrutinio y está documentado para facilitar
la navegación, mantenimiento y auditoría técnica.

Componentes detectados:
  - ElectionPhase
  - PublicationStep
  - Session
  - RoleState
  - VoteTally
  - PublicationRecord
  - TransactionReceipt
  - same_address

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `src/escrutinio/models.py`.
This module is part of Escrutinio and is documented to improve
navigation, maintenance, and technical auditability.

Detected components:
  - ElectionPhase
  - PublicationStep
  - Session
  - RoleState
  - VoteTally
  - PublicationRecord
  - TransactionReceipt
  - same_address

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional


class ElectionPhase(str, Enum):
    """Fases de la elección.

    English:
        Election phases. ``CLOSING`` only exists while the publication
        pipeline runs; there is no transition out of ``CLOSED``.
    """

    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


class PublicationStep(str, Enum):
    """Pasos del cierre de la elección con su mensaje de progreso.

    English: Steps of the close-election saga.
    """

    CLOSING = "closing"
    TALLYING = "tallying"
    UPLOADING = "uploading"
    COMMITTING = "committing"

    @property
    def message(self) -> str:
        return _STEP_MESSAGES[self]


_STEP_MESSAGES = {
    PublicationStep.CLOSING: "Closing election... Please wait for confirmation.",
    PublicationStep.TALLYING: "Reading final results...",
    PublicationStep.UPLOADING: "Uploading results to IPFS...",
    PublicationStep.COMMITTING: "Storing IPFS hash on blockchain...",
}


def same_address(left: Optional[str], right: Optional[str]) -> bool:
    """Compara direcciones sin distinguir mayúsculas.

    English: Case-insensitive address comparison; absent values never match.
    """
    if not left or not right:
        return False
    return left.lower() == right.lower()


@dataclass(frozen=True)
class Session:
    """Sesión de wallet.

    Attributes:
        account (Optional[str]): Cuenta activa.
        network_id (Optional[int]): Chain ID reportado por el proveedor.
        connected (bool): Si la sesión está conectada.

    English:
        Wallet session. ``connected`` implies ``account`` is present.
    """

    account: Optional[str] = None
    network_id: Optional[int] = None
    connected: bool = False

    def __post_init__(self) -> None:
        if self.connected and not self.account:
            raise ValueError("A connected session requires an account")

    @classmethod
    def disconnected(cls, network_id: Optional[int] = None) -> "Session":
        return cls(account=None, network_id=network_id, connected=False)


@dataclass(frozen=True)
class RoleState:
    """Roles y elegibilidad de la cuenta actual.

    English: Roles and eligibility of the current account, replaced wholesale on refresh.
    """

    is_admin: bool = False
    is_registered_voter: bool = False
    has_voted: bool = False


@dataclass(frozen=True)
class VoteTally:
    """Conteo de votos por candidato.

    English:
        Per-candidate vote counts. ``final`` tallies are read from the frozen
        ledger state after close; ``live`` ones are advisory only.
    """

    counts: Mapping[str, int] = field(default_factory=dict)
    final: bool = False

    def __post_init__(self) -> None:
        for name, votes in self.counts.items():
            if votes < 0:
                raise ValueError(f"Vote count for {name!r} must be >= 0, got {votes}")
        object.__setattr__(self, "counts", MappingProxyType(dict(self.counts)))

    @classmethod
    def live(cls, counts: Mapping[str, int]) -> "VoteTally":
        return cls(counts=counts, final=False)

    @classmethod
    def frozen(cls, counts: Mapping[str, int]) -> "VoteTally":
        return cls(counts=counts, final=True)

    def as_dict(self) -> dict[str, int]:
        return dict(self.counts)

    @property
    def total(self) -> int:
        return sum(self.counts.values())


@dataclass(frozen=True)
class PublicationRecord:
    """Hash de contenido de los resultados publicados (se fija una sola vez).

    English: Content hash of the published results, set exactly once.
    """

    content_hash: Optional[str] = None

    @property
    def is_published(self) -> bool:
        return bool(self.content_hash)


@dataclass(frozen=True)
class TransactionReceipt:
    """Recibo de una transacción confirmada.

    English: Receipt of a transaction that reached finality. ``status == 1`` is success.
    """

    tx_hash: str
    status: int
    block_number: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == 1
