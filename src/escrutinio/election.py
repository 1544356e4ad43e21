"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/election.py`.
Este módulo forma parte de Escrutinio y está documentado para facilitar
la navegación, mantenimiento y auditoría técnica.

Componentes detectados:
  - validate_candidate_name
  - validate_address
  - ElectionStateMachine

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `src/escrutinio/election.py`.
This module is part of Escrutinio and is documented to improve
navigation, maintenance, and technical auditability.

Detected components:
  - validate_candidate_name
  - validate_address
  - ElectionStateMachine

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

# Election Module
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
import contextlib
import inspect
from typing import Any, Callable, Optional, Tuple

import structlog
from eth_utils import is_address

from .clients.ledger import LedgerClient, await_finality
from .errors import (
    AlreadyVotedError,
    CommitConflictError,
    ElectionClosedError,
    InvalidAddressFormatError,
    InvalidCandidateNameError,
    NotConnectedError,
    NotRegisteredError,
    ResolutionError,
)
from .models import ElectionPhase, PublicationRecord, RoleState, TransactionReceipt, VoteTally

logger = structlog.get_logger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 10.0


def validate_candidate_name(name: Any) -> str:
    """Rechaza nombres vacíos o con solo espacios antes de enviar.

    English: Reject empty or whitespace-only names before submission.
    """
    if not isinstance(name, str) or not name.strip():
        raise InvalidCandidateNameError()
    return name.strip()


def validate_address(address: Any) -> str:
    """Valida el formato de una dirección antes de enviar.

    English: Validate address format before submission (checksum enforced for mixed case).
    """
    if not isinstance(address, str) or not is_address(address.strip()):
        raise InvalidAddressFormatError()
    return address.strip()


class ElectionStateMachine:
    """Fase de la elección, candidatos y conteos.

    ``ACTIVE`` -> ``CLOSED`` es irreversible. Mientras la elección está activa
    un sondeo cancelable refresca candidatos y conteos en vivo; los conteos en
    vivo son orientativos y se descartan al cerrar.

    English:
        Election phase, candidates and tallies. ``ACTIVE`` -> ``CLOSED`` is
        irreversible. While active, a cancellable poll refreshes candidates and
        live tallies; live tallies are advisory and dropped on close.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        on_refresh: Optional[Callable[[], Any]] = None,
    ) -> None:
        self._ledger = ledger
        self._poll_interval = poll_interval
        self._on_refresh = on_refresh
        self._poll_task: Optional[asyncio.Task[None]] = None
        self.phase = ElectionPhase.ACTIVE
        self.candidates: Tuple[str, ...] = ()
        self.live_tally: Optional[VoteTally] = None
        self.final_tally: Optional[VoteTally] = None
        self.publication = PublicationRecord()

    @property
    def polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    async def load_status(self) -> ElectionPhase:
        """Lee fase y registro de publicación desde el ledger.

        English: Read phase and publication record from the ledger.
        """
        active, ended, content_hash = await asyncio.gather(
            self._ledger.election_active(),
            self._ledger.election_ended(),
            self._ledger.election_results_ipfs_hash(),
        )
        self.publication = PublicationRecord(content_hash or None)
        if ended and self.phase is not ElectionPhase.CLOSED:
            await self.mark_closed()
        logger.info(
            "election_status_loaded",
            phase=self.phase.value,
            ledger_active=bool(active),
            published=self.publication.is_published,
        )
        return self.phase

    async def refresh_candidates(self) -> Tuple[str, ...]:
        self.candidates = tuple(await self._ledger.get_candidates())
        return self.candidates

    async def refresh_live_tally(self) -> Optional[VoteTally]:
        """Refresca el conteo orientativo; no escribe si la fase cambió.

        English: Refresh the advisory tally; results landing after a phase change are dropped.
        """
        if self.phase is not ElectionPhase.ACTIVE:
            return None
        candidates = self.candidates
        counts = await asyncio.gather(*(self._ledger.get_votes(name) for name in candidates))
        if self.phase is not ElectionPhase.ACTIVE:
            logger.debug("live_tally_discarded", phase=self.phase.value)
            return None
        self.live_tally = VoteTally.live(dict(zip(candidates, counts)))
        return self.live_tally

    def start_polling(self) -> None:
        if self.polling or self.phase is not ElectionPhase.ACTIVE:
            return
        self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop(), name="escrutinio-live-tally")
        logger.info("live_tally_polling_started", interval_seconds=self._poll_interval)

    async def stop_polling(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is None:
            return
        if task.done():
            if not task.cancelled() and task.exception() is not None:
                logger.error("live_tally_polling_died", error=str(task.exception()))
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("live_tally_polling_stopped")

    async def _poll_loop(self) -> None:
        while self.phase is ElectionPhase.ACTIVE:
            try:
                await self.refresh_candidates()
                await self.refresh_live_tally()
                if self._on_refresh is not None and self.phase is ElectionPhase.ACTIVE:
                    result = self._on_refresh()
                    if inspect.isawaitable(result):
                        await result
            except Exception as exc:  # noqa: BLE001
                logger.warning("live_tally_poll_failed", error=str(exc))
            await asyncio.sleep(self._poll_interval)

    # Transiciones / Transitions

    def begin_closing(self) -> None:
        if self.phase is ElectionPhase.ACTIVE:
            self.phase = ElectionPhase.CLOSING

    def abort_closing(self) -> None:
        if self.phase is ElectionPhase.CLOSING:
            self.phase = ElectionPhase.ACTIVE

    async def mark_closed(self) -> None:
        self.phase = ElectionPhase.CLOSED
        self.live_tally = None
        await self.stop_polling()
        logger.info("election_closed")

    def record_final_tally(self, tally: VoteTally) -> None:
        if self.final_tally is None:
            self.final_tally = tally

    def record_publication(self, content_hash: str) -> None:
        """Fija el registro de publicación una sola vez.

        English: Set the publication record exactly once.
        """
        if self.publication.is_published:
            if self.publication.content_hash != content_hash:
                raise CommitConflictError(existing_hash=self.publication.content_hash or "")
            return
        self.publication = PublicationRecord(content_hash)

    # Escrituras / Writes

    def _require_active(self) -> None:
        if self.phase is not ElectionPhase.ACTIVE:
            raise ElectionClosedError()

    async def register_candidate(self, name: str) -> TransactionReceipt:
        name = validate_candidate_name(name)
        self._require_active()
        tx = await self._ledger.register_candidate(name)
        logger.info("candidate_registration_submitted", candidate=name, tx_hash=tx.tx_hash)
        receipt = await await_finality(tx)
        await self.refresh_candidates()
        return receipt

    async def register_voter(self, address: str) -> TransactionReceipt:
        address = validate_address(address)
        self._require_active()
        tx = await self._ledger.register_voter(address)
        logger.info("voter_registration_submitted", address=address, tx_hash=tx.tx_hash)
        return await await_finality(tx)

    async def vote(self, candidate: str, *, account: Optional[str], roles: RoleState) -> TransactionReceipt:
        """Emite un voto tras verificar elegibilidad contra el ledger.

        English:
            Cast a vote. ``has_voted`` is re-read from the ledger right before
            submission rather than trusted from the cached ``roles``.
        """
        candidate = validate_candidate_name(candidate)
        if not account:
            raise NotConnectedError()
        if not roles.is_registered_voter:
            raise NotRegisteredError()
        self._require_active()
        try:
            already_voted = await self._ledger.has_voted(account)
        except Exception as exc:  # noqa: BLE001
            raise ResolutionError(f"Error checking voting status: {exc}") from exc
        if already_voted:
            raise AlreadyVotedError()
        tx = await self._ledger.vote(candidate)
        logger.info("vote_submitted", account=account, tx_hash=tx.tx_hash)
        return await await_finality(tx)
