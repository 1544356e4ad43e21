"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/pipeline.py`.
Este módulo forma parte de Escrutinio y está documentado para facilitar
la navegación, mantenimiento y auditoría técnica.

Componentes detectados:
  - PublicationResult
  - ResultsPublicationPipeline

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `src/escrutinio/pipeline.py`.
This module is part of Escrutinio and is documented to improve
navigation, maintenance, and technical auditability.

Detected components:
  - PublicationResult
  - ResultsPublicationPipeline

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

# Pipeline Module
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
import inspect
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Tuple

import structlog

from .clients.ledger import LedgerClient, await_finality
from .clients.publication import PublicationClient
from .election import ElectionStateMachine
from .errors import (
    CloseFailedError,
    CommitConflictError,
    EscrutinioError,
    PipelineBusyError,
    PipelineError,
    PublicationVerificationError,
    TallyReadError,
)
from .models import ElectionPhase, PublicationStep, VoteTally
from .schemas import build_results_document, parse_results_document

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[PublicationStep, str], Any]


@dataclass(frozen=True)
class PublicationResult:
    """Resultado del cierre y publicación.

    English: Outcome of the close-and-publish saga.
    """

    content_hash: str
    tally: VoteTally
    already_published: bool = False
    closed_now: bool = False


class ResultsPublicationPipeline:
    """Saga de cierre: cerrar -> contar -> publicar.

    Cada paso se puede reintentar sin efectos dobles. El punto de reanudación
    se deriva del ledger (elección terminada + hash publicado), de modo que un
    reinicio del proceso a mitad de la secuencia continúa en el paso correcto.

    English:
        Close saga: close -> tally -> publish. Each step is retryable without
        double side effects. The resume point is derived from the ledger
        (election ended + hash committed), so a restart mid-sequence resumes at
        the right step. Concurrent runs are rejected.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        publisher: PublicationClient,
        election: ElectionStateMachine,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._ledger = ledger
        self._publisher = publisher
        self._election = election
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = asyncio.Lock()
        self._closed_at: Optional[datetime] = None
        # (resultados, cid) de una subida cuyo commit no se confirmó. / Upload whose commit was not confirmed.
        self._pending_upload: Optional[Tuple[Tuple[Tuple[str, int], ...], str]] = None

    @property
    def in_flight(self) -> bool:
        return self._lock.locked()

    async def resume_point(self) -> Optional[PublicationStep]:
        """Paso desde el que continuar según el estado del ledger.

        English: Step to resume from given the ledger state; ``None`` when done.
        """
        if not await self._ledger.election_ended():
            return PublicationStep.CLOSING
        if not await self._ledger.election_results_ipfs_hash():
            return PublicationStep.TALLYING
        return None

    async def run(self, progress: Optional[ProgressCallback] = None) -> PublicationResult:
        if self._lock.locked():
            raise PipelineBusyError()
        async with self._lock:
            logger.info("pipeline_start")
            closed_now = await self._close(progress)
            tally = await self._tally(progress)
            result = await self._publish(tally, progress)
            logger.info(
                "pipeline_complete",
                content_hash=result.content_hash,
                already_published=result.already_published,
            )
            return replace(result, closed_now=closed_now)

    async def verify(self) -> VoteTally:
        """Compara el documento publicado con los resultados finales del ledger.

        English: Compare the published document against the on-ledger final results.
        """
        content_hash = await self._ledger.election_results_ipfs_hash()
        if not content_hash:
            raise PublicationVerificationError("No results have been published yet")
        document = parse_results_document(await self._publisher.retrieve(content_hash))
        try:
            tally = await self._read_final_tally()
        except Exception as exc:  # noqa: BLE001
            raise TallyReadError(f"Failed to read final results: {exc}") from exc
        if document.tally() != tally.as_dict():
            logger.error("publication_verification_failed", content_hash=content_hash)
            raise PublicationVerificationError()
        logger.info("publication_verified", content_hash=content_hash)
        return tally

    async def _close(self, progress: Optional[ProgressCallback]) -> bool:
        try:
            ended = await self._ledger.election_ended()
        except Exception as exc:  # noqa: BLE001
            raise CloseFailedError(f"Failed to read election status: {exc}") from exc
        if ended:
            logger.info("pipeline_close_skipped", reason="already_closed")
            if self._election.phase is not ElectionPhase.CLOSED:
                await self._election.mark_closed()
            return False

        self._election.begin_closing()
        await _report(progress, PublicationStep.CLOSING)
        try:
            tx = await self._ledger.close_election()
            logger.info("pipeline_close_submitted", tx_hash=tx.tx_hash)
            await await_finality(tx)
        except Exception as exc:  # noqa: BLE001
            self._election.abort_closing()
            logger.error("pipeline_close_failed", error=str(exc))
            raise CloseFailedError(f"Failed to close the election: {exc}") from exc
        except BaseException:
            self._election.abort_closing()
            raise
        self._closed_at = self._clock()
        await self._election.mark_closed()
        return True

    async def _tally(self, progress: Optional[ProgressCallback]) -> VoteTally:
        await _report(progress, PublicationStep.TALLYING)
        try:
            tally = await self._read_final_tally()
        except Exception as exc:  # noqa: BLE001
            logger.error("pipeline_tally_failed", error=str(exc))
            raise TallyReadError(f"Failed to read final results: {exc}") from exc
        self._election.record_final_tally(tally)
        return tally

    async def _read_final_tally(self) -> VoteTally:
        candidates = tuple(await self._ledger.get_candidates())
        if len(set(candidates)) != len(candidates):
            logger.warning("duplicate_candidate_names", candidates=list(candidates))
        counts = await asyncio.gather(
            *(self._ledger.get_final_results(name) for name in candidates),
            return_exceptions=True,
        )
        for count in counts:
            if isinstance(count, BaseException):
                raise count
        self._election.candidates = candidates
        return VoteTally.frozen(dict(zip(candidates, (int(count) for count in counts))))

    async def _publish(self, tally: VoteTally, progress: Optional[ProgressCallback]) -> PublicationResult:
        try:
            existing = await self._ledger.election_results_ipfs_hash()
        except Exception as exc:  # noqa: BLE001
            raise PipelineError(f"Failed to read the publication record: {exc}") from exc
        if existing:
            logger.info("pipeline_publish_skipped", reason="already_committed", content_hash=existing)
            self._election.record_publication(existing)
            return PublicationResult(content_hash=existing, tally=tally, already_published=True)

        results_key = tuple(tally.counts.items())
        if self._pending_upload is not None and self._pending_upload[0] == results_key:
            content_hash = self._pending_upload[1]
            logger.info("pipeline_upload_reused", content_hash=content_hash)
        else:
            await _report(progress, PublicationStep.UPLOADING)
            document = build_results_document(tally.counts, self._closed_at or self._clock())
            content_hash = await self._publisher.publish(document)
            self._pending_upload = (results_key, content_hash)

        await _report(progress, PublicationStep.COMMITTING)
        already_published = False
        try:
            await self._commit(content_hash)
        except CommitConflictError as conflict:
            logger.info(
                "pipeline_commit_conflict",
                content_hash=content_hash,
                existing_hash=conflict.existing_hash,
            )
            already_published = conflict.existing_hash != content_hash
            content_hash = conflict.existing_hash
        self._pending_upload = None
        self._election.record_publication(content_hash)
        return PublicationResult(content_hash=content_hash, tally=tally, already_published=already_published)

    async def _commit(self, content_hash: str) -> None:
        try:
            tx = await self._ledger.store_election_results_ipfs(content_hash)
            logger.info("pipeline_commit_submitted", tx_hash=tx.tx_hash, content_hash=content_hash)
            await await_finality(tx)
        except Exception as exc:  # noqa: BLE001
            existing = await self._committed_hash()
            if existing:
                raise CommitConflictError(existing_hash=existing) from exc
            logger.error("pipeline_commit_failed", error=str(exc))
            if isinstance(exc, EscrutinioError):
                raise
            raise PipelineError(f"Failed to store IPFS hash on blockchain: {exc}") from exc

    async def _committed_hash(self) -> str:
        try:
            return await self._ledger.election_results_ipfs_hash()
        except Exception as exc:  # noqa: BLE001
            logger.warning("publication_record_unreadable", error=str(exc))
            return ""


async def _report(progress: Optional[ProgressCallback], step: PublicationStep) -> None:
    logger.info("pipeline_step", step=step.value)
    if progress is None:
        return
    result = progress(step, step.message)
    if inspect.isawaitable(result):
        await result
