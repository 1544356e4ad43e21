"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/coordinator.py`.
Este módulo forma parte de Escrutinio y está documentado para facilitar
la navegación, mantenimiento y auditoría técnica.

Componentes detectados:
  - ElectionView
  - ActionOutcome
  - ElectionCoordinator

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `src/escrutinio/coordinator.py`.
This module is part of Escrutinio and is documented to improve
navigation, maintenance, and technical auditability.

Detected components:
  - ElectionView
  - ActionOutcome
  - ElectionCoordinator

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

# Coordinator Module
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
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Optional, Tuple

import structlog

from .clients.ledger import LedgerClient
from .clients.publication import PublicationClient
from .clients.wallet import WalletProvider
from .election import DEFAULT_POLL_INTERVAL_SECONDS, ElectionStateMachine, validate_address, validate_candidate_name
from .errors import (
    ErrorInfo,
    EscrutinioError,
    NetworkMismatchError,
    NotAdminError,
    NotConnectedError,
    PipelineBusyError,
    ResolutionError,
)
from .events import ListenerRegistry, Subscription
from .logging import bind_context
from .models import (
    ElectionPhase,
    PublicationRecord,
    PublicationStep,
    RoleState,
    Session,
    VoteTally,
    same_address,
)
from .pipeline import PublicationResult, ResultsPublicationPipeline
from .roles import RoleResolver
from .session import SessionManager

logger = structlog.get_logger(__name__)

STATE_CHANGED = "state_changed"


@dataclass(frozen=True)
class ElectionView:
    """Instantánea consistente del estado del coordinador.

    English:
        Consistent snapshot of the coordinator state. Replaced wholesale on
        every change; the internal ``CLOSING`` phase is shown as ``ACTIVE``
        with ``loading`` set.
    """

    session: Session = field(default_factory=Session)
    roles: RoleState = field(default_factory=RoleState)
    phase: ElectionPhase = ElectionPhase.ACTIVE
    candidates: Tuple[str, ...] = ()
    live_tally: Optional[VoteTally] = None
    final_tally: Optional[VoteTally] = None
    publication: PublicationRecord = field(default_factory=PublicationRecord)
    loading: bool = False
    progress: Optional[PublicationStep] = None
    message: str = ""
    error: Optional[ErrorInfo] = None


@dataclass(frozen=True)
class ActionOutcome:
    """Resultado de una acción del coordinador.

    English: Result of a coordinator action: human-readable message plus a machine-checkable kind.
    """

    ok: bool
    message: str
    kind: Optional[str] = None
    value: Any = None


class ElectionCoordinator:
    """Coordina sesión, roles, fase de la elección y publicación de resultados.

    Todas las acciones siguen el mismo patrón: validar localmente, verificar
    la red, marcar carga, invocar al cliente, refrescar solo las porciones
    afectadas y publicar un mensaje. Ante un fallo solo cambian ``error`` y
    ``message``; el resto del estado queda intacto.

    English:
        Coordinates session, roles, election phase and results publication.
        Every action validates locally, checks the network, sets loading,
        invokes the client, refreshes only the affected slices and reports a
        message. On failure only ``error`` and ``message`` change.

    Example:
        >>> coordinator = ElectionCoordinator(wallet, ledger, publisher, expected_chain_id=11155111)
        >>> async with coordinator:
        ...     await coordinator.register_candidate("Alice")
        ...     outcome = await coordinator.end_election()
    """

    def __init__(
        self,
        wallet: Optional[WalletProvider],
        ledger: LedgerClient,
        publisher: PublicationClient,
        *,
        expected_chain_id: int,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        reload: Optional[Callable[[], Awaitable[Any]]] = None,
    ) -> None:
        self._expected_chain_id = expected_chain_id
        self._reload = reload
        self._session = SessionManager(
            wallet,
            on_account_changed=self._handle_account_changed,
            on_network_changed=self._handle_network_changed,
        )
        self._roles = RoleResolver(ledger)
        self._ledger = ledger
        self._publisher = publisher
        self._poll_interval = poll_interval
        self._election, self._pipeline = self._build_election()
        self._listeners = ListenerRegistry()
        self._state = ElectionView()
        self._in_flight = 0
        # Sobrevive al reinicio por cambio de red. / Survives the network-change reset.
        self._close_lock = asyncio.Lock()
        self._generation = 0

    @property
    def state(self) -> ElectionView:
        return self._state

    @property
    def session_manager(self) -> SessionManager:
        return self._session

    @property
    def election(self) -> ElectionStateMachine:
        return self._election

    @property
    def pipeline(self) -> ResultsPublicationPipeline:
        return self._pipeline

    def subscribe(self, listener: Callable[[ElectionView], Any]) -> Subscription:
        return self._listeners.subscribe(STATE_CHANGED, listener)

    async def __aenter__(self) -> "ElectionCoordinator":
        await self.start()
        return self

    async def __aexit__(self, *_exc_info: Any) -> None:
        await self.teardown()

    # Ciclo de vida / Lifecycle

    async def start(self) -> ActionOutcome:
        """Conecta la wallet y carga roles, fase y candidatos.

        English: Connect the wallet and load roles, phase and candidates.
        """

        async def operation() -> str:
            account = await self._session.connect()
            roles = await self._roles.resolve(account)
            await self._election.load_status()
            await self._election.refresh_candidates()
            await self._election.refresh_live_tally()
            await self._update(session=self._session.session, roles=roles, **self._election_slices())
            if roles.is_admin:
                self._election.start_polling()
            return account

        return await self._run("start", operation, success="Connected")

    async def teardown(self) -> None:
        """Detiene el sondeo y libera las suscripciones. Idempotente.

        English: Stop polling and release subscriptions. Idempotent.
        """
        await self._election.stop_polling()
        self._session.disconnect()
        await self._update(session=self._session.session)

    async def refresh(self) -> ActionOutcome:
        async def operation() -> None:
            roles = await self._roles.resolve(self._session.session.account)
            await self._election.load_status()
            await self._election.refresh_candidates()
            await self._election.refresh_live_tally()
            await self._update(roles=roles, **self._election_slices())

        return await self._run("refresh", operation, success="Election status refreshed")

    # Acciones / Actions

    async def register_candidate(self, name: str) -> ActionOutcome:
        async def operation() -> Any:
            candidate = validate_candidate_name(name)
            self._require_admin()
            await self._ensure_network()
            await self._set_loading(True, "Registering candidate... Please wait for confirmation.")
            receipt = await self._election.register_candidate(candidate)
            await self._election.refresh_live_tally()
            await self._update(candidates=self._election.candidates, live_tally=self._election.live_tally)
            return receipt

        return await self._run("register_candidate", operation, success="Candidate registered successfully!")

    async def register_voter(self, address: str) -> ActionOutcome:
        async def operation() -> Any:
            voter = validate_address(address)
            self._require_admin()
            await self._ensure_network()
            await self._set_loading(True, "Registering voter... Please wait for confirmation.")
            receipt = await self._election.register_voter(voter)
            if same_address(voter, self._session.session.account):
                # Optimista; se confirma en la próxima resolución completa. / Optimistic until the next full resolve.
                await self._update(roles=replace(self._state.roles, is_registered_voter=True))
            return receipt

        return await self._run("register_voter", operation, success="Voter registered successfully!")

    async def vote(self, candidate: str) -> ActionOutcome:
        async def operation() -> Any:
            validate_candidate_name(candidate)
            account = self._session.session.account
            if not account:
                raise NotConnectedError()
            await self._ensure_network()
            await self._set_loading(True, "Casting vote... Please wait for confirmation.")
            receipt = await self._election.vote(candidate, account=account, roles=self._state.roles)
            await self._election.refresh_live_tally()
            await self._update(roles=replace(self._state.roles, has_voted=True), live_tally=self._election.live_tally)
            return receipt

        return await self._run("vote", operation, success="Vote cast successfully!")

    async def end_election(self) -> ActionOutcome:
        """Ejecuta la saga de cierre y publicación de resultados.

        English: Run the close/tally/publish saga, reporting progress through the state.
        """

        async def progress(step: PublicationStep, message: str) -> None:
            await self._update(progress=step, message=message)

        async def operation() -> PublicationResult:
            self._require_admin()
            if self._close_lock.locked():
                raise PipelineBusyError()
            async with self._close_lock:
                await self._ensure_network()
                await self._set_loading(True, "")
                try:
                    return await self._pipeline.run(progress)
                finally:
                    # La fase refleja el ledger aunque la saga falle. / Phase mirrors the ledger even on failure.
                    await self._update(progress=None, **self._election_slices())

        def success(result: PublicationResult) -> str:
            if result.already_published:
                return f"Election results already published: {result.content_hash}"
            return "Election closed successfully!"

        return await self._run("end_election", operation, success=success)

    async def verify_results(self) -> ActionOutcome:
        async def operation() -> VoteTally:
            await self._set_loading(True, "Verifying published results...")
            tally = await self._pipeline.verify()
            await self._update(final_tally=tally)
            return tally

        return await self._run("verify_results", operation, success="Published results match the ledger")

    # Eventos de sesión / Session events

    async def _handle_account_changed(self, account: Optional[str]) -> None:
        """Recalcula roles y conteos completos para la nueva cuenta.

        English: Full recomputation of roles and tallies for the new account, never a patch.
        """
        try:
            roles = await self._roles.resolve(account)
            if self._election.phase is ElectionPhase.ACTIVE:
                await self._election.refresh_candidates()
                await self._election.refresh_live_tally()
        except ResolutionError as exc:
            await self._update(session=self._session.session, roles=RoleState(), error=exc.to_info(), message=exc.message)
            return
        except Exception as exc:  # noqa: BLE001
            info = ErrorInfo(kind="unexpected", message=str(exc))
            await self._update(session=self._session.session, roles=RoleState(), error=info, message=info.message)
            return
        await self._update(session=self._session.session, roles=roles, error=None, **self._election_slices())
        if roles.is_admin:
            self._election.start_polling()
        else:
            await self._election.stop_polling()

    async def _handle_network_changed(self, chain_id: int) -> None:
        """Reinicio completo: los enlaces al contrato de otra red no son seguros.

        English: Hard reset: contract bindings from another chain are unsafe to reuse.
        """
        logger.warning("coordinator_hard_reset", chain_id=chain_id)
        self._generation += 1
        await self._election.stop_polling()
        self._session.disconnect()
        self._election, self._pipeline = self._build_election()
        self._state = ElectionView(
            session=self._session.session,
            message="Network changed; reconnect to continue",
        )
        await self._listeners.emit(STATE_CHANGED, self._state)
        if self._reload is not None:
            await self._reload()

    # Utilidades / Helpers

    def _build_election(self) -> Tuple[ElectionStateMachine, ResultsPublicationPipeline]:
        election = ElectionStateMachine(self._ledger, poll_interval=self._poll_interval, on_refresh=self._sync_election)
        return election, ResultsPublicationPipeline(self._ledger, self._publisher, election)

    async def _ensure_network(self) -> None:
        generation = self._generation
        await self._session.ensure_network(self._expected_chain_id)
        # El cambio de red emite ``chainChanged`` y reinicia el coordinador. / A switch may fire the hard reset.
        if generation != self._generation or not self._session.session.connected:
            raise NetworkMismatchError("Network changed; reconnect to continue")

    def _require_admin(self) -> None:
        if not self._session.session.connected:
            raise NotConnectedError()
        if not self._state.roles.is_admin:
            raise NotAdminError()

    def _election_slices(self) -> dict[str, Any]:
        phase = self._election.phase
        return {
            "phase": ElectionPhase.ACTIVE if phase is ElectionPhase.CLOSING else phase,
            "candidates": self._election.candidates,
            "live_tally": self._election.live_tally,
            "final_tally": self._election.final_tally,
            "publication": self._election.publication,
        }

    async def _sync_election(self) -> None:
        await self._update(**self._election_slices())

    async def _set_loading(self, loading: bool, message: str) -> None:
        await self._update(loading=loading, message=message, error=None)

    async def _update(self, **changes: Any) -> None:
        self._state = replace(self._state, **changes)
        await self._listeners.emit(STATE_CHANGED, self._state)

    async def _run(
        self,
        action: str,
        operation: Callable[[], Awaitable[Any]],
        *,
        success: Any,
    ) -> ActionOutcome:
        session = self._session.session
        log = bind_context(logger, account=session.account, chain_id=session.network_id)
        self._in_flight += 1
        try:
            value = await operation()
        except EscrutinioError as exc:
            log.warning("coordinator_action_failed", action=action, kind=exc.kind, error=exc.message)
            return await self._fail(exc.to_info())
        except Exception as exc:  # noqa: BLE001
            log.exception("coordinator_action_crashed", action=action)
            return await self._fail(ErrorInfo(kind="unexpected", message=str(exc) or exc.__class__.__name__))
        finally:
            self._in_flight -= 1
        message = success(value) if callable(success) else success
        log.info("coordinator_action_ok", action=action)
        await self._update(loading=self._in_flight > 0, message=message, error=None)
        return ActionOutcome(ok=True, message=message, value=value)

    async def _fail(self, info: ErrorInfo) -> ActionOutcome:
        await self._update(loading=self._in_flight > 0, message=info.message, error=info)
        return ActionOutcome(ok=False, message=info.message, kind=info.kind)
