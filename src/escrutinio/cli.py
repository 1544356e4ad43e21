"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/cli.py`.
Este módulo forma parte de Escrutinio y está documentado para facilitar
la navegación, mantenimiento y auditoría técnica.

Componentes detectados:
  - main
  - status
  - accounts
  - register_candidate
  - register_voter
  - vote
  - close
  - verify
  - check_ipfs
  - bloque_main

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `src/escrutinio/cli.py`.
This module is part of Escrutinio and is documented to improve
navigation, maintenance, and technical auditability.

Detected components:
  - main
  - status
  - accounts
  - register_candidate
  - register_voter
  - vote
  - close
  - verify
  - check_ipfs
  - bloque_main

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

# Cli Module
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
from pathlib import Path
from typing import Awaitable, Callable, Optional

import typer

from .bootstrap import build_coordinator
from .clients.publication import PinataPublicationClient
from .config import EscrutinioSettings, load_config
from .coordinator import ActionOutcome, ElectionCoordinator, ElectionView
from .errors import EscrutinioError
from .logging import setup_logging
from .models import PublicationStep

app = typer.Typer(help="Escrutinio election coordinator CLI")

Action = Callable[[ElectionCoordinator], Awaitable[ActionOutcome]]


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML file overriding environment settings."),
    account_index: int = typer.Option(0, "--account-index", "-a", help="Index of the signing key in WALLET_PRIVATE_KEYS."),
) -> None:
    """Interfaz de línea de comandos de Escrutinio.

    English: Escrutinio command line interface.
    """
    try:
        settings = load_config(config)
    except EscrutinioError as exc:
        typer.echo(f"[{exc.kind}] {exc.message}", err=True)
        raise typer.Exit(code=2) from exc
    setup_logging(settings.LOG_LEVEL, settings.LOG_DIR, redact=settings.LOG_REDACT_IDENTIFIERS)
    ctx.obj = {"settings": settings, "account_index": account_index}


def describe(view: ElectionView) -> str:
    """Resumen legible del estado de la elección.

    English: Human-readable summary of the election state.
    """
    lines = [
        f"Account: {view.session.account or '-'} (chain {view.session.network_id or '-'})",
        f"Roles: admin={view.roles.is_admin} voter={view.roles.is_registered_voter} voted={view.roles.has_voted}",
        f"Phase: {view.phase.value}",
    ]
    tally = view.final_tally or view.live_tally
    if view.candidates:
        label = "final" if view.final_tally else "live"
        lines.append(f"Candidates ({label} votes):")
        for name in view.candidates:
            votes = tally.counts.get(name, "?") if tally else "?"
            lines.append(f"  - {name}: {votes}")
    else:
        lines.append("Candidates: none")
    if view.publication.is_published:
        lines.append(f"Results: {view.publication.content_hash}")
    return "\n".join(lines)


def _report(outcome: ActionOutcome) -> None:
    if not outcome.ok:
        typer.echo(f"[{outcome.kind}] {outcome.message}", err=True)
        raise typer.Exit(code=1)
    typer.echo(outcome.message)


def _run(ctx: typer.Context, action: Action) -> None:
    settings: EscrutinioSettings = ctx.obj["settings"]

    async def runner() -> ActionOutcome:
        coordinator, publisher = build_coordinator(settings, account_index=ctx.obj["account_index"])
        try:
            started = await coordinator.start()
            if not started.ok:
                return started
            return await action(coordinator)
        finally:
            await coordinator.teardown()
            await publisher.aclose()

    try:
        outcome = asyncio.run(runner())
    except EscrutinioError as exc:
        outcome = ActionOutcome(ok=False, message=exc.message, kind=exc.kind)
    _report(outcome)


@app.command()
def status(ctx: typer.Context) -> None:
    """Muestra cuenta, roles, fase, candidatos y resultados.

    English: Show account, roles, phase, candidates and results.
    """

    async def action(coordinator: ElectionCoordinator) -> ActionOutcome:
        message = describe(coordinator.state)
        pending = await coordinator.pipeline.resume_point()
        if pending is not None and pending is not PublicationStep.CLOSING:
            message += f"\nPublication pending from step: {pending.value} (run `close` to resume)"
        return ActionOutcome(ok=True, message=message)

    _run(ctx, action)


@app.command()
def accounts(ctx: typer.Context) -> None:
    """Muestra los roles de cada clave configurada.

    Activa cada cuenta por turno; el coordinador recalcula los roles con cada
    ``accountsChanged``.

    English: Show the roles of every configured signing key, activating each
    account in turn so the coordinator recomputes roles on ``accountsChanged``.
    """

    async def action(coordinator: ElectionCoordinator) -> ActionOutcome:
        wallet = coordinator.session_manager.provider
        lines = []
        for index, address in enumerate(wallet.addresses):
            await wallet.select_account(index)
            view = coordinator.state
            if view.error is not None:
                return ActionOutcome(ok=False, message=view.error.message, kind=view.error.kind)
            roles = view.roles
            lines.append(
                f"[{index}] {address}: admin={roles.is_admin} "
                f"voter={roles.is_registered_voter} voted={roles.has_voted}"
            )
        return ActionOutcome(ok=True, message="\n".join(lines))

    _run(ctx, action)


@app.command("register-candidate")
def register_candidate(ctx: typer.Context, name: str = typer.Argument(..., help="Candidate name.")) -> None:
    """Registra un candidato (solo admin). / Register a candidate (admin only)."""
    _run(ctx, lambda coordinator: coordinator.register_candidate(name))


@app.command("register-voter")
def register_voter(ctx: typer.Context, address: str = typer.Argument(..., help="Voter address.")) -> None:
    """Registra un votante (solo admin). / Register a voter (admin only)."""
    _run(ctx, lambda coordinator: coordinator.register_voter(address))


@app.command()
def vote(ctx: typer.Context, candidate: str = typer.Argument(..., help="Candidate name.")) -> None:
    """Emite un voto con la cuenta activa. / Cast a vote with the active account."""
    _run(ctx, lambda coordinator: coordinator.vote(candidate))


@app.command()
def close(ctx: typer.Context) -> None:
    """Cierra la elección y publica los resultados.

    Reanuda desde el paso pendiente si una ejecución anterior falló.

    English: Close the election and publish results, resuming from the pending
    step if a previous run failed.
    """

    async def action(coordinator: ElectionCoordinator) -> ActionOutcome:
        outcome = await coordinator.end_election()
        if outcome.ok:
            typer.echo(describe(coordinator.state))
        return outcome

    _run(ctx, action)


@app.command()
def verify(ctx: typer.Context) -> None:
    """Compara los resultados publicados con el ledger. / Compare published results with the ledger."""
    _run(ctx, lambda coordinator: coordinator.verify_results())


@app.command("check-ipfs")
def check_ipfs(ctx: typer.Context) -> None:
    """Prueba la conexión con Pinata subiendo y leyendo un documento.

    English: Test the Pinata connection by uploading and reading back a probe document.
    """
    settings: EscrutinioSettings = ctx.obj["settings"]

    async def runner() -> str:
        async with PinataPublicationClient(
            settings.require_publication_credential(),
            api_url=settings.PINATA_API_URL,
            gateway_url=settings.PINATA_GATEWAY_URL,
        ) as client:
            content_hash = await client.check_connection()
            return client.gateway_url(content_hash)

    try:
        url = asyncio.run(runner())
    except EscrutinioError as exc:
        _report(ActionOutcome(ok=False, message=exc.message, kind=exc.kind))
        return
    typer.echo(f"Pinata IPFS OK: {url}")


if __name__ == "__main__":
    app()
