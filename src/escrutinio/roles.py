"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/roles.py`.
Este módulo forma parte de Escrutinio y está documentado para facilitar
la navegación, mantenimiento y auditoría técnica.

Componentes detectados:
  - RoleResolver

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `src/escrutinio/roles.py`.
This module is part of Escrutinio and is documented to improve
navigation, maintenance, and technical auditability.

Detected components:
  - RoleResolver

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import structlog

from .clients.ledger import LedgerClient
from .errors import ResolutionError
from .models import RoleState, same_address

logger = structlog.get_logger(__name__)


class RoleResolver:
    """Deriva roles y elegibilidad de una cuenta desde el ledger.

    English:
        Derives roles and eligibility for an account from the ledger. Never
        caches: every account or contract-binding change calls ``resolve``
        again.
    """

    def __init__(self, ledger: LedgerClient) -> None:
        self._ledger = ledger

    async def resolve(self, account: Optional[str]) -> RoleState:
        """Consulta admin, registro y voto en paralelo; todo o nada.

        English:
            Query admin, registration and has-voted concurrently. Any failure
            raises ``ResolutionError`` wrapping the first failing query (in
            query order) and partial results are discarded.
        """
        if not account:
            return RoleState()

        results = await asyncio.gather(
            self._ledger.admin(),
            self._ledger.voters(account),
            self._ledger.has_voted(account),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning("role_resolution_failed", account=account, error=str(result))
                raise ResolutionError(f"Error checking account status: {result}") from result

        admin_address, is_voter, has_voted = results
        roles = RoleState(
            is_admin=same_address(str(admin_address), account),
            is_registered_voter=bool(is_voter),
            has_voted=bool(has_voted),
        )
        logger.debug(
            "roles_resolved",
            account=account,
            is_admin=roles.is_admin,
            is_registered_voter=roles.is_registered_voter,
            has_voted=roles.has_voted,
        )
        return roles
