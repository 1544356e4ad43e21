"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/events.py`.
Este módulo forma parte de Escrutinio y está documentado para facilitar
la navegación, mantenimiento y auditoría técnica.

Componentes detectados:
  - Subscription
  - ListenerRegistry

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `src/escrutinio/events.py`.
This module is part of Escrutinio and is documented to improve
navigation, maintenance, and technical auditability.

Detected components:
  - Subscription
  - ListenerRegistry

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

from __future__ import annotations

import inspect
from typing import Any, Callable, Dict, List

import structlog

logger = structlog.get_logger(__name__)

Listener = Callable[..., Any]


class Subscription:
    """Handle desechable de una suscripción.

    English:
        Disposable subscription handle. ``dispose`` is idempotent and the handle
        works as a context manager so it is released on every exit path.
    """

    def __init__(self, release: Callable[[], None]) -> None:
        self._release = release
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def dispose(self) -> None:
        if not self._active:
            return
        self._active = False
        self._release()

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *_exc_info: Any) -> None:
        self.dispose()


class ListenerRegistry:
    """Registro de listeners por evento.

    English:
        Per-event listener registry. Listeners may be plain callables or
        coroutine functions; ``emit`` awaits the latter in registration order.
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Listener]] = {}

    def subscribe(self, event: str, listener: Listener) -> Subscription:
        self._listeners.setdefault(event, []).append(listener)

        def release() -> None:
            listeners = self._listeners.get(event, [])
            if listener in listeners:
                listeners.remove(listener)

        return Subscription(release)

    def count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    async def emit(self, event: str, *args: Any) -> None:
        for listener in list(self._listeners.get(event, [])):
            result = listener(*args)
            if inspect.isawaitable(result):
                await result
        logger.debug("event_emitted", event_name=event, listeners=self.count(event))
