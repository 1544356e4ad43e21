"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/clients/publication.py`.
Este módulo forma parte de Escrutinio y está documentado para facilitar
la navegación, mantenimiento y auditoría técnica.

Componentes detectados:
  - PublicationClient
  - RetryableStatusError
  - PinataPublicationClient

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `src/escrutinio/clients/publication.py`.
This module is part of Escrutinio and is documented to improve
navigation, maintenance, and technical auditability.

Detected components:
  - PublicationClient
  - RetryableStatusError
  - PinataPublicationClient

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..config import PINATA_API_URL, PINATA_GATEWAY_URL
from ..errors import (
    MissingCredentialError,
    PublicationError,
    PublicationRetrievalError,
    PublicationUploadError,
)

logger = structlog.get_logger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class PublicationClient(Protocol):
    """Capacidades consumidas del servicio de publicación direccionada por contenido.

    English: Capabilities consumed from the content-addressed publication service.
    """

    async def publish(self, document: Dict[str, Any]) -> str: ...

    async def retrieve(self, content_hash: str) -> Dict[str, Any]: ...


class RetryableStatusError(httpx.HTTPStatusError):
    """Estado HTTP transitorio que merece reintento.

    English: Transient HTTP status worth retrying.
    """


class PinataPublicationClient:
    """Cliente de pinning de Pinata (IPFS).

    English:
        Pinata (IPFS) pinning client. The JWT is checked at construction so a
        missing credential fails before any network call is attempted.
    """

    def __init__(
        self,
        jwt: Optional[str],
        *,
        api_url: str = PINATA_API_URL,
        gateway_url: str = PINATA_GATEWAY_URL,
        timeout: float = 30.0,
        max_attempts: int = 4,
        backoff_seconds: float = 1.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not jwt or not jwt.strip():
            raise MissingCredentialError()
        self._jwt = jwt.strip()
        self._api_url = api_url
        self._gateway_url = gateway_url.rstrip("/")
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self._owns_client = client is None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "PinataPublicationClient":
        return self

    async def __aexit__(self, *_exc_info: Any) -> None:
        await self.aclose()

    def gateway_url(self, content_hash: str) -> str:
        """URL pública del contenido en el gateway.

        English: Public gateway URL for a content hash.
        """
        return f"{self._gateway_url}/{content_hash}"

    async def publish(self, document: Dict[str, Any]) -> str:
        """Sube un documento JSON y devuelve su CID.

        English: Upload a JSON document and return its CID.
        """
        body = {
            "pinataOptions": {"cidVersion": 1},
            "pinataContent": document,
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._jwt}",
        }
        logger.info("publication_upload_start")
        start = time.monotonic()
        try:
            response = await self._request("POST", self._api_url, json=body, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("publication_upload_failed", error=str(exc))
            raise PublicationUploadError(f"IPFS upload failed: {exc}") from exc

        if not response.is_success:
            logger.error("publication_upload_failed", status_code=response.status_code)
            raise PublicationUploadError(
                f"IPFS upload failed: Pinata upload failed: {response.status_code} {response.reason_phrase}"
            )
        try:
            content_hash = response.json()["IpfsHash"]
        except (ValueError, KeyError, TypeError) as exc:
            raise PublicationUploadError("IPFS upload failed: response did not include IpfsHash") from exc

        logger.info(
            "publication_upload_ok",
            content_hash=content_hash,
            elapsed_seconds=round(time.monotonic() - start, 3),
        )
        return str(content_hash)

    async def retrieve(self, content_hash: str) -> Dict[str, Any]:
        """Recupera un documento JSON por su CID desde el gateway.

        English: Fetch a JSON document by CID from the gateway.
        """
        url = self.gateway_url(content_hash)
        logger.info("publication_fetch_start", content_hash=content_hash)
        try:
            response = await self._request("GET", url)
        except httpx.HTTPError as exc:
            raise PublicationRetrievalError(f"Failed to fetch from IPFS: {exc}") from exc
        if not response.is_success:
            raise PublicationRetrievalError(
                f"Failed to fetch from Pinata: {response.status_code} {response.reason_phrase}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise PublicationRetrievalError("Failed to fetch from IPFS: content is not JSON") from exc
        if not isinstance(payload, dict):
            raise PublicationRetrievalError("Failed to fetch from IPFS: content is not a JSON object")
        logger.info("publication_fetch_ok", content_hash=content_hash)
        return payload

    async def check_connection(self) -> str:
        """Prueba de conexión: sube un documento de prueba y lo vuelve a leer.

        English: Connection test: upload a probe document and read it back.
        """
        probe = {
            "test": "Hello Pinata IPFS",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        content_hash = await self.publish(probe)
        retrieved = await self.retrieve(content_hash)
        if retrieved.get("test") != probe["test"]:
            raise PublicationError("Pinata IPFS test failed: retrieved content does not match")
        return content_hash

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type((httpx.TransportError, RetryableStatusError)),
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(
                multiplier=self._backoff_seconds,
                min=self._backoff_seconds,
                max=self._backoff_seconds * 30,
            ),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                response = await self._client.request(method, url, **kwargs)
                if response.status_code in RETRYABLE_STATUS_CODES:
                    logger.warning(
                        "publication_retryable_status",
                        status_code=response.status_code,
                        attempt=attempt.retry_state.attempt_number,
                    )
                    raise RetryableStatusError(
                        f"Retryable status: {response.status_code}",
                        request=response.request,
                        response=response,
                    )
        return response
