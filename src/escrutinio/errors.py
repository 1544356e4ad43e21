"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/errors.py`.
Este módulo forma parte de Escrutinio y está documentado para facilitar
la navegación, mantenimiento y auditoría técnica.

Componentes detectados:
  - EscrutinioError
  - ErrorInfo
  - WalletConnectionError / NoProviderError / NoAccountsError / UserRejectedError
  - NetworkMismatchError / WrongNetworkError
  - ResolutionError
  - ValidationError y subclases
  - TransactionError y subclases
  - PipelineError y subclases
  - PublicationError y subclases
  - CommitConflictError
  - ConfigurationError
  - is_user_rejection

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `src/escrutinio/errors.py`.
This module is part of Escrutinio and is documented to improve
navigation, maintenance, and technical auditability.

Detected components:
  - EscrutinioError
  - ErrorInfo
  - WalletConnectionError / NoProviderError / NoAccountsError / UserRejectedError
  - NetworkMismatchError / WrongNetworkError
  - ResolutionError
  - ValidationError and subclasses
  - TransactionError and subclasses
  - PipelineError and subclasses
  - PublicationError and subclasses
  - CommitConflictError
  - ConfigurationError
  - is_user_rejection

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

USER_REJECTED_CODE = 4001


@dataclass(frozen=True)
class ErrorInfo:
    """Error visible para el llamador: mensaje legible y tipo verificable.

    English: Caller-visible error: human-readable message plus a machine-checkable kind.
    """

    kind: str
    message: str


class EscrutinioError(Exception):
    """Error base de Escrutinio.

    English:
        Base error. Every subclass carries a stable ``kind`` string so callers
        can branch on it without importing the class hierarchy.
    """

    kind = "error"
    default_message = "Unexpected election coordinator error"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self.args[0])

    def to_info(self) -> ErrorInfo:
        return ErrorInfo(kind=self.kind, message=self.message)


class ConfigurationError(EscrutinioError, ValueError):
    """Configuración inválida o incompleta.

    English: Invalid or incomplete configuration.
    """

    kind = "configuration"
    default_message = "Invalid configuration"


# Conexión de wallet / Wallet connection


class WalletConnectionError(EscrutinioError):
    kind = "connection"
    default_message = "Unable to connect to the wallet provider"


class NoProviderError(WalletConnectionError):
    kind = "no_provider"
    default_message = "No wallet provider detected. Please install a wallet to use this application"


class NoAccountsError(WalletConnectionError):
    kind = "no_accounts"
    default_message = "No accounts found"


class NetworkMismatchError(EscrutinioError):
    """La red del proveedor no coincide con la red requerida.

    English: The provider network does not match the required network.
    """

    kind = "network_mismatch"
    default_message = "Connected to the wrong network"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        expected: Optional[int] = None,
        actual: Optional[int] = None,
    ) -> None:
        if message is None and expected is not None:
            message = f"Wrong network: expected chain {expected}, connected to {actual}"
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class WrongNetworkError(NetworkMismatchError):
    """The provider-level switch to the expected network failed."""

    kind = "wrong_network"


class ResolutionError(EscrutinioError):
    """Falló la consulta de roles; los resultados parciales se descartan.

    English: Role lookup failed; partial results are discarded.
    """

    kind = "resolution"
    default_message = "Error checking account status"


# Validación local / Local validation


class ValidationError(EscrutinioError):
    kind = "validation"
    default_message = "Invalid input"


class InvalidCandidateNameError(ValidationError):
    kind = "invalid_candidate_name"
    default_message = "Please enter a candidate name"


class InvalidAddressFormatError(ValidationError):
    kind = "invalid_address"
    default_message = "Invalid Ethereum address format"


class NotRegisteredError(ValidationError):
    kind = "not_registered"
    default_message = "You are not a registered voter."


class AlreadyVotedError(ValidationError):
    kind = "already_voted"
    default_message = "You have already voted."


class NotAdminError(ValidationError):
    kind = "not_admin"
    default_message = "Only the election admin can perform this action"


class NotConnectedError(ValidationError):
    kind = "not_connected"
    default_message = "Connect a wallet account first"


class ElectionClosedError(ValidationError):
    kind = "election_closed"
    default_message = "The election is closed"


# Transacciones / Transactions


class TransactionError(EscrutinioError):
    kind = "transaction"
    default_message = "Transaction failed"

    def __init__(self, message: Optional[str] = None, *, tx_hash: Optional[str] = None) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash


class UserRejectedError(WalletConnectionError, TransactionError):
    """El usuario rechazó la solicitud en la wallet (código 4001).

    English: The user declined the request in the wallet (code 4001). Raised for
    both account access requests and transaction signatures.
    """

    kind = "user_rejected"
    default_message = "Request rejected by user"

    def __init__(self, message: Optional[str] = None, *, tx_hash: Optional[str] = None) -> None:
        TransactionError.__init__(self, message, tx_hash=tx_hash)


class TransactionFailedError(TransactionError):
    kind = "transaction_failed"
    default_message = "Transaction failed"


class TransactionTimeoutError(TransactionError):
    kind = "transaction_timeout"
    default_message = "Timed out waiting for transaction confirmation"


# Pipeline de publicación / Publication pipeline


class PipelineError(EscrutinioError):
    kind = "pipeline"
    default_message = "Failed to end election"


class CloseFailedError(PipelineError):
    kind = "close_failed"
    default_message = "Failed to close the election"


class TallyReadError(PipelineError):
    kind = "tally_read"
    default_message = "Failed to read final results; the election is closed but unpublished"


class PipelineBusyError(PipelineError):
    kind = "pipeline_busy"
    default_message = "Closing the election is already in progress"


class PublicationError(EscrutinioError):
    kind = "publication"
    default_message = "IPFS publication failed"


class MissingCredentialError(PublicationError):
    kind = "missing_credential"
    default_message = "Pinata JWT not configured"


class PublicationUploadError(PublicationError):
    kind = "publication_upload"
    default_message = "IPFS upload failed"


class PublicationRetrievalError(PublicationError):
    kind = "publication_retrieval"
    default_message = "Failed to fetch from IPFS"


class PublicationVerificationError(PublicationError):
    kind = "publication_verification"
    default_message = "Published results do not match the on-ledger final results"


class CommitConflictError(EscrutinioError):
    """El hash de resultados ya estaba registrado en el ledger.

    English:
        The results hash was already committed on the ledger. Benign: the
        pipeline treats it as already satisfied.
    """

    kind = "commit_conflict"
    default_message = "Results hash already committed"

    def __init__(self, message: Optional[str] = None, *, existing_hash: str = "") -> None:
        super().__init__(message)
        self.existing_hash = existing_hash


def is_user_rejection(exc: BaseException) -> bool:
    """Detecta el código de rechazo del proveedor (EIP-1193 4001).

    English:
        Detects the provider rejection code. Providers expose it either as a
        ``code`` attribute or as the ``code`` key of a JSON-RPC error payload
        passed as the first exception argument.
    """
    code: Any = getattr(exc, "code", None)
    if code is None and exc.args and isinstance(exc.args[0], dict):
        code = exc.args[0].get("code")
    return code == USER_REJECTED_CODE
