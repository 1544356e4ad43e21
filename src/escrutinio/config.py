# Config Module
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

"""Configuración segura y validada de Escrutinio.

Secure and validated Escrutinio configuration.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Optional

import structlog
import yaml
from dotenv import load_dotenv
from eth_utils import is_address
from pydantic import (
    AnyUrl,
    Field,
    SecretStr,
    TypeAdapter,
    ValidationError,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError, MissingCredentialError

_ENV_PATH = Path(".env")
_ENV_LOCAL_PATH = Path(".env.local")
# Seguridad: Cargar variables sensibles desde .env y .env.local. / Security: Load sensitive vars from .env/.env.local.
load_dotenv(_ENV_PATH, override=False)
load_dotenv(_ENV_LOCAL_PATH, override=False)

logger = structlog.get_logger(__name__)

SEPOLIA_CHAIN_ID = 11155111
PINATA_API_URL = "https://api.pinata.cloud/pinning/pinJSONToIPFS"
PINATA_GATEWAY_URL = "https://gateway.pinata.cloud/ipfs"

# Claves que solo se aceptan desde el entorno. / Keys accepted from the environment only.
_ENV_ONLY_KEYS = {"PINATA_JWT", "WALLET_PRIVATE_KEYS"}


class EscrutinioSettings(BaseSettings):
    """Variables de entorno y archivo .env para Escrutinio.

    English: Environment variables and .env file for Escrutinio.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    CHAIN_ID: int = Field(default=SEPOLIA_CHAIN_ID, gt=0)
    RPC_URL: str
    CONTRACT_ADDRESS: str
    CONTRACT_ABI_PATH: Path
    PINATA_JWT: Optional[SecretStr] = None
    PINATA_API_URL: str = PINATA_API_URL
    PINATA_GATEWAY_URL: str = PINATA_GATEWAY_URL
    WALLET_PRIVATE_KEYS: Optional[SecretStr] = None
    POLL_INTERVAL_SECONDS: float = Field(default=10.0, gt=0)
    RECEIPT_TIMEOUT_SECONDS: float = Field(default=120.0, gt=0)
    LOG_LEVEL: str = "INFO"
    LOG_REDACT_IDENTIFIERS: bool = False
    LOG_DIR: Optional[Path] = None

    @field_validator("RPC_URL", "PINATA_API_URL", "PINATA_GATEWAY_URL")
    @classmethod
    def _validate_url(cls, value: str) -> str:
        """Validate URLs without changing the stored type."""
        TypeAdapter(AnyUrl).validate_python(value)
        return value.rstrip("/")

    @field_validator("CONTRACT_ADDRESS")
    @classmethod
    def _validate_contract_address(cls, value: str) -> str:
        cleaned = value.strip()
        if not is_address(cleaned):
            raise ValueError(f"CONTRACT_ADDRESS is not a valid address: {value!r}")
        return cleaned

    def validate_paths(self) -> None:
        """/** Valida que las rutas críticas existan. / Validate that critical paths exist. **/"""
        if not self.CONTRACT_ABI_PATH.is_file():
            raise ConfigurationError(f"CONTRACT_ABI_PATH does not exist: {self.CONTRACT_ABI_PATH}")

    def require_publication_credential(self) -> str:
        """Devuelve el JWT de Pinata o falla antes de cualquier llamada de red.

        English: Return the Pinata JWT or fail before any network call is attempted.
        """
        token = self.PINATA_JWT.get_secret_value().strip() if self.PINATA_JWT else ""
        if not token:
            raise MissingCredentialError()
        return token

    def private_keys(self) -> List[str]:
        if not self.WALLET_PRIVATE_KEYS:
            return []
        raw = self.WALLET_PRIVATE_KEYS.get_secret_value()
        return [key.strip() for key in raw.split(",") if key.strip()]


def _load_yaml_mapping(path: Path) -> dict[str, Any]:
    """Load a YAML mapping or raise a user-facing error.

    Carga un mapa YAML o lanza un error orientado al usuario.
    """
    if not path.exists():
        raise ConfigurationError(f"Falta {path.as_posix()} (Missing {path.as_posix()}).")
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(
            f"{path.name} tiene errores de sintaxis YAML ({path.name} has YAML syntax errors)."
        ) from exc
    if not isinstance(raw, dict):
        raise ConfigurationError(f"{path.name} debe ser un mapa YAML ({path.name} must be a YAML mapping).")
    return raw


def load_config(config_file: Optional[Path] = None) -> EscrutinioSettings:
    """/** Carga y valida configuración, fallando con detalle. / Load and validate configuration, failing with details. **/

    Values from ``config_file`` override the environment, except secrets,
    which are read from the environment only.
    """
    overrides: dict[str, Any] = {}
    if config_file is not None:
        overrides = {str(key).upper(): value for key, value in _load_yaml_mapping(config_file).items()}
        ignored = sorted(_ENV_ONLY_KEYS.intersection(overrides))
        for key in ignored:
            overrides.pop(key)
        if ignored:
            logger.warning(
                "config_secrets_ignored", keys=ignored, hint="set them as environment variables instead"
            )
    try:
        settings = EscrutinioSettings(**overrides)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc
    settings.validate_paths()
    return settings


def load_contract_abi(path: Path) -> list[dict[str, Any]]:
    """Carga el ABI del contrato desde JSON.

    Acepta una lista ABI o un artefacto de compilación con clave ``abi``.

    English:
        Load the contract ABI from JSON. Accepts a bare ABI list or a build
        artifact carrying an ``abi`` key.
    """
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Unable to read contract ABI from {path}: {exc}") from exc
    if isinstance(payload, dict):
        payload = payload.get("abi")
    if not isinstance(payload, list) or not payload:
        raise ConfigurationError(f"{path.name} does not contain a contract ABI list")
    return payload
