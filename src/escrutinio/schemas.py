# Schemas Module
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

"""Esquemas del documento de resultados publicado en IPFS.

Schemas for the results document published to IPFS.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .errors import PublicationRetrievalError


class CandidateResult(BaseModel):
    """Resultado final de un candidato.

    English: Final result of a single candidate.
    """

    name: str = Field(min_length=1)
    votes: int = Field(ge=0)

    @field_validator("votes", mode="before")
    @classmethod
    def coerce_votes(cls, value: Any) -> Any:
        """Acepta conteos serializados como texto.

        English: Accept counts serialized as strings by older publishers.
        """
        if isinstance(value, str) and value.strip().isdigit():
            return int(value)
        return value


class ResultsDocument(BaseModel):
    """Documento de resultados finales.

    English: Final results document.
    """

    endTime: datetime
    results: Dict[str, int]
    candidates: List[CandidateResult]

    @model_validator(mode="before")
    @classmethod
    def fill_results_from_candidates(cls, data: Any) -> Any:
        if isinstance(data, dict) and "results" not in data and "candidates" in data:
            data = dict(data)
            data["results"] = {item["name"]: item["votes"] for item in data["candidates"]}
        return data

    @field_validator("results", mode="before")
    @classmethod
    def coerce_results(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {
                name: int(votes) if isinstance(votes, str) and votes.strip().isdigit() else votes
                for name, votes in value.items()
            }
        return value

    @model_validator(mode="after")
    def candidates_match_results(self) -> "ResultsDocument":
        """Garantiza que ambas vistas del resultado coincidan.

        English: Ensure the per-candidate list agrees with the results mapping.
        """
        from_candidates = {item.name: item.votes for item in self.candidates}
        if from_candidates != self.results:
            raise ValueError("candidates and results disagree")
        return self

    def tally(self) -> Dict[str, int]:
        return {item.name: item.votes for item in self.candidates}


def build_results_document(
    results: Mapping[str, int],
    end_time: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Serializa los resultados finales para publicación.

    English: Serialize final results for publication, keeping ledger candidate order.
    """
    end_time = end_time or datetime.now(timezone.utc)
    document = ResultsDocument(
        endTime=end_time,
        results=dict(results),
        candidates=[CandidateResult(name=name, votes=votes) for name, votes in results.items()],
    )
    return document.model_dump(mode="json")


def parse_results_document(payload: Any) -> ResultsDocument:
    """Valida un documento recuperado de IPFS.

    English: Validate a document retrieved from IPFS.
    """
    try:
        return ResultsDocument.model_validate(payload)
    except ValidationError as exc:
        raise PublicationRetrievalError(f"Retrieved document is not a valid results document: {exc}") from exc
