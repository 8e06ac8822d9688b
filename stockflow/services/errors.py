"""
Taxonomie d'erreurs du noyau stock.

Toutes les erreurs métier héritent de DomainError et portent :
    - code     identifiant stable (mappé en HTTP par l'API)
    - message  texte lisible
    - line     index (0-based) de la ligne de commande fautive, ou None
    - details  contexte structuré (quantités, ids, règle violée)

Seule StorageUnavailable est rejouée automatiquement (voir services.transactions).
"""

from __future__ import annotations

from typing import Any


class DomainError(Exception):
    code = "domain_error"

    def __init__(self, message: str, *, line: int | None = None, **details: Any):
        super().__init__(message)
        self.message = message
        self.line = line
        self.details = details

    def at_line(self, line: int) -> "DomainError":
        if self.line is None:
            self.line = line
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "line": self.line,
            "details": self.details,
        }

    def __str__(self) -> str:
        if self.line is None:
            return self.message
        return f"line {self.line}: {self.message}"


class ValidationError(DomainError):
    code = "validation_error"


class NotFoundError(DomainError):
    code = "not_found"


class ConflictError(DomainError):
    code = "conflict"


class InsufficientStock(DomainError):
    code = "insufficient_stock"


class InvariantViolation(DomainError):
    code = "invariant_violation"


class StorageUnavailable(DomainError):
    code = "storage_unavailable"
