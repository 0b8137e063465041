from __future__ import annotations

"""Editing engine exception classes.

Exception hierarchy
-------------------
- RichTreeError (base)

  - StructuralInvariantViolation (a mutation would produce an invalid tree)
  - RangeNotInDocument (a range points at nodes detached from the root)
  - EmptyQuery (no range/selection available for an operation)
  - ContractViolation (caller passed invalid offsets or nodes)

Structural violations and detached ranges are recovered locally by the
editing layer and forwarded to the error reporter. Contract violations are
programming errors and are allowed to propagate.
"""

from enum import Enum
from typing import Any, Dict, Optional

__all__ = [
    "ErrorKind",
    "RichTreeError",
    "StructuralInvariantViolation",
    "RangeNotInDocument",
    "EmptyQuery",
    "ContractViolation",
]


class ErrorKind(str, Enum):
    """Kinds of problems forwarded to an error reporter."""

    STRUCTURAL_INVARIANT_VIOLATION = "structural_invariant_violation"
    RANGE_NOT_IN_DOCUMENT = "range_not_in_document"
    EMPTY_QUERY = "empty_query"


class RichTreeError(Exception):
    """Base exception for all editing engine errors.

    Parameters
    ----------
    message : str
        Human-readable description of the error.
    details : dict, optional
        Structured context useful for logs and error reporters.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})


class StructuralInvariantViolation(RichTreeError):
    """Raised when a mutation would produce an invalid tree.

    Typical cause: appending a child to a leaf element (``br``, ``img``...)
    or to a text node.
    """


class RangeNotInDocument(RichTreeError):
    """Raised when a range container is no longer attached to the editing root."""


class EmptyQuery(RichTreeError):
    """Raised when an operation needs a selection and none is available."""


class ContractViolation(RichTreeError, ValueError):
    """Raised on precondition failures (invalid offsets, detached stop nodes)."""
