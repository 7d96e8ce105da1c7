"""
Domain error taxonomy.

One exception type, ``OptimizerError``, tagged with an ``ErrorKind``. Callers
branch on ``err.kind`` rather than on subclass checks, and the outer layers
(CLI, an HTTP adapter) map the kind to an exit code or status with
``http_status()``.

Kinds:
  INSUFFICIENT_DATA    too few price bars for an indicator window or a
                       prediction input; names the symbol.        → 400
  PREDICTION_FAILED    the oracle errored or returned nothing for a
                       symbol. Inside the optimizer this is a soft,
                       per-symbol exclusion; surfaced directly it is an
                       upstream failure.                           → 502
  INVALID_ALLOCATION   no weight assignment satisfies the bounds and the
                       sum, or an apply request's weights are invalid. → 400
  OPTIMIZATION_FAILED  anything else during generate/apply, e.g. a
                       persistence error mid-apply.                → 500
  NOT_FOUND            the portfolio does not exist.               → 404
"""

from __future__ import annotations

from enum import StrEnum
from typing import Optional


class ErrorKind(StrEnum):
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"
    PREDICTION_FAILED = "PREDICTION_FAILED"
    INVALID_ALLOCATION = "INVALID_ALLOCATION"
    OPTIMIZATION_FAILED = "OPTIMIZATION_FAILED"
    NOT_FOUND = "NOT_FOUND"


_HTTP_STATUS: dict[ErrorKind, int] = {
    ErrorKind.INSUFFICIENT_DATA: 400,
    ErrorKind.PREDICTION_FAILED: 502,
    ErrorKind.INVALID_ALLOCATION: 400,
    ErrorKind.OPTIMIZATION_FAILED: 500,
    ErrorKind.NOT_FOUND: 404,
}


class OptimizerError(Exception):
    """A domain failure carrying its ``kind`` and optional context.

    Attributes:
        kind: Taxonomy tag.
        message: Human-readable description.
        symbol: Offending symbol, where one applies.
        portfolio_id: Portfolio being processed, where one applies.
        cause: Underlying exception, also chained as ``__cause__`` by the
            constructors below.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        symbol: Optional[str] = None,
        portfolio_id: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.symbol = symbol
        self.portfolio_id = portfolio_id
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return f"[{self.kind.value}] {self.message}"

    @property
    def status(self) -> int:
        return http_status(self.kind)

    @property
    def is_client_error(self) -> bool:
        """True for kinds the caller can fix by changing the request."""
        return self.status < 500

    # ── Constructors ──────────────────────────────────────────────────────────

    @classmethod
    def insufficient_data(cls, symbol: str, detail: str) -> "OptimizerError":
        return cls(
            ErrorKind.INSUFFICIENT_DATA,
            f"Insufficient data for {symbol}: {detail}",
            symbol=symbol,
        )

    @classmethod
    def prediction_failed(
        cls,
        symbol: str,
        cause: Optional[BaseException] = None,
        detail: Optional[str] = None,
    ) -> "OptimizerError":
        reason = detail or (str(cause) if cause is not None else "oracle returned nothing")
        return cls(
            ErrorKind.PREDICTION_FAILED,
            f"Prediction failed for {symbol}: {reason}",
            symbol=symbol,
            cause=cause,
        )

    @classmethod
    def invalid_allocation(
        cls,
        message: str,
        portfolio_id: Optional[str] = None,
    ) -> "OptimizerError":
        return cls(ErrorKind.INVALID_ALLOCATION, message, portfolio_id=portfolio_id)

    @classmethod
    def optimization_failed(
        cls,
        portfolio_id: str,
        reason: str,
        cause: Optional[BaseException] = None,
    ) -> "OptimizerError":
        return cls(
            ErrorKind.OPTIMIZATION_FAILED,
            f"Optimization failed for portfolio {portfolio_id}: {reason}",
            portfolio_id=portfolio_id,
            cause=cause,
        )

    @classmethod
    def portfolio_not_found(cls, portfolio_id: str) -> "OptimizerError":
        return cls(
            ErrorKind.NOT_FOUND,
            f"Portfolio not found: {portfolio_id}",
            portfolio_id=portfolio_id,
        )


def http_status(kind: ErrorKind) -> int:
    """HTTP status an API adapter should answer with for ``kind``."""
    return _HTTP_STATUS[kind]
