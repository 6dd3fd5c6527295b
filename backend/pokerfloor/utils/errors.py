"""Exception classes for tournament engine errors.

Expected failures (not enough seats, unpartitionable dealer pool, ...) are
returned as values alongside the unchanged snapshot. Hosts that prefer
exceptions can call ``ActionResult.raise_for_error()``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standard error codes for engine failures."""

    # General errors
    INVALID_ACTION = "INVALID_ACTION"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"

    # Lookup errors
    ENTRY_NOT_FOUND = "ENTRY_NOT_FOUND"
    TABLE_NOT_FOUND = "TABLE_NOT_FOUND"
    FLIGHT_NOT_FOUND = "FLIGHT_NOT_FOUND"
    PLAYER_NOT_FOUND = "PLAYER_NOT_FOUND"

    # Seating errors
    INSUFFICIENT_SEATS = "INSUFFICIENT_SEATS"
    TABLE_CANNOT_BREAK = "TABLE_CANNOT_BREAK"
    NO_TABLES = "NO_TABLES"

    # Ledger errors
    NOT_ENOUGH_ENTRIES = "NOT_ENOUGH_ENTRIES"
    INVALID_ENTRY_STATUS = "INVALID_ENTRY_STATUS"

    # Flight errors
    INVALID_PHASE = "INVALID_PHASE"

    # Dealer errors
    DEALER_POOL_INSUFFICIENT = "DEALER_POOL_INSUFFICIENT"

    # Persistence errors
    SNAPSHOT_INTEGRITY = "SNAPSHOT_INTEGRITY"


class TournamentError(Exception):
    """Base exception for tournament engine errors.

    Attributes:
        code: Error code for programmatic handling
        message: Director-facing error message
        details: Additional error details
    """

    def __init__(
        self,
        code: ErrorCode | str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.code = code if isinstance(code, str) else code.value
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "errorCode": self.code,
            "errorMessage": self.message,
            "details": self.details,
        }


class InvalidActionError(TournamentError):
    """Raised when an action's preconditions do not hold."""

    def __init__(
        self,
        message: str = "Invalid action",
        details: dict[str, Any] | None = None,
        code: ErrorCode = ErrorCode.INVALID_ACTION,
    ):
        super().__init__(code=code, message=message, details=details)


class NotFoundError(TournamentError):
    """Raised when a referenced entry, table, flight or player is missing."""

    def __init__(self, code: ErrorCode, kind: str, ident: Any):
        super().__init__(
            code=code,
            message=f"{kind} not found: {ident}",
            details={f"{kind.lower()}Id": ident},
        )


class InsufficientSeatsError(TournamentError):
    """Raised when there are not enough seats for the requested reseat."""

    def __init__(self, required: int, available: int, message: str | None = None):
        super().__init__(
            code=ErrorCode.INSUFFICIENT_SEATS,
            message=message
            or f"Not enough seats: {required} players, {available} seats",
            details={"required": required, "available": available},
        )


class DealerPoolError(TournamentError):
    """Raised when tables cannot be partitioned with the available dealers."""

    def __init__(self, tables: int, dealers: int):
        super().__init__(
            code=ErrorCode.DEALER_POOL_INSUFFICIENT,
            message=f"Cannot build dealer blocks for {tables} tables with {dealers} dealers",
            details={"tables": tables, "dealers": dealers},
        )


class SnapshotIntegrityError(TournamentError):
    """Raised when a persisted snapshot fails checksum verification."""

    def __init__(self, tournament_id: str):
        super().__init__(
            code=ErrorCode.SNAPSHOT_INTEGRITY,
            message=f"Snapshot checksum mismatch: {tournament_id}",
            details={"tournamentId": tournament_id},
        )
