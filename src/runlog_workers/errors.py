"""Error taxonomy for the numbering engine and its persistence adapter.

Degenerate aggregation input (invalid range, no entries) is not an error:
the aggregator returns an empty report instead of raising.
"""

from __future__ import annotations

from typing import Literal

EngineErrorCode = Literal[
    "data_unavailable",
    "write_conflict",
    "invariant_violation",
]


class EngineError(Exception):
    code: EngineErrorCode = "invariant_violation"

    def __init__(self, message: str, *, owner_id: str | None = None) -> None:
        super().__init__(message)
        self.owner_id = owner_id


class DataUnavailableError(EngineError):
    """The owner's entry set could not be loaded. Nothing was written."""

    code: EngineErrorCode = "data_unavailable"


class NumberingWriteConflict(EngineError):
    """The atomic numbering batch failed; stored numbering is unchanged.

    Retrying the whole pass is safe: the plan is a pure function of the
    stored entries.
    """

    code: EngineErrorCode = "write_conflict"


class NumberingInvariantError(EngineError):
    """The entry set violates a linking or ownership invariant."""

    code: EngineErrorCode = "invariant_violation"

