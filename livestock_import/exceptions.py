"""Exception hierarchy for the livestock import pipeline.

Batch-fatal errors (``DecodeError``, ``ConfigError``) stop an import before any
row is processed. Row-local errors (``ReconciliationError``, ``CoercionError``)
are caught by the batch orchestrator and reported against the failing row.
"""

from __future__ import annotations


class LivestockImportError(Exception):
    """Base class for all errors raised by this package."""


class DecodeError(LivestockImportError, ValueError):
    """Input bytes or payload could not be turned into raw rows."""


class ConfigError(LivestockImportError, ValueError):
    """Configuration file is missing a required section or holds invalid values."""


class ReconciliationError(LivestockImportError):
    """A row's owner could not be matched to, or created as, a client."""


class CoercionError(LivestockImportError):
    """Raised in strict mode when a non-blank value had to be defaulted.

    Parameters
    ----------
    issues : list[str]
        One message per field that could not be coerced.
    """

    def __init__(self, issues: list[str]):
        self.issues = list(issues)
        super().__init__("; ".join(self.issues))
