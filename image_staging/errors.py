"""Exception types raised by the staging pipeline.

Validation problems are not exceptions: they are reported per file as
``FileRejection`` values so a batch keeps going.
"""

from __future__ import annotations


class StagingError(Exception):
    """Base class for staging pipeline errors."""


class TransformError(StagingError):
    """Decoding, drawing or re-encoding of a single asset failed."""


class StoreError(StagingError):
    """The binary object store is unavailable or a transaction failed."""


class InvariantViolation(StagingError, AssertionError):
    """A caller broke a contract of the pipeline (programmer error)."""
