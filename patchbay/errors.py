"""
PATCHBAY Failure Taxonomy

Every public core operation returns a result model carrying `ok` and an
optional `failure`. The exceptions below are raised inside the applier and
workspace layers and converted to a FailureReason at the public seam.
"""

from __future__ import annotations

from enum import Enum


class FailureReason(str, Enum):
    PARSE_INCOMPLETE = "parse_incomplete"
    PATH_VIOLATION = "path_violation"
    TARGET_MISSING = "target_missing"
    RANGE_INVALID = "range_invalid"
    IO_FAILURE = "io_failure"
    TOKEN_BUDGET_EXCEEDED = "token_budget_exceeded"
    RATE_LIMITED = "rate_limited"
    COMPLETION_FAILED = "completion_failed"


class PatchbayError(Exception):
    """Base class for errors raised inside the patch engine."""

    reason: FailureReason = FailureReason.IO_FAILURE


class PathViolationError(PatchbayError):
    reason = FailureReason.PATH_VIOLATION


class TargetMissingError(PatchbayError):
    reason = FailureReason.TARGET_MISSING


class RangeInvalidError(PatchbayError):
    reason = FailureReason.RANGE_INVALID
