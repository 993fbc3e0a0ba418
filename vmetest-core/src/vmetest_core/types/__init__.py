"""Core data types for vmetest.

Submodules:
    common: Unit and label selector types
    validation: Phase outcomes and validation reports
    sampling: Sample selection and sample outcomes
    retry: Retry policy, state and result

All types are exported from this package for convenience.
"""

from vmetest_core.types.common import (
    ALL_NAMESPACES,
    LabelSelector,
    TestName,
    Unit,
    UnitId,
    parse_bool,
)
from vmetest_core.types.retry import RetryPolicy, RetryResult, RetryState
from vmetest_core.types.sampling import SampleOutcome, SampleSelection
from vmetest_core.types.validation import (
    OverallStatus,
    ValidationOutcome,
    ValidationReport,
    ValidationStatus,
)

__all__ = [
    # common
    "ALL_NAMESPACES",
    "LabelSelector",
    "TestName",
    "Unit",
    "UnitId",
    "parse_bool",
    # retry
    "RetryPolicy",
    "RetryResult",
    "RetryState",
    # sampling
    "SampleOutcome",
    "SampleSelection",
    # validation
    "OverallStatus",
    "ValidationOutcome",
    "ValidationReport",
    "ValidationStatus",
]
