"""
Ledger Module - Append-only, correctable grade history.
"""

from src.ledger.grade_ledger import (
    CompetencySummary,
    GradeLedger,
    GradeRecord,
    assert_immutable_fields,
)

__all__ = [
    "CompetencySummary",
    "GradeLedger",
    "GradeRecord",
    "assert_immutable_fields",
]
