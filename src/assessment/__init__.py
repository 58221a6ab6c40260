"""
Assessment Module - Unit-of-work context and the command facade.
"""

from src.assessment.context import AssessmentContext

__all__ = ["AssessmentContext"]
