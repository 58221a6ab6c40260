"""
Progress Module - Block completion and quiz attempts per (learner, module).
"""

from src.progress.progress_tracker import ModuleProgress, ProgressTracker, calculate_course_completion

__all__ = ["ModuleProgress", "ProgressTracker", "calculate_course_completion"]
