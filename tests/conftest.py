"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
Every test gets its own in-memory SQLite database.
"""
import os
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

# Keep the module-level default engine and log sink off disk
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_FILE", "")


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (use an in-memory database)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


# ========================================
# Database
# ========================================

@pytest.fixture
def settings():
    """Settings isolated from any local .env file."""
    from config import Settings

    return Settings(_env_file=None, database_url="sqlite://", log_file=None)


@pytest.fixture
def session_factory():
    """Session factory bound to a fresh in-memory database."""
    from src.db.database import create_session_factory

    return create_session_factory("sqlite://")


@pytest.fixture
def session(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def published():
    """Events published by components under test."""
    return []


@pytest.fixture
def ctx(session, settings, published):
    """All components bound to one session, collecting published events."""
    from src.assessment import AssessmentContext

    return AssessmentContext(session, settings, publish=published.append)


@pytest.fixture
def engine(session_factory, settings):
    """Assessment engine with trigger handlers wired to the event bus."""
    from src.assessment.engine import AssessmentEngine

    return AssessmentEngine(session_factory, settings)


# ========================================
# Callers
# ========================================

@pytest.fixture
def learner():
    from src.core.identity import Caller, Role

    return Caller(uid="nurse-1", display_name="Alex Rivera", role=Role.STAFF)


@pytest.fixture
def instructor():
    from src.core.identity import Caller, Role

    return Caller(uid="inst-1", display_name="Dr. Lee", role=Role.INSTRUCTOR)


@pytest.fixture
def admin():
    from src.core.identity import Caller, Role

    return Caller(uid="admin-1", display_name="Admin", role=Role.ADMIN)


# ========================================
# Sample content
# ========================================

@pytest.fixture
def mc_questions():
    """Four 25-point multiple-choice questions; option 1 is always correct."""
    return [
        {
            "id": f"q{i}",
            "type": "multiple-choice",
            "question": f"Hand hygiene question {i}",
            "options": ["A", "B", "C", "D"],
            "correctAnswer": 1,
            "points": 25,
        }
        for i in range(1, 5)
    ]


@pytest.fixture
def review_questions():
    """One short-answer and three choice questions, 20 points each."""
    return [
        {"id": "sa", "type": "short-answer", "question": "Describe the isolation procedure.", "points": 20},
        {"id": "mc1", "type": "multiple-choice", "options": ["yes", "no"], "correctAnswer": 0, "points": 20},
        {"id": "mc2", "type": "multiple-choice", "options": ["yes", "no"], "correctAnswer": 1, "points": 20},
        {"id": "tf", "type": "true-false", "correctAnswer": 0, "points": 20},
    ]


@pytest.fixture
def course_modules():
    """Course CARE-101 with two critical modules weighted 60/40."""
    from src.catalog import ModuleDefinition

    return [
        ModuleDefinition(id="infection-control", course_id="CARE-101", weight=60, is_critical=True,
                         title="Infection Control", order=1),
        ModuleDefinition(id="patient-safety", course_id="CARE-101", weight=40, is_critical=True,
                         title="Patient Safety", order=2),
    ]
