"""
Pytest configuration for affection engine tests.
"""

import sys
from pathlib import Path

import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


# =============================================================================
# VALIDATION ON TEST RUN
# =============================================================================

def pytest_configure(config):
    """
    Validate the text trigger table before running tests.

    A rule touching an unknown metric surfaces as a collection failure
    instead of a confusing KeyError deep inside a test.
    """
    from companion.affection.triggers import TEXT_TRIGGER_RULES
    from companion.affection.validation import AffectionValidationError, validate_trigger_rules

    try:
        validate_trigger_rules(TEXT_TRIGGER_RULES)
    except AffectionValidationError as e:
        pytest.fail(f"Trigger rule validation failed:\n{e}", pytrace=False)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def default_config():
    """Every test starts and ends on the default configuration."""
    from companion.affection.config import reset_config
    reset_config()
    yield
    reset_config()


@pytest.fixture
def workspace(tmp_path):
    """An empty workspace directory."""
    path = tmp_path / "workspace"
    path.mkdir()
    return path


@pytest.fixture
def clock():
    """A settable clock starting at 2024-01-01T09:00:00Z."""
    from tests.helpers import FakeClock
    return FakeClock()
