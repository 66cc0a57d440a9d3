"""Shared test configuration for pytest.

Puts the backend package and this directory on ``sys.path`` so tests can
import ``pagelens`` and the shared fakes without an install step.
"""

import sys
from pathlib import Path

tests_dir = Path(__file__).resolve().parent
backend_dir = tests_dir.parent
for path in (backend_dir, tests_dir):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))


def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
