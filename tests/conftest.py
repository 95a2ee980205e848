"""Pytest configuration and shared fixtures."""

from collections.abc import Iterator
from pathlib import Path

import pytest

from articyflow.database import FlowDatabase
from articyflow.script import clear_registered_feature_handlers, clear_registered_script_functions
from tests.fixtures.flow_fixtures import make_gate_export


@pytest.fixture(autouse=True)
def clean_default_registry() -> Iterator[None]:
    """Start and end every test with no registered functions or handlers."""
    clear_registered_script_functions()
    clear_registered_feature_handlers()
    yield
    clear_registered_script_functions()
    clear_registered_feature_handlers()


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def gate_db() -> FlowDatabase:
    """Database loaded from the gate conversation export."""
    return FlowDatabase.from_dict(make_gate_export())
