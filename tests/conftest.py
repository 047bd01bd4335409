"""Global pytest configuration.

Tests under tests/integration are marked ``integration`` so they can be
deselected with ``-m "not integration"`` on machines without Docker.
"""

from __future__ import annotations

from pathlib import Path

import pytest

INTEGRATION_DIR = Path(__file__).parent / "integration"


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Mark every test collected from the integration directory."""
    for item in items:
        if INTEGRATION_DIR in Path(str(item.fspath)).parents:
            item.add_marker(pytest.mark.integration)
