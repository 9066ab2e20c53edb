"""Test fixtures for UI tests."""

from __future__ import annotations

from io import StringIO

import pytest
from rich.console import Console


@pytest.fixture
def console() -> Console:
    """Console writing to an in-memory buffer, wide enough to avoid wrapping."""
    return Console(file=StringIO(), force_terminal=False, width=200)
