# -*- coding: utf-8 -*-
"""
Shared test fixtures for mail listener tests.
"""

import sys
from pathlib import Path

# Ensure project root is importable without pip install
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

import pytest

from fake_session import FakeSession
from imap_utils import Credentials


@pytest.fixture
def credentials():
    return Credentials(host="imap.example.com", username="user", password="secret")


@pytest.fixture
def fake_session():
    """Factory fixture for creating in-memory sessions."""

    def _make_fake_session(**kwargs):
        return FakeSession(**kwargs)

    return _make_fake_session
