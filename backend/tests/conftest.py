"""
Shared test setup: a throwaway data directory and the in-memory store.

Settings in ``nbimage.config`` are read at import time, so the environment
is prepared here before any test module imports the package.
"""
from __future__ import annotations
import os
import sys
import tempfile

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

os.environ["DATA_DIR"] = tempfile.mkdtemp(prefix="nbimage-test-")
os.environ["STORE_BACKEND"] = "memory"
os.environ["AUTH_DISABLED"] = "0"
os.environ["CRE_SUBSTRING_JOIN"] = "0"
os.environ.pop("ADMIN_USERS", None)
os.environ.pop("ADMIN_GROUPS", None)

import pytest

from nbimage.services.record_store import MemoryRecordStore


@pytest.fixture
def store():
    return MemoryRecordStore("test-ns")
