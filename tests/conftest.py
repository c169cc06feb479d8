#!/usr/bin/env python3
"""Shared pytest fixtures for the gzip scan test suite."""

import pytest
import pathlib
import sys
from dataclasses import replace
from typing import Dict
from unittest.mock import MagicMock, patch

# Add parent directory to path for imports
sys.path.insert(0, str(pathlib.Path(__file__).parent.parent))

from shared.config import Settings
from tests.fixtures.generate_test_data import (
    generate_corrupted_gzip,
    generate_marker_text,
    generate_nested_payload,
    generate_records_payload,
    gzip_text,
)


# ============================================================================
# Settings Fixtures
# ============================================================================

@pytest.fixture
def settings() -> Settings:
    """Defaults as the service ships them."""
    return Settings()


@pytest.fixture
def small_settings() -> Settings:
    """Tiny buffers so a few KB of payload forces many flushes and slices."""
    return replace(Settings(), flush_threshold=256, slice_size=1000, decompress_chunk_size=512)


@pytest.fixture
def strict_settings(small_settings) -> Settings:
    """Small buffers plus strict utf-8 decoding."""
    return replace(small_settings, decode_errors="strict")


# ============================================================================
# Payload Fixtures
# ============================================================================

@pytest.fixture(scope="session")
def payload_5000() -> bytes:
    """5,000 records, each with one marker and two decoys."""
    return generate_records_payload(5000, decoys=2)


@pytest.fixture(scope="session")
def small_payload() -> bytes:
    """100 records, each with one marker and two decoys."""
    return generate_records_payload(100, decoys=2)


@pytest.fixture
def empty_payload() -> bytes:
    """Gzip of an empty document."""
    return gzip_text("")


@pytest.fixture
def marker_text() -> str:
    return generate_marker_text(500)


@pytest.fixture
def nested_payload() -> bytes:
    return generate_nested_payload(50)


@pytest.fixture(params=["truncated", "garbage", "header", "not_gzip"])
def corrupted_payload(request, small_payload) -> bytes:
    """Each kind of broken gzip input."""
    return generate_corrupted_gzip(small_payload, request.param)


@pytest.fixture
def payload_file(tmp_path, small_payload) -> pathlib.Path:
    """Small payload written to disk."""
    path = tmp_path / "test.json.gz"
    path.write_bytes(small_payload)
    return path


# ============================================================================
# Mock Fixtures
# ============================================================================

@pytest.fixture
def mock_psutil():
    """Mock psutil with a process using 100MB RSS."""
    with patch('shared.memory_guard.psutil') as mock_psutil:
        mock_psutil.Error = Exception
        
        mem_info = MagicMock()
        mem_info.rss = 100 * 1024 * 1024
        mem_info.vms = 400 * 1024 * 1024
        
        process = MagicMock()
        process.memory_info.return_value = mem_info
        mock_psutil.Process.return_value = process
        
        yield mock_psutil


# ============================================================================
# FastAPI Test Client
# ============================================================================

@pytest.fixture
def fastapi_client():
    """Create a FastAPI test client for the scan service."""
    from fastapi.testclient import TestClient
    from op2_lite.app.simple_main import app
    
    return TestClient(app)


# ============================================================================
# Environment Fixtures
# ============================================================================

@pytest.fixture
def clean_environment(monkeypatch):
    """Ensure a clean environment for tests."""
    env_vars_to_remove = ['SCAN_MARKER', 'STREAM_FLUSH_THRESHOLD', 'BUFFERED_SLICE_SIZE',
                          'DECOMPRESS_CHUNK_SIZE', 'MAX_BODY_SIZE', 'MEMORY_LOG_INTERVAL',
                          'DECODE_ERRORS', 'TEST_DATA_DIR', 'PORT', 'DEBUG']
    for var in env_vars_to_remove:
        monkeypatch.delenv(var, raising=False)
    
    yield monkeypatch


# ============================================================================
# Instrumentation Fixtures
# ============================================================================

@pytest.fixture
def flush_recorder():
    """Collect window lengths reported by a pipeline's flush hook."""
    class Recorder:
        def __init__(self):
            self.windows = []
        
        def __call__(self, length: int):
            self.windows.append(length)
        
        def stats(self) -> Dict[str, int]:
            return {"count": len(self.windows), "max": max(self.windows, default=0)}
    
    return Recorder()


# ============================================================================
# Test Markers
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow")
    config.addinivalue_line("markers", "integration: marks integration tests")
    config.addinivalue_line("markers", "benchmark: marks benchmark tests")
