"""
Session Guard - Root Test Configuration

Pytest fixtures and configuration for all tests.
"""

import os
import sys
from pathlib import Path

# Add repository root to Python path so tests import via src.shared
ROOT_DIR = Path(__file__).parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import pytest

from src.shared.session_security.config import SessionSecurityConfig


@pytest.fixture
def default_config() -> SessionSecurityConfig:
    """Default session security configuration"""
    return SessionSecurityConfig()


@pytest.fixture(autouse=True)
def clear_session_security_env(monkeypatch):
    """Keep host SESSION_SECURITY_* and IPINFO_TOKEN variables out of tests"""
    for name in list(os.environ):
        if name.startswith("SESSION_SECURITY_") or name == "IPINFO_TOKEN":
            monkeypatch.delenv(name, raising=False)
