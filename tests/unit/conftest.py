"""
Unit test configuration.

Patches dotenv so pydantic-settings never reads the project's real .env file
during unit tests. Tests control config exclusively through monkeypatch.setenv()
or explicit PolicySettings(...) keyword arguments.
"""

import pytest

from tests.support import FrozenClock, make_db, make_policy


@pytest.fixture(autouse=True)
def disable_dotenv_loading(monkeypatch):
    """Prevent pydantic-settings from loading .env files in all unit tests."""
    import pydantic_settings.sources.providers.dotenv as ps_dotenv

    monkeypatch.setattr(ps_dotenv, "dotenv_values", lambda *a, **kw: {})


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def db():
    return make_db()


@pytest.fixture
def policy():
    return make_policy()
