"""
Pytest plugin for CCManager testing fixtures.

This module re-exports all fixtures from fixtures.py so they can be
automatically discovered by pytest when this package is installed.

To use these fixtures in your tests, add this to your conftest.py:

    pytest_plugins = ["ccmanager.testing.conftest"]

Or import the fixtures directly:

    from ccmanager.testing.fixtures import coordinator, sample_repository
"""

# Re-export all fixtures for pytest auto-discovery
from ccmanager.testing.fixtures import (
    app_context,
    assistant,
    bridge,
    catalog,
    cloned_repository,
    coordinator,
    git_executor,
    ledger,
    memory_vault,
    mock_api,
    repository_payload,
    sample_repository,
    settings_store,
)

__all__ = [
    "app_context",
    "assistant",
    "bridge",
    "catalog",
    "cloned_repository",
    "coordinator",
    "git_executor",
    "ledger",
    "memory_vault",
    "mock_api",
    "repository_payload",
    "sample_repository",
    "settings_store",
]
