"""CCManager testing utilities.

Provides test doubles and fixtures for code built on CCManager.
"""

from ccmanager.testing.fixtures import (
    create_mock_repository,
    create_repository_payload,
)
from ccmanager.testing.mock import (
    MockAPI,
    MockCall,
    MockGitExecutor,
    MockResponse,
    message_body,
    stream_body,
)

__all__ = [
    # Test doubles
    "MockAPI",
    "MockGitExecutor",
    "MockCall",
    "MockResponse",
    # Response bodies
    "message_body",
    "stream_body",
    # Helper functions
    "create_mock_repository",
    "create_repository_payload",
]
