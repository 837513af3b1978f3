from ccmanager.testing.conftest import (  # noqa: F401
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
