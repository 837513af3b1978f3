"""
Application context for CCManager.

The context is built once by the entry point and handed to whatever needs it;
there is no module-level shared instance.
"""

import os
from collections.abc import Mapping
from pathlib import Path

from ccmanager.clients.assistant import DEFAULT_BASE_URL, AssistantClient
from ccmanager.clients.repos import DEFAULT_API_URL, RepositoryCatalog
from ccmanager.coordinator import SessionCoordinator
from ccmanager.git import WorkingCopyBridge
from ccmanager.logging import get_logger, mask_token
from ccmanager.settings import DEFAULT_HOME, Settings, SettingsStore
from ccmanager.types.auth import (
    Authenticated,
    AuthState,
    Credentials,
    Provider,
    Unauthenticated,
)
from ccmanager.usage import UsageLedger
from ccmanager.vault import CredentialVault, FileVault, credential_key

logger = get_logger("context")

VAULT_FILE = "credentials.json"

# Environment variables whose value seeds a provider's token
TOKEN_ENV_VARS: dict[Provider, str] = {
    Provider.GITHUB: "CCMANAGER_GITHUB_TOKEN",
    Provider.CLAUDE: "ANTHROPIC_API_KEY",
}


class AppContext:
    """
    Owns settings, credentials and every long-lived client.

    Auth state is computed once from the vault at construction and changes
    only through ``authenticate`` and ``logout``.

    Example:
        ```python
        ctx = AppContext.from_env()
        await ctx.connect()
        for repository in ctx.catalog.repositories:
            print(repository.full_name)
        await ctx.aclose()
        ```
    """

    def __init__(
        self,
        vault: CredentialVault,
        store: SettingsStore,
        settings: Settings | None = None,
        bridge: WorkingCopyBridge | None = None,
        catalog: RepositoryCatalog | None = None,
        assistants: Mapping[Provider, AssistantClient] | None = None,
        ledger: UsageLedger | None = None,
    ) -> None:
        self.vault = vault
        self.store = store
        self.settings = settings or store.load_settings(self._load_token)

        self.bridge = bridge or WorkingCopyBridge()
        self.catalog = catalog or RepositoryCatalog(self.bridge)
        if not self.catalog.repositories:
            for repository in store.load_repositories():
                self.catalog.add_repository(repository)

        if assistants is None:
            assistants = {
                Provider.CLAUDE: AssistantClient(
                    Provider.CLAUDE.value,
                    model=self.settings.model,
                    max_tokens=self.settings.max_tokens,
                )
            }
        self.assistants = dict(assistants)
        if ledger is None:
            ledger = UsageLedger()
            for sample in store.load_usage():
                ledger.record_sample(sample)
        self.ledger = ledger
        self.coordinator = SessionCoordinator(self.catalog, self.assistants, self.ledger)

        self._auth: dict[Provider, AuthState] = {
            provider: self._initial_state(provider) for provider in Provider
        }
        for provider, assistant in self.assistants.items():
            token = self._load_token(provider)
            if token:
                assistant.connect(token)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "AppContext":
        """
        Build a context from environment variables.

        Reads ``CCMANAGER_HOME`` for the state directory,
        ``CCMANAGER_GITHUB_API_URL`` and ``CCMANAGER_ANTHROPIC_BASE_URL`` for
        endpoint overrides, and seeds the vault from
        ``CCMANAGER_GITHUB_TOKEN`` / ``ANTHROPIC_API_KEY`` when set.
        """
        env = os.environ if environ is None else environ
        home = Path(env.get("CCMANAGER_HOME", DEFAULT_HOME)).expanduser()

        vault = FileVault(home / VAULT_FILE)
        for provider, name in TOKEN_ENV_VARS.items():
            token = env.get(name)
            if token:
                logger.debug("Seeding %s token %s from $%s", provider.value, mask_token(token), name)
                vault.save(credential_key(provider.value), token)

        store = SettingsStore(home)
        settings = store.load_settings(
            lambda provider: vault.load(credential_key(provider.value))
        )
        bridge = WorkingCopyBridge()
        catalog = RepositoryCatalog(
            bridge, api_url=env.get("CCMANAGER_GITHUB_API_URL", DEFAULT_API_URL)
        )
        assistants = {
            Provider.CLAUDE: AssistantClient(
                Provider.CLAUDE.value,
                base_url=env.get("CCMANAGER_ANTHROPIC_BASE_URL", DEFAULT_BASE_URL),
                model=settings.model,
                max_tokens=settings.max_tokens,
            )
        }
        return cls(vault, store, settings, bridge, catalog, assistants)

    def _load_token(self, provider: Provider) -> str | None:
        return self.vault.load(credential_key(provider.value))

    def _initial_state(self, provider: Provider) -> AuthState:
        if not self._load_token(provider):
            return Unauthenticated(provider)
        creds = self.settings.credentials.get(provider)
        return Authenticated(
            provider,
            username=creds.username if creds else None,
            organization_id=creds.organization_id if creds else None,
        )

    def auth_state(self, provider: Provider) -> AuthState:
        return self._auth[provider]

    async def connect(self) -> None:
        """Authenticate the catalog with a stored hosting token, fetching repositories."""
        token = self._load_token(Provider.GITHUB)
        if token:
            await self.catalog.authenticate(token)

    async def authenticate(
        self,
        provider: Provider,
        token: str,
        username: str | None = None,
        organization_id: str | None = None,
    ) -> AuthState:
        """
        Store a provider token and hand it to the matching client.

        The token goes to the vault; only the username and organization id
        are kept in settings.
        """
        self.vault.save(credential_key(provider.value), token)
        self.settings.set_credentials(
            provider, Credentials(token, username=username, organization_id=organization_id)
        )
        state = Authenticated(provider, username=username, organization_id=organization_id)
        self._auth[provider] = state
        logger.info("Authenticated %s", provider.value)

        if provider is Provider.GITHUB:
            await self.catalog.authenticate(token)
        elif provider in self.assistants:
            self.assistants[provider].connect(token)
        return state

    def logout(self, provider: Provider) -> AuthState:
        """Forget a provider's token and disconnect its client."""
        self.vault.delete(credential_key(provider.value))
        self.settings.clear_credentials(provider)
        state = Unauthenticated(provider)
        self._auth[provider] = state
        logger.info("Logged out of %s", provider.value)

        if provider is Provider.GITHUB:
            self.catalog.logout()
        elif provider in self.assistants:
            self.assistants[provider].disconnect()
        return state

    def save(self) -> None:
        """Persist settings, the repository list and usage samples."""
        self.store.save_settings(self.settings)
        self.store.save_repositories(self.catalog.repositories)
        self.store.save_usage(self.ledger.samples())

    async def aclose(self) -> None:
        await self.catalog.close()
        for assistant in self.assistants.values():
            await assistant.close()
