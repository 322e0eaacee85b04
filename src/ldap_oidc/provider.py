import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

from typing_extensions import Protocol

from ldap_oidc.accounts import Account, AccountResolver
from ldap_oidc.adapters import AdapterFactory
from ldap_oidc.config import ExtraPaths, InstallationConfig, Urls, find_configuration
from ldap_oidc.config.settings import EffectiveSettings, merge_settings
from ldap_oidc.directory import DirectoryManager
from ldap_oidc.grants import Handler, grant_type_factory
from ldap_oidc.keys import KeyStores, load_key_stores
from ldap_oidc.mappings import load_mappings

__all__ = ["Provider", "ProviderConfiguration", "ProviderFactory"]

logger = logging.getLogger(__name__)


class Provider(Protocol):
    """The parts of the OpenID Connect provider framework used during startup."""

    def register_grant_type(
        self, name: str, handler: Handler, parameters: Sequence[str] = ()
    ) -> None:
        ...

    async def initialize(
        self,
        *,
        adapter: Callable[[str], Any],
        clients: List[Mapping[str, Any]],
        keystore: Mapping[str, Any],
        integrity: Mapping[str, Any],
    ) -> None:
        ...


ProviderFactory = Callable[[str, Dict[str, Any]], Provider]


class ProviderConfiguration:
    """Assembles settings, key stores, mappings and account lookup for the provider.

    Args:
        config: The installation configuration.
        directory: Directory access, by default built from ``config.connections``.
    """

    def __init__(
        self, config: InstallationConfig, *, directory: Optional[DirectoryManager] = None
    ) -> None:
        self.customization = config
        self.directory = directory or DirectoryManager(config.connections)
        self.adapter = AdapterFactory(config, self.directory)
        self.settings: EffectiveSettings = merge_settings(config, find_by_id=self.account_by_id)
        self.mappings: Dict[str, Any] = {}
        self.stores = KeyStores()
        self.provider: Optional[Provider] = None
        self._resolver: Optional[AccountResolver] = None

    @classmethod
    def from_config(cls, config: InstallationConfig, **kwargs: Any) -> "ProviderConfiguration":
        return cls(config, **kwargs)

    @classmethod
    async def load(
        cls, extra_paths: ExtraPaths = None, force: bool = False, **kwargs: Any
    ) -> "ProviderConfiguration":
        return cls(await find_configuration(extra_paths, force), **kwargs)

    @property
    def urls(self) -> Urls:
        return self.customization.urls

    @property
    def issuer_url(self) -> str:
        return self.customization.urls.issuer

    @property
    def acr(self) -> Optional[str]:
        return self.settings.acr

    @property
    def resolver(self) -> AccountResolver:
        if self._resolver is None:
            self._resolver = AccountResolver(
                self.customization.account, self.adapter, self.directory
            )
        return self._resolver

    async def account_by_id(self, user_id: str) -> Optional[Account]:
        return await self.resolver.find_by_id(user_id)

    async def account_by_login(self, login: str, password: str) -> Optional[Account]:
        return await self.resolver.find_by_login(login, password)

    async def load_mappings(self) -> Dict[str, Any]:
        self.mappings = await load_mappings(self.customization)
        return self.mappings

    async def load_key_stores(self) -> Dict[str, Any]:
        self.stores = await load_key_stores(self.customization, self.stores)
        return self.key_stores

    @property
    def key_stores(self) -> Dict[str, Any]:
        """Keyword arguments for ``Provider.initialize``."""
        return {
            "adapter": self.adapter,
            "clients": [],
            "keystore": self.stores.certificates,
            "integrity": self.stores.integrity_keys,
        }

    def register_grant_types(self, provider: Provider) -> None:
        for name, grant_type in self.customization.grant_types.items():
            handler = grant_type_factory(grant_type.handler)(provider, self.settings)
            provider.register_grant_type(name, handler, grant_type.parameters)
            logger.debug("registered grant type %s (%s)", name, grant_type.handler)

    async def init_provider(self, provider_factory: ProviderFactory) -> Provider:
        """Load mappings and key stores, then create and initialize the provider.

        Any configuration, mapping or key error propagates and the provider is not
        created. Nothing is stored on this object unless both loads succeed.
        """
        mappings, stores = await _gather(
            load_mappings(self.customization),
            load_key_stores(self.customization, self.stores),
        )
        self.mappings = mappings
        self.stores = stores

        provider = provider_factory(self.issuer_url, self.settings.provider_config())
        self.register_grant_types(provider)
        await provider.initialize(**self.key_stores)

        self.provider = provider
        logger.info("provider for %s initialized", self.issuer_url)
        return provider


async def _gather(*aws: Awaitable[Any]) -> List[Any]:
    """Like ``asyncio.gather``, but cancels and drains the other awaitables on failure."""
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
