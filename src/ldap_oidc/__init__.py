"""LDAP backed accounts, key stores and settings for an OpenID Connect provider."""
from typing import Any

from ldap_oidc.accounts import Account, AccountResolver
from ldap_oidc.config import ExtraPaths, InstallationConfig, find_configuration
from ldap_oidc.config.settings import EffectiveSettings, merge_settings
from ldap_oidc.errors import (
    ConfigError,
    ConfigNotFoundError,
    ConfigParseError,
    DuplicateKeyError,
    InvalidRequestError,
    KeyStoreError,
    LdapOidcError,
    MappingError,
)
from ldap_oidc.provider import Provider, ProviderConfiguration

__all__ = [
    "Account",
    "AccountResolver",
    "ConfigError",
    "ConfigNotFoundError",
    "ConfigParseError",
    "DuplicateKeyError",
    "EffectiveSettings",
    "InstallationConfig",
    "InvalidRequestError",
    "KeyStoreError",
    "LdapOidcError",
    "MappingError",
    "Provider",
    "ProviderConfiguration",
    "configure",
    "find_configuration",
    "merge_settings",
]


async def configure(
    extra_paths: ExtraPaths = None, force: bool = False, **kwargs: Any
) -> ProviderConfiguration:
    """Locate the installation configuration and prepare the provider configuration.

    Args:
        extra_paths: Directories searched before the default locations. Either a
            sequence or a string of paths separated by ``os.pathsep``.
        force: Search only ``extra_paths``.

    Returns:
        A ``ProviderConfiguration``; call ``init_provider`` on it to load key stores
        and mappings and start the provider.
    """
    return await ProviderConfiguration.load(extra_paths, force, **kwargs)
