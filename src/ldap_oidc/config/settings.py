import copy
import logging
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Iterator, Mapping, Optional

from ldap_oidc.config import InstallationConfig
from ldap_oidc.config.defaults import DEFAULT_SETTINGS
from ldap_oidc.errors import ConfigError

__all__ = ["AccountLookup", "EffectiveSettings", "merge_settings"]

logger = logging.getLogger(__name__)

AccountLookup = Callable[[str], Awaitable[Any]]

EXTRAS_SUFFIX = "Extras"


class EffectiveSettings(Mapping[str, Any]):
    """Provider settings after the installation overrides have been applied.

    The settings are read-only at every level: lookups return copies, so changing a
    returned value does not change the settings.
    """

    def __init__(
        self,
        values: Mapping[str, Any],
        *,
        interaction_base: str,
        find_by_id: Optional[AccountLookup] = None,
    ) -> None:
        self._values = MappingProxyType(dict(values))
        self._interaction_base = interaction_base
        self.find_by_id = find_by_id

    def __getitem__(self, key: str) -> Any:
        # nested values are handed out as copies
        return copy.deepcopy(self._values[key])

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"EffectiveSettings({dict(self._values)!r})"

    def interaction_url(self, session_id: str) -> str:
        return f"{self._interaction_base}{session_id}"

    @property
    def acr(self) -> Optional[str]:
        """The first configured ACR value that is a URN."""
        return next(
            (v for v in self._values.get("acrValues") or () if str(v).startswith("urn:")),
            None,
        )

    def provider_config(self) -> Dict[str, Any]:
        """The settings in the shape expected by the provider framework."""
        config = copy.deepcopy(dict(self._values))
        config["interactionUrl"] = self.interaction_url
        if self.find_by_id is not None:
            config["findById"] = self.find_by_id
        return config


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, dict)):
        return not value
    return False


def _kind(value: Any) -> str:
    if isinstance(value, Mapping):
        return "object"
    if isinstance(value, (list, tuple)):
        return "list"
    return "scalar"


def _merge_value(key: str, default: Any, overrides: Mapping[str, Any]) -> Any:
    override = overrides.get(key)

    if _is_empty(override):
        value = copy.deepcopy(default)
    elif _kind(override) != _kind(default):
        raise ConfigError(f"config.{key} must be of type {_kind(default)}")
    else:
        value = copy.deepcopy(override)

    extras = overrides.get(f"{key}{EXTRAS_SUFFIX}")
    if extras is not None:
        if not isinstance(extras, Mapping):
            raise ConfigError(f"config.{key}{EXTRAS_SUFFIX} must be an object")
        if not isinstance(value, dict):
            raise ConfigError(f"config.{key} is not an object and cannot take extras")
        value.update(copy.deepcopy(dict(extras)))

    return value


def merge_settings(
    config: InstallationConfig,
    *,
    find_by_id: Optional[AccountLookup] = None,
    defaults: Mapping[str, Any] = DEFAULT_SETTINGS,
) -> EffectiveSettings:
    """Merge the installation's ``config`` section over ``defaults``.

    Only keys present in ``defaults`` are taken over. ``<key>Extras`` objects are
    copied property by property onto the chosen value, whether it came from the
    installation or the defaults. The defaults themselves are never modified.
    """
    overrides = config.settings
    values = {key: _merge_value(key, default, overrides) for key, default in defaults.items()}

    known = set(defaults) | {f"{key}{EXTRAS_SUFFIX}" for key in defaults}
    ignored = [k for k in overrides if k not in known]
    if ignored:
        logger.warning("ignoring unknown settings: %s", ", ".join(sorted(ignored)))

    if config.urls.homepage and isinstance(values.get("discovery"), dict):
        values["discovery"]["service_documentation"] = config.urls.homepage

    return EffectiveSettings(
        values, interaction_base=config.urls.interaction, find_by_id=find_by_id
    )
