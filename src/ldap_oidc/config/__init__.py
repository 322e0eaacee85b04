"""Installation configuration.

The configuration file is a JSON document found on a prioritized search path. Its
``config`` section overrides the provider defaults (see :mod:`ldap_oidc.config.settings`);
everything else (URLs, directory organizations and connections, key sources and
grant types) is parsed into an :class:`InstallationConfig` that is consumed by the
components of this package.
"""
import asyncio
import json
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from ldap_oidc.directory.filters import Equality, Filter, parse_fragments
from ldap_oidc.errors import ConfigError, ConfigNotFoundError, ConfigParseError

__all__ = [
    "ExtraPaths",
    "GrantTypeConfig",
    "InstallationConfig",
    "KeySource",
    "LdapConnection",
    "Organization",
    "Urls",
    "config_filename",
    "find_configuration",
    "load_configuration",
    "locate_configuration",
    "search_path",
]

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "OIDC_CONFIG"
CONFIG_FILENAME_ENV = "OIDC_CONFIG_FILENAME"
DEFAULT_CONFIG_FILENAME = "settings.json"
SYSTEM_CONFIG_DIR = "/etc/oidc"
BUNDLED_CONFIG_DIR = Path(__file__).resolve().parent.parent / "configuration"

KEY_SOURCES = ("file", "folder")
SEARCH_SCOPES = ("base", "one", "sub")

ExtraPaths = Union[str, Sequence[str], None]


@dataclass(frozen=True)
class Urls:
    interaction: str
    issuer: str
    homepage: Optional[str] = None


@dataclass(frozen=True)
class Organization:
    """A directory partition with its own schema.

    Attributes
    ----
    source      Name of the ``ldap.connection`` entry holding the entries.
    object_class  Value of ``objectClass`` that identifies accounts.
    id          Attribute holding the account identifier.
    bind        Attribute matched against the login name, defaults to ``id``.
    filters     Additional filter fragments, already parsed.
    scope       Search scope for logins: "base", "one" or "sub".
    mapping     Path of the attribute mapping file, if any.
    """

    name: str
    source: str
    object_class: str
    id: str
    bind: Optional[str] = None
    filters: Tuple[Filter, ...] = ()
    scope: Optional[str] = None
    mapping: Optional[str] = None

    @property
    def login_attribute(self) -> str:
        return self.bind or self.id


@dataclass(frozen=True)
class LdapConnection:
    name: str
    url: str
    base: str = ""
    bind_dn: Optional[str] = None
    bind_credentials: Optional[str] = field(default=None, repr=False)
    connect_timeout: Optional[float] = None
    receive_timeout: Optional[float] = None


@dataclass(frozen=True)
class KeySource:
    source: str
    path: str
    use: Optional[str] = None
    alg: Optional[str] = None


@dataclass(frozen=True)
class GrantTypeConfig:
    handler: str
    parameters: Tuple[str, ...] = ()


@dataclass(frozen=True)
class InstallationConfig:
    """Everything in the configuration file that is not a provider setting."""

    settings: Mapping[str, Any]
    urls: Urls
    base_path: Path
    organizations: Mapping[str, Organization] = field(default_factory=dict)
    connections: Mapping[str, LdapConnection] = field(default_factory=dict)
    certificates: Mapping[str, KeySource] = field(default_factory=dict)
    grant_types: Mapping[str, GrantTypeConfig] = field(default_factory=dict)
    log: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any, base_path: Union[str, Path]) -> "InstallationConfig":
        if not isinstance(data, dict):
            raise ConfigError("configuration must be a JSON object")

        settings = data.get("config") or {}
        if not isinstance(settings, dict):
            raise ConfigError("'config' must be an object")

        ldap = _section(data, "ldap")
        certificates = _section(data, "certificates")

        return cls(
            settings=settings,
            urls=_parse_urls(data.get("urls")),
            base_path=Path(base_path),
            organizations={
                name: _parse_organization(name, entry)
                for name, entry in _section(ldap, "organization").items()
            },
            connections={
                name: _parse_connection(name, entry)
                for name, entry in _section(ldap, "connection").items()
            },
            certificates={
                kind: _parse_key_source(kind, entry)
                for kind, entry in certificates.items()
                if entry is not None
            },
            grant_types={
                name: _parse_grant_type(name, entry)
                for name, entry in _section(data, "grant_types").items()
            },
            log=_section(data, "log"),
        )

    @property
    def account(self) -> Organization:
        """The organization used to authenticate end-users."""
        try:
            return self.organizations["Account"]
        except KeyError:
            raise ConfigError("ldap.organization.Account is not configured") from None

    def resolve_path(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        return path if path.is_absolute() else self.base_path / path


def _section(data: Mapping[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be an object")
    return value


def _required(entry: Mapping[str, Any], key: str, where: str) -> str:
    value = entry.get(key)
    if not (isinstance(value, str) and value.strip()):
        raise ConfigError(f"{where}.{key} is required")
    return value


def _entry(value: Any, where: str) -> Mapping[str, Any]:
    if not isinstance(value, dict):
        raise ConfigError(f"{where} must be an object")
    return value


def _parse_urls(value: Any) -> Urls:
    urls = _entry(value, "urls")
    return Urls(
        interaction=_required(urls, "interaction", "urls"),
        issuer=_required(urls, "issuer", "urls"),
        homepage=urls.get("homepage") or None,
    )


def _parse_organization(name: str, value: Any) -> Organization:
    where = f"ldap.organization.{name}"
    entry = _entry(value, where)

    scope = entry.get("scope") or None
    if scope is not None and scope not in SEARCH_SCOPES:
        raise ConfigError(f"{where}.scope must be one of {', '.join(SEARCH_SCOPES)}")

    try:
        filters = parse_fragments(entry.get("filter"))
    except ValueError as err:
        raise ConfigError(f"{where}.filter: {err}") from err

    organization = Organization(
        name=name,
        source=_required(entry, "source", where),
        object_class=_required(entry, "class", where),
        id=_required(entry, "id", where),
        bind=entry.get("bind") or None,
        filters=filters,
        scope=scope,
        mapping=entry.get("mapping") or None,
    )

    try:
        for attribute in (organization.id, organization.login_attribute):
            Equality(attribute, "")
    except ValueError as err:
        raise ConfigError(f"{where}: {err}") from err

    return organization


def _parse_connection(name: str, value: Any) -> LdapConnection:
    where = f"ldap.connection.{name}"
    entry = _entry(value, where)
    return LdapConnection(
        name=name,
        url=_required(entry, "url", where),
        base=entry.get("base") or "",
        bind_dn=entry.get("bindDN") or None,
        bind_credentials=entry.get("bindCredentials") or None,
        connect_timeout=entry.get("connectTimeout"),
        receive_timeout=entry.get("timeout"),
    )


def _parse_key_source(kind: str, value: Any) -> KeySource:
    where = f"certificates.{kind}"
    entry = _entry(value, where)
    source = _required(entry, "source", where)
    if source not in KEY_SOURCES:
        raise ConfigError(f"{where}.source must be 'file' or 'folder', not '{source}'")

    return KeySource(
        source=source,
        path=_required(entry, "path", where),
        use=entry.get("use") or None,
        alg=entry.get("alg") or None,
    )


def _parse_grant_type(name: str, value: Any) -> GrantTypeConfig:
    where = f"grant_types.{name}"
    entry = _entry(value, where)
    parameters = entry.get("parameter") or ()
    if isinstance(parameters, str):
        parameters = (parameters,)
    return GrantTypeConfig(
        handler=_required(entry, "handler", where),
        parameters=tuple(parameters),
    )


def _split_paths(paths: str) -> List[str]:
    return [p.strip() for p in paths.strip().split(os.pathsep) if p.strip()]


def config_filename() -> str:
    return os.environ.get(CONFIG_FILENAME_ENV, "").strip() or DEFAULT_CONFIG_FILENAME


def search_path(extra_paths: ExtraPaths = None, force: bool = False) -> List[Path]:
    """Return the configuration directories in priority order.

    1. ``extra_paths`` (the only candidates when ``force`` is set)
    2. directories listed in ``OIDC_CONFIG``
    3. ``/etc/oidc``
    4. the ``configuration`` directory shipped with the package
    """
    candidates = [str(BUNDLED_CONFIG_DIR)]

    if sys.platform != "win32":
        candidates.insert(0, SYSTEM_CONFIG_DIR)

    candidates = _split_paths(os.environ.get(CONFIG_PATH_ENV, "")) + candidates

    if isinstance(extra_paths, str):
        extra = _split_paths(extra_paths)
    else:
        extra = [str(p) for p in extra_paths or ()]

    if extra:
        candidates = extra if force else extra + candidates

    return [Path(p) for p in candidates]


async def locate_configuration(extra_paths: ExtraPaths = None, force: bool = False) -> Path:
    filename = config_filename()

    for directory in search_path(extra_paths, force):
        candidate = directory / filename
        if await asyncio.to_thread(candidate.is_file):
            logger.debug("found configuration file %s", candidate)
            return candidate

    raise ConfigNotFoundError(f"Cannot find OIDC configuration file '{filename}'")


async def load_configuration(path: Union[str, Path]) -> InstallationConfig:
    path = Path(path)
    try:
        text = await asyncio.to_thread(path.read_text, encoding="utf-8")
    except OSError as err:
        raise ConfigError(f"cannot read configuration file {path}: {err}") from err
    except UnicodeDecodeError as err:
        raise ConfigParseError(f"configuration file {path} is not valid UTF-8: {err}") from err

    try:
        data = json.loads(text)
    except json.JSONDecodeError as err:
        raise ConfigParseError(f"invalid JSON in configuration file {path}: {err}") from err

    config = InstallationConfig.from_dict(data, path.parent)
    logger.info("loaded configuration from %s", path)
    return config


async def find_configuration(
    extra_paths: ExtraPaths = None, force: bool = False
) -> InstallationConfig:
    return await load_configuration(await locate_configuration(extra_paths, force))
