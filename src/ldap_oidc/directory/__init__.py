import asyncio
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Union

from ldap3 import ALL_ATTRIBUTES, BASE, LEVEL, NONE, SUBTREE, SYNC, Connection, Server
from ldap3.core.exceptions import LDAPBindError, LDAPException

from ldap_oidc.directory.filters import Filter
from ldap_oidc.errors import ConfigError

if TYPE_CHECKING:
    from ldap_oidc.config import LdapConnection

__all__ = ["DirectoryConnection", "DirectoryManager", "DirectorySource", "Entry", "SCOPES"]

logger = logging.getLogger(__name__)

SCOPES = {"base": BASE, "one": LEVEL, "sub": SUBTREE}

Entry = Dict[str, Any]
SearchFilter = Union[Filter, str]


def _scope(name: str) -> str:
    try:
        return SCOPES[name]
    except KeyError:
        raise ConfigError(f"unknown search scope '{name}'") from None


def _flatten(value: Any) -> Any:
    if isinstance(value, list) and len(value) == 1:
        return value[0]
    return value


def _entries(connection: Connection) -> List[Entry]:
    results = []
    for item in connection.response or ():
        if "attributes" not in item:
            # search continuation references
            continue
        entry: Entry = {k: _flatten(v) for k, v in item["attributes"].items()}
        entry["dn"] = item["dn"]
        results.append(entry)
    return results


class DirectoryConnection:
    """A connection bound as a directory entry, usually an end-user."""

    def __init__(self, connection: Connection, dn: str) -> None:
        self._connection = connection
        self.dn = dn

    async def find_base(self) -> List[Entry]:
        """Read the bound entry itself."""
        try:
            return await asyncio.to_thread(self._find_base)
        except LDAPException as err:
            logger.warning("reading %s failed: %s", self.dn, err)
            return []

    def _find_base(self) -> List[Entry]:
        self._connection.search(
            self.dn, "(objectClass=*)", search_scope=BASE, attributes=ALL_ATTRIBUTES
        )
        return _entries(self._connection)

    async def close(self) -> None:
        await asyncio.to_thread(self._connection.unbind)

    async def __aenter__(self) -> "DirectoryConnection":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


class DirectorySource:
    """One configured LDAP server.

    Every operation opens its own connection and unbinds it when done; only the
    ldap3 ``Server`` object is shared between calls.
    """

    def __init__(self, settings: "LdapConnection", *, client_strategy: str = SYNC) -> None:
        self.settings = settings
        self._client_strategy = client_strategy
        self.server = Server(settings.url, get_info=NONE, connect_timeout=settings.connect_timeout)

    @property
    def name(self) -> str:
        return self.settings.name

    def _connect(self, user: Optional[str], password: Optional[str]) -> Connection:
        return Connection(
            self.server,
            user=user,
            password=password,
            client_strategy=self._client_strategy,
            receive_timeout=self.settings.receive_timeout,
        )

    def _search(self, search_filter: str, scope: str) -> List[Entry]:
        connection = self._connect(self.settings.bind_dn, self.settings.bind_credentials)
        try:
            if not connection.bind():
                raise LDAPBindError(f"service bind to '{self.name}' failed: {connection.result}")
            connection.search(
                self.settings.base,
                search_filter,
                search_scope=scope,
                attributes=ALL_ATTRIBUTES,
            )
            return _entries(connection)
        finally:
            connection.unbind()

    async def find(self, search_filter: SearchFilter, scope: str = "sub") -> List[Entry]:
        """Search below the configured base with the service identity.

        Connection and bind failures are logged and reported as no results.
        """
        try:
            return await asyncio.to_thread(self._search, str(search_filter), _scope(scope))
        except LDAPException as err:
            logger.warning("directory '%s' search failed: %s", self.name, err)
            return []

    def _find_and_bind(
        self, search_filter: str, password: str, scope: str
    ) -> Optional[DirectoryConnection]:
        entries = self._search(search_filter, scope)
        if not entries:
            logger.debug("no entry matches %s in '%s'", search_filter, self.name)
            return None

        dn = entries[0]["dn"]
        connection = self._connect(dn, password)
        try:
            bound = connection.bind()
        except LDAPException:
            connection.unbind()
            raise

        if not bound:
            logger.debug("bind as %s failed", dn)
            connection.unbind()
            return None

        return DirectoryConnection(connection, dn)

    async def find_and_bind(
        self, search_filter: SearchFilter, password: str, scope: str = "sub"
    ) -> Optional[DirectoryConnection]:
        """Find the entry matching ``search_filter`` and bind as it with ``password``.

        Returns
        ----
        A connection bound as the entry, or None if no entry matches, the password
        is rejected or the directory cannot be reached.
        """
        if not password:
            # an empty password would be an unauthenticated bind
            return None

        try:
            return await asyncio.to_thread(
                self._find_and_bind, str(search_filter), password, _scope(scope)
            )
        except LDAPException as err:
            logger.warning("directory '%s' login failed: %s", self.name, err)
            return None


class DirectoryManager:
    def __init__(
        self,
        connections: Mapping[str, "LdapConnection"],
        *,
        client_strategy: str = SYNC,
    ) -> None:
        self._connections = connections
        self._client_strategy = client_strategy
        self._sources: Dict[str, DirectorySource] = {}

    def connection(self, source: str) -> DirectorySource:
        if source not in self._sources:
            try:
                settings = self._connections[source]
            except KeyError:
                raise ConfigError(f"ldap.connection.{source} is not configured") from None
            self._sources[source] = DirectorySource(
                settings, client_strategy=self._client_strategy
            )
        return self._sources[source]
