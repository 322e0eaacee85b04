"""Storage adapters handed to the provider framework.

The provider asks the factory for an adapter per model name. Accounts live in the
directory; every other model (sessions, grants, codes, tokens) is kept in memory.
"""
import copy
import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

from ldap_oidc.config import InstallationConfig, Organization
from ldap_oidc.directory import DirectoryManager, DirectorySource, Entry
from ldap_oidc.directory.filters import account_filter

__all__ = ["ACCOUNT_MODEL", "AdapterFactory", "LdapAccountAdapter", "MemoryAdapter"]

logger = logging.getLogger(__name__)

ACCOUNT_MODEL = "Account"


class LdapAccountAdapter:
    """Reads account records from the organization's directory source."""

    def __init__(self, organization: Organization, source: DirectorySource) -> None:
        self.organization = organization
        self.source = source

    async def find(self, account_id: str) -> Optional[Entry]:
        org = self.organization
        entries = await self.source.find(
            account_filter(org.object_class, org.id, account_id, org.filters),
            org.scope or "sub",
        )
        if not entries:
            return None
        if len(entries) > 1:
            logger.warning(
                "%d entries share %s=%s, using the first", len(entries), org.id, account_id
            )
        return entries[0]


class MemoryAdapter:
    def __init__(self, name: str, clock: Callable[[], float] = time.time) -> None:
        self.name = name
        self._clock = clock
        self._store: Dict[str, Tuple[Dict[str, Any], Optional[float]]] = {}

    def __len__(self) -> int:
        return len(self._store)

    def _sweep(self) -> None:
        now = self._clock()
        expired = [
            k
            for k, (_, expires_at) in self._store.items()
            if expires_at is not None and expires_at <= now
        ]
        for id in expired:
            del self._store[id]

    async def upsert(
        self, id: str, payload: Dict[str, Any], expires_in: Optional[float] = None
    ) -> None:
        self._sweep()
        expires_at = self._clock() + expires_in if expires_in else None
        self._store[id] = (copy.deepcopy(payload), expires_at)

    async def find(self, id: str) -> Optional[Dict[str, Any]]:
        item = self._store.get(id)
        if item is None:
            return None

        payload, expires_at = item
        if expires_at is not None and expires_at <= self._clock():
            del self._store[id]
            return None
        return copy.deepcopy(payload)

    async def consume(self, id: str) -> None:
        item = self._store.get(id)
        if item is not None:
            item[0]["consumed"] = int(self._clock())

    async def destroy(self, id: str) -> None:
        self._store.pop(id, None)

    async def revoke_by_grant_id(self, grant_id: str) -> None:
        revoked = [
            k for k, (payload, _) in self._store.items() if payload.get("grantId") == grant_id
        ]
        for id in revoked:
            del self._store[id]


class AdapterFactory:
    def __init__(self, config: InstallationConfig, directory: DirectoryManager) -> None:
        self._config = config
        self._directory = directory
        self._adapters: Dict[str, Any] = {}

    def __call__(self, name: str) -> Any:
        if name not in self._adapters:
            if name == ACCOUNT_MODEL:
                organization = self._config.account
                self._adapters[name] = LdapAccountAdapter(
                    organization, self._directory.connection(organization.source)
                )
            else:
                self._adapters[name] = MemoryAdapter(name)
        return self._adapters[name]
