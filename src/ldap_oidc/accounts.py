import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional

from ldap_oidc.adapters import ACCOUNT_MODEL, AdapterFactory
from ldap_oidc.config import Organization
from ldap_oidc.directory import DirectoryManager
from ldap_oidc.directory.filters import account_filter

__all__ = ["Account", "AccountResolver"]

logger = logging.getLogger(__name__)

HIDDEN_ATTRIBUTES = frozenset(("userPassword", "dn"))


@dataclass(frozen=True)
class Account:
    """An identity resolved from the directory."""

    data: Mapping[str, Any] = field(repr=False)
    account_id: str

    async def claims(self, use: Optional[str] = None, scope: Iterable[str] = ()) -> Dict[str, Any]:
        claims = {k: v for k, v in self.data.items() if k not in HIDDEN_ATTRIBUTES}
        claims["sub"] = self.account_id
        return claims


def _first(value: Any) -> Optional[str]:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    return str(value) if value not in (None, "") else None


class AccountResolver:
    def __init__(
        self,
        organization: Organization,
        adapters: AdapterFactory,
        directory: DirectoryManager,
    ) -> None:
        self.organization = organization
        self._adapters = adapters
        self._directory = directory

    async def find_by_id(self, user_id: str) -> Optional[Account]:
        logger.debug("find account by id = %s", user_id)

        data = await self._adapters(ACCOUNT_MODEL).find(user_id)
        if data:
            return Account(data, user_id)

        logger.debug("account %s not found", user_id)
        return None

    async def find_by_login(self, login: str, password: str) -> Optional[Account]:
        """Authenticate ``login`` by binding to the directory with ``password``.

        Returns None when the login is unknown, the password is wrong, the
        directory is unavailable or the account store has no matching record.
        """
        if not (login and password):
            return None

        org = self.organization
        source = self._directory.connection(org.source)
        scope = org.scope or "sub"

        logger.debug("find account by login %s with scope %s", login, scope)
        connection = await source.find_and_bind(
            account_filter(org.object_class, org.login_attribute, login, org.filters),
            password,
            scope,
        )
        if connection is None:
            return None

        async with connection:
            entries = await connection.find_base()

        if not entries:
            logger.debug("no directory entry for %s", login)
            return None

        user_id = _first(entries[0].get(org.id))
        if user_id is None:
            logger.warning("entry %s has no '%s' attribute", entries[0].get("dn"), org.id)
            return None

        return await self.find_by_id(user_id)
