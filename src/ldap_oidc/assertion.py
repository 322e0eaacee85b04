"""Authorization of JWT bearer assertions presented on behalf of another client.

A client may present an assertion issued for a different client (``iss``) only if
the assertion names it as the authorized party: its ``azp`` claim must be one of
the presenting client's registered redirect URIs.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, FrozenSet, Iterable, Mapping, Optional, Union

from ldap_oidc.errors import InvalidRequestError

__all__ = [
    "AssertionGrant",
    "Client",
    "GrantContext",
    "Next",
    "authorize",
    "check_authorized_party",
]

logger = logging.getLogger(__name__)

Next = Callable[[], Awaitable[None]]
RedirectUris = Union[str, Iterable[str], None]


def _redirect_uris(value: RedirectUris) -> FrozenSet[str]:
    if value is None:
        return frozenset()
    if isinstance(value, str):
        return frozenset((value,))
    return frozenset(value)


@dataclass(frozen=True)
class Client:
    """A registered client. ``redirect_uris`` accepts one URI or many."""

    client_id: str
    redirect_uris: FrozenSet[str] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "redirect_uris", _redirect_uris(self.redirect_uris))

    @classmethod
    def from_metadata(cls, metadata: Mapping[str, Any]) -> "Client":
        return cls(
            client_id=metadata["client_id"],
            redirect_uris=metadata.get("redirect_uris"),
        )


@dataclass(frozen=True)
class AssertionGrant:
    body: Mapping[str, Any]
    authz: bool = False


@dataclass
class GrantContext:
    """State of one token request while it passes through a grant handler."""

    client: Client
    assertion_grant: Optional[AssertionGrant] = None
    params: Mapping[str, Any] = field(default_factory=dict)


def check_authorized_party(client: Client, claims: Mapping[str, Any]) -> None:
    """Raise ``InvalidRequestError`` unless ``client`` may use an assertion with ``claims``."""
    if claims.get("iss") == client.client_id:
        return

    azp = claims.get("azp")
    if not isinstance(azp, str) or azp not in client.redirect_uris:
        logger.debug(
            "authorized party %r of assertion issued by %r does not match client %s",
            azp,
            claims.get("iss"),
            client.client_id,
        )
        raise InvalidRequestError("invalid assertion request")


async def authorize(ctx: GrantContext, call_next: Next) -> None:
    grant = ctx.assertion_grant
    if grant is not None and grant.authz:
        check_authorized_party(ctx.client, grant.body)

        if "x_jwt" in grant.body:
            # TODO: verify the nested x_jwt signature against the client keys
            logger.debug("x_jwt claim of client %s is not verified", ctx.client.client_id)

    await call_next()
