"""Grant type handlers registered with the provider.

A handler is a middleware: an async callable taking the grant context and a
``call_next`` continuation. The provider passes its own continuation (token
issuance) as ``call_next``; a middleware that raises stops the grant.
"""
from typing import Any, Awaitable, Callable, Dict, Sequence

from ldap_oidc.assertion import GrantContext, Next, authorize
from ldap_oidc.config.settings import EffectiveSettings
from ldap_oidc.errors import ConfigError

__all__ = ["GRANT_HANDLERS", "Handler", "HandlerFactory", "compose", "grant_type_factory"]

Handler = Callable[[GrantContext, Next], Awaitable[None]]
HandlerFactory = Callable[[Any, EffectiveSettings], Handler]


def compose(middleware: Sequence[Handler]) -> Handler:
    chain = tuple(middleware)

    async def handler(ctx: GrantContext, call_next: Next) -> None:
        async def dispatch(index: int) -> None:
            if index == len(chain):
                await call_next()
            else:
                await chain[index](ctx, lambda: dispatch(index + 1))

        await dispatch(0)

    return handler


def assertion_handler(provider: Any, settings: EffectiveSettings) -> Handler:
    return compose([authorize])


GRANT_HANDLERS: Dict[str, HandlerFactory] = {
    "assertion": assertion_handler,
    "jwt-bearer": assertion_handler,
}


def grant_type_factory(name: str) -> HandlerFactory:
    try:
        return GRANT_HANDLERS[name]
    except KeyError:
        raise ConfigError(f"unknown grant type handler '{name}'") from None
