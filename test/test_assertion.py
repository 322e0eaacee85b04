import pytest

from ldap_oidc.assertion import (
    AssertionGrant,
    Client,
    GrantContext,
    authorize,
    check_authorized_party,
)
from ldap_oidc.errors import InvalidRequestError
from ldap_oidc.grants import compose, grant_type_factory

CLIENT = Client("client-a", ["https://a.example.org/cb", "https://a.example.org/alt"])


class Continuation:
    def __init__(self) -> None:
        self.calls = 0

    async def __call__(self) -> None:
        self.calls += 1


def test_issuer_is_the_client() -> None:
    check_authorized_party(CLIENT, {"iss": "client-a"})


def test_authorized_party_is_a_redirect_uri() -> None:
    check_authorized_party(CLIENT, {"iss": "client-b", "azp": "https://a.example.org/alt"})


@pytest.mark.parametrize(
    "claims",
    [
        {"iss": "client-b", "azp": "https://b.example.org/cb"},
        {"iss": "client-b"},
        {"iss": "client-b", "azp": ["https://a.example.org/cb"]},
        {},
    ],
)
def test_unauthorized_party(claims) -> None:
    with pytest.raises(InvalidRequestError) as info:
        check_authorized_party(CLIENT, claims)

    assert info.value.error == "invalid_request"
    assert info.value.error_description == "invalid assertion request"


def test_client_without_redirect_uris() -> None:
    client = Client("client-a")

    with pytest.raises(InvalidRequestError):
        check_authorized_party(client, {"iss": "client-b", "azp": None})


def test_single_redirect_uri() -> None:
    client = Client.from_metadata(
        {"client_id": "client-a", "redirect_uris": "https://a.example.org/cb"}
    )

    assert client.redirect_uris == frozenset({"https://a.example.org/cb"})
    check_authorized_party(client, {"iss": "client-b", "azp": "https://a.example.org/cb"})


@pytest.mark.asyncio
async def test_authorize_continues_when_authorized() -> None:
    call_next = Continuation()
    ctx = GrantContext(
        client=CLIENT,
        assertion_grant=AssertionGrant(
            {"iss": "client-b", "azp": "https://a.example.org/cb"}, authz=True
        ),
    )

    await authorize(ctx, call_next)

    assert call_next.calls == 1


@pytest.mark.asyncio
async def test_authorize_stops_when_rejected() -> None:
    call_next = Continuation()
    ctx = GrantContext(
        client=CLIENT,
        assertion_grant=AssertionGrant({"iss": "client-b", "azp": "https://evil"}, authz=True),
    )

    with pytest.raises(InvalidRequestError):
        await authorize(ctx, call_next)

    assert call_next.calls == 0


@pytest.mark.asyncio
async def test_authorize_skips_check_without_authz() -> None:
    call_next = Continuation()
    ctx = GrantContext(
        client=CLIENT,
        assertion_grant=AssertionGrant({"iss": "client-b", "azp": "https://evil"}),
    )

    await authorize(ctx, call_next)
    await authorize(GrantContext(client=CLIENT), call_next)

    assert call_next.calls == 2


@pytest.mark.asyncio
async def test_compose_runs_in_order() -> None:
    trace = []

    def step(name):
        async def middleware(ctx, call_next):
            trace.append(f"{name}:before")
            await call_next()
            trace.append(f"{name}:after")

        return middleware

    async def issue() -> None:
        trace.append("issue")

    await compose([step("a"), step("b")])(GrantContext(client=CLIENT), issue)

    assert trace == ["a:before", "b:before", "issue", "b:after", "a:after"]


@pytest.mark.asyncio
async def test_assertion_handler() -> None:
    handler = grant_type_factory("assertion")(None, None)
    call_next = Continuation()
    ctx = GrantContext(
        client=CLIENT,
        assertion_grant=AssertionGrant({"iss": "client-b"}, authz=True),
    )

    with pytest.raises(InvalidRequestError):
        await handler(ctx, call_next)

    assert call_next.calls == 0
