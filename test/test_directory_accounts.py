from unittest.mock import AsyncMock

import pytest

from ldap_oidc.accounts import AccountResolver
from ldap_oidc.adapters import ACCOUNT_MODEL, AdapterFactory, LdapAccountAdapter
from ldap_oidc.config import InstallationConfig
from ldap_oidc.directory.filters import Equality
from ldap_oidc.errors import ConfigError

from conftest import BASE_DN, SERVICE_DN, raw_config


@pytest.fixture
def resolver(config, directory) -> AccountResolver:
    return AccountResolver(config.account, AdapterFactory(config, directory), directory)


@pytest.mark.asyncio
async def test_find_by_login(resolver) -> None:
    account = await resolver.find_by_login("alice", "wonderland")

    assert account is not None
    assert account.account_id == "alice"

    claims = await account.claims()
    assert claims["sub"] == "alice"
    assert claims["mail"] == "alice@example.org"
    assert "userPassword" not in claims
    assert "dn" not in claims


@pytest.mark.asyncio
async def test_wrong_password(resolver) -> None:
    assert await resolver.find_by_login("alice", "builder") is None


@pytest.mark.asyncio
async def test_unknown_login(resolver) -> None:
    assert await resolver.find_by_login("carol", "wonderland") is None


@pytest.mark.asyncio
@pytest.mark.parametrize("login, password", [("alice", ""), ("", "wonderland")])
async def test_empty_credentials(resolver, login, password) -> None:
    assert await resolver.find_by_login(login, password) is None


@pytest.mark.asyncio
async def test_login_value_is_escaped(resolver) -> None:
    assert await resolver.find_by_login("*", "wonderland") is None


@pytest.mark.asyncio
async def test_find_by_id(resolver) -> None:
    account = await resolver.find_by_id("bob")

    assert account is not None
    assert (await account.claims())["mail"] == "bob@example.org"
    assert await resolver.find_by_id("nobody") is None


@pytest.mark.asyncio
async def test_login_without_account_record(config, directory) -> None:
    factory = AdapterFactory(config, directory)
    adapter = AsyncMock()
    adapter.find.return_value = None
    factory._adapters[ACCOUNT_MODEL] = adapter
    resolver = AccountResolver(config.account, factory, directory)

    assert await resolver.find_by_login("alice", "wonderland") is None
    adapter.find.assert_awaited_once_with("alice")


@pytest.mark.asyncio
async def test_directory_search(directory) -> None:
    source = directory.connection("common")

    entries = await source.find(Equality("mail", "bob@example.org"))

    assert [entry["dn"] for entry in entries] == [f"uid=bob,{BASE_DN}"]


@pytest.mark.asyncio
async def test_find_and_bind(directory) -> None:
    source = directory.connection("common")

    connection = await source.find_and_bind(Equality("uid", "bob"), "builder")
    assert connection is not None
    async with connection:
        entries = await connection.find_base()

    assert connection.dn == f"uid=bob,{BASE_DN}"
    assert entries[0]["uid"] == "bob"


@pytest.mark.asyncio
async def test_service_bind_failure_yields_no_results(config, directory) -> None:
    source = directory.connection("common")
    source.server.dit[SERVICE_DN]["userPassword"] = [b"rotated"]

    assert await source.find(Equality("uid", "bob")) == []
    assert await source.find_and_bind(Equality("uid", "bob"), "builder") is None


def test_unknown_connection(directory) -> None:
    with pytest.raises(ConfigError):
        directory.connection("elsewhere")


def test_connection_sources_are_cached(directory) -> None:
    assert directory.connection("common") is directory.connection("common")


def test_account_adapter(config, directory) -> None:
    adapter = AdapterFactory(config, directory)(ACCOUNT_MODEL)

    assert isinstance(adapter, LdapAccountAdapter)
    assert adapter.organization == config.account


@pytest.mark.asyncio
async def test_login_with_bind_attribute_filter_and_scope(tmp_path, directory) -> None:
    data = raw_config()
    data["ldap"]["organization"]["Account"].update(
        {"bind": "mail", "filter": ["!", "uid=bob"], "scope": "one"}
    )
    config = InstallationConfig.from_dict(data, tmp_path)
    resolver = AccountResolver(config.account, AdapterFactory(config, directory), directory)

    account = await resolver.find_by_login("alice@example.org", "wonderland")

    assert account is not None
    assert account.account_id == "alice"
    assert await resolver.find_by_login("alice", "wonderland") is None
    assert await resolver.find_by_login("bob@example.org", "builder") is None
