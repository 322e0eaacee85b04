import json
from pathlib import Path
from typing import Any, Dict

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from ldap3 import MOCK_SYNC

from ldap_oidc.config import InstallationConfig
from ldap_oidc.directory import DirectoryManager

BASE_DN = "ou=people,o=example"
SERVICE_DN = "cn=service,o=example"
SERVICE_PASSWORD = "service-secret"

USERS = {
    "alice": {"password": "wonderland", "uid": "alice", "mail": "alice@example.org"},
    "bob": {"password": "builder", "uid": "bob", "mail": "bob@example.org"},
}


def raw_config(**overrides: Any) -> Dict[str, Any]:
    config: Dict[str, Any] = {
        "config": {},
        "urls": {
            "interaction": "https://login.example.org/interaction/",
            "issuer": "https://login.example.org",
        },
        "ldap": {
            "connection": {
                "common": {
                    "url": "ldap://directory.example.org",
                    "base": BASE_DN,
                    "bindDN": SERVICE_DN,
                    "bindCredentials": SERVICE_PASSWORD,
                }
            },
            "organization": {
                "Account": {"source": "common", "class": "inetOrgPerson", "id": "uid"},
            },
        },
    }
    config.update(overrides)
    return config


@pytest.fixture
def write_config(tmp_path: Path):
    def write(data: Any, directory: Path = tmp_path, filename: str = "settings.json") -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / filename
        path.write_text(json.dumps(data) if not isinstance(data, str) else data)
        return path

    return write


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("OIDC_CONFIG", raising=False)
    monkeypatch.delenv("OIDC_CONFIG_FILENAME", raising=False)


@pytest.fixture
def config(tmp_path: Path) -> InstallationConfig:
    return InstallationConfig.from_dict(raw_config(), tmp_path)


def rsa_pem() -> bytes:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )


def ec_pem() -> bytes:
    key = ec.generate_private_key(ec.SECP256R1())
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )


def oct_jwk(kid: str, secret: str = "c2VjcmV0LWtleS1tYXRlcmlhbC0wMTIzNDU2Nzg5") -> Dict[str, str]:
    return {"kty": "oct", "kid": kid, "k": secret, "alg": "HS256", "use": "sig"}


@pytest.fixture
def directory(config: InstallationConfig) -> DirectoryManager:
    """A directory backed by ldap3's mock strategy, holding USERS."""
    manager = DirectoryManager(config.connections, client_strategy=MOCK_SYNC)
    source = manager.connection("common")

    # entries are stored on the shared Server object
    seed = source._connect(SERVICE_DN, SERVICE_PASSWORD)
    seed.strategy.add_entry("o=example", {"objectClass": ["top", "organization"], "o": "example"})
    seed.strategy.add_entry(BASE_DN, {"objectClass": ["top", "organizationalUnit"], "ou": "people"})
    seed.strategy.add_entry(SERVICE_DN, {"userPassword": SERVICE_PASSWORD, "cn": "service"})
    for name, user in USERS.items():
        seed.strategy.add_entry(
            f"uid={name},{BASE_DN}",
            {
                "objectClass": ["top", "person", "inetOrgPerson"],
                "uid": user["uid"],
                "mail": user["mail"],
                "cn": name.title(),
                "sn": name,
                "userPassword": user["password"],
            },
        )
    return manager
