"""Key material for the provider.

Keys are read from PEM files (private keys, public keys or X.509 certificates) or
from JSON files holding a single JWK or a key set, imported with ``jose.jwk`` and
collected into named key stores:

* ``certificates``: externally supplied signing and encryption keys
* ``integrityKeys``: internal keys protecting the provider's own tokens

Stores are serialized as JSON Web Key Sets *including* private members, since they
are consumed by the server itself.
"""
import asyncio
import base64
import codecs
import hashlib
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Union

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from jose import jwk
from jose.exceptions import JOSEError

from ldap_oidc.config import InstallationConfig, KeySource
from ldap_oidc.errors import ConfigError, DuplicateKeyError, KeyStoreError

__all__ = [
    "CERTIFICATES",
    "INTEGRITY_KEYS",
    "KeyLoader",
    "KeyStore",
    "KeyStores",
    "import_key",
    "load_key_store",
    "load_key_stores",
    "merge_store",
    "thumbprint",
]

logger = logging.getLogger(__name__)

CERTIFICATES = "certificates"
INTEGRITY_KEYS = "integrityKeys"

Jwk = Dict[str, Any]
KeyData = Union[Mapping[str, Any], bytes, str]

PRIVATE_MEMBERS = ("d", "p", "q", "dp", "dq", "qi", "oth", "k")
METADATA_MEMBERS = ("kid", "use", "key_ops", "x5u", "x5c", "x5t", "x5t#S256")
THUMBPRINT_MEMBERS = {
    "RSA": ("e", "kty", "n"),
    "EC": ("crv", "kty", "x", "y"),
    "oct": ("k", "kty"),
}

_JWK_CURVES = {"P-256": "ES256", "P-384": "ES384", "P-521": "ES512"}
_PEM_CURVES = {"secp256r1": "ES256", "secp384r1": "ES384", "secp521r1": "ES512"}


def thumbprint(key: Mapping[str, Any]) -> str:
    """RFC 7638 JWK thumbprint (SHA-256), base64url encoded."""
    try:
        members = THUMBPRINT_MEMBERS[key["kty"]]
        canonical = json.dumps({m: key[m] for m in members}, separators=(",", ":"), sort_keys=True)
    except KeyError as err:
        raise KeyStoreError(f"cannot compute thumbprint, missing member {err}") from err

    digest = hashlib.sha256(canonical.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def _jwk_algorithm(key: Mapping[str, Any]) -> str:
    kty = key.get("kty")
    if kty == "RSA":
        return "RS256"
    if kty == "EC" and key.get("crv") in _JWK_CURVES:
        return _JWK_CURVES[key["crv"]]
    if kty == "oct":
        return "HS256"
    raise KeyStoreError(f"unsupported key type {kty!r}")


def _pem_algorithm(data: bytes) -> str:
    try:
        if b"-----BEGIN CERTIFICATE-----" in data:
            key: Any = x509.load_pem_x509_certificate(data).public_key()
        elif b"PRIVATE KEY-----" in data:
            key = serialization.load_pem_private_key(data, password=None)
        else:
            key = serialization.load_pem_public_key(data)
    except (ValueError, TypeError, UnsupportedAlgorithm) as err:
        raise KeyStoreError(f"cannot read PEM key: {err}") from err

    if isinstance(key, (rsa.RSAPrivateKey, rsa.RSAPublicKey)):
        return "RS256"
    if isinstance(key, (ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey)):
        if key.curve.name in _PEM_CURVES:
            return _PEM_CURVES[key.curve.name]
        raise KeyStoreError(f"unsupported curve {key.curve.name}")
    raise KeyStoreError(f"unsupported key type {type(key).__name__}")


def import_key(data: KeyData, *, alg: Optional[str] = None, use: Optional[str] = None) -> Jwk:
    """Import a JWK or a PEM encoded key and return its JWK form.

    ``alg`` and ``use`` only apply when the key does not carry its own values.
    An algorithm inferred from the key type is used for the import only and is
    not recorded on the result. Keys without ``kid`` are identified by their
    thumbprint.
    """
    try:
        if isinstance(data, Mapping):
            declared = data.get("alg") or alg
            result = jwk.construct(dict(data), declared or _jwk_algorithm(data)).to_dict()
            result.update({m: data[m] for m in METADATA_MEMBERS if m in data})
        elif isinstance(data, (bytes, str)):
            declared = alg
            pem = data.encode("utf-8") if isinstance(data, str) else data
            pem = pem.strip()
            result = jwk.construct(pem, declared or _pem_algorithm(pem)).to_dict()
        else:
            raise KeyStoreError(f"unsupported key data of type {type(data).__name__}")
    except (JOSEError, ValueError, TypeError) as err:
        raise KeyStoreError(f"cannot import key: {err}") from err

    if declared:
        result["alg"] = declared
    else:
        result.pop("alg", None)
    if use and "use" not in result:
        result["use"] = use
    if not result.get("kid"):
        result["kid"] = thumbprint(result)

    return result


class KeyStore:
    def __init__(self, name: str, keys: Iterable[KeyData] = ()) -> None:
        self.name = name
        self._keys: Dict[str, Jwk] = {}
        for key in keys:
            self.add(key)

    @classmethod
    def from_json(cls, name: str, jwks: Optional[Mapping[str, Any]]) -> "KeyStore":
        return cls(name, (jwks or {}).get("keys", ()))

    def add(self, key: KeyData) -> Jwk:
        """Import ``key`` into the store; a key id that is already present is an error."""
        imported = import_key(key)
        kid = imported["kid"]
        if kid in self._keys:
            raise DuplicateKeyError(self.name, kid)

        self._keys[kid] = imported
        return imported

    def get(self, kid: str) -> Optional[Jwk]:
        key = self._keys.get(kid)
        return dict(key) if key is not None else None

    @property
    def kids(self) -> List[str]:
        return list(self._keys)

    def __contains__(self, kid: object) -> bool:
        return kid in self._keys

    def __iter__(self) -> Iterator[Jwk]:
        return (dict(key) for key in self._keys.values())

    def __len__(self) -> int:
        return len(self._keys)

    def to_json(self, private: bool = True) -> Dict[str, List[Jwk]]:
        if private:
            return {"keys": [dict(key) for key in self._keys.values()]}

        # symmetric keys have no public part
        return {
            "keys": [
                {k: v for k, v in key.items() if k not in PRIVATE_MEMBERS}
                for key in self._keys.values()
                if key.get("kty") != "oct"
            ]
        }


class KeyLoader:
    """Collects keys from files and folders."""

    def __init__(self, *, alg: Optional[str] = None, use: Optional[str] = None) -> None:
        self._alg = alg
        self._use = use
        self.keys: List[Jwk] = []

    def _parse(self, path: Path, data: bytes) -> List[Jwk]:
        text = data.strip()
        if text.startswith(codecs.BOM_UTF8):
            text = text[len(codecs.BOM_UTF8) :].lstrip()
        try:
            if text.startswith(b"{"):
                document = json.loads(text)
                if not isinstance(document, dict):
                    raise KeyStoreError("expected a JWK or a JWK set")
                items = document["keys"] if "keys" in document else [document]
                return [import_key(item, alg=self._alg, use=self._use) for item in items]

            return [import_key(text, alg=self._alg, use=self._use)]
        except (ValueError, TypeError, KeyStoreError) as err:
            raise KeyStoreError(f"{path}: {err}") from err

    async def _read(self, path: Path) -> List[Jwk]:
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as err:
            raise KeyStoreError(f"cannot read key file {path}: {err}") from err
        return self._parse(path, data)

    async def load_key(self, path: Union[str, Path]) -> List[Jwk]:
        keys = await self._read(Path(path))
        self.keys.extend(keys)
        logger.debug("loaded %d key(s) from %s", len(keys), path)
        return keys

    async def load_key_dir(self, path: Union[str, Path]) -> List[Jwk]:
        path = Path(path)

        def key_files() -> List[Path]:
            return sorted(p for p in path.iterdir() if p.is_file() and not p.name.startswith("."))

        try:
            files = await asyncio.to_thread(key_files)
        except OSError as err:
            raise KeyStoreError(f"cannot list key folder {path}: {err}") from err

        keys = [key for loaded in await asyncio.gather(*map(self._read, files)) for key in loaded]
        self.keys.extend(keys)
        logger.debug("loaded %d key(s) from folder %s", len(keys), path)
        return keys


async def load_key_store(source: Optional[KeySource], base_path: Union[str, Path]) -> List[Jwk]:
    """Load every key named by ``source``; relative paths are resolved against ``base_path``."""
    if source is None:
        return []

    path = Path(source.path)
    if not path.is_absolute():
        path = Path(base_path) / path

    loader = KeyLoader(alg=source.alg, use=source.use)
    if source.source == "folder":
        await loader.load_key_dir(path)
    elif source.source == "file":
        await loader.load_key(path)
    else:
        raise ConfigError(f"unknown key source '{source.source}'")

    return loader.keys


def merge_store(
    store: Optional[Mapping[str, Any]], keys: Iterable[KeyData], name: str
) -> Dict[str, List[Jwk]]:
    """Import ``keys`` into the key set ``store`` and return the combined key set."""
    key_store = KeyStore.from_json(name, store)
    for key in keys:
        key_store.add(key)
    return key_store.to_json(private=True)


@dataclass(frozen=True)
class KeyStores:
    certificates: Dict[str, List[Jwk]] = field(default_factory=lambda: {"keys": []})
    integrity_keys: Dict[str, List[Jwk]] = field(default_factory=lambda: {"keys": []})


async def load_key_stores(
    config: InstallationConfig, current: Optional[KeyStores] = None
) -> KeyStores:
    """Load external and internal key material concurrently and merge it into ``current``."""
    current = current or KeyStores()

    async def build(kind: str, name: str, store: Mapping[str, Any]) -> Dict[str, List[Jwk]]:
        source = config.certificates.get(kind)
        if source is None:
            logger.warning("no certificates.%s configured, key store '%s' is empty", kind, name)

        merged = merge_store(store, await load_key_store(source, config.base_path), name)
        logger.info("key store '%s' holds %d key(s)", name, len(merged["keys"]))
        return merged

    certificates, integrity_keys = await asyncio.gather(
        build("external", CERTIFICATES, current.certificates),
        build("internal", INTEGRITY_KEYS, current.integrity_keys),
    )
    return KeyStores(certificates=certificates, integrity_keys=integrity_keys)
