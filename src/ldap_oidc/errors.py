__all__ = [
    "LdapOidcError",
    "ConfigError",
    "ConfigNotFoundError",
    "ConfigParseError",
    "KeyStoreError",
    "DuplicateKeyError",
    "MappingError",
    "InvalidRequestError",
]


class LdapOidcError(Exception):
    """Base class of all errors raised by this package."""


class ConfigError(LdapOidcError):
    """The installation configuration is missing or unusable."""


class ConfigNotFoundError(ConfigError):
    """No configuration file was found on the search path."""


class ConfigParseError(ConfigError):
    """A configuration file exists but is not valid JSON."""


class KeyStoreError(LdapOidcError):
    """Key material could not be read or imported."""


class DuplicateKeyError(KeyStoreError):
    def __init__(self, store: str, kid: str):
        super().__init__(f"key store '{store}' already contains a key with id '{kid}'")
        self.store = store
        self.kid = kid


class MappingError(LdapOidcError):
    """A declared attribute mapping file could not be loaded."""


class InvalidRequestError(LdapOidcError):
    """The request is rejected with an OAuth 2.0 ``invalid_request`` error."""

    error = "invalid_request"

    def __init__(self, description: str = "invalid request"):
        super().__init__(description)
        self.error_description = description
