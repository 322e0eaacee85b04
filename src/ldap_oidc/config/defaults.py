"""Provider settings used when the installation does not override them."""
from typing import Any, Dict

__all__ = ["DEFAULT_SETTINGS"]

DEFAULT_SETTINGS: Dict[str, Any] = {
    "acrValues": ["urn:mace:incommon:iap:bronze"],
    "claims": {
        "acr": None,
        "auth_time": None,
        "iss": None,
        "openid": ["sub"],
        "profile": ["name", "family_name", "given_name", "preferred_username", "updated_at"],
        "email": ["email", "email_verified"],
    },
    "clientCacheDuration": 3600,
    "clockTolerance": 0,
    "cookies": {
        "names": {
            "session": "_session",
            "interaction": "_grant",
            "resume": "_grant",
            "state": "_state",
        },
        "long": {"httpOnly": True, "maxAge": 1209600000},
        "short": {"httpOnly": True, "maxAge": 3600000},
    },
    "discovery": {
        "claim_types_supported": ["normal"],
        "claims_locales_supported": None,
        "display_values_supported": None,
        "op_policy_uri": None,
        "op_tos_uri": None,
        "service_documentation": None,
        "ui_locales_supported": None,
    },
    "extraParams": [],
    "features": {
        "devInteractions": False,
        "discovery": True,
        "requestUri": True,
        "oauthNativeApps": True,
        "pkce": True,
        "backchannelLogout": False,
        "claimsParameter": False,
        "clientCredentials": False,
        "encryption": False,
        "introspection": False,
        "alwaysIssueRefresh": False,
        "registration": False,
        "registrationManagement": False,
        "request": False,
        "revocation": False,
        "sessionManagement": False,
    },
    "port": 3000,
    "prompts": ["consent", "login", "none"],
    "responseTypes": [
        "code id_token token",
        "code id_token",
        "code token",
        "code",
        "id_token token",
        "id_token",
        "none",
    ],
    "routes": {
        "authorization": "/auth",
        "certificates": "/certs",
        "check_session": "/session/check",
        "end_session": "/session/end",
        "introspection": "/token/introspection",
        "registration": "/reg",
        "revocation": "/token/revocation",
        "token": "/token",
        "userinfo": "/me",
    },
    "scopes": ["address", "email", "offline_access", "openid", "phone", "profile"],
    "subjectTypes": ["public"],
    "tokenEndpointAuthMethods": [
        "none",
        "client_secret_basic",
        "client_secret_jwt",
        "client_secret_post",
        "private_key_jwt",
    ],
    "ttl": {
        "AccessToken": 3600,
        "AuthorizationCode": 600,
        "ClientCredentials": 600,
        "IdToken": 3600,
        "RefreshToken": 1209600,
    },
}
