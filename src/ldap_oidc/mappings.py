"""Per-organization attribute mapping files."""
import asyncio
import json
import logging
from typing import Any, Dict, Optional, Tuple

from ldap_oidc.config import InstallationConfig
from ldap_oidc.errors import MappingError

__all__ = ["load_mapping_file", "load_mappings"]

logger = logging.getLogger(__name__)


async def load_mapping_file(
    config: InstallationConfig, name: str
) -> Optional[Tuple[str, Any]]:
    """Load the mapping declared by organization ``name``.

    Returns the lowercased organization name and the parsed document, or None if
    the organization declares no mapping. A declared mapping that cannot be read or
    parsed raises ``MappingError``.
    """
    organization = config.organizations.get(name)
    if not (name and organization and organization.mapping):
        return None

    path = config.resolve_path(organization.mapping)
    try:
        data = await asyncio.to_thread(path.read_text, encoding="utf-8")
        document = json.loads(data)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as err:
        raise MappingError(
            f"cannot load mapping for organization '{name}' from {path}: {err}"
        ) from err

    logger.debug("loaded mapping for organization '%s' from %s", name, path)
    return name.lower(), document


async def load_mappings(config: InstallationConfig) -> Dict[str, Any]:
    results = await asyncio.gather(
        *(load_mapping_file(config, name) for name in config.organizations)
    )
    return dict(result for result in results if result is not None)
