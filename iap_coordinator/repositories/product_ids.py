"""Bundled product identifier list.

The app ships the identifiers it sells as a static resource. Property
lists, YAML and JSON resources are accepted; all of them hold a plain
array of strings.
"""

import json
import plistlib
from pathlib import Path
from typing import Any, Optional, Union
from xml.parsers.expat import ExpatError

import yaml

from iap_coordinator.logging_config import get_logger

logger = get_logger(__name__)


def _parse_resource(path: Path) -> Any:
    """Parse the resource according to its extension."""
    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        with open(path, encoding="utf-8") as f:
            return yaml.safe_load(f)
    if suffix == ".json":
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    # plistlib detects XML vs binary format itself
    with open(path, "rb") as f:
        return plistlib.load(f)


def load_product_ids(path: Union[str, Path]) -> Optional[list[str]]:
    """Read the product identifier list from a bundled resource.

    Args:
        path: Path to the resource file

    Returns:
        None if the resource is missing or unreadable, an empty list if it
        does not hold an array of strings, the identifiers otherwise
    """
    path = Path(path)
    if not path.is_file():
        logger.warning("product_ids_resource_missing", path=str(path))
        return None

    try:
        content = _parse_resource(path)
    except (OSError, ValueError, ExpatError, yaml.YAMLError) as e:
        logger.error(
            "product_ids_load_failed",
            path=str(path),
            error=str(e),
            error_type=type(e).__name__,
        )
        return None

    if not isinstance(content, list) or not all(isinstance(item, str) for item in content):
        logger.warning(
            "product_ids_resource_not_string_list",
            path=str(path),
            content_type=type(content).__name__,
        )
        return []

    logger.debug("product_ids_loaded", path=str(path), count=len(content))
    return content
