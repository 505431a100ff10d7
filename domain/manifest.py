"""Dependency manifests and the fingerprint used to key cache entries."""

import hashlib
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .errors import ManifestUnreadable
from .hash_constants import HASH_ALGORITHM


@dataclass
class Manifest:
    """Parsed manifest: project name plus the three tracked dependency mappings."""
    project_name: str
    primary: Dict[str, Any] = field(default_factory=dict)
    development: Dict[str, Any] = field(default_factory=dict)
    overrides: Dict[str, Any] = field(default_factory=dict)

    def fingerprint(self) -> str:
        return compute_fingerprint(self.primary, self.development, self.overrides)


def _serialize_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    # npm overrides may nest objects
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def sorted_entries(mapping: Optional[Mapping[str, Any]]) -> List[str]:
    """Serialize each entry as ``name + version`` and sort the result."""
    if not mapping:
        return []
    return sorted(name + _serialize_value(version) for name, version in mapping.items())


def compute_fingerprint(
    primary: Optional[Mapping[str, Any]],
    development: Optional[Mapping[str, Any]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> str:
    """
    Calculate the manifest fingerprint.

    The three mappings are serialized independently of their key order and
    joined in a fixed order (primary, development, overrides), so moving
    entries around inside a manifest never changes the result while any
    change to a name or a version spec does. Missing mappings count as empty.

    Returns:
        32 lowercase hex characters
    """
    payload = [
        sorted_entries(primary),
        sorted_entries(development),
        sorted_entries(overrides),
    ]
    hasher = hashlib.new(HASH_ALGORITHM)
    hasher.update(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    return hasher.hexdigest()


def _sanitize_project_name(name: str) -> str:
    return name.replace("/", "-").replace("\\", "-").strip()


def _tracked_mapping(data: Dict[str, Any], field_name: Optional[str], manifest_path: Path) -> Dict[str, Any]:
    if field_name is None:
        return {}
    value = data.get(field_name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ManifestUnreadable(f"'{field_name}' in {manifest_path} is not an object")
    return value


def read_manifest(manifest_path: Path, fields: Tuple[Optional[str], Optional[str], Optional[str]]) -> Manifest:
    """
    Read a JSON manifest and pick out the tracked dependency mappings.

    Args:
        manifest_path: Path to the manifest (package.json, bower.json, ...)
        fields: Names of the primary, development and override mappings.
            A ``None`` name means the ecosystem has no such mapping.

    Raises:
        ManifestUnreadable: If the file cannot be read or is not a JSON object
    """
    try:
        data = json.loads(manifest_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ManifestUnreadable(f"cannot parse {manifest_path}: {e}") from e

    if not isinstance(data, dict):
        raise ManifestUnreadable(f"{manifest_path} does not contain a JSON object")

    primary_field, development_field, override_field = fields
    name = data.get("name")
    if not isinstance(name, str) or _sanitize_project_name(name) in ("", ".", ".."):
        name = manifest_path.resolve().parent.name

    return Manifest(
        project_name=_sanitize_project_name(name),
        primary=_tracked_mapping(data, primary_field, manifest_path),
        development=_tracked_mapping(data, development_field, manifest_path),
        overrides=_tracked_mapping(data, override_field, manifest_path),
    )
