"""Metadata provider interface and an in-memory catalog implementation.

A provider enumerates installed applications and answers per-application
metadata queries. It never scores anything.

Catalog JSON shape accepted by ``StaticMetadataProvider.from_json``::

    {"applications": [
        {"package_name": "com.example.app",
         "permissions": ["android.permission.INTERNET"],
         "protection_levels": {"android.permission.INTERNET": "normal"},
         "activity_count": 3, "service_count": 1,
         "is_system_app": false, "installed_size": 1048576}
    ]}
"""

import abc
import json
import logging
from typing import Dict, Iterable, List, Mapping, Optional

from .errors import MetadataUnavailableError
from .models import ApplicationMetadata, InstalledApplication, ProtectionLevel


logger = logging.getLogger(__name__)


class MetadataProvider(abc.ABC):
    @abc.abstractmethod
    def list_applications(self) -> List[InstalledApplication]:
        """Enumerate installed applications with their system flag."""

    @abc.abstractmethod
    def get_metadata(self, package_name: str) -> ApplicationMetadata:
        """Return a metadata snapshot or raise MetadataUnavailableError."""


def _optional_int(value) -> Optional[int]:
    if value is None:
        return None
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return None


def parse_protection_levels(raw: Optional[Mapping]) -> Dict[str, ProtectionLevel]:
    """Parse a permission -> level mapping, dropping entries whose lookup failed."""
    levels: Dict[str, ProtectionLevel] = {}
    for perm, level in (raw or {}).items():
        parsed = ProtectionLevel.parse(level)
        if parsed is not None:
            levels[str(perm)] = parsed
    return levels


def metadata_from_record(record: Mapping) -> ApplicationMetadata:
    """Build ApplicationMetadata from a plain dict, keeping unknowns as None."""
    package_name = str(record.get("package_name") or record.get("package") or "").strip()
    if not package_name:
        raise ValueError("Application record without package_name")
    perms = record.get("permissions")
    return ApplicationMetadata(
        package_name=package_name,
        permissions=None if perms is None else frozenset(str(p) for p in perms),
        protection_levels=parse_protection_levels(record.get("protection_levels")),
        activity_count=_optional_int(record.get("activity_count")),
        service_count=_optional_int(record.get("service_count")),
        is_system_app=bool(record.get("is_system_app", False)),
        installed_size=_optional_int(record.get("installed_size")),
        source_path=record.get("source_path"),
    )


class StaticMetadataProvider(MetadataProvider):
    """Serves metadata from snapshots captured elsewhere (JSON export, tests)."""

    def __init__(self, entries: Iterable[ApplicationMetadata]):
        self._entries: Dict[str, ApplicationMetadata] = {}
        for entry in entries:
            self._entries[entry.package_name] = entry

    @classmethod
    def from_records(cls, records: Iterable[Mapping]) -> "StaticMetadataProvider":
        return cls(metadata_from_record(r) for r in records)

    @classmethod
    def from_json(cls, path: str) -> "StaticMetadataProvider":
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        records = data.get("applications", []) if isinstance(data, dict) else data
        provider = cls.from_records(records)
        logger.info(f"Loaded {len(provider._entries)} applications from {path}")
        return provider

    def list_applications(self) -> List[InstalledApplication]:
        return [
            InstalledApplication(package_name=m.package_name, is_system_app=m.is_system_app)
            for m in self._entries.values()
        ]

    def get_metadata(self, package_name: str) -> ApplicationMetadata:
        try:
            return self._entries[package_name]
        except KeyError:
            raise MetadataUnavailableError(package_name, "not found") from None
