"""Metadata provider over a folder of APK files, using Androguard.

Every ``.apk`` under the folder is one application. The manifest gives the
package name, requested permissions and component counts; Androguard's
permission reference gives the protection levels. Files that fail to parse
are still enumerated (by file name) so they count toward the scan, and
their metadata lookup raises MetadataUnavailableError.
"""

import logging
import os
from typing import Dict, List, Optional

from androguard.core.apk import APK

from .errors import MetadataUnavailableError
from .metadata import MetadataProvider
from .models import ApplicationMetadata, InstalledApplication, ProtectionLevel


logging.getLogger("androguard").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def _walk_apks(root: str) -> List[str]:
    apks = []
    for r, _d, files in os.walk(root):
        for f in sorted(files):
            if f.lower().endswith(".apk"):
                apks.append(os.path.join(r, f))
    return sorted(apks)


def _protection_levels(a: APK, permissions) -> Dict[str, ProtectionLevel]:
    levels: Dict[str, ProtectionLevel] = {}
    try:
        details = a.get_details_permissions() or {}
    except Exception as e:
        logger.warning(f"Permission details unavailable for {a.get_package()}: {e}")
        return levels
    for perm in permissions:
        info = details.get(perm)
        if not info:
            continue
        level = ProtectionLevel.parse(info[0])
        if level is not None:
            levels[perm] = level
    return levels


def _count(getter) -> Optional[int]:
    try:
        return len(getter() or [])
    except Exception:
        return None


def parse_apk(apk_path: str) -> ApplicationMetadata:
    """Read one APK into an ApplicationMetadata snapshot."""
    a = APK(apk_path)
    package = a.get_package() or os.path.splitext(os.path.basename(apk_path))[0]
    try:
        permissions = frozenset(a.get_permissions() or [])
    except Exception:
        permissions = None
    try:
        size = os.path.getsize(apk_path)
    except OSError:
        size = None
    return ApplicationMetadata(
        package_name=package,
        permissions=permissions,
        protection_levels=_protection_levels(a, permissions or ()),
        activity_count=_count(a.get_activities),
        service_count=_count(a.get_services),
        is_system_app=False,
        installed_size=size,
        source_path=os.path.abspath(apk_path),
    )


class ApkFolderMetadataProvider(MetadataProvider):
    def __init__(self, root: str):
        self.root = root
        self._parsed: Dict[str, ApplicationMetadata] = {}
        self._errors: Dict[str, str] = {}

    def list_applications(self) -> List[InstalledApplication]:
        self._parsed.clear()
        self._errors.clear()
        apps: List[InstalledApplication] = []
        paths = _walk_apks(self.root)
        logger.info(f"Found {len(paths)} APKs under {self.root}")
        for path in paths:
            try:
                meta = parse_apk(path)
            except Exception as e:
                # Still enumerated so the scan counts it
                name = os.path.splitext(os.path.basename(path))[0]
                logger.error(f"Failed to parse {path}: {e}")
                self._errors[name] = str(e)
                apps.append(InstalledApplication(package_name=name))
                continue
            if meta.package_name in self._parsed:
                logger.warning(f"Duplicate package {meta.package_name} at {path}; keeping the first")
                continue
            self._parsed[meta.package_name] = meta
            apps.append(InstalledApplication(package_name=meta.package_name, is_system_app=meta.is_system_app))
        return apps

    def get_metadata(self, package_name: str) -> ApplicationMetadata:
        if package_name in self._parsed:
            return self._parsed[package_name]
        raise MetadataUnavailableError(package_name, self._errors.get(package_name, "not found"))
