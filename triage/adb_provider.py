"""Metadata provider for a device reachable over adb.

Everything comes from ``pm`` and ``dumpsys`` output, so it works without
root. Activity and service counts are taken from the resolver tables in
``dumpsys package``; components without intent filters are not listed
there, which makes them a lower bound.
"""

import logging
import re
import subprocess
from typing import Callable, Dict, List, Optional, Sequence, Set

from .errors import EnumerationError, MetadataUnavailableError
from .metadata import MetadataProvider
from .models import ApplicationMetadata, InstalledApplication, ProtectionLevel


logger = logging.getLogger(__name__)

PACKAGE_NAME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9_]*(\.[a-zA-Z0-9_]+)+$")
PERMISSION_LINE_RE = re.compile(r"^([A-Za-z0-9_.]+)(?::\s*granted=\w+)?")
SYSTEM_FLAG_RE = re.compile(r"^\s*(?:pkgFlags|flags)=\[([^\]]*)\]", re.MULTILINE)


def is_valid_package_name(value: str) -> bool:
    return bool(PACKAGE_NAME_RE.fullmatch(value.strip()))


def extract_device_ids(adb_devices_output: str) -> List[str]:
    devices: List[str] = []
    for line in adb_devices_output.splitlines():
        parts = line.strip().split("\t")
        if len(parts) == 2 and parts[1] == "device":
            devices.append(parts[0])
    return devices


def parse_package_list(output: str) -> List[str]:
    """Parse ``pm list packages`` output into package names, keeping order."""
    names: List[str] = []
    for line in output.splitlines():
        line = line.strip()
        if line.startswith("package:"):
            name = line.split("package:", 1)[1].strip()
            if name and name not in names:
                names.append(name)
    return names


def parse_permission_levels(output: str) -> Dict[str, ProtectionLevel]:
    """Parse ``pm list permissions -f`` into permission -> protection level."""
    levels: Dict[str, ProtectionLevel] = {}
    current: Optional[str] = None
    for raw in output.splitlines():
        line = raw.strip()
        if line.startswith("+ permission:"):
            current = line.split(":", 1)[1].strip()
        elif current and line.startswith("protectionLevel:"):
            level = ProtectionLevel.parse(line.split(":", 1)[1].strip())
            if level is not None:
                levels[current] = level
            current = None
    return levels


def _section(lines: List[str], header: str) -> List[str]:
    """Lines indented under ``header`` (first occurrence), header excluded."""
    out: List[str] = []
    indent = None
    for line in lines:
        if indent is None:
            if line.strip() == header:
                indent = len(line) - len(line.lstrip())
            continue
        if not line.strip():
            continue
        if len(line) - len(line.lstrip()) <= indent:
            break
        out.append(line.strip())
    return out


def parse_requested_permissions(dumpsys: str) -> Optional[Set[str]]:
    lines = dumpsys.splitlines()
    if not any(line.strip() == "requested permissions:" for line in lines):
        return None
    perms = set()
    for line in _section(lines, "requested permissions:"):
        m = PERMISSION_LINE_RE.match(line)
        if m:
            perms.add(m.group(1))
    return perms


def count_resolver_components(dumpsys: str, package_name: str, table: str) -> Optional[int]:
    """Count distinct ``pkg/Component`` names listed in one resolver table."""
    lines = dumpsys.splitlines()
    start = None
    for idx, line in enumerate(lines):
        if line.strip() == table:
            start = idx + 1
            break
    if start is None:
        return None
    component_re = re.compile(re.escape(package_name) + r"/([A-Za-z0-9_.$]+)")
    found = set()
    for line in lines[start:]:
        if line and not line.startswith(" "):
            break
        for m in component_re.finditer(line):
            found.add(m.group(1))
    return len(found)


def is_system_from_dumpsys(dumpsys: str) -> bool:
    for m in SYSTEM_FLAG_RE.finditer(dumpsys):
        if "SYSTEM" in m.group(1).split():
            return True
    return False


class AdbMetadataProvider(MetadataProvider):
    def __init__(
        self,
        serial: Optional[str] = None,
        timeout: float = 90,
        runner: Optional[Callable[[Sequence[str]], str]] = None,
    ):
        self.serial = serial
        self.timeout = timeout
        self._runner = runner or self._run_adb
        self._levels: Optional[Dict[str, ProtectionLevel]] = None

    def _run_adb(self, args: Sequence[str]) -> str:
        cmd = ["adb"]
        if self.serial:
            cmd += ["-s", self.serial]
        result = subprocess.run(
            [*cmd, *args],
            check=True,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=self.timeout,
        )
        return result.stdout

    def list_applications(self) -> List[InstalledApplication]:
        try:
            all_pkgs = parse_package_list(self._runner(["shell", "pm", "list", "packages"]))
            system_pkgs = set(parse_package_list(self._runner(["shell", "pm", "list", "packages", "-s"])))
        except (OSError, subprocess.SubprocessError) as e:
            raise EnumerationError(f"Could not list packages over adb: {e}") from e
        logger.info(f"Device reports {len(all_pkgs)} packages ({len(system_pkgs)} system)")
        return [InstalledApplication(package_name=p, is_system_app=p in system_pkgs) for p in all_pkgs]

    def protection_levels(self) -> Dict[str, ProtectionLevel]:
        """Device-wide permission table, fetched once per provider."""
        if self._levels is None:
            try:
                self._levels = parse_permission_levels(
                    self._runner(["shell", "pm", "list", "permissions", "-f"])
                )
            except (OSError, subprocess.SubprocessError) as e:
                logger.warning(f"Permission table unavailable, no permission counts as dangerous: {e}")
                self._levels = {}
        return self._levels

    def _apk_size(self, package_name: str):
        try:
            paths = parse_package_list(self._runner(["shell", "pm", "path", package_name]))
            if not paths:
                return None, None
            size_out = self._runner(["shell", "stat", "-c", "%s", paths[0]]).strip()
            return int(size_out.splitlines()[0]), paths[0]
        except (OSError, subprocess.SubprocessError, ValueError, IndexError) as e:
            logger.debug(f"APK size unavailable for {package_name}: {e}")
            return None, None

    def get_metadata(self, package_name: str) -> ApplicationMetadata:
        if not is_valid_package_name(package_name):
            raise MetadataUnavailableError(package_name, "invalid package name")
        try:
            dumpsys = self._runner(["shell", "dumpsys", "package", package_name])
        except (OSError, subprocess.SubprocessError) as e:
            raise MetadataUnavailableError(package_name, str(e)) from e
        if f"Package [{package_name}]" not in dumpsys:
            raise MetadataUnavailableError(package_name, "not found")

        permissions = parse_requested_permissions(dumpsys)
        table = self.protection_levels()
        levels = {p: table[p] for p in (permissions or ()) if p in table}
        size, path = self._apk_size(package_name)
        return ApplicationMetadata(
            package_name=package_name,
            permissions=None if permissions is None else frozenset(permissions),
            protection_levels=levels,
            activity_count=count_resolver_components(dumpsys, package_name, "Activity Resolver Table:"),
            service_count=count_resolver_components(dumpsys, package_name, "Service Resolver Table:"),
            is_system_app=is_system_from_dumpsys(dumpsys),
            installed_size=size,
            source_path=path,
        )
