"""Feature extractor: turns one application's metadata into the 8-value vector.

Feature order (must match the classifier artifact):
    num_permissions, num_dangerous_permissions, has_internet, has_sms,
    num_activities, num_services, is_system_app, apk_size_mb

Unknown inputs become 0.0; extraction never raises.
"""

import logging
import math
from collections.abc import Mapping
from typing import Dict

from .metadata import MetadataProvider
from .models import (
    BYTES_PER_MB,
    FEATURE_NAMES,
    ApplicationMetadata,
    FeatureVector,
    ProtectionLevel,
)
from .utils import vectorize_feature_dict


logger = logging.getLogger(__name__)

INTERNET_PERMISSION = "android.permission.INTERNET"
SMS_PERMISSIONS = frozenset({
    "android.permission.SEND_SMS",
    "android.permission.RECEIVE_SMS",
})


def _permission_set(raw) -> frozenset:
    if raw is None:
        return frozenset()
    if isinstance(raw, str):
        return frozenset({raw})
    try:
        return frozenset(raw)
    except TypeError:
        return frozenset()


def _number(raw) -> float:
    if raw is None or isinstance(raw, bool):
        return 0.0
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return 0.0
    return value if math.isfinite(value) else 0.0


def _feature_map(metadata: ApplicationMetadata) -> Dict[str, float]:
    # Each field falls back to 0 on its own; one bad field never zeroes the rest
    perms = _permission_set(getattr(metadata, "permissions", None))
    levels = getattr(metadata, "protection_levels", None)
    if not isinstance(levels, Mapping):
        levels = {}

    base: Dict[str, float] = {}
    base["num_permissions"] = len(perms)
    # Failed lookups have no entry and count as not dangerous
    base["num_dangerous_permissions"] = sum(
        1 for p in perms if levels.get(p) is ProtectionLevel.DANGEROUS
    )
    base["has_internet"] = 1 if INTERNET_PERMISSION in perms else 0
    base["has_sms"] = 1 if perms & SMS_PERMISSIONS else 0
    base["num_activities"] = _number(getattr(metadata, "activity_count", None))
    base["num_services"] = _number(getattr(metadata, "service_count", None))
    base["is_system_app"] = 1 if getattr(metadata, "is_system_app", False) else 0
    base["apk_size_mb"] = _number(getattr(metadata, "installed_size", None)) / BYTES_PER_MB
    return base


def extract(metadata: ApplicationMetadata) -> FeatureVector:
    package_name = getattr(metadata, "package_name", "<unknown>")
    try:
        vector = FeatureVector(tuple(vectorize_feature_dict(_feature_map(metadata), FEATURE_NAMES)))
    except Exception as e:
        logger.error(f"Failed to extract features for {package_name}: {e}")
        return FeatureVector.zeros()
    logger.debug(f"Features for {package_name}: {','.join(f'{v:g}' for v in vector)}")
    return vector


def extract_for(provider: MetadataProvider, package_name: str) -> FeatureVector:
    """Fetch metadata and extract; any retrieval failure yields the all-zero vector."""
    try:
        metadata = provider.get_metadata(package_name)
    except Exception as e:
        logger.error(f"Failed to extract features for {package_name}: {e}")
        return FeatureVector.zeros()
    return extract(metadata)
