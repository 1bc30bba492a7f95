"""Data model shared by the providers, the extractor and the scanner."""

import enum
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Mapping, Optional, Tuple, Union

import numpy as np


RISK_THRESHOLD = 0.5
BYTES_PER_MB = 1024 * 1024

# Order is part of the classifier contract
FEATURE_NAMES = (
    "num_permissions",
    "num_dangerous_permissions",
    "has_internet",
    "has_sms",
    "num_activities",
    "num_services",
    "is_system_app",
    "apk_size_mb",
)
FEATURE_COUNT = len(FEATURE_NAMES)

# Platform value of PermissionInfo.PROTECTION_DANGEROUS
PROTECTION_DANGEROUS_BIT = 0x1
PROTECTION_MASK_BASE = 0xF


class ProtectionLevel(enum.Enum):
    NORMAL = "normal"
    DANGEROUS = "dangerous"
    SIGNATURE = "signature"
    OTHER = "other"

    @classmethod
    def parse(cls, raw: Union["ProtectionLevel", int, str, None]) -> Optional["ProtectionLevel"]:
        """Map a platform protection level to a member.

        Integers are tested against the dangerous bit of the base level the
        same way the platform does, so the legacy signatureOrSystem value (3)
        reads as dangerous. Strings use the first ``|`` token, e.g.
        ``"signature|privileged"`` -> SIGNATURE. Anything unrecognised is
        OTHER; ``None`` means the lookup failed and stays ``None``.
        """
        if raw is None or isinstance(raw, cls):
            return raw
        if isinstance(raw, bool):
            return cls.OTHER
        if isinstance(raw, int):
            base = raw & PROTECTION_MASK_BASE
            if base & PROTECTION_DANGEROUS_BIT:
                return cls.DANGEROUS
            if base == 0:
                return cls.NORMAL
            if base == 2:
                return cls.SIGNATURE
            return cls.OTHER
        text = str(raw).strip().lower()
        if text.isdigit():
            return cls.parse(int(text))
        base_name = text.split("|", 1)[0].strip()
        for member in cls:
            if member.value == base_name:
                return member
        return cls.OTHER


@dataclass(frozen=True)
class InstalledApplication:
    package_name: str
    is_system_app: bool = False


@dataclass(frozen=True)
class ApplicationMetadata:
    """Immutable snapshot of one application's static metadata.

    ``None`` marks a field the provider could not supply. A permission with
    no entry in ``protection_levels`` had a failed protection-level lookup.
    """

    package_name: str
    permissions: Optional[FrozenSet[str]] = None
    protection_levels: Mapping[str, ProtectionLevel] = field(default_factory=dict)
    activity_count: Optional[int] = None
    service_count: Optional[int] = None
    is_system_app: bool = False
    installed_size: Optional[int] = None
    source_path: Optional[str] = None


@dataclass(frozen=True)
class FeatureVector:
    values: Tuple[float, ...]

    def __post_init__(self):
        if len(self.values) != FEATURE_COUNT:
            raise ValueError(f"FeatureVector needs {FEATURE_COUNT} values, got {len(self.values)}")
        object.__setattr__(self, "values", tuple(float(v) for v in self.values))

    @classmethod
    def zeros(cls) -> "FeatureVector":
        return cls((0.0,) * FEATURE_COUNT)

    def __len__(self) -> int:
        return len(self.values)

    def __getitem__(self, idx):
        return self.values[idx]

    def __iter__(self):
        return iter(self.values)

    def as_array(self) -> np.ndarray:
        """Single-row float32 matrix ready for ``predict_proba``."""
        return np.asarray(self.values, dtype=np.float32).reshape(1, FEATURE_COUNT)

    def to_dict(self) -> Dict[str, float]:
        return dict(zip(FEATURE_NAMES, self.values))


@dataclass(frozen=True)
class ScoreResult:
    package_name: str
    score: float
    failed: bool = False

    @property
    def flagged(self) -> bool:
        return self.score > RISK_THRESHOLD


@dataclass(frozen=True)
class Report:
    total: int = 0
    flagged: Tuple[ScoreResult, ...] = ()

    def to_dict(self) -> Dict:
        return {
            "total": self.total,
            "flagged": [
                {"package_name": r.package_name, "score": r.score} for r in self.flagged
            ],
        }
