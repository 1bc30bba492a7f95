import logging
from typing import Dict, List, Sequence


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger once; androguard stays at WARNING."""
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("androguard").setLevel(logging.WARNING)


def vectorize_feature_dict(feature_dict: Dict, feature_order: Sequence[str]) -> List[float]:
    """Vectorize a feature dictionary using a fixed feature order.

    Missing keys, ``None`` and values that do not convert to float become 0.0.
    """
    vector = []
    for key in feature_order:
        value = feature_dict.get(key, 0)
        if value is None:
            value = 0
        if isinstance(value, bool):
            value = int(value)
        try:
            value = float(value)
        except (TypeError, ValueError):
            value = 0.0
        vector.append(value)
    return vector
