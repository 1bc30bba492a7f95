"""Classifier adapter around a joblib-saved scikit-learn style estimator.

The artifact is either a bare estimator or a dict in the same layout the
training scripts write::

    {"model": estimator, "feature_order": [...8 names...]}

Anything exposing ``predict_proba`` works; the score is the probability of
class 1 (adware).
"""

import logging
import math
import os
import threading
from typing import Any, Optional

import joblib
from sklearn.exceptions import NotFittedError
from sklearn.utils.validation import check_is_fitted

from .errors import ClassifierInitError, ScoringError
from .models import FEATURE_COUNT, FEATURE_NAMES, FeatureVector


logger = logging.getLogger(__name__)


def _unwrap(model_obj: Any):
    if isinstance(model_obj, dict):
        if "model" not in model_obj:
            raise ClassifierInitError("Model artifact has no 'model' entry")
        order = model_obj.get("feature_order")
        if order is not None and list(order) != list(FEATURE_NAMES):
            raise ClassifierInitError(
                f"Model feature order {list(order)} does not match {list(FEATURE_NAMES)}"
            )
        return model_obj["model"]
    return model_obj


def _validate(estimator: Any) -> None:
    if not hasattr(estimator, "predict_proba"):
        raise ClassifierInitError(f"{type(estimator).__name__} has no predict_proba")
    try:
        check_is_fitted(estimator)
    except NotFittedError as e:
        raise ClassifierInitError(f"Model is not fitted: {e}") from e
    except TypeError:
        # Not a scikit-learn estimator; trust predict_proba
        pass
    n_features = getattr(estimator, "n_features_in_", None)
    if n_features is not None and int(n_features) != FEATURE_COUNT:
        raise ClassifierInitError(f"Model expects {n_features} features, pipeline produces {FEATURE_COUNT}")


class ClassifierHandle:
    """Loaded, read-only classifier shared by a scan session.

    Calls to ``score`` are serialised, so one handle may back a worker pool.
    """

    def __init__(self, estimator: Any, source: str = "<memory>"):
        self._estimator = estimator
        self.source = source
        self._lock = threading.Lock()

    @classmethod
    def from_estimator(cls, model_obj: Any, source: str = "<memory>") -> "ClassifierHandle":
        estimator = _unwrap(model_obj)
        _validate(estimator)
        return cls(estimator, source=source)

    @property
    def closed(self) -> bool:
        return self._estimator is None

    @property
    def model_type(self) -> str:
        return type(self._estimator).__name__

    def score(self, vector: FeatureVector) -> float:
        if len(vector) != FEATURE_COUNT:
            raise ScoringError(f"Expected {FEATURE_COUNT} features, got {len(vector)}")
        with self._lock:
            if self._estimator is None:
                raise ScoringError("Classifier handle has been released")
            try:
                proba = self._estimator.predict_proba(vector.as_array())
                prob = float(proba[0][1])
            except Exception as e:
                raise ScoringError(f"Model invocation failed: {e}") from e
        if not math.isfinite(prob) or prob < 0.0 or prob > 1.0:
            raise ScoringError(f"Model returned out-of-range score {prob}")
        return prob

    def close(self) -> None:
        with self._lock:
            self._estimator = None

    def __enter__(self) -> "ClassifierHandle":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def initialize(model_path: Optional[str]) -> ClassifierHandle:
    """Load and validate the model; raise ClassifierInitError on any failure."""
    if not model_path:
        raise ClassifierInitError("No model path configured")
    if not os.path.isfile(model_path):
        raise ClassifierInitError(f"No model artifact at {model_path}")
    try:
        model_obj = joblib.load(model_path)
    except Exception as e:
        raise ClassifierInitError(f"Failed to load model from {model_path}: {e}") from e
    handle = ClassifierHandle.from_estimator(model_obj, source=model_path)
    logger.info(f"Classifier loaded: {handle.model_type} from {model_path}")
    return handle
