import os
import tempfile
import unittest

import joblib
import numpy as np
from sklearn.linear_model import LogisticRegression

from triage.classifier import ClassifierHandle, initialize
from triage.errors import ClassifierInitError, ScoringError
from triage.models import FEATURE_NAMES, FeatureVector


def _toy_model(n_features: int = 8) -> LogisticRegression:
    rng = np.random.RandomState(0)
    benign = rng.uniform(0, 2, size=(20, n_features))
    adware = rng.uniform(5, 9, size=(20, n_features))
    X = np.vstack([benign, adware])
    y = np.array([0] * 20 + [1] * 20)
    return LogisticRegression().fit(X, y)


class ClassifierInitTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)

    def _dump(self, obj, name="model.joblib") -> str:
        path = os.path.join(self.tmp.name, name)
        joblib.dump(obj, path)
        return path

    def test_missing_file(self):
        with self.assertRaises(ClassifierInitError):
            initialize(os.path.join(self.tmp.name, "nope.joblib"))

    def test_directory_is_not_a_model(self):
        with self.assertRaises(ClassifierInitError) as ctx:
            initialize(self.tmp.name)
        self.assertIn(self.tmp.name, str(ctx.exception))

    def test_no_path(self):
        with self.assertRaises(ClassifierInitError):
            initialize("")

    def test_corrupt_file(self):
        path = os.path.join(self.tmp.name, "broken.joblib")
        with open(path, "wb") as f:
            f.write(b"not a pickle")
        with self.assertRaises(ClassifierInitError):
            initialize(path)

    def test_unfitted_model(self):
        with self.assertRaises(ClassifierInitError):
            initialize(self._dump(LogisticRegression()))

    def test_wrong_feature_count(self):
        with self.assertRaises(ClassifierInitError):
            initialize(self._dump(_toy_model(n_features=5)))

    def test_feature_order_mismatch(self):
        artifact = {"model": _toy_model(), "feature_order": list(reversed(FEATURE_NAMES))}
        with self.assertRaises(ClassifierInitError):
            initialize(self._dump(artifact))

    def test_object_without_predict_proba(self):
        with self.assertRaises(ClassifierInitError):
            initialize(self._dump({"weights": [1, 2, 3]}))

    def test_bare_estimator_scores(self):
        handle = initialize(self._dump(_toy_model()))
        low = handle.score(FeatureVector((1.0,) * 8))
        high = handle.score(FeatureVector((8.0,) * 8))
        self.assertTrue(0.0 <= low < 0.5)
        self.assertTrue(0.5 < high <= 1.0)
        self.assertEqual(handle.model_type, "LogisticRegression")

    def test_dict_artifact_scores(self):
        artifact = {"model": _toy_model(), "feature_order": list(FEATURE_NAMES)}
        handle = initialize(self._dump(artifact))
        self.assertGreater(handle.score(FeatureVector((8.0,) * 8)), 0.5)


class BrokenEstimator:
    def predict_proba(self, X):
        raise RuntimeError("interpreter not allocated")


class OutOfRangeEstimator:
    def predict_proba(self, X):
        return np.array([[-0.5, 1.5]])


class ClassifierScoreTests(unittest.TestCase):
    def test_estimator_failure_is_scoring_error(self):
        handle = ClassifierHandle.from_estimator(BrokenEstimator())
        with self.assertRaises(ScoringError):
            handle.score(FeatureVector.zeros())

    def test_out_of_range_is_scoring_error(self):
        handle = ClassifierHandle.from_estimator(OutOfRangeEstimator())
        with self.assertRaises(ScoringError):
            handle.score(FeatureVector.zeros())

    def test_released_handle(self):
        with ClassifierHandle.from_estimator(_toy_model()) as handle:
            handle.score(FeatureVector.zeros())
        self.assertTrue(handle.closed)
        with self.assertRaises(ScoringError):
            handle.score(FeatureVector.zeros())


if __name__ == "__main__":
    unittest.main()
