import unittest

import numpy as np

from triage.models import (
    FEATURE_COUNT,
    FEATURE_NAMES,
    FeatureVector,
    ProtectionLevel,
    Report,
    ScoreResult,
)


class ProtectionLevelTests(unittest.TestCase):
    def test_parse_platform_integers(self):
        self.assertIs(ProtectionLevel.parse(0), ProtectionLevel.NORMAL)
        self.assertIs(ProtectionLevel.parse(1), ProtectionLevel.DANGEROUS)
        self.assertIs(ProtectionLevel.parse(2), ProtectionLevel.SIGNATURE)
        # signatureOrSystem carries the dangerous bit
        self.assertIs(ProtectionLevel.parse(3), ProtectionLevel.DANGEROUS)
        # signature|privileged
        self.assertIs(ProtectionLevel.parse(0x12), ProtectionLevel.SIGNATURE)
        self.assertIs(ProtectionLevel.parse(4), ProtectionLevel.OTHER)

    def test_parse_strings(self):
        self.assertIs(ProtectionLevel.parse("dangerous"), ProtectionLevel.DANGEROUS)
        self.assertIs(ProtectionLevel.parse("Normal"), ProtectionLevel.NORMAL)
        self.assertIs(ProtectionLevel.parse("signature|privileged"), ProtectionLevel.SIGNATURE)
        self.assertIs(ProtectionLevel.parse("1"), ProtectionLevel.DANGEROUS)
        self.assertIs(ProtectionLevel.parse("vendor-custom"), ProtectionLevel.OTHER)

    def test_parse_none_means_lookup_failed(self):
        self.assertIsNone(ProtectionLevel.parse(None))
        self.assertIs(ProtectionLevel.parse(ProtectionLevel.NORMAL), ProtectionLevel.NORMAL)


class FeatureVectorTests(unittest.TestCase):
    def test_zeros_has_fixed_length(self):
        vec = FeatureVector.zeros()
        self.assertEqual(len(vec), FEATURE_COUNT)
        self.assertEqual(list(vec), [0.0] * 8)

    def test_wrong_length_rejected(self):
        with self.assertRaises(ValueError):
            FeatureVector((1.0, 2.0))

    def test_as_array_shape(self):
        vec = FeatureVector(tuple(range(8)))
        arr = vec.as_array()
        self.assertEqual(arr.shape, (1, 8))
        self.assertEqual(arr.dtype, np.float32)
        self.assertEqual(vec.to_dict()[FEATURE_NAMES[7]], 7.0)


class ReportTests(unittest.TestCase):
    def test_score_threshold_is_strict(self):
        self.assertFalse(ScoreResult("a.b", 0.5).flagged)
        self.assertTrue(ScoreResult("a.b", 0.5001).flagged)

    def test_to_dict(self):
        report = Report(total=2, flagged=(ScoreResult("com.bad.app", 0.9),))
        self.assertEqual(
            report.to_dict(),
            {"total": 2, "flagged": [{"package_name": "com.bad.app", "score": 0.9}]},
        )


if __name__ == "__main__":
    unittest.main()
