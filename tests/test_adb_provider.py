import subprocess
import unittest

from triage.adb_provider import (
    AdbMetadataProvider,
    count_resolver_components,
    extract_device_ids,
    is_valid_package_name,
    parse_package_list,
    parse_permission_levels,
    parse_requested_permissions,
)
from triage.errors import EnumerationError, MetadataUnavailableError
from triage.feature_extractor import extract
from triage.models import ProtectionLevel


DUMPSYS = """\
Activity Resolver Table:
  Non-Data Actions:
      android.intent.action.MAIN:
        5f1a2b3 com.shady.flashlight/.MainActivity filter 8c9d0e1
      com.shady.flashlight.OPEN:
        1a2b3c4 com.shady.flashlight/.AdActivity filter 5d6e7f8
        9a8b7c6 com.shady.flashlight/.MainActivity filter 1f2e3d4

Service Resolver Table:
  Non-Data Actions:
      com.google.firebase.MESSAGING_EVENT:
        7a6b5c4 com.shady.flashlight/com.push.PushService filter 3c2b1a0

Packages:
  Package [com.shady.flashlight] (4e5f6a7):
    userId=10187
    codePath=/data/app/~~abc==/com.shady.flashlight-xyz==
    pkgFlags=[ HAS_CODE ALLOW_CLEAR_USER_DATA ALLOW_BACKUP ]
    requested permissions:
      android.permission.INTERNET
      android.permission.SEND_SMS
      android.permission.READ_CONTACTS: restricted=true
      com.shady.permission.C2D
    install permissions:
      android.permission.INTERNET: granted=true
"""

PERMISSIONS = """\
All Permissions:

+ permission:android.permission.INTERNET
  package:android
  label:have full network access
  protectionLevel:normal
+ permission:android.permission.SEND_SMS
  package:android
  label:send and view SMS messages
  protectionLevel:dangerous
+ permission:android.permission.READ_CONTACTS
  package:android
  label:read your contacts
  protectionLevel:dangerous
"""


class FakeDevice:
    def __init__(self, fail_on=None):
        self.calls = []
        self.fail_on = fail_on

    def __call__(self, args):
        self.calls.append(list(args))
        if self.fail_on and self.fail_on in args:
            raise subprocess.CalledProcessError(1, ["adb", *args])
        if args[:4] == ["shell", "pm", "list", "packages"]:
            if "-s" in args:
                return "package:com.android.settings\n"
            return "package:com.android.settings\npackage:com.shady.flashlight\n"
        if args[:4] == ["shell", "pm", "list", "permissions"]:
            return PERMISSIONS
        if args[:3] == ["shell", "dumpsys", "package"]:
            return DUMPSYS if args[3] == "com.shady.flashlight" else "Unable to find package\n"
        if args[:3] == ["shell", "pm", "path"]:
            return "package:/data/app/~~abc==/com.shady.flashlight-xyz==/base.apk\n"
        if args[:2] == ["shell", "stat"]:
            return "2097152\n"
        raise AssertionError(f"unexpected adb call {args}")


class ParserTests(unittest.TestCase):
    def test_package_names(self):
        self.assertTrue(is_valid_package_name("com.shady.flashlight"))
        self.assertFalse(is_valid_package_name("rm -rf /"))
        self.assertFalse(is_valid_package_name("com"))

    def test_device_ids(self):
        out = "List of devices attached\nemulator-5554\tdevice\nR58M\tunauthorized\n"
        self.assertEqual(extract_device_ids(out), ["emulator-5554"])

    def test_package_list(self):
        self.assertEqual(parse_package_list("package:a.b\n\npackage:c.d\npackage:a.b\n"), ["a.b", "c.d"])

    def test_permission_levels(self):
        levels = parse_permission_levels(PERMISSIONS)
        self.assertIs(levels["android.permission.INTERNET"], ProtectionLevel.NORMAL)
        self.assertIs(levels["android.permission.SEND_SMS"], ProtectionLevel.DANGEROUS)

    def test_requested_permissions(self):
        perms = parse_requested_permissions(DUMPSYS)
        self.assertEqual(
            perms,
            {
                "android.permission.INTERNET",
                "android.permission.SEND_SMS",
                "android.permission.READ_CONTACTS",
                "com.shady.permission.C2D",
            },
        )
        self.assertIsNone(parse_requested_permissions("Packages:\n"))

    def test_resolver_counts(self):
        pkg = "com.shady.flashlight"
        self.assertEqual(count_resolver_components(DUMPSYS, pkg, "Activity Resolver Table:"), 2)
        self.assertEqual(count_resolver_components(DUMPSYS, pkg, "Service Resolver Table:"), 1)
        self.assertIsNone(count_resolver_components("Packages:\n", pkg, "Service Resolver Table:"))


class AdbProviderTests(unittest.TestCase):
    def test_enumeration_marks_system_apps(self):
        provider = AdbMetadataProvider(runner=FakeDevice())
        apps = provider.list_applications()
        self.assertEqual([(a.package_name, a.is_system_app) for a in apps], [
            ("com.android.settings", True),
            ("com.shady.flashlight", False),
        ])

    def test_enumeration_failure(self):
        provider = AdbMetadataProvider(runner=FakeDevice(fail_on="packages"))
        with self.assertRaises(EnumerationError):
            provider.list_applications()

    def test_metadata_to_features(self):
        device = FakeDevice()
        provider = AdbMetadataProvider(runner=device)
        meta = provider.get_metadata("com.shady.flashlight")
        self.assertEqual(meta.installed_size, 2097152)
        self.assertFalse(meta.is_system_app)
        # Custom permission has no protection level and is not dangerous
        self.assertEqual(list(extract(meta)), [4.0, 2.0, 1.0, 1.0, 2.0, 1.0, 0.0, 2.0])

    def test_permission_table_fetched_once(self):
        device = FakeDevice()
        provider = AdbMetadataProvider(runner=device)
        provider.get_metadata("com.shady.flashlight")
        provider.get_metadata("com.shady.flashlight")
        perm_calls = [c for c in device.calls if c[:4] == ["shell", "pm", "list", "permissions"]]
        self.assertEqual(len(perm_calls), 1)

    def test_unknown_package(self):
        provider = AdbMetadataProvider(runner=FakeDevice())
        with self.assertRaises(MetadataUnavailableError):
            provider.get_metadata("com.not.installed")

    def test_size_unavailable_defaults(self):
        provider = AdbMetadataProvider(runner=FakeDevice(fail_on="stat"))
        meta = provider.get_metadata("com.shady.flashlight")
        self.assertIsNone(meta.installed_size)
        self.assertEqual(extract(meta)[7], 0.0)


if __name__ == "__main__":
    unittest.main()
