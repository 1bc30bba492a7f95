"""Command-line scan.

Usage:
    python -m triage.cli --catalog apps.json
    python -m triage.cli --apk-dir data --model models/adware_model.joblib --workers 4
    python -m triage.cli --adb emulator-5554 --self com.example.adwaredetector --output artifacts/reports/scan.csv

Exit codes: 0 scan completed, 2 classifier failed to load, 3 apps could
not be enumerated, 130 cancelled.
"""

import argparse
import logging
import sys
import threading
import time
from typing import List, Optional

from .classifier import initialize
from .config import Settings
from .errors import ClassifierInitError, EnumerationError, ScanCancelledError
from .metadata import MetadataProvider, StaticMetadataProvider
from .report import format_report, write_report
from .scanner import ScanOrchestrator
from .utils import setup_logging


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="triage", description="Static adware risk scan")
    src = ap.add_mutually_exclusive_group(required=True)
    src.add_argument("--catalog", help="JSON catalog of application metadata")
    src.add_argument("--apk-dir", help="Folder with APK files")
    src.add_argument("--adb", metavar="SERIAL", help="Device serial reachable over adb ('' for the only device)")
    ap.add_argument("--config", help="Optional YAML settings file")
    ap.add_argument("--model", help="Model artifact (joblib)")
    ap.add_argument("--self", dest="self_package", help="Package name of the scanner itself, excluded from the scan")
    ap.add_argument("--workers", type=int)
    ap.add_argument("--timeout", type=float, help="Per-app timeout in seconds (0 disables)")
    ap.add_argument("--output", help="Also write flagged apps to a .csv or .json file")
    ap.add_argument("--log-level")
    return ap


def build_provider(args: argparse.Namespace, settings: Settings) -> MetadataProvider:
    if args.catalog:
        return StaticMetadataProvider.from_json(args.catalog)
    if args.apk_dir:
        from .apk_provider import ApkFolderMetadataProvider

        return ApkFolderMetadataProvider(args.apk_dir)
    from .adb_provider import AdbMetadataProvider

    return AdbMetadataProvider(serial=args.adb or None, timeout=settings.adb_timeout)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env(args.config)
    setup_logging(args.log_level or settings.log_level)

    model_path = args.model or settings.model_path
    workers = args.workers if args.workers is not None else settings.workers
    timeout = settings.app_timeout_or_none
    if args.timeout is not None:
        timeout = args.timeout if args.timeout > 0 else None
    self_package = args.self_package if args.self_package is not None else settings.self_package

    # The model must load before anything is scanned
    try:
        classifier = initialize(model_path)
    except ClassifierInitError as e:
        logger.error(f"Failed to initialize model: {e}")
        print(f"Model failed to load.\n{e}", file=sys.stderr)
        return 2

    cancel_event = threading.Event()
    t0 = time.time()
    with classifier:
        try:
            provider = build_provider(args, settings)
            applications = provider.list_applications()
        except (EnumerationError, OSError, ValueError) as e:
            print(f"Could not enumerate applications: {e}", file=sys.stderr)
            return 3

        orchestrator = ScanOrchestrator(classifier, provider, workers=workers, app_timeout=timeout)
        try:
            report = orchestrator.scan(applications, exclude_self=self_package, cancel_event=cancel_event)
        except KeyboardInterrupt:
            cancel_event.set()
            print("Scan cancelled.", file=sys.stderr)
            return 130
        except ScanCancelledError:
            print("Scan cancelled.", file=sys.stderr)
            return 130

    print(format_report(report))
    if args.output:
        write_report(report, args.output)
        print(f"Wrote {args.output} in {time.time() - t0:.1f}s for {report.total} apps")
    return 0


if __name__ == "__main__":
    sys.exit(main())
