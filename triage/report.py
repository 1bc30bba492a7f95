"""Report rendering: human text and tabular export.

``write_report`` picks the format from the file suffix (.csv or .json).
"""

import os

import pandas as pd

from .models import Report


def format_report(report: Report) -> str:
    if not report.flagged:
        return f"No adware detected among {report.total} scanned apps."
    lines = [f"Adware detected in {len(report.flagged)} apps:"]
    for r in report.flagged:
        lines.append(f"{r.package_name} (Score: {r.score:.2f})")
    return "\n".join(lines)


def report_to_frame(report: Report) -> pd.DataFrame:
    """One row per flagged app, in scan order."""
    rows = [
        {"rank": i, "package_name": r.package_name, "score": round(r.score, 4)}
        for i, r in enumerate(report.flagged, 1)
    ]
    df = pd.DataFrame(rows, columns=["rank", "package_name", "score"])
    df.attrs["total_scanned"] = report.total
    return df


def write_report(report: Report, path: str) -> str:
    df = report_to_frame(report)
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    if path.lower().endswith(".json"):
        df.to_json(path, orient="records", indent=2)
    elif path.lower().endswith(".csv"):
        df.to_csv(path, index=False)
    else:
        raise ValueError(f"Unsupported report format: {path} (use .csv or .json)")
    return path
