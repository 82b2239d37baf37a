# -*- coding: utf-8 -*-
"""Tables for the operator, nothing here is meant to be machine parsed."""

from dateutil import parser
from tabulate import tabulate

from .inspector import summarize, to_utc

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%SZ"


def parse_timestamp(text):
    """Parses an operator supplied timestamp, naive values are taken as UTC."""
    return to_utc(parser.parse(text))


def format_timestamp(moment):
    if moment is None:
        return "-"
    if isinstance(moment, str):
        moment = parser.parse(moment)
    return to_utc(moment).strftime(TIMESTAMP_FORMAT)


def format_reconcile_report(report):
    counts = [
        ["Legacy removed", report.legacy_removed],
        ["Purged", report.purged],
        ["Updated", report.updated],
        ["Created", report.created],
        ["Failed", len(report.failed)],
        ["Verified", report.verified],
        ["Missing after verify", len(report.missing_after_verify)],
    ]
    lines = [tabulate(counts, headers=["Outcome", "Count"], tablefmt="simple")]
    if report.failed:
        failures = [[failure.name, failure.error_message] for failure in report.failed]
        lines.append("")
        lines.append(tabulate(failures, headers=["Secret", "Error"], tablefmt="simple"))
    if report.missing_after_verify:
        lines.append("")
        lines.append("Missing after verify: " + ", ".join(sorted(report.missing_after_verify)))
    return "\n".join(lines)


def format_plan(actions):
    if not actions:
        return "Nothing to do"
    rows = [[action.phase, action.name, action.action] for action in actions]
    return tabulate(rows, headers=["Phase", "Secret", "Action"], tablefmt="simple")


def format_inspection(entries, sample_values=False):
    headers = ["Secret", "Buckets", "Enabled", "Content type", "Updated"]
    if sample_values:
        headers += ["Shape", "Length", "Sample"]
    rows = []
    for entry in entries:
        row = [
            entry.name,
            ", ".join(bucket.value for bucket in entry.buckets),
            "yes" if entry.metadata.enabled else "no",
            entry.metadata.content_type or "-",
            format_timestamp(entry.metadata.updated),
        ]
        if sample_values:
            shape = entry.value_shape
            row += [shape.detected_type, shape.length, shape.edge_sample or "-"] \
                if shape else ["-", "-", "-"]
        rows.append(row)

    summary = [[bucket.value, count] for bucket, count in summarize(entries).items()]
    return "\n".join([
        tabulate(rows, headers=headers, tablefmt="simple"),
        "",
        tabulate(summary, headers=["Bucket", "Secrets"], tablefmt="simple"),
    ])
