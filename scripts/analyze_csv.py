"""
Analyze CSV Script

Runs the whole import wizard over one file without the UI.

Every duplicate group gets the same action, every Airtable duplicate the
same resolution. Nothing is written to Airtable.

Usage:
    # Group on app name + website, keep the first row of each group
    python scripts/analyze_csv.py apps.csv \
        --scope-id recABC123 \
        --match-field appName --match-field companyWebsite \
        --bulk-action keepFirst

    # Replace existing records, don't call the webhook, save the payload
    python scripts/analyze_csv.py apps.xlsx --scope-id recABC123 \
        --remote-action replace --no-notify --output payload.json
"""

import argparse
import json
import os
import sys

# Allow imports from the project root when running as a script
_root_dir = os.path.join(os.path.dirname(__file__), "..")
sys.path.insert(0, _root_dir)

from dotenv import load_dotenv
load_dotenv(os.path.join(_root_dir, ".env"))

from models.app_record import AppField
from models.imports import CsvDuplicateAction, ImportStep, RemoteAction
from services.import_session import ImportSession
from exceptions import AppError


def run(args: argparse.Namespace) -> int:
    separator = "=" * 60

    with open(args.file, "rb") as f:
        content = f.read()

    session = ImportSession.from_upload(
        content,
        os.path.basename(args.file),
        scope_id=args.scope_id
    )

    print(separator)
    print(f"  IMPORT ANALYSIS -- {session.filename}")
    print(separator)
    print(f"Rows:    {len(session.raw_rows)}")
    print(f"Columns: {len(session.headers)}")
    print()

    print("Column mapping:")
    for slot, header in session.mapping.items():
        print(f"  {header + ':':<30} {slot}")
    print()

    # Mapping -> CSV duplicates
    session.set_match_fields([AppField(value) for value in args.match_field])
    session.advance()
    session.apply_bulk_action(CsvDuplicateAction(args.bulk_action))

    summary = session.csv_duplicate_summary()
    print(f"CSV duplicates ({', '.join(field.value for field in session.match_fields) or 'none'}):")
    print(f"  Groups:  {summary.total_groups}")
    print(f"  Kept:    {summary.records_kept}")
    print(f"  Skipped: {summary.records_skipped}")
    print()

    # CSV duplicates -> validation
    session.advance()
    if session.invalid_rows:
        print(f"Validation FAILED for {len(session.invalid_rows)} row(s):")
        for row in session.invalid_rows:
            messages = "; ".join(
                f"{field}: {', '.join(errors)}" for field, errors in row.errors.items()
            )
            print(f"  Row {row.row_number}: {messages}")
        return 1

    # Validation -> Airtable duplicates (or straight to import)
    session.advance()
    check = session.remote_check
    if check.skipped:
        print("Airtable check skipped (no scope ID); all rows are new.")
    else:
        print(f"Airtable duplicates: {len(check.record_ids)} record(s) for {len(check.matches)} row(s)")
        for error in check.lookup_errors:
            print(f"  lookup error: {error}")
    print()

    remote_action = RemoteAction(args.remote_action)
    for record_id in list(session.remote_resolutions):
        session.set_remote_action(record_id, remote_action)

    if session.step == ImportStep.DUPLICATES:
        session.advance()

    result = session.finalize(notify=not args.no_notify)
    payload = result.payload

    print("Result:")
    print(f"  {payload.import_outcome.message}")
    print(f"  Total:     {payload.summary.total_processed}")
    print(f"  New:       {payload.summary.new}")
    print(f"  Updated:   {payload.summary.updated}")
    print(f"  Unchanged: {payload.summary.unchanged}")
    if args.no_notify:
        print("  Webhook:   skipped")
    elif result.notification_sent:
        print("  Webhook:   sent")
    else:
        print(f"  Webhook:   FAILED ({result.notification_error})")

    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            json.dump(payload.model_dump(mode="json", by_alias=True), f, indent=2)
        print(f"  Payload:   {args.output}")

    print(separator)
    return 0 if payload.import_outcome.success else 1


def main():
    parser = argparse.ArgumentParser(
        description="Analyze an app CSV against Airtable without the wizard UI"
    )
    parser.add_argument("file", help="CSV or Excel file to analyze")
    parser.add_argument(
        "--scope-id",
        default=None,
        help="Campaign ID narrowing the Airtable duplicate search (omit to skip it)"
    )
    parser.add_argument(
        "--match-field",
        action="append",
        choices=[field.value for field in AppField],
        default=None,
        help="Field compared when grouping CSV duplicates (repeatable, default appName)"
    )
    parser.add_argument(
        "--bulk-action",
        choices=[action.value for action in CsvDuplicateAction],
        default=CsvDuplicateAction.KEEP_FIRST.value,
        help="Resolution applied to every CSV duplicate group"
    )
    parser.add_argument(
        "--remote-action",
        choices=[action.value for action in RemoteAction],
        default=RemoteAction.KEEP.value,
        help="Resolution applied to every Airtable duplicate"
    )
    parser.add_argument(
        "--no-notify",
        action="store_true",
        help="Build the payload without sending it to the webhook"
    )
    parser.add_argument(
        "--output",
        default=None,
        help="Write the final payload as JSON to this path"
    )

    args = parser.parse_args()
    if not args.match_field:
        args.match_field = [AppField.APP_NAME.value]

    try:
        sys.exit(run(args))
    except AppError as e:
        print(f"ERROR: {e.message}")
        if e.details:
            print(f"  {json.dumps(e.details, default=str)}")
        sys.exit(1)
    except FileNotFoundError:
        print(f"ERROR: File not found: {args.file}")
        sys.exit(1)


if __name__ == "__main__":
    main()
