"""Training record status sweep.

Safe to run from cron: recomputation is idempotent, so a second run on the
same day reports no changes. `--notify` sends the expiry reminders that have
fallen due and `--report` appends a compliance report to the summary.
"""

from __future__ import annotations

import argparse
import logging
from typing import Optional

from certdb.apps.analytics import services as analytics_services
from certdb.apps.certificates import services as certificate_services
from certdb.apps.notifications import service as reminder_service
from certdb.apps.notifications.providers import ReminderProvider
from certdb.apps.training import services as training_services
from certdb.clock import Clock, system_clock
from certdb.database import WriteSessionLocal


def run(
    *,
    clock: Optional[Clock] = None,
    training_type_id: Optional[int] = None,
    dry_run: bool = False,
    create_missing: bool = False,
    notify: bool = False,
    report: bool = False,
    reminder_provider: Optional[ReminderProvider] = None,
    session_factory=WriteSessionLocal,
) -> dict:
    clock = clock or system_clock
    db = session_factory()
    db.info["clock"] = clock
    try:
        summary = training_services.update_expired_records(
            db,
            clock=clock,
            training_type_id=training_type_id,
            dry_run=dry_run,
        )
        summary["employee_certificates"] = certificate_services.update_employee_certificate_statuses(
            db,
            clock=clock,
            dry_run=dry_run,
        )
        if not dry_run:
            summary["lifecycle_stages"] = certificate_services.refresh_lifecycles(db, clock=clock)
            if create_missing:
                results = certificate_services.auto_create_missing_certificates(
                    db, clock=clock, actor="status_sweep"
                )
                summary["certificates_created"] = sum(1 for r in results if r["status"] == "created")
        if notify:
            summary["reminders"] = reminder_service.send_expiry_reminders(
                db,
                provider=reminder_provider,
                clock=clock,
                dry_run=dry_run,
                actor="status_sweep",
            )
        if report:
            summary["report"] = analytics_services.compliance_report(db, clock=clock).model_dump(mode="json")

        if dry_run:
            db.rollback()
        else:
            db.commit()
        return summary
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Recompute training record and certificate status from expiry dates."
    )
    parser.add_argument("--type-id", type=int, help="Restrict to a single training type id.")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would change without writing.",
    )
    parser.add_argument(
        "--create-missing",
        action="store_true",
        help="Also issue certificates for records that require one and have none.",
    )
    parser.add_argument(
        "--notify",
        action="store_true",
        help="Send expiry reminders that have fallen due (provider from CERTDB_REMINDER_PROVIDER).",
    )
    parser.add_argument(
        "--report",
        action="store_true",
        help="Include a compliance report in the summary.",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    result = run(
        training_type_id=args.type_id,
        dry_run=args.dry_run,
        create_missing=args.create_missing,
        notify=args.notify,
        report=args.report,
    )
    print("Status sweep completed:", result)


if __name__ == "__main__":
    main()
