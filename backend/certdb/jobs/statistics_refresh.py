"""Training type statistics refresh.

Rows calculated within CERTDB_STATISTICS_TTL_MINUTES are left alone unless
--force is given.
"""

from __future__ import annotations

import argparse
import logging
from typing import Optional

from certdb.apps.analytics import services as analytics_services
from certdb.clock import Clock, system_clock
from certdb.database import WriteSessionLocal


def run(
    *,
    clock: Optional[Clock] = None,
    force: bool = False,
    training_type_id: Optional[int] = None,
    session_factory=WriteSessionLocal,
) -> dict:
    clock = clock or system_clock
    db = session_factory()
    db.info["clock"] = clock
    try:
        summary = analytics_services.refresh_all_statistics(
            db,
            clock=clock,
            force=force,
            training_type_id=training_type_id,
        )
        db.commit()
        return summary
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Refresh cached training type compliance statistics.")
    parser.add_argument("--type-id", type=int, help="Restrict to a single training type id.")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Recalculate even when the cached row is still fresh.",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    result = run(force=args.force, training_type_id=args.type_id)
    print("Statistics refresh completed:", result)


if __name__ == "__main__":
    main()
