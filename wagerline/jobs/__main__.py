"""
wagerline.jobs.__main__ — Run one batch job once
=================================================

For cron or manual operations::

    python -m wagerline.jobs vip_weekly
    python -m wagerline.jobs rakeback_daily
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from dotenv import load_dotenv

from wagerline.database.engine import create_db_engine, init_db
from wagerline.jobs.scheduler import JOB_NAMES, run_job

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="python -m wagerline.jobs")
    parser.add_argument("job", choices=JOB_NAMES)
    args = parser.parse_args(argv)

    load_dotenv()
    engine = create_db_engine()
    init_db(engine)

    report = run_job(engine, args.job)
    print(json.dumps(report.to_dict(), indent=2))
    return 1 if report.failed else 0


if __name__ == "__main__":
    sys.exit(main())
