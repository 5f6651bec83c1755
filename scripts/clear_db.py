import logging
import sys

from sar_engine.case_store import clear_cases
from sar_engine.db import SessionLocal, init_db


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if "--yes" not in argv:
        print("This deletes every case, draft, rule output and audit entry. Re-run with --yes to proceed.")
        return 1

    logging.basicConfig(level=logging.INFO)
    init_db()
    session = SessionLocal()
    try:
        removed = clear_cases(session)
    finally:
        session.close()

    for table, count in removed.items():
        print(f"Deleted {count} rows from {table}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
