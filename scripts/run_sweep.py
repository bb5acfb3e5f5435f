from __future__ import annotations

import argparse
import json

from app.core.logging import configure_logging
from app.workers.jobs import refresh_owner_recommendations_job, sweep_all_owners
from app.workers.queue import enqueue_job


def main() -> None:
    parser = argparse.ArgumentParser(description="Recompute recommendations for one owner or all owners.")
    parser.add_argument("--owner-id", default=None)
    parser.add_argument("--enqueue", action="store_true", help="Hand the sweep to the RQ worker")
    args = parser.parse_args()

    configure_logging()
    if args.enqueue:
        if args.owner_id:
            job_id = enqueue_job("refresh_owner_recommendations_job", args.owner_id)
        else:
            job_id = enqueue_job("sweep_all_owners")
        print(json.dumps({"job_id": job_id, "status": "enqueued"}))
        return

    result = refresh_owner_recommendations_job(args.owner_id) if args.owner_id else sweep_all_owners()
    print(json.dumps(result, indent=2, sort_keys=True))


if __name__ == "__main__":
    main()
