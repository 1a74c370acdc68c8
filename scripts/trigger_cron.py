from __future__ import annotations

import argparse
import json
import os
import sys

import httpx


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run one scheduled-job pass through the cron trigger endpoint")
    parser.add_argument("--url", default="http://127.0.0.1:8080/api/v1/cron/execute", help="Trigger endpoint URL")
    parser.add_argument(
        "--token",
        default=os.environ.get("CONTENTCRON_CRON_SECRET_TOKEN"),
        help="Bearer token (defaults to CONTENTCRON_CRON_SECRET_TOKEN)",
    )
    parser.add_argument("--timeout", type=float, default=300.0, help="Seconds to wait for the pass to finish")
    parser.add_argument("--sync-first", action="store_true", help="Call the sync endpoint before the pass")
    return parser.parse_args()


def sync_url(execute_url: str) -> str:
    base, _, _ = execute_url.rpartition("/cron/execute")
    return f"{base}/jobs/sync"


def main() -> int:
    args = parse_args()
    headers = {"Authorization": f"Bearer {args.token}"} if args.token else {}

    with httpx.Client(timeout=args.timeout, headers=headers) as client:
        if args.sync_first:
            sync_response = client.post(sync_url(args.url))
            sync_response.raise_for_status()
            print(json.dumps({"sync": sync_response.json()}, indent=2))

        response = client.post(args.url)
        body = response.json() if response.headers.get("content-type", "").startswith("application/json") else response.text
        print(json.dumps({"status_code": response.status_code, "body": body}, indent=2, default=str))

    if response.status_code != 200:
        return 1
    return 1 if body.get("failed") else 0


if __name__ == "__main__":
    sys.exit(main())
