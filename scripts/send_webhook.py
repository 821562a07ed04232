"""Post a provider webhook to the payments service.

Useful for manual redelivery and conflicting-callback testing.
"""

import argparse
import json
from datetime import datetime, timezone

import httpx


def build_payload(reference: str, status: str, provider_transaction_id: str, timestamp: str | None) -> dict:
    return {
        "payment_reference": reference,
        "status": status,
        "provider_transaction_id": provider_transaction_id,
        "timestamp": timestamp or datetime.now(timezone.utc).isoformat(),
    }


def main() -> None:
    """Parse CLI args and post one webhook, optionally several times."""

    parser = argparse.ArgumentParser(description="Send a provider webhook to the payments service.")
    parser.add_argument("--url", default="http://localhost:8002")
    parser.add_argument("--reference", required=True)
    parser.add_argument("--status", required=True, choices=["INITIATED", "PENDING", "SUCCESS", "FAILED"])
    parser.add_argument("--provider-txn", required=True)
    parser.add_argument("--timestamp", default=None, help="ISO-8601 time; defaults to now")
    parser.add_argument("--repeat", type=int, default=1, help="Deliver the same callback N times")
    args = parser.parse_args()

    payload = build_payload(args.reference, args.status, args.provider_txn, args.timestamp)
    with httpx.Client(timeout=5.0) as client:
        for attempt in range(1, args.repeat + 1):
            resp = client.post(f"{args.url.rstrip('/')}/payments/webhook", json=payload)
            print(f"attempt={attempt} status_code={resp.status_code} body={json.dumps(resp.json())}")


if __name__ == "__main__":
    main()
