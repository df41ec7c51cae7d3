"""
Simulate an inbound signal on a registered ingestion endpoint.

Usage:
    python scripts/simulate_signal.py --path wh_... --secret whsec_...
    python scripts/simulate_signal.py --path wh_... --kind USGS
    python scripts/simulate_signal.py --path wh_... --unsigned
"""
import argparse
import asyncio
import json
import logging

import httpx

from aidwatch.services.endpoint_registry import sample_payload
from aidwatch.utils.webhook_signatures import compute_signature

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

BASE_URL = "http://localhost:8000"

FLOOD_REPORT = {
    "title": "Flash floods displace thousands in Jonglei",
    "description": (
        "Heavy rains have caused the Nile to overflow near Bor. Local authorities "
        "report more than 20,000 people displaced and several villages cut off."
    ),
    "location": "Jonglei, South Sudan",
    "url": "https://example.org/reports/jonglei-floods",
}


async def send_signal(path: str, payload: dict, secret: str | None):
    body = json.dumps(payload).encode("utf-8")
    headers = {"Content-Type": "application/json"}
    if secret:
        headers["X-Webhook-Signature"] = compute_signature(secret, body)

    async with httpx.AsyncClient(timeout=30) as client:
        resp = await client.post(
            f"{BASE_URL}/api/v1/webhooks/receive/{path}",
            content=body,
            headers=headers,
        )
        logger.info("Receipt response: %s %s", resp.status_code, resp.text)
        return resp


async def main():
    parser = argparse.ArgumentParser(description="Simulate an inbound humanitarian signal")
    parser.add_argument("--path", required=True, help="Endpoint path (wh_...)")
    parser.add_argument("--secret", default="", help="Endpoint secret (whsec_...)")
    parser.add_argument("--kind", default="", help="Send the sample payload for this source kind")
    parser.add_argument("--unsigned", action="store_true", help="Omit the signature header")
    args = parser.parse_args()

    payload = sample_payload(args.kind.upper()) if args.kind else FLOOD_REPORT
    await send_signal(args.path, payload, None if args.unsigned else args.secret)


if __name__ == "__main__":
    asyncio.run(main())
