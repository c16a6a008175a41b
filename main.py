import argparse
import datetime as dt
import json
import logging

from galleryaccess.config import load_settings
from galleryaccess.ghl_client import fetch_appointments
from galleryaccess.handler import handle
from galleryaccess.lookup import today_bounds


def _setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


def _print_raw_appointments() -> int:
    # Diagnostics: what the scheduling service returns for today, unfiltered.
    settings = load_settings()
    start_ms, end_ms = today_bounds(dt.datetime.now(dt.timezone.utc), settings.utc_offset)
    data = fetch_appointments(
        api_base_url=settings.api_base_url,
        api_key=settings.api_key,
        location_id=settings.location_id,
        start_ms=start_ms,
        end_ms=end_ms,
        timeout_seconds=settings.http_timeout_seconds,
    )
    print(json.dumps(data, indent=2, ensure_ascii=False))
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Gallery access: validate an access code against today's appointments")
    parser.add_argument("code", nargs="?", default="", help="4-character access code (last 4 of the contact id)")
    parser.add_argument("--raw", action="store_true", help="Print today's raw appointments and exit")
    args = parser.parse_args()

    _setup_logging()

    if args.raw:
        return _print_raw_appointments()

    print("─" * 50)
    print(f'Testing code:  "{args.code}"')
    print(f"Current time:  {dt.datetime.now(dt.timezone.utc).isoformat()}")
    print("─" * 50)

    event = {
        "httpMethod": "POST",
        "body": json.dumps({"contactId": args.code}),
    }
    response = handle(event)
    body = json.loads(response["body"])

    print(f"HTTP Status: {response['statusCode']}")
    print(f"Response:    {json.dumps(body, indent=2, ensure_ascii=False)}")

    if body.get("valid"):
        print("\n✓ ACCESS GRANTED — appointment is active.")
        return 0

    print(f"\n✗ ACCESS DENIED — {body.get('error')}")
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
