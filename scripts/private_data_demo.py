"""Anonymous signup with private data (demo harness).

Creates an anonymous user and passes a private payload alongside the
public profile.  The backend forwards the private payload to its webhooks
without storing it; the SDK never stores or logs it either.

Usage
-----

Run the script directly.  Configuration is read from the environment:

``PAANJ_API_KEY``
    Your public API key (required).

``PAANJ_API_URL``
    REST base URL, e.g. ``https://api.yourapp.com``.

``PAANJ_WS_URL``
    Websocket base URL, e.g. ``wss://ws.yourapp.com``.

``LOG_LEVEL``
    Logging level for the SDK, ``INFO`` by default.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys

try:
    from paanj import ClientOptions, PaanjClient, PaanjError  # type: ignore
except Exception as exc:
    raise SystemExit(f"Failed to import the paanj package: {exc}")


async def main() -> int:
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))
    try:
        options = ClientOptions.from_env()
    except PaanjError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1

    profile = {"name": "Test User", "metadata": {"theme": "dark", "language": "en"}}
    private = {
        "ipAddress": "192.168.1.1",
        "userAgent": "Mozilla/5.0",
        "referrer": "https://example.com",
        "internalNotes": "This is sensitive data that should only go to webhook",
    }

    async with PaanjClient(options) as client:
        print("Creating anonymous user with private data...")
        try:
            credential = await client.authenticate_anonymous(profile, private)
        except PaanjError as exc:
            print(f"Test failed: {exc}", file=sys.stderr)
            return 1
        print("User created successfully")
        print(f"User ID: {credential.user_id}")
        print(f"Access Token: {credential.access_token[:20]}...")
        print("Private data was sent to the backend and forwarded to webhooks; it is not stored.")
        print(f"Private data sent: {json.dumps(private, indent=2)}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
