"""
One-shot relay node report: health, version and peer protocol census.
Usage:
    python scripts/relay_status.py [--url http://127.0.0.1:8645] [--json]
"""

import argparse
import asyncio
import json

from blindrelay.common.config import load_settings
from blindrelay.monitor import NodeMonitor
from blindrelay.net.relay import RelayClient


async def report(url: str, timeout: float) -> dict:
    async with RelayClient(url, timeout=timeout) as relay:
        monitor = NodeMonitor(relay)
        await monitor.refresh()
        return {
            "url": url,
            "active": monitor.active,
            "version": monitor.version,
            "protocols": [p.model_dump() for p in monitor.protocols],
        }


def main():
    settings = load_settings()

    parser = argparse.ArgumentParser()
    parser.add_argument("--url", default=settings.relay_url, help="Relay node base URL")
    parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    args = parser.parse_args()

    result = asyncio.run(report(args.url, settings.http_timeout))

    if args.json:
        print(json.dumps(result, indent=2))
        return

    print(f"[NODE] {result['url']}: {'active' if result['active'] else 'inactive'}")
    print(f"[NODE] Version: {result['version']}")
    for p in result["protocols"]:
        print(f"[PEERS] {p['name']}: {p['value']}")


if __name__ == "__main__":
    main()
