#!/usr/bin/env python3
"""
API Smoke Check

Exercises the control API of a running worker end to end.
Requires the API server to be running.

Usage:
    # First start the worker with its API:
    python -m geotrack --serve

    # Then run the checks:
    python scripts/smoke_api.py              # Run all checks
    python scripts/smoke_api.py --url http://localhost:8000  # Custom URL
"""

import argparse
import sys

from geotrack.client import WorkerClient
from geotrack.core import ServiceUnavailable


def print_header(title: str):
    """Print a formatted header"""
    print("\n" + "=" * 60)
    print(f"  {title}")
    print("=" * 60)


def print_result(name: str, success: bool, message: str = ""):
    """Print check result"""
    status = "[PASS]" if success else "[FAIL]"
    color = "\033[92m" if success else "\033[91m"
    reset = "\033[0m"
    print(f"  {color}{status}{reset} {name}")
    if message:
        print(f"         {message}")


class APIChecker:
    def __init__(self, base_url: str):
        self.client = WorkerClient(base_url)
        self.original_settings = None

    def check_health(self) -> bool:
        ok = self.client.ping()
        print_result("Health check", ok)
        return ok

    def check_status(self) -> bool:
        status = self.client.status()
        fix = status['last_fix']
        print_result("Worker status", True,
                     f"State: {status['state']}, foreground: {status['foreground']}, "
                     f"last fix: {(fix['latitude'], fix['longitude']) if fix else None}")
        print_result("Delivery status", True,
                     f"{status['delivery_status']['state']} {status['upload_stats']}")
        return status['state'] in ('running', 'degraded', 'initializing')

    def check_settings(self) -> bool:
        self.original_settings = self.client.get_settings()
        success = True

        updated = self.client.update_settings(user_name="smoke-check")
        ok = updated['user_name'] == "smoke-check"
        print_result("Update user name", ok)
        success &= ok

        ok = self.client.set_interval("wake", 1000) is False
        print_result("Reject out-of-range wake interval", ok)
        success &= ok

        ok = self.client.set_interval("foreground", 10000)
        print_result("Set foreground interval", ok)
        success &= ok
        return success

    def check_controls(self) -> bool:
        changed = self.client.set_foreground(False)
        print_result("Switch to background", True, f"changed={changed}")
        self.client.set_foreground(True)

        queued = self.client.upload_latest()
        print_result("Manual upload", queued)
        return queued

    def restore(self):
        """Put back the settings changed by the checks"""
        if self.original_settings:
            self.client.update_settings(user_name=self.original_settings['user_name'])
            self.client.set_interval("foreground", self.original_settings['foreground_interval_ms'])
        self.client.close()


def main():
    parser = argparse.ArgumentParser(description='Smoke check the GeoTrack Relay API')
    parser.add_argument('--url', '-u', default='http://localhost:8000',
                        help='API base URL')
    args = parser.parse_args()

    print("\n" + "=" * 60)
    print("  GeoTrack Relay - API Smoke Check")
    print("=" * 60)
    print(f"\n  API URL: {args.url}")

    checker = APIChecker(args.url)
    results = []
    try:
        print_header("Basic Endpoints")
        results.append(("Health", checker.check_health()))
        results.append(("Status", checker.check_status()))

        print_header("Settings")
        results.append(("Settings", checker.check_settings()))

        print_header("Controls")
        results.append(("Controls", checker.check_controls()))
    except ServiceUnavailable as e:
        print_result("Connect", False, str(e))
        return 1
    finally:
        checker.restore()

    print_header("Summary")
    passed = sum(1 for _, r in results if r)
    print(f"\n  Passed: {passed}/{len(results)}")
    return 0 if passed == len(results) else 1


if __name__ == '__main__':
    sys.exit(main())
