"""
GeoTrack Relay command line

Usage:
    python -m geotrack                            # Run the worker headless
    python -m geotrack --provider gpsd            # Use a local gpsd daemon
    python -m geotrack --route ring_road          # Mock provider route
    python -m geotrack --serve --port 8000        # Run with the control API
    python -m geotrack --server-url http://localhost:9000/locations --background
"""

import argparse
import signal
import sys
import threading

import uvicorn
from loguru import logger

from .api import create_app
from .bootstrap import build_worker
from .core.config import settings
from .core.log import setup_logging
from .providers import ROUTES, get_provider


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="geotrack", description="Background location upload agent")
    parser.add_argument('--provider', choices=['mock', 'gpsd'], default=settings.provider.mode,
                        help='Positioning provider')
    parser.add_argument('--route', choices=sorted(ROUTES), default=None,
                        help='Route followed by the mock provider')
    parser.add_argument('--server-url', default=None, help='Collector endpoint (persisted)')
    parser.add_argument('--user', default=None, help='User name sent with each fix (persisted)')
    parser.add_argument('--background', action='store_true', help='Start in background mode')
    parser.add_argument('--memory', action='store_true', help='Keep settings in memory only')
    parser.add_argument('--serve', action='store_true', help='Run the control API')
    parser.add_argument('--host', default=settings.api.host, help='API host')
    parser.add_argument('--port', type=int, default=settings.api.port, help='API port')
    parser.add_argument('--log-level', default=None, help='Log level (DEBUG, INFO, ...)')
    return parser.parse_args(argv)


def run_headless(worker) -> int:
    """Run until interrupted, logging fixes and delivery results"""
    stop_event = threading.Event()

    def handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, stopping")
        stop_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    worker.observe_fix(lambda fix: logger.info(fix.describe()))
    worker.observe_delivery_status(lambda status: logger.info(f"Delivery: {status.state.value} "
                                                              f"{status.code or status.message or ''}".rstrip()))
    worker.observe_errors(lambda message: logger.warning(message))

    with worker:
        stop_event.wait()
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(level=args.log_level)

    provider = get_provider(args.provider, route=args.route)
    worker = build_worker(provider=provider, persistent=not args.memory)

    worker.config_store.load()
    if args.server_url is not None and not worker.set_server_url(args.server_url):
        logger.error(f"Invalid server URL: {args.server_url}")
        return 2
    if args.user is not None and not worker.set_user_name(args.user):
        logger.error(f"Invalid user name: {args.user}")
        return 2
    if args.background:
        worker.set_foreground_mode(False)

    if not worker.config_store.snapshot().server_url:
        logger.warning("No server URL configured, fixes will not be uploaded")

    if args.serve:
        app = create_app(worker)
        try:
            uvicorn.run(app, host=args.host, port=args.port, log_level=(args.log_level or "info").lower())
        finally:
            worker.close()
        return 0

    return run_headless(worker)


if __name__ == '__main__':
    sys.exit(main())
