#!/usr/bin/env python3
"""
Fleetwatch - Main Entry Point

Log analytics service for a fleet of field devices. Summarizes uploaded
logs, detects anomalies and keeps a health score per device.

Usage:
    fleetwatch                             # installed via pip
    python main.py [--host HOST] [--port PORT] [--debug]

Example:
    fleetwatch --port 8080
    python main.py --host 0.0.0.0 --port 8080 --no-scheduler
"""

import argparse
import os
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

from fleetwatch import create_app
from fleetwatch.scheduler import FleetScheduler


def parse_args():
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description='Fleetwatch - fleet log analytics service'
    )
    parser.add_argument(
        '--host',
        default='127.0.0.1',
        help='Host to bind to (default: 127.0.0.1)'
    )
    parser.add_argument(
        '--port',
        type=int,
        default=8080,
        help='Port to listen on (default: 8080)'
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Run in debug mode'
    )
    parser.add_argument(
        '--config',
        default='development',
        choices=['development', 'production'],
        help='Configuration to use (default: development)'
    )
    parser.add_argument(
        '--no-scheduler',
        action='store_true',
        help='Do not run the periodic silence, volume and health jobs'
    )
    return parser.parse_args()


def main():
    """Main entry point"""
    args = parse_args()

    # Create the Flask application
    app = create_app(args.config)

    from config import APP_VERSION

    debug = args.debug or args.config == 'development'
    url = f"http://{args.host}:{args.port}"

    # With the reloader on, only the child process should run jobs
    scheduler = None
    in_reloader_parent = debug and not os.environ.get('WERKZEUG_RUN_MAIN')
    if app.config['SCHEDULER_ENABLED'] and not args.no_scheduler and not in_reloader_parent:
        scheduler = FleetScheduler(app)
        scheduler.start()

    # Print startup banner
    print(f"""
    ============================================
    Fleetwatch v{APP_VERSION}
    ============================================
    API:        {url}/api
    Scheduler:  {"ENABLED" if scheduler else "DISABLED"}
    ============================================
    """)

    # Run the application
    try:
        app.run(
            host=args.host,
            port=args.port,
            debug=debug
        )
    finally:
        if scheduler is not None:
            scheduler.shutdown()


if __name__ == '__main__':
    main()
