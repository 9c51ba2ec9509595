#!/usr/bin/env python3
"""
Run script for the Fulfillment Allocation & Tracking Engine
"""

from fulfil import create_app
from fulfil.build import build_database
from fulfil.logger import get_logger
import sys
import os
import argparse
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Run 'python generate_env.py' to create a .env file with a secure SECRET_KEY.

logger = get_logger("fulfil.run")


def parse_arguments():
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(description='Fulfillment Allocation & Tracking Engine')
    parser.add_argument('--build-only', action='store_true',
                        help='Create the database tables and exit without starting the web server')
    parser.add_argument('--enable-debug-data', action='store_true', default=True,
                        help='Seed the sample catalog and purchase orders (default: enabled)')
    parser.add_argument('--no-debug-data', action='store_false', dest='enable_debug_data',
                        help='Disable debug data insertion')
    return parser.parse_args()


if __name__ == '__main__':
    args = parse_arguments()
    app = create_app()

    logger.debug("Starting Fulfillment Engine...")
    build_database(enable_debug_data=args.enable_debug_data and not args.build_only, app=app)

    if args.build_only:
        logger.debug("Build completed. Exiting without starting web server.")
        sys.exit(0)

    debug_mode = os.environ.get('FLASK_DEBUG', 'False').lower() in ('true', '1', 'yes', 'on')
    use_reloader = os.environ.get('USE_RELOADER', 'False').lower() in ('true', '1', 'yes', 'on')
    host = os.environ.get('FLASK_HOST', '127.0.0.1')
    port = int(os.environ.get('FLASK_PORT', '5000'))

    if debug_mode:
        logger.warning("DEBUG MODE ENABLED - Do not use in production!")

    logger.info(f"Starting server on {host}:{port} (debug={debug_mode}, reloader={use_reloader})")
    app.run(debug=debug_mode, host=host, port=port, use_reloader=use_reloader)
