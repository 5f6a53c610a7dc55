#!/usr/bin/env python3
"""
Entry point to run the leaveadmin backend server.

Loads ``.env``, applies command line overrides on top of the configured
settings and starts uvicorn with the application factory.
"""

import argparse
import logging
import sys

import uvicorn
from dotenv import load_dotenv

from leaveadmin.core.config import get_settings
from leaveadmin.core.logging_config import configure_logging, setup_early_logging
from leaveadmin.services.credential_cipher import mask_connection_string

# Load environment variables from .env if present
load_dotenv()


def create_argument_parser():
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(description="Run the leaveadmin backend server.")

    parser.add_argument(
        "--host",
        type=str,
        help="Host to bind (overrides configuration)",
    )
    parser.add_argument(
        "--port",
        type=int,
        help="Port to bind (overrides configuration)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload (overrides configuration)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        help="Number of worker processes (overrides configuration)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["critical", "error", "warning", "info", "debug"],
        help="Log level (overrides configuration)",
    )
    parser.add_argument(
        "--config",
        action="store_true",
        help="Show current configuration and exit",
    )

    return parser


def override_settings_from_args(settings, args):
    """Override settings with command line arguments if provided."""
    server_config = settings.server.model_copy()

    if args.host is not None:
        server_config.host = args.host
    if args.port is not None:
        server_config.port = args.port
    if args.reload:
        server_config.reload = True
    if args.workers is not None:
        server_config.workers = args.workers

    settings.server = server_config

    if args.log_level is not None:
        logging_config = settings.logging.model_copy()
        logging_config.level = args.log_level.upper()
        settings.logging = logging_config

    return settings


def show_configuration(settings):
    """Display current configuration."""
    print("Current leaveadmin Configuration:")
    print("=" * 50)
    print(f"App Name: {settings.app_name}")
    print(f"App Version: {settings.app_version}")
    print()

    print("Server Configuration:")
    print(f"  Host: {settings.server.host}")
    print(f"  Port: {settings.server.port}")
    print(f"  Workers: {settings.server.workers}")
    print(f"  Reload: {settings.server.reload}")
    print()

    print("Control Store:")
    print(f"  URL: {mask_connection_string(settings.database.url)}")
    print()

    print("Switchover Configuration:")
    print(f"  Backup Directory: {settings.switchover.get_backup_dir()}")
    print(f"  Default Batch Size: {settings.switchover.default_batch_size}")
    print(f"  Connect Timeout: {settings.switchover.connect_timeout_seconds}s")
    key_state = "configured" if settings.security.db_encryption_key else "EPHEMERAL"
    print(f"  Encryption Key: {key_state}")
    print()

    print("Logging Configuration:")
    print(f"  Level: {settings.logging.level}")
    if settings.logging.log_file:
        print(f"  Log File: {settings.logging.log_file}")
    print()


if __name__ == "__main__":
    # Set up early logging before anything else
    setup_early_logging()

    parser = create_argument_parser()
    args = parser.parse_args()

    try:
        settings = get_settings()

        if args.config:
            show_configuration(settings)
            sys.exit(0)

        settings = override_settings_from_args(settings, args)
        configure_logging(settings)

        logger = logging.getLogger(__name__)
        logger.info(
            "Server starting on %s:%s", settings.server.host, settings.server.port
        )

        uvicorn.run(
            "leaveadmin.main:create_app",
            factory=True,
            host=settings.server.host,
            port=settings.server.port,
            reload=settings.server.reload,
            workers=settings.server.workers,
            log_level=settings.logging.level.lower(),
            log_config=None,
        )

    except Exception as e:
        logger = logging.getLogger(__name__)
        logger.exception("Failed to start server: %s", e)
        sys.exit(1)
