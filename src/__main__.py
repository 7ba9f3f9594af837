"""Main entry point for SatoshiPay Publisher."""

import argparse
import sys

from loguru import logger

from .plugin.admin import AdminPlugin
from .storage.database import Database
from .utils.config import get_config
from .utils.logger import setup_logging


def _admin_plugin() -> AdminPlugin:
    config = get_config()
    db = Database(config.database.url, echo=config.database.echo)
    return AdminPlugin(db, config)


def run_sync():
    """Add missing secrets and push ad blocker pricing for all free posts."""
    setup_logging()

    logger.info("Running full goods sync")

    plugin = _admin_plugin()
    secrets_added = plugin.add_secret_metadata()
    goods_synced = plugin.update_provider_metadata()

    logger.info(f"Sync completed: {secrets_added} secrets added, {goods_synced} goods synced")


def check_credentials() -> bool:
    """Check the stored API credentials against the provider."""
    setup_logging()

    plugin = _admin_plugin()
    valid = plugin.valid_credentials()

    if valid:
        logger.info("API credentials are valid")
    else:
        logger.warning("API credentials are invalid or missing")
    return valid


def run_api():
    """Run the FastAPI server."""
    import uvicorn

    from .api.main import app

    config = get_config()
    setup_logging()

    logger.info("=" * 80)
    logger.info("SatoshiPay Publisher API - Starting")
    logger.info("=" * 80)

    uvicorn.run(
        app,
        host=config.api.host,
        port=config.api.port,
        log_level="info",
    )


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="SatoshiPay Publisher")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("api", help="Run the admin API server")
    subparsers.add_parser("sync", help="Sync ad blocker pricing of all posts")
    subparsers.add_parser("check-credentials", help="Check the stored API credentials")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        if args.command == "api":
            run_api()
        elif args.command == "sync":
            run_sync()
        elif args.command == "check-credentials":
            if not check_credentials():
                sys.exit(2)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.exception(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
