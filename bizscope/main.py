"""Command line entry point for bizscope."""

import argparse
import asyncio
import logging
import sys

from .config import Config, load_config
from .services import AccountLockService, ContentService, get_db_service, init_db_service
from .server import build_services, create_app


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )

    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


async def run_server(args, logger, config: Config) -> int:
    """Run the HTTP server."""
    import uvicorn

    db_service = await init_db_service(config.database.url, echo=config.database.echo)
    logger.info("Database initialized at %s", db_service.url.render_as_string(hide_password=True))

    app = create_app(config, build_services(config, db_service))

    host = args.host or config.server.host
    port = args.port or config.server.port
    logger.info("Starting server on %s:%d (%s)", host, port, config.server.environment)

    uvicorn_config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level="info" if args.verbose else "warning",
    )
    server = uvicorn.Server(uvicorn_config)
    await server.serve()
    return 0


async def run_init_db(args, logger, config: Config) -> int:
    """Create database tables."""
    await init_db_service(config.database.url, echo=config.database.echo)
    logger.info("Database tables created")
    return 0


async def run_stats(args, logger, config: Config) -> int:
    """Print stored content counts by platform and status."""
    db_service = await init_db_service(config.database.url, echo=config.database.echo)
    content_service = ContentService(db_service)

    rows = await content_service.count_by_platform_and_status()
    total = await content_service.count()

    print(f"{'platform':<14}{'status':<10}{'count':>8}")
    for platform, status, count in rows:
        print(f"{platform:<14}{status:<10}{count:>8}")
    print(f"{'total':<24}{total:>8}")
    return 0


async def run_unlock(args, logger, config: Config) -> int:
    """Clear lockout state for one account."""
    db_service = await init_db_service(config.database.url, echo=config.database.echo)
    lock_service = AccountLockService(
        db_service, max_failed_attempts=config.lockout.max_failed_attempts
    )

    await lock_service.clear_lock(args.email)
    info = await lock_service.get_lock_info(args.email)
    logger.info(
        "Account %s: locked=%s, failed_attempts=%d",
        args.email,
        info.is_locked,
        info.failed_attempts,
    )
    return 0


COMMANDS = {
    "serve": run_server,
    "init-db": run_init_db,
    "stats": run_stats,
    "unlock": run_unlock,
}


async def async_main(args, logger) -> int:
    """Load configuration and dispatch the selected command."""
    try:
        config = load_config(args.config)
        if args.config:
            logger.info("Loaded configuration from %s", args.config)
        return await COMMANDS[args.command](args, logger, config)

    except FileNotFoundError as e:
        logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        return 1
    finally:
        # Clean up database connection
        try:
            db = get_db_service()
            await db.close()
        except RuntimeError:
            # Database wasn't initialized (error during startup)
            pass


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Content ingestion webhooks with account protection",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s serve                        # Run with built-in defaults
  %(prog)s -c config.yaml serve         # Run with a config file
  %(prog)s serve --port 3000            # Override the listen port
  %(prog)s stats                        # Show stored content counts
  %(prog)s unlock user@example.com      # Clear an account lockout
        """,
    )

    parser.add_argument(
        "-c",
        "--config",
        default=None,
        help="Path to configuration file (default: built-in defaults)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose/debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP server")
    serve.add_argument("--host", default=None, help="Listen address (default: from config)")
    serve.add_argument("--port", type=int, default=None, help="Listen port (default: from config)")

    subparsers.add_parser("init-db", help="Create database tables")
    subparsers.add_parser("stats", help="Show stored content counts")

    unlock = subparsers.add_parser("unlock", help="Clear an account's lockout state")
    unlock.add_argument("email", help="Account email")

    return parser


def main(argv=None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    return asyncio.run(async_main(args, logger))


if __name__ == "__main__":
    sys.exit(main())
