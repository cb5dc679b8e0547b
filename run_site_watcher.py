#!/usr/bin/env python3
"""
Site Watcher - Standalone Launcher

Monitors the configured pages 24/7 and posts Discord alerts when a change
is relevant to the watch goal.

Usage:
    python run_site_watcher.py [--sites-file SITES_FILE] [--log-level LEVEL]

Arguments:
    --sites-file    JSON file with site definitions (default: SITES_FILE or config/sites.json)
    --log-level     Override LOG_LEVEL (DEBUG, INFO, WARNING, ERROR)
"""
import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from config.settings import ConfigError, WatcherSettings, load_settings
from sitewatch.context import WatcherContext
from sitewatch.services.site_loader import load_sites

logger = logging.getLogger(__name__)

_shutdown_event: asyncio.Event = None


def setup_logging(level: str, log_file: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file, encoding='utf-8')
        ]
    )


def signal_handler(signum, frame):
    """Handle SIGINT/SIGTERM: only set the shutdown event, the main loop does the rest."""
    sig_name = signal.Signals(signum).name
    logger.info(f"🛑 [SITE-WATCHER] Received {sig_name}, initiating graceful shutdown...")
    if _shutdown_event:
        _shutdown_event.set()


async def main(settings: WatcherSettings, sites_file: str = None) -> int:
    global _shutdown_event
    _shutdown_event = asyncio.Event()

    logger.info("=" * 60)
    logger.info("👀 Site Watcher")
    logger.info("=" * 60)

    try:
        sites = load_sites(settings, sites_file)
    except ConfigError as e:
        logger.error(f"❌ {e}")
        return 1

    context = WatcherContext.build(settings)
    site_job = context.create_site_job()
    scheduler = context.create_scheduler(site_job)
    scheduler.add_sites(sites)

    try:
        context.throttle.start()
        await scheduler.start()

        logger.info(f"✅ Site Watcher started with {len(sites)} sites")
        logger.info("Press Ctrl+C to stop")

        try:
            await _shutdown_event.wait()
        except asyncio.CancelledError:
            pass
    finally:
        # Drain workers before releasing the browser
        try:
            await scheduler.stop()
        finally:
            await context.aclose()

    status = scheduler.get_status()

    logger.info("=" * 60)
    logger.info("📊 Final Statistics")
    logger.info("=" * 60)
    logger.info(f"Sites: {status['total_sites']}")
    logger.info(f"Jobs completed: {status['jobs_completed']}")
    logger.info(f"Jobs failed: {status['jobs_failed']}")
    logger.info("✅ Site Watcher stopped gracefully")
    return 0


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Site Watcher - change monitoring with relevance filtering",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python run_site_watcher.py
    python run_site_watcher.py --sites-file config/sites.json --log-level DEBUG
        """
    )
    parser.add_argument(
        '--sites-file',
        type=str,
        default=None,
        help='Path to sites JSON file (default: SITES_FILE or config/sites.json)'
    )
    parser.add_argument(
        '--log-level',
        type=str,
        default=None,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Log level (default: LOG_LEVEL or INFO)'
    )
    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()

    try:
        settings = load_settings()
    except ConfigError as e:
        setup_logging(args.log_level or "INFO", "site_watcher.log")
        logger.error(f"❌ Configuration error: {e}")
        sys.exit(1)

    setup_logging(args.log_level or settings.log_level, settings.log_file)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        exit_code = asyncio.run(main(settings, args.sites_file))
        sys.exit(exit_code)
    except KeyboardInterrupt:
        logger.info("🛑 Interrupted by user")
        sys.exit(0)
    except Exception as e:
        logger.error(f"❌ Unexpected error: {e}")
        sys.exit(1)
