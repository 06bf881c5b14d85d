"""
Main entry point for the Roblox API to wiki synchronization daemon.

Usage: python roapid_main.py [--once] [--config PATH]
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

import structlog
from pydantic import ValidationError

from datasource.api_fetcher import ApiFetcher
from datasource.storage import ArtifactStore
from jobsync.bootstrap import BootstrapRecoverer
from jobsync.change_detector import ChangeDetector
from jobsync.errors import ConfigError, SyncError
from jobsync.job_executor import JobExecutor
from jobsync.models import ExecutorConfig, SchedulerConfig
from jobsync.schedule_store import ScheduleStore
from jobsync.scheduler_service import ModulePage, SchedulerService
from jobsync.static_sync import StaticDocSyncer
from utilities.config import DaemonConfig, load_config
from utilities.logger import setup_logging
from wiki.client import WikiClient

MODULE_VERSION = "0.0.17"
DEFAULT_CONFIG_PATH = "config/config.json"


def render_module(template: str, config: DaemonConfig) -> str:
    """Fill the Lua module placeholders from configuration."""
    replacements = {
        "{{NAMESPACE}}": config.wiki_namespace,
        "{{CATEGORY_PREFIX}}": config.category_prefix,
        "{{MSG_QUEUE_NOTE}}": config.queue_note,
        "{{MSG_FIELD_PATH_NOT_FOUND}}": config.field_path_not_found,
    }
    for placeholder, value in replacements.items():
        template = template.replace(placeholder, value)
    return template


def load_module_page(config: DaemonConfig) -> Optional[ModulePage]:
    if not config.module_file:
        return None
    try:
        template = Path(config.module_file).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"cannot read module file {config.module_file}: {e}") from e
    return ModulePage(config.get_module_title(), MODULE_VERSION, render_module(template, config))


def build_scheduler_config(config: DaemonConfig) -> SchedulerConfig:
    return SchedulerConfig(
        category_prefix=config.category_prefix,
        category_check_interval=config.get_category_check_interval(),
        data_refresh_interval=config.get_data_refresh_interval(),
        about_interval=config.interval_resolver("about"),
        documentation_interval=config.get_documentation_interval()
    )


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sync Roblox API data to a MediaWiki wiki")
    parser.add_argument("--once", action="store_true", help="run every sweep once and exit")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="path to a JSON config file")
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    """Main function to start the synchronization daemon."""
    args = parse_args(argv)
    logger = structlog.get_logger(__name__)

    try:
        config = load_config(args.config)
    except (ConfigError, ValidationError) as e:
        logger.error("Failed to load config", error=str(e))
        return 1

    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug
    )
    logger.info("Starting RobloxAPID", run_once=args.once, config_path=args.config)

    wiki_client = None
    fetcher = None
    try:
        config.validate_for_startup()
        scheduler_config = build_scheduler_config(config)
        module_page = load_module_page(config)

        wiki_client = WikiClient(
            api_url=config.wiki_api_url,
            username=config.wiki_username,
            password=config.wiki_password,
            user_agent=config.user_agent,
            timeout=config.request_timeout
        )
        await wiki_client.login()

        fetcher = ApiFetcher(timeout=config.request_timeout, user_agent=config.user_agent)
        artifact_store = ArtifactStore(config.get_data_dir())
        change_detector = ChangeDetector(artifact_store)
        store = ScheduleStore(interval_resolver=config.interval_resolver)

        executor = JobExecutor(
            ExecutorConfig(
                wiki_namespace=config.wiki_namespace,
                api_map=config.api_map,
                authenticated_endpoints=config.authenticated_endpoints,
                composite_endpoints=config.composite_endpoints,
                api_key=config.open_cloud_api_key
            ),
            fetcher,
            artifact_store,
            change_detector,
            wiki_client
        )
        service = SchedulerService(
            scheduler_config,
            store,
            executor,
            wiki_client,
            BootstrapRecoverer(artifact_store, store, config.category_prefix, config.interval_resolver),
            static_syncer=StaticDocSyncer(
                config.get_config_dir(),
                artifact_store,
                change_detector,
                wiki_client,
                config.wiki_namespace
            ),
            interval_resolver=config.interval_resolver,
            module_page=module_page
        )

        await service.start(run_once=args.once)

    except (ConfigError, ValueError) as e:
        logger.error("Fatal configuration error", error=str(e))
        return 1
    except SyncError as e:
        logger.error("Failed to start daemon", error=str(e), error_kind=e.kind.value)
        return 1
    finally:
        if fetcher is not None:
            await fetcher.close()
        if wiki_client is not None:
            await wiki_client.close()

    return 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
