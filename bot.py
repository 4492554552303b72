"""Command-line entrypoint for the ConcertCloud to Mobilizon import bot."""
import json
import logging
import os
import sys
import time
from typing import List, Optional

import requests

from config import Settings
from mobilizon.api import MobilizonAPI
from mobilizon.auth import AuthManager, AuthorizationError
from mobilizon.graphql_client import GraphQLClient
from mobilizon.media import MediaUploader
from mobilizon.transport import MobilizonTransport, RetriesExhaustedError
from processor.address_resolver import AddressResolver
from processor.duplicate_detector import DuplicateDetector
from processor.event_processor import EventProcessor
from processor.models import SourceEvent
from processor.reconciler import EventReconciler
from scraper.concertcloud import ConcertCloudClient
from scraper.images import ImageAcquirer
from scraper.nominatim import NominatimClient
from storage.cache_manager import CacheManager

# LogRecord attributes which are not user-supplied extras
_RECORD_ATTRIBUTES = frozenset(vars(logging.makeLogRecord({}))) | {'message', 'asctime'}


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, including any extra fields."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in vars(record).items():
            if key not in _RECORD_ATTRIBUTES and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


logger = logging.getLogger(__name__)


def build_reconciler(settings: Settings, auth: AuthManager, cache_manager: CacheManager) -> EventReconciler:
    """
    Wire up the components for one run.

    Args:
        settings: Run settings
        auth: Authorized AuthManager
        cache_manager: CacheManager for the config directory

    Returns:
        EventReconciler ready to run
    """
    transport = MobilizonTransport(
        token_provider=auth.current_token,
        on_unauthorized=auth.refresh,
        timeout=settings.timeout
    )
    api = MobilizonAPI(GraphQLClient(transport, settings.api_url))
    processor = EventProcessor(
        actor_id=settings.actor_id,
        group_id=settings.group_id,
        timezone=settings.timezone,
        draft=settings.draft
    )
    resolver = AddressResolver(
        api,
        NominatimClient(timeout=settings.timeout),
        cache_manager.load_addresses()
    )
    detector = DuplicateDetector(
        api,
        processor,
        created={},
        existing=cache_manager.load_events(),
        reauthorize=auth.refresh
    )
    return EventReconciler(
        api=api,
        processor=processor,
        resolver=resolver,
        detector=detector,
        images=ImageAcquirer(timeout=settings.timeout),
        uploader=MediaUploader(transport, settings.api_url),
        cache_manager=cache_manager,
        noop=settings.noop
    )


def fetch_source_events(settings: Settings) -> List[SourceEvent]:
    """
    Load events from the local file if given, otherwise from ConcertCloud.

    Raises:
        OSError: If the local file cannot be read
        requests.RequestException: If ConcertCloud cannot be reached
    """
    client = ConcertCloudClient(timeout=settings.timeout)
    if settings.file:
        return client.load_file(settings.file)
    return client.fetch_events(
        city=settings.city,
        country=settings.country,
        limit=settings.limit,
        page=settings.page,
        radius=settings.radius,
        date=settings.date
    )


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run the bot.

    Args:
        argv: Command-line arguments (default: sys.argv)

    Returns:
        Process exit code, 0 on success and 1 on fatal errors
    """
    settings = Settings.from_args(argv)
    setup_logging(settings.log_level)

    start_time = time.time()

    # set up our config dir if it's not already there
    try:
        os.makedirs(settings.config_dir, mode=0o700, exist_ok=True)
    except OSError as e:
        logger.error(f"Error creating config directory {settings.config_dir}: {e}")
        return 1

    auth = AuthManager(
        settings.mobilizon_url,
        settings.auth_config,
        client_id=settings.client_id,
        timeout=settings.timeout
    )

    try:
        if settings.register:
            auth.register_app()
            return 0
        auth.ensure_authorized(interactive=settings.authorize)
    except AuthorizationError as e:
        logger.error(f"Authorization failed: {e}")
        print(f"Authorization failed: {e}", file=sys.stderr)
        return 1

    if settings.authorize:
        return 0

    try:
        events = fetch_source_events(settings)
        logger.info(f"Fetched {len(events)} source events")
    except (OSError, requests.RequestException) as e:
        logger.error(
            f"Failed to fetch source events: {e}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return 1

    try:
        reconciler = build_reconciler(settings, auth, CacheManager(settings.config_dir))
        result = reconciler.run(events)
    except RetriesExhaustedError as e:
        logger.critical(
            f"Mobilizon is unreachable, giving up: {e}",
            extra={'duration_seconds': round(time.time() - start_time, 2)}
        )
        return 1

    logger.info(
        f"Run completed",
        extra={
            'duration_seconds': round(time.time() - start_time, 2),
            'events_fetched': len(events),
            'events_created': result.created,
            'events_updated': result.updated,
            'events_existing': result.existing,
            'events_skipped': result.skipped,
            'events_reported': result.reported,
            'errors': result.errors
        }
    )
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == '__main__':
    run()
