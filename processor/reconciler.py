"""Reconcile ConcertCloud events with the events published on Mobilizon."""
import logging
from typing import Dict, List

import requests

from mobilizon.graphql_client import GraphQLError
from mobilizon.media import MediaUploadError
from mobilizon.transport import RetriesExhaustedError
from processor.address_resolver import AddressResolver
from processor.duplicate_detector import DuplicateDetector
from processor.event_processor import EventProcessor
from processor.models import PublishedEvent, SourceEvent, SyncResult
from scraper.images import ImageAcquirer, ImageError

logger = logging.getLogger(__name__)

# Errors which end the processing of one event but not of the run
EVENT_ERRORS = (
    requests.RequestException,
    GraphQLError,
    ImageError,
    MediaUploadError,
    OSError,
    ValueError,
)


class EventReconciler:
    """
    Publishes each source event to Mobilizon exactly once.

    Events are processed strictly in order. Addresses for the whole batch
    are resolved before any event is published.
    """

    def __init__(
        self,
        api,
        processor: EventProcessor,
        resolver: AddressResolver,
        detector: DuplicateDetector,
        images: ImageAcquirer,
        uploader,
        cache_manager=None,
        noop: bool = False
    ):
        """
        Initialize the reconciler.

        Args:
            api: MobilizonAPI for createEvent/updateEvent/event
            processor: EventProcessor for normalization and variables
            resolver: AddressResolver holding the address cache
            detector: DuplicateDetector holding the event caches
            images: ImageAcquirer
            uploader: MediaUploader
            cache_manager: CacheManager to flush the caches to (optional)
            noop: Report instead of uploading or mutating
        """
        self.api = api
        self.processor = processor
        self.resolver = resolver
        self.detector = detector
        self.images = images
        self.uploader = uploader
        self.cache_manager = cache_manager
        self.noop = noop

    @property
    def created(self) -> Dict[str, PublishedEvent]:
        return self.detector.created

    def run(self, events: List[SourceEvent]) -> SyncResult:
        """
        Resolve addresses for a batch, then publish every event.

        The address cache is saved after the first pass and the created
        events cache at the end, also in noop mode.

        Args:
            events: Source events in upstream order

        Returns:
            SyncResult with per-run counters

        Raises:
            RetriesExhaustedError: If Mobilizon stays unreachable
        """
        logger.info(f"Starting reconciliation of {len(events)} events")
        found = self.resolver.resolve_all(events)
        logger.info(f"Resolved addresses for {found} of {len(events)} events")
        self._save_addresses()

        try:
            result = self.reconcile(events)
        finally:
            self._save_events()

        logger.info(
            f"Reconciliation complete",
            extra={
                'events_created': result.created,
                'events_updated': result.updated,
                'events_existing': result.existing,
                'events_skipped': result.skipped,
                'events_reported': result.reported,
                'errors': len(result.errors)
            }
        )
        return result

    def reconcile(self, events: List[SourceEvent]) -> SyncResult:
        """
        Publish each event, collecting per-event errors.

        Args:
            events: Source events in upstream order

        Returns:
            SyncResult
        """
        result = SyncResult()
        for event in events:
            try:
                self.reconcile_event(event, result)
            except RetriesExhaustedError:
                raise
            except EVENT_ERRORS as e:
                error_msg = f"Failed to publish event '{event.title}': {e}"
                logger.error(error_msg, extra={'url': event.url})
                result.errors.append(error_msg)
            except Exception as e:
                error_msg = f"Unexpected error publishing event '{event.title}': {e}"
                logger.error(error_msg, extra={'url': event.url}, exc_info=True)
                result.errors.append(error_msg)
        return result

    def reconcile_event(self, event: SourceEvent, result: SyncResult) -> None:
        if self.processor.is_opted_out(event):
            logger.info(f"Skipping opted-out venue for {event.url}")
            result.skipped += 1
            return

        event = self.processor.normalize(event)
        key = self.processor.generate_event_key(event)
        logger.debug(f"Checking for existing events", extra={'event_key': key})

        cached = self.detector.find_cached(event)
        if cached is not None:
            logger.debug("Found a cached event")
            # events never come in with a UUID
            event.mob_uuid = cached.mob_uuid
            self.created[key] = cached
            if event == cached:
                result.existing += 1
                return
            logger.debug(f"Update needed", extra={'event_key': key})
            if self.noop:
                logger.info(f"Would update event '{event.title}'", extra={'uuid': event.mob_uuid})
                result.reported += 1
                return
            self.update_event(event)
            self.created[key] = event
            result.updated += 1
            return

        found, uuid = self.detector.exists_remote(event)
        if found:
            event.mob_uuid = uuid
            self.created[key] = event
            result.existing += 1
            return

        if self.noop:
            logger.info(f"Would create event '{event.title}'", extra={'event_key': key})
            result.reported += 1
            return

        event.mob_uuid = self.create_event(event)
        self.created[key] = event
        result.created += 1

    def create_event(self, event: SourceEvent) -> str:
        """
        Upload the event's picture and create the event.

        Returns:
            UUID of the new event

        Raises:
            GraphQLError: If the mutation fails or returns no UUID
        """
        variables = self.build_variables(event)
        created = self.api.create_event(variables)
        if not created.get('uuid'):
            raise GraphQLError("createEvent returned no uuid")
        logger.info(f"Created event '{event.title}'", extra={'id': created.get('id'), 'uuid': created['uuid']})
        return created['uuid']

    def update_event(self, event: SourceEvent) -> str:
        """
        Re-upload the picture and send the full variables map to updateEvent.

        Returns:
            ID of the updated event
        """
        remote = self.api.fetch_event(event.mob_uuid)
        if not remote or not remote.get('id'):
            raise GraphQLError(f"Event {event.mob_uuid} not found on Mobilizon")

        variables = self.build_variables(event)
        updated = self.api.update_event(remote['id'], variables)
        logger.info(f"Updated event '{event.title}'", extra={'id': updated.get('id'), 'uuid': event.mob_uuid})
        return updated.get('id') or remote['id']

    def build_variables(self, event: SourceEvent) -> dict:
        path = self.images.acquire(event)
        media_uuid = self.uploader.upload(path)
        address = self.resolver.get(event)
        return self.processor.build_variables(event, address, media_uuid)

    def _save_addresses(self) -> None:
        if self.cache_manager is None:
            return
        try:
            self.cache_manager.save_addresses(self.resolver.addresses)
        except OSError as e:
            logger.error(f"Error saving address cache: {e}")

    def _save_events(self) -> None:
        if self.cache_manager is None:
            return
        try:
            self.cache_manager.save_events(self.created)
        except OSError as e:
            logger.error(f"Error saving events cache: {e}")
