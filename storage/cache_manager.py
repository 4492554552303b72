"""JSON file storage for the address and event caches."""
import json
import logging
import os
import tempfile
from typing import Any, Dict

from processor.models import Address, PublishedEvent

logger = logging.getLogger(__name__)

FILE_MODE = 0o600


def load_json(path: str) -> Dict[str, Any]:
    """
    Read a JSON object from a file.

    Missing or invalid files are logged and read as an empty dict.

    Args:
        path: File path

    Returns:
        Parsed JSON object
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.info(f"No file at {path}, starting empty")
        return {}
    except (OSError, ValueError) as e:
        logger.error(f"Error reading {path}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.error(f"Expected a JSON object in {path}, starting empty")
        return {}
    return data


def save_json(path: str, data: Dict[str, Any]) -> None:
    """
    Write a JSON object to a file with mode 0600.

    The data is written to a temporary file in the same directory which
    is then renamed over the target, so a crash never truncates it.

    Args:
        path: File path
        data: JSON-serializable dict

    Raises:
        OSError: If the file cannot be written
    """
    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp_path = tempfile.mkstemp(
        prefix=f".{os.path.basename(path)}.", dir=directory
    )
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.write('\n')
        os.chmod(tmp_path, FILE_MODE)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


class CacheManager:
    """Manager for the on-disk address and event caches."""

    ADDRESS_FILE = 'addrs.json'
    EVENTS_FILE = 'exists.json'

    def __init__(self, config_dir: str):
        """
        Initialize the cache manager.

        Args:
            config_dir: Directory holding the cache files
        """
        self.config_dir = config_dir
        self.address_path = os.path.join(config_dir, self.ADDRESS_FILE)
        self.events_path = os.path.join(config_dir, self.EVENTS_FILE)

    def load_addresses(self) -> Dict[str, Address]:
        """
        Load the address cache.

        Returns:
            Dictionary mapping address key to Address objects
        """
        addresses = {}
        for key, item in load_json(self.address_path).items():
            try:
                addresses[key] = Address.from_dict(item)
            except AttributeError as e:
                logger.warning(f"Skipping invalid address entry '{key}': {e}")
        logger.info(f"Loaded {len(addresses)} cached addresses")
        return addresses

    def save_addresses(self, addresses: Dict[str, Address]) -> None:
        data = {key: address.to_dict() for key, address in addresses.items()}
        save_json(self.address_path, data)
        logger.info(f"Saved {len(data)} addresses to {self.address_path}")

    def load_events(self) -> Dict[str, PublishedEvent]:
        """
        Load the events published in previous runs.

        Returns:
            Dictionary mapping event key to PublishedEvent objects
        """
        events = {}
        for key, item in load_json(self.events_path).items():
            try:
                event = PublishedEvent.from_dict(item)
            except (AttributeError, ValueError) as e:
                logger.warning(f"Skipping invalid event entry '{key}': {e}")
                continue
            if not event.mob_uuid:
                logger.warning(f"Skipping cached event without UUID '{key}'")
                continue
            events[key] = event
        logger.info(f"Loaded {len(events)} cached events")
        return events

    def save_events(self, events: Dict[str, PublishedEvent]) -> None:
        data = {
            key: event.to_dict()
            for key, event in events.items()
            if event.mob_uuid
        }
        save_json(self.events_path, data)
        logger.info(f"Saved {len(data)} events to {self.events_path}")
