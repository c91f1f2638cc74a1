"""
Fallback Cache
==============
Last-known state of orders and clients, kept as one JSON blob per entity.

Read-only degraded mode: when the database is unreachable, list views are
served from here. The cache is never a source of truth and never receives
writes that did not first succeed against the database.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Any, Optional

from prometheus_client import Counter


logger = logging.getLogger(__name__)


# Fixed blob names per entity
ORDERS_KEY = "tarascosOrders"
CLIENTS_KEY = "tarascosClients"

fallback_reads = Counter(
    'fallback_cache_reads_total',
    'List reads served from the local fallback cache',
    ['key']
)


class LocalSnapshotStore:
    """JSON files under one directory, one file per key."""

    def __init__(self, directory: str, enabled: bool = True):
        self.directory = Path(directory)
        self.enabled = enabled

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def save(self, key: str, records: List[Dict[str, Any]]) -> bool:
        """
        Replace the blob for key.

        Returns:
            True if written; failures are logged, never raised
        """
        if not self.enabled:
            return False

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp = self._path(key).with_suffix(".tmp")
            tmp.write_text(json.dumps(records, ensure_ascii=False), encoding="utf-8")
            tmp.replace(self._path(key))
            return True
        except OSError as e:
            logger.warning(f"Could not write fallback cache {key}: {str(e)}")
            return False

    def load(self, key: str) -> Optional[List[Dict[str, Any]]]:
        """Return the cached records, or None when nothing usable is cached."""
        if not self.enabled:
            return None

        path = self._path(key)
        if not path.exists():
            return None

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable fallback cache {key}: {str(e)}")
            return None

        if not isinstance(data, list):
            logger.warning(f"Fallback cache {key} is not a list, ignoring")
            return None

        fallback_reads.labels(key=key).inc()
        logger.info(f"Serving {len(data)} records from fallback cache {key}")
        return data


@dataclass
class Listing:
    """A list read, flagged when it came from the fallback cache."""
    items: List[Any] = field(default_factory=list)
    degraded: bool = False
