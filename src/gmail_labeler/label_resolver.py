"""Label caching and resolution.

Objective:
    Map a category's Gmail label name to a label ID, creating the label when
    it does not exist yet.

Responsibilities:
    - Fetch the mailbox label list at most once per run.
    - Resolve label names case-insensitively against the cached list.
    - Create missing labels and extend the cache immediately.
    - Report the IDs of labels owned by this application.

Caching strategy:
    The cache is an explicit :class:`LabelCache` object created at the start
    of a run and passed by reference to the resolver. Nothing is kept at
    module level, so a new run always re-fetches the label list.

    The cache lock guards the label list only and is never held across a
    network call after the list is loaded. Creation is single-flight per
    name: a miss takes that name's creation lock and re-checks the cache
    before calling Gmail. Two messages of the same category resolved
    concurrently therefore create the label once, while hits for other
    names never wait behind a slow create.

High-level call tree:
    - :class:`LabelResolver`
        - :meth:`resolve_label_id`
            - :meth:`list_all_labels` (loads :class:`LabelCache`)
            - :meth:`GmailClient.create_label` (on miss)
        - :meth:`list_owned_label_ids`
"""

import logging
import threading
from typing import Optional

from .config import managed_label_names
from .gmail_client import GmailClient
from .models import Label

logger = logging.getLogger(__name__)


class LabelCache:
    """
    Run-scoped memo of the mailbox label list.

    Attributes:
        labels: Cached labels, or None until first loaded.
        lock: Guards loading, lookup and extension of :attr:`labels`.
    """

    def __init__(self) -> None:
        self.labels: Optional[list[Label]] = None
        self.lock = threading.RLock()
        self._creation_locks: dict[str, threading.Lock] = {}

    def creation_lock(self, name: str) -> threading.Lock:
        """Return the lock serializing creation of ``name`` (case-insensitive)."""
        with self.lock:
            return self._creation_locks.setdefault(name.lower(), threading.Lock())

    @property
    def loaded(self) -> bool:
        return self.labels is not None

    def find(self, name: str) -> Optional[Label]:
        """Case-insensitive lookup in the loaded labels."""
        lowered = name.lower()
        for label in self.labels or []:
            if label.name.lower() == lowered:
                return label
        return None


class LabelResolver:
    """
    Resolves label names to Gmail label IDs.

    Attributes:
        client: Gmail client for label operations.
        cache: Run-scoped label cache.
    """

    def __init__(self, client: GmailClient, cache: LabelCache) -> None:
        """
        Initialize label resolver.

        Args:
            client: Gmail client for label operations.
            cache: Label cache shared by every resolution in the run.
        """
        self.client = client
        self.cache = cache

    def list_all_labels(self) -> list[Label]:
        """
        Return every label in the mailbox, fetching it on first use.

        Returns:
            list[Label]: Cached labels.

        Raises:
            requests.HTTPError: If the label list cannot be fetched.
        """
        with self.cache.lock:
            if self.cache.labels is None:
                self.cache.labels = list(self.client.list_labels())
                logger.debug(f"Initialized label cache with {len(self.cache.labels)} labels")
            return list(self.cache.labels)

    def list_owned_label_ids(self) -> list[str]:
        """
        Return IDs of existing labels whose names are managed by this app.

        Returns:
            list[str]: Label IDs.
        """
        owned_names = {name.lower() for name in managed_label_names()}
        return [
            label.id
            for label in self.list_all_labels()
            if label.name.lower() in owned_names
        ]

    def resolve_label_id(self, name: str) -> str:
        """
        Get the label ID for ``name``, creating the label if needed.

        Args:
            name: Label display name.

        Returns:
            str: Label ID.

        Raises:
            requests.HTTPError: If listing or creating labels fails.
        """
        existing = self._find(name)
        if existing:
            return existing.id

        with self.cache.creation_lock(name):
            # Another caller may have created it while we waited.
            existing = self._find(name)
            if existing:
                return existing.id

            logger.debug(f"Creating label: {name}")
            new_label = self.client.create_label(name)
            with self.cache.lock:
                self.cache.labels.append(new_label)
            return new_label.id

    def _find(self, name: str) -> Optional[Label]:
        self.list_all_labels()
        with self.cache.lock:
            return self.cache.find(name)
