"""Workflow orchestrator.

Objective:
    Coordinate the end-to-end workflow:
    1) Bind a Gmail client to the caller's access token
    2) Create a run-scoped label cache
    3) Process pages of unlabeled messages one batch at a time
    4) Accumulate statistics and results across batches
    5) Stop when pages run out, the caller cancels, or a batch fails

Responsibilities:
    - Compose the core components (Gmail client, classifier, label resolver,
      batch processor).
    - Provide the single-page invocation boundary (:func:`process_batch`)
      used by the web API.
    - Provide a streaming multi-batch API (:meth:`RunOrchestrator.run_all`)
      used by the CLI and the streaming web endpoint.

High-level call tree:
    - :func:`process_batch`
        - :func:`create_batch_processor`
        - :meth:`BatchProcessor.process_batch`
    - :class:`RunOrchestrator`
        - :meth:`RunOrchestrator.run_all`
            - ``batch_processor_factory(LabelCache())``
            - repeatedly :meth:`BatchProcessor.process_batch`
            - :meth:`CancellationToken.wait` between batches
        - :meth:`RunOrchestrator.run`

Operational notes:
    - Batches run strictly sequentially; each needs the previous cursor.
    - Cancellation is cooperative and only observed between batches. A batch
      that is in flight when stop is requested runs to completion.
    - The orchestrator does not persist state between runs.
"""

import logging
import threading
from typing import Callable, Iterator, Optional, Union

from .classifier import EmailClassifier
from .batch_processor import BatchProcessor
from .config import Settings, get_settings
from .gmail_client import GmailClient
from .label_resolver import LabelCache, LabelResolver
from .models import BatchResult, ClassifiedMessage, RunProgress, RunState, RunStatistics, Scope

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative stop signal for a run.

    The orchestrator checks the token after every batch and while waiting
    between batches. Calling :meth:`cancel` never interrupts a batch.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request the run to stop at the next batch boundary."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; return True if cancelled meanwhile."""
        return self._event.wait(timeout)


def create_batch_processor(
    access_token: str,
    settings: Settings,
    label_cache: Optional[LabelCache] = None,
) -> BatchProcessor:
    """Wire a :class:`BatchProcessor` for one credential.

    Args:
        access_token: Gmail OAuth access token.
        settings: Application settings.
        label_cache: Run-scoped label cache; a fresh one when omitted.

    Returns:
        BatchProcessor: Ready-to-use batch processor.

    Raises:
        MissingCredentialError: If the access token is empty.
    """
    client = GmailClient(settings, access_token)
    return BatchProcessor(
        settings=settings,
        client=client,
        classifier=EmailClassifier(settings),
        label_resolver=LabelResolver(client, label_cache or LabelCache()),
    )


def process_batch(
    access_token: str,
    scope: Union[Scope, str],
    page_token: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> BatchResult:
    """Process a single page for a credential.

    This is the thin invocation boundary used by the web API; each call has
    its own label cache.

    Args:
        access_token: Gmail OAuth access token.
        scope: Mailbox section (``inbox`` or ``all``).
        page_token: Cursor from a previous call, if any.
        settings: Application settings (loads from env if None).

    Returns:
        BatchResult: Result for the page.

    Raises:
        MissingCredentialError: If the access token is empty.
        requests.HTTPError: If the listing call fails.
    """
    settings = settings or get_settings()
    processor = create_batch_processor(access_token, settings)
    return processor.process_batch(scope, page_token)


class RunOrchestrator:
    """
    Runs the batch processor across all pages of a mailbox section.

    Attributes:
        settings: Application settings.
        state: State of the most recent run.
    """

    def __init__(
        self,
        access_token: str,
        settings: Optional[Settings] = None,
        batch_processor_factory: Optional[Callable[[LabelCache], BatchProcessor]] = None,
    ) -> None:
        """
        Initialize orchestrator.

        Args:
            access_token: Gmail OAuth access token.
            settings: Application settings (loads from env if None).
            batch_processor_factory: Builds the batch processor for a run
                from its label cache. Defaults to :func:`create_batch_processor`.
        """
        self.settings = settings or get_settings()
        self._access_token = access_token
        self._batch_processor_factory = batch_processor_factory or self._default_factory
        self.state = RunState.IDLE

    def _default_factory(self, label_cache: LabelCache) -> BatchProcessor:
        return create_batch_processor(self._access_token, self.settings, label_cache)

    def run_all(
        self,
        scope: Union[Scope, str],
        cancel_token: Optional[CancellationToken] = None,
    ) -> Iterator[RunProgress]:
        """Process every page of ``scope``, yielding progress after each batch.

        Termination is checked after every batch, in order:
            1. no next page token -> ``COMPLETED``
            2. stop requested -> ``STOPPED``
        A batch call that raises ends the run as ``FAILED``. In every case the
        results of completed batches are kept, and the last item yielded is
        the terminal progress.

        Args:
            scope: Mailbox section (``inbox`` or ``all``).
            cancel_token: Optional stop signal.

        Yields:
            RunProgress: ``RUNNING`` snapshots carrying cumulative statistics
            and only that batch's results, then one terminal snapshot
            carrying every result of the run.
        """
        scope = Scope(scope)
        cancel_token = cancel_token or CancellationToken()

        statistics = RunStatistics()
        results: list[ClassifiedMessage] = []
        page_token: Optional[str] = None

        def progress(
            state: RunState,
            batch_results: Optional[list[ClassifiedMessage]] = None,
            error: Optional[str] = None,
        ) -> RunProgress:
            self.state = state
            if batch_results is None:
                batch_results = list(results)
            return RunProgress(
                state=state, statistics=statistics, results=batch_results, error=error
            )

        self.state = RunState.RUNNING
        logger.info(f"Starting run (scope={scope.value})")

        try:
            processor = self._batch_processor_factory(LabelCache())
        except Exception as e:
            logger.exception("Failed to start run")
            yield progress(RunState.FAILED, error=str(e))
            return

        while True:
            try:
                batch = processor.process_batch(scope, page_token)
            except Exception as e:
                logger.exception(f"Batch {statistics.batches + 1} failed")
                yield progress(RunState.FAILED, error=str(e))
                return

            statistics = statistics.add(batch)
            results.extend(batch.results)
            page_token = batch.next_page_token

            logger.info(
                f"Batch {statistics.batches} done: {statistics.processed} processed, "
                f"{statistics.errors} errors so far"
            )
            yield progress(RunState.RUNNING, list(batch.results))

            if not page_token:
                final_state = RunState.COMPLETED
            elif cancel_token.cancelled:
                final_state = RunState.STOPPED
            elif cancel_token.wait(self.settings.inter_batch_delay_seconds):
                final_state = RunState.STOPPED
            else:
                continue

            logger.info(
                f"Run {final_state.value} after {statistics.batches} batches: "
                f"{statistics.processed} processed, {statistics.errors} errors"
            )
            yield progress(final_state)
            return

    def run(
        self,
        scope: Union[Scope, str],
        cancel_token: Optional[CancellationToken] = None,
    ) -> RunProgress:
        """Drive :meth:`run_all` to the end and return the terminal progress."""
        final: Optional[RunProgress] = None
        for final in self.run_all(scope, cancel_token):
            pass
        return final
