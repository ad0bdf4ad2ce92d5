"""Batch processing of one page of messages.

Objective:
    Process one page of not-yet-labeled messages: list, hydrate, classify,
    resolve the label, apply it, and aggregate the outcomes.

Responsibilities:
    - Build the Gmail search query for a scope, excluding every managed label
      so already-labeled messages are never fetched again.
    - Hydrate listed IDs; hydration failures are dropped without counting.
    - Run classify -> resolve -> apply for each message, turning any failure
      into a per-message error outcome.
    - Fold the outcomes into a :class:`src.gmail_labeler.models.BatchResult`.

High-level call tree:
    - :class:`BatchProcessor`
        - :meth:`BatchProcessor.process_batch`
            - :func:`build_search_query`
            - :meth:`GmailClient.list_message_ids`
            - :meth:`BatchProcessor._hydrate`
                - :meth:`GmailClient.get_message`
            - :meth:`BatchProcessor.process_message`
                - :meth:`EmailClassifier.classify`
                - :meth:`LabelResolver.resolve_label_id`
                - :meth:`GmailClient.add_labels`
            - :func:`summarize_outcomes`

Accounting:
    ``total`` counts hydrated messages only; a page of N IDs with M hydration
    failures reports ``total == N - M``. ``errors`` counts failed outcomes and
    ``processed == len(results)``.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Union

from .classifier import EmailClassifier
from .config import Settings, managed_label_names
from .gmail_client import GmailClient
from .label_resolver import LabelResolver
from .models import BatchResult, ClassifiedMessage, Message, MessageOutcome, Scope

logger = logging.getLogger(__name__)


def build_search_query(scope: Union[Scope, str]) -> str:
    """Build the Gmail search query for a scope.

    - ``inbox``: ``in:inbox`` plus label exclusions.
    - ``all``: ``-in:spam -in:trash`` plus label exclusions.

    Args:
        scope: Mailbox section.

    Returns:
        str: Gmail search query.
    """
    scope = Scope(scope)
    exclusions = " ".join(f'-label:"{name}"' for name in managed_label_names())

    if scope is Scope.INBOX:
        return f"in:inbox {exclusions}"
    return f"-in:spam -in:trash {exclusions}"


def summarize_outcomes(
    outcomes: list[MessageOutcome], next_page_token: Optional[str] = None
) -> BatchResult:
    """Aggregate per-message outcomes into a batch result.

    Args:
        outcomes: One outcome per hydrated message, in page order.
        next_page_token: Cursor for the next page.

    Returns:
        BatchResult: Aggregated counts and successful results.
    """
    results = [
        ClassifiedMessage(message=outcome.message, category=outcome.category)
        for outcome in outcomes
        if outcome.is_ok
    ]
    return BatchResult(
        total=len(outcomes),
        processed=len(results),
        skipped=0,
        errors=len(outcomes) - len(results),
        results=results,
        next_page_token=next_page_token,
    )


class BatchProcessor:
    """
    Processes one page of unlabeled messages.

    Attributes:
        settings: Application settings.
        client: Gmail client bound to the caller's credential.
        classifier: Message classifier.
        label_resolver: Label resolver bound to the run's label cache.
    """

    def __init__(
        self,
        settings: Settings,
        client: GmailClient,
        classifier: EmailClassifier,
        label_resolver: LabelResolver,
    ) -> None:
        self.settings = settings
        self.client = client
        self.classifier = classifier
        self.label_resolver = label_resolver

    def _hydrate(self, message_id: str) -> Optional[Message]:
        """Fetch one message, or None when the fetch fails."""
        try:
            return self.client.get_message(message_id)
        except Exception as e:
            logger.warning(f"Skipping message {message_id}: failed to fetch details: {e}")
            return None

    def process_message(self, message: Message) -> MessageOutcome:
        """
        Classify one message and apply its label.

        Errors are caught and returned as a failed outcome so that the rest of
        the batch continues.

        Args:
            message: Hydrated message.

        Returns:
            MessageOutcome: Success with the category, or failure with a reason.
        """
        try:
            category = self.classifier.classify(message)
            label_id = self.label_resolver.resolve_label_id(category.label_name)
            self.client.add_labels(message.id, [label_id])
            return MessageOutcome.ok(message, category)
        except Exception as e:
            logger.exception(f"Error processing message {message.id}")
            return MessageOutcome.err(message, str(e))

    def process_batch(
        self, scope: Union[Scope, str], page_token: Optional[str] = None
    ) -> BatchResult:
        """
        Process one page of messages for ``scope``.

        Args:
            scope: Mailbox section.
            page_token: Cursor from the previous batch, if any.

        Returns:
            BatchResult: Aggregated results for the page.

        Raises:
            requests.HTTPError: If the listing call fails.
        """
        query = build_search_query(scope)
        logger.info(
            "Fetching unlabeled messages (%s, %s)",
            Scope(scope).value,
            f"page: {page_token}" if page_token else "first page",
        )

        message_ids, next_page_token = self.client.list_message_ids(
            query, page_token=page_token, max_results=self.settings.page_size
        )

        if not message_ids:
            logger.info("No unlabeled messages on this page")
            return BatchResult(next_page_token=next_page_token)

        with ThreadPoolExecutor(max_workers=self.settings.max_workers) as executor:
            hydrated = list(executor.map(self._hydrate, message_ids))
            messages = [message for message in hydrated if message is not None]

            logger.info(
                f"Processing {len(messages)} messages "
                f"({len(message_ids) - len(messages)} could not be fetched)"
            )
            outcomes = list(executor.map(self.process_message, messages))

        result = summarize_outcomes(outcomes, next_page_token)
        logger.info(
            f"Batch completed: {result.processed} processed, {result.errors} errors, "
            f"more pages: {bool(result.next_page_token)}"
        )
        return result
