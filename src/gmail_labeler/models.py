"""Pydantic data models used across the application.

Objective:
    Centralize all strongly-typed data structures representing:
    - Gmail messages and labels returned by the Gmail API
    - Per-message outcomes produced by the batch processor
    - Per-batch results and cumulative run statistics
    - Incremental run progress produced by the orchestrator

Design notes:
    - These models use Pydantic aliases to match the Gmail/JSON field names
      (e.g. ``threadId`` -> :attr:`Message.thread_id`).
    - ``populate_by_name=True`` allows constructing models with either alias
      names or pythonic field names.
    - Snapshot models (messages, batch results, statistics) are frozen.

High-level structure:
    - Gmail primitives:
        - :class:`Message`
        - :class:`Label`
    - Processing primitives:
        - :class:`ClassifiedMessage`
        - :class:`MessageOutcome`
        - :class:`BatchResult`
    - Run primitives:
        - :class:`Scope`
        - :class:`RunState`
        - :class:`RunStatistics`
        - :class:`RunProgress`
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .config import EmailCategory


class Scope(str, Enum):
    """Mailbox section a run operates on."""

    INBOX = "inbox"
    ALL = "all"


class RunState(str, Enum):
    """Lifecycle of one orchestration run."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.COMPLETED, RunState.STOPPED, RunState.FAILED)


class Message(BaseModel):
    """
    Gmail message snapshot.

    Only header metadata and the preview snippet are fetched; the full body is
    never needed for classification.

    Attributes:
        id: Gmail message ID.
        thread_id: Gmail thread ID.
        subject: Subject header.
        sender: From header.
        snippet: Gmail preview text.
        date: Date header (raw string).
        label_ids: Label IDs applied when the message was fetched.
    """

    id: str
    thread_id: str = Field(default="", alias="threadId")
    subject: str = ""
    sender: str = Field(default="", alias="from")
    snippet: str = ""
    date: str = ""
    label_ids: tuple[str, ...] = Field(default_factory=tuple, alias="labelIds")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class Label(BaseModel):
    """
    Gmail label.

    Attributes:
        id: Provider-assigned label ID.
        name: Label display name.
    """

    id: str
    name: str

    model_config = ConfigDict(frozen=True)


class ClassifiedMessage(BaseModel):
    """A message together with the category that was applied to it."""

    message: Message
    category: EmailCategory

    model_config = ConfigDict(frozen=True)


class MessageOutcome(BaseModel):
    """
    Outcome of processing a single message.

    Exactly one of :attr:`category` (success) or :attr:`reason` (failure) is
    set. Use :meth:`ok` and :meth:`err` to construct instances.
    """

    message: Message
    category: Optional[EmailCategory] = None
    reason: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def ok(cls, message: Message, category: EmailCategory) -> "MessageOutcome":
        return cls(message=message, category=category)

    @classmethod
    def err(cls, message: Message, reason: str) -> "MessageOutcome":
        return cls(message=message, reason=reason)

    @property
    def is_ok(self) -> bool:
        return self.reason is None and self.category is not None


class BatchResult(BaseModel):
    """
    Result of processing one page of messages.

    Attributes:
        total: Messages successfully hydrated from the page.
        processed: Messages classified and labeled.
        skipped: Messages intentionally left untouched.
        errors: Messages whose classify/resolve/apply step failed.
        results: Processed messages and their categories, in page order.
        next_page_token: Cursor for the next page, None when exhausted.
    """

    total: int = 0
    processed: int = 0
    skipped: int = 0
    errors: int = 0
    results: list[ClassifiedMessage] = Field(default_factory=list)
    next_page_token: Optional[str] = Field(default=None, alias="nextPageToken")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class RunStatistics(BaseModel):
    """
    Running totals across the batches of one run.

    Attributes:
        total: Sum of batch totals.
        processed: Sum of batch processed counts.
        skipped: Sum of batch skipped counts.
        errors: Sum of batch error counts.
        batches: Number of batch calls that completed.
    """

    total: int = 0
    processed: int = 0
    skipped: int = 0
    errors: int = 0
    batches: int = 0

    model_config = ConfigDict(frozen=True)

    def add(self, batch: BatchResult) -> "RunStatistics":
        """Return new statistics with ``batch`` folded in."""
        return RunStatistics(
            total=self.total + batch.total,
            processed=self.processed + batch.processed,
            skipped=self.skipped + batch.skipped,
            errors=self.errors + batch.errors,
            batches=self.batches + 1,
        )


class RunProgress(BaseModel):
    """
    Incremental view of a run, emitted after every batch and once at the end.

    Attributes:
        state: Current run state.
        statistics: Cumulative statistics so far.
        results: Results of the batch just finished while ``RUNNING``;
            every result of the run in the terminal snapshot.
        error: Error message when the run failed.
    """

    state: RunState
    statistics: RunStatistics = Field(default_factory=RunStatistics)
    results: list[ClassifiedMessage] = Field(default_factory=list)
    error: Optional[str] = None
