"""Application configuration and settings.

Objective:
    Provide a single source of truth for runtime configuration used across the
    application (Groq, Gmail paging, batch scheduling and network timeouts).

Responsibilities:
    - Define the canonical set of email categories (:class:`EmailCategory`)
      together with their Gmail label names and prompt definitions.
    - Load environment-driven settings via :class:`Settings` (Pydantic
      BaseSettings).

High-level call tree:
    - :func:`get_settings` -> returns :class:`Settings`
    - :class:`EmailCategory`
        - :meth:`EmailCategory.from_reply`
    - :func:`managed_label_names`

Operational notes:
    - ``Settings`` loads from ``.env`` by default via ``pydantic-settings``.
    - Most modules accept a ``Settings`` object explicitly to enable testing;
      the orchestrator falls back to :func:`get_settings` when not provided.
"""

from enum import Enum
from typing import Optional
import logging

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class EmailCategory(str, Enum):
    """Canonical set of categories used by the system.

    These values are referenced by:
    - the LLM prompt (the model must answer with one of the enum values)
    - the Gmail search query (every label name is excluded)
    - label creation and assignment

    The Enum values are the symbols the model replies with; the user-facing
    Gmail label name is exposed via :attr:`label_name`.
    """

    TO_REPLY = "TO_REPLY"
    AWAITING_REPLY = "AWAITING_REPLY"
    FYI = "FYI"
    ACTIONED = "ACTIONED"
    NEWSLETTER = "NEWSLETTER"
    MARKETING = "MARKETING"
    CALENDAR = "CALENDAR"
    RECEIPT = "RECEIPT"
    NOTIFICATION = "NOTIFICATION"
    COLD_EMAIL = "COLD_EMAIL"

    @property
    def label_name(self) -> str:
        """Gmail label name for this category (e.g. ``"To Reply"``)."""
        return _LABEL_NAMES[self]

    @property
    def definition(self) -> str:
        """One-line definition used in the classification prompt."""
        return _DEFINITIONS[self]

    @property
    def description(self) -> str:
        """Short human-readable description used in CLI output."""
        return _DESCRIPTIONS[self]

    @classmethod
    def from_reply(cls, text: Optional[str]) -> Optional["EmailCategory"]:
        """Validate a raw model reply against the known categories.

        The reply is trimmed and upper-cased before lookup. Anything that is
        not exactly a known symbol (prose, partial text, an unexpected label)
        yields ``None``.

        Args:
            text: Raw reply text.

        Returns:
            Optional[EmailCategory]: Matching category, or None.
        """
        normalized = (text or "").strip().upper()
        try:
            return cls(normalized)
        except ValueError:
            return None


_LABEL_NAMES: dict[EmailCategory, str] = {
    EmailCategory.TO_REPLY: "To Reply",
    EmailCategory.AWAITING_REPLY: "Awaiting Reply",
    EmailCategory.FYI: "FYI",
    EmailCategory.ACTIONED: "Actioned",
    EmailCategory.NEWSLETTER: "Newsletter",
    EmailCategory.MARKETING: "Marketing",
    EmailCategory.CALENDAR: "Calendar",
    EmailCategory.RECEIPT: "Receipt",
    EmailCategory.NOTIFICATION: "Notification",
    EmailCategory.COLD_EMAIL: "Cold Email",
}

_DEFINITIONS: dict[EmailCategory, str] = {
    EmailCategory.TO_REPLY: (
        "Emails requiring my personal response (business inquiries, customer "
        "questions, important communications from known contacts)"
    ),
    EmailCategory.AWAITING_REPLY: "Emails where I'm waiting for someone's response",
    EmailCategory.FYI: "Important information I should know but don't need to respond to",
    EmailCategory.ACTIONED: "Completed conversations with nothing left to do",
    EmailCategory.NEWSLETTER: "Content from publications, blogs, or subscribed services",
    EmailCategory.MARKETING: "Promotional emails about products, services, sales, or offers",
    EmailCategory.CALENDAR: "Scheduling, meeting invites, or calendar notifications",
    EmailCategory.RECEIPT: (
        "Purchase confirmations, payment receipts, invoices, billing statements, "
        "order confirmations"
    ),
    EmailCategory.NOTIFICATION: "System alerts, status updates, app notifications",
    EmailCategory.COLD_EMAIL: (
        "Unsolicited sales pitches, recruitment, partnership requests from unknown senders"
    ),
}

_DESCRIPTIONS: dict[EmailCategory, str] = {
    EmailCategory.TO_REPLY: "Needs your response",
    EmailCategory.AWAITING_REPLY: "Waiting for their response",
    EmailCategory.FYI: "Info only, no action needed",
    EmailCategory.ACTIONED: "Completed",
    EmailCategory.NEWSLETTER: "Subscribed content",
    EmailCategory.MARKETING: "Promotional",
    EmailCategory.CALENDAR: "Meetings & scheduling",
    EmailCategory.RECEIPT: "Purchases, payments & invoices",
    EmailCategory.NOTIFICATION: "System alerts",
    EmailCategory.COLD_EMAIL: "Unsolicited outreach",
}

# Category used when the model reply is not a known category.
DEFAULT_CATEGORY = EmailCategory.FYI


def managed_label_names() -> list[str]:
    """Return the Gmail label names owned by this application, in enum order.

    Returns:
        list[str]: Label names.
    """
    return [category.label_name for category in EmailCategory]


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    The settings model is intentionally flat and human-editable via `.env`.
    Most fields map directly to environment variables.

    Attributes:
        groq_api_key: Groq API key for LLM access.
        groq_model: Groq model used for classification.
        classifier_max_tokens: Completion budget; only a category token is expected.
        gmail_access_token: Optional OAuth access token used by the CLI.
        page_size: Number of messages listed per batch.
        inter_batch_delay_seconds: Pause between batches of a run.
        request_timeout_seconds: Timeout applied to every outbound call.
        max_workers: Threads used for per-message work within a batch.
        log_level: Logging level.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Groq Configuration
    groq_api_key: str = Field(..., description="Groq API key")
    groq_model: str = Field(
        default="llama-3.1-8b-instant", description="Groq model name"
    )
    classifier_max_tokens: int = Field(
        default=20, ge=1, le=256, description="Max tokens for the category reply"
    )

    # Gmail Configuration
    gmail_access_token: Optional[str] = Field(
        default=None,
        description=(
            "Gmail OAuth access token with the gmail.modify scope. "
            "Only used by the CLI; the web API receives tokens per request."
        ),
    )

    # Processing Settings
    page_size: int = Field(
        default=50, ge=1, le=500, description="Messages listed per batch"
    )
    inter_batch_delay_seconds: float = Field(
        default=1.0, ge=0, description="Delay between batches (rate limiting)"
    )
    request_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Timeout for Gmail and Groq calls"
    )
    max_workers: int = Field(
        default=4, ge=1, le=32, description="Threads per batch for message work"
    )
    log_level: str = Field(default="INFO", description="Logging level")


def get_settings() -> Settings:
    """
    Load and return application settings.

    This helper is a convenience for production code. For tests, you typically
    construct a :class:`Settings` instance directly or pass a mocked settings
    object.

    Returns:
        Settings: Application settings instance.

    Raises:
        ValidationError: If required environment variables are missing.
    """
    return Settings()
