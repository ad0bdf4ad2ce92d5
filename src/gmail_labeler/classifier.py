"""AI-assisted email classification.

Objective:
    Convert a :class:`src.gmail_labeler.models.Message` into one of the fixed
    :class:`src.gmail_labeler.config.EmailCategory` values.

Core strategy:
    1. Sanitize the From/Subject headers and the preview snippet.
    2. Build a fixed instruction prompt listing every category with a one-line
       definition, followed by the message fields.
    3. Call the Groq LLM with a tiny completion budget and validate the reply
       against the known categories, falling back to
       :data:`src.gmail_labeler.config.DEFAULT_CATEGORY`.

High-level call tree:
    - :class:`EmailClassifier`
        - :meth:`EmailClassifier.classify`
            - :meth:`EmailClassifier._build_prompt`
                - :func:`src.gmail_labeler.sanitizer.sanitize_header`
                - :func:`src.gmail_labeler.sanitizer.sanitize_snippet`
            - Groq chat completion
            - :meth:`EmailClassifier._parse_response`

Operational notes:
    - An unrecognized reply is not an error: it degrades to ``FYI``.
    - A failed Groq call raises :class:`ClassificationError`; the batch
      processor counts it against that one message.
"""

import logging
from typing import Any, Optional

from groq import Groq

from .config import DEFAULT_CATEGORY, EmailCategory, Settings
from .models import Message
from .sanitizer import sanitize_header, sanitize_snippet

logger = logging.getLogger(__name__)

PROMPT_INSTRUCTION = (
    "Classify this email into exactly ONE category. "
    "Reply with ONLY the category name, nothing else."
)


class ClassificationError(RuntimeError):
    """Raised when the classification service call fails."""


def build_category_list() -> str:
    """Render the category section of the prompt, one category per line."""
    return "\n".join(
        f"- {category.value}: {category.definition}" for category in EmailCategory
    )


class EmailClassifier:
    """
    AI-powered email classifier using Groq LLM.

    This class is instantiated once per run. It is safe to reuse for multiple
    messages (including from several threads) because it keeps no per-call
    state.

    Attributes:
        settings: Application settings.
        client: Groq API client.
    """

    def __init__(self, settings: Settings, client: Optional[Any] = None) -> None:
        """
        Initialize classifier with settings.

        Args:
            settings: Application settings with Groq API key.
            client: Optional preconfigured Groq client.
        """
        self.settings = settings
        self.client = client or Groq(
            api_key=settings.groq_api_key,
            timeout=settings.request_timeout_seconds,
            max_retries=0,
        )

    def _build_prompt(self, message: Message) -> str:
        """
        Build the single-turn classification prompt.

        Args:
            message: Message to classify.

        Returns:
            str: Prompt text.
        """
        return (
            f"{PROMPT_INSTRUCTION}\n\n"
            f"Categories:\n{build_category_list()}\n\n"
            f"Email:\n"
            f"From: {sanitize_header(message.sender)}\n"
            f"Subject: {sanitize_header(message.subject)}\n"
            f"Preview: {sanitize_snippet(message.snippet)}\n\n"
            f"Category:"
        )

    def _parse_response(self, response_text: Optional[str], message_id: str) -> EmailCategory:
        """
        Map the model reply to a category.

        Failures return :data:`DEFAULT_CATEGORY` rather than raising so that an
        ambiguous reply never aborts the pipeline.

        Args:
            response_text: Raw LLM response.
            message_id: Message ID for logging.

        Returns:
            EmailCategory: Parsed category or the default.
        """
        category = EmailCategory.from_reply(response_text)
        if category is None:
            logger.warning(
                "Unrecognized classification %r; falling back to %s (message_id=%s)",
                (response_text or "")[:100],
                DEFAULT_CATEGORY.value,
                message_id,
            )
            return DEFAULT_CATEGORY
        return category

    def classify(self, message: Message) -> EmailCategory:
        """
        Classify a single message.

        Args:
            message: Message to classify.

        Returns:
            EmailCategory: Assigned category.

        Raises:
            ClassificationError: If the Groq call fails.
        """
        prompt = self._build_prompt(message)

        try:
            response = self.client.chat.completions.create(
                model=self.settings.groq_model,
                messages=[{"role": "user", "content": prompt}],
                temperature=0,
                max_tokens=self.settings.classifier_max_tokens,
            )
            response_text = response.choices[0].message.content
        except Exception as e:
            raise ClassificationError(f"Groq API error: {e}") from e

        logger.debug(f"LLM response for {message.id}: {response_text!r}")

        category = self._parse_response(response_text, message.id)
        logger.info(f"Classified '{message.subject[:50]}' as {category.value}")
        return category
