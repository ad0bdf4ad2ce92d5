"""Gmail REST API client for message and label operations.

Objective:
    Provide a thin wrapper around the Gmail API endpoints used by this
    project. This module centralizes HTTP request construction, authentication
    headers, timeouts, and Pydantic validation of responses.

Responsibilities:
    - Issue authenticated HTTP requests to Gmail (via :class:`requests`).
    - List message IDs matching a search query, one page at a time.
    - Hydrate a message's header metadata and preview snippet.
    - List and create labels.
    - Add labels to a message (add-only; nothing is ever removed).

High-level call tree:
    - Public API:
        - :meth:`GmailClient.list_message_ids` -> ``(ids, next_page_token)``
        - :meth:`GmailClient.get_message` -> :class:`src.gmail_labeler.models.Message`
        - :meth:`GmailClient.list_labels` -> :class:`src.gmail_labeler.models.Label`
        - :meth:`GmailClient.create_label`
        - :meth:`GmailClient.add_labels`
    - Internal helpers:
        - :meth:`GmailClient._make_request` (auth + timeout + error handling)

Gmail endpoints used:
    - ``GET /users/me/messages`` (search + pagination)
    - ``GET /users/me/messages/{id}?format=metadata``
    - ``GET /users/me/labels``
    - ``POST /users/me/labels``
    - ``POST /users/me/messages/{id}/modify``

Error handling:
    - HTTP errors are logged and raised from :meth:`_make_request`. Callers
      decide whether a failure is fatal for the batch or for one message.
"""

import logging
from typing import Optional
from urllib.parse import quote

import requests

from .config import Settings
from .models import Label, Message

logger = logging.getLogger(__name__)

METADATA_HEADERS = ("From", "Subject", "Date")


class MissingCredentialError(ValueError):
    """Raised when no Gmail access token was supplied."""


class GmailClient:
    """
    Client for interacting with the Gmail API.

    The client is bound to one OAuth access token; it does not refresh or
    otherwise manage credentials.

    Attributes:
        settings: Application settings.
        access_token: Gmail OAuth access token.
    """

    GMAIL_BASE_URL = "https://gmail.googleapis.com/gmail/v1/users/me"

    def __init__(self, settings: Settings, access_token: str) -> None:
        """
        Initialize Gmail client.

        Args:
            settings: Application settings.
            access_token: Gmail OAuth access token.

        Raises:
            MissingCredentialError: If the access token is empty.
        """
        if not access_token:
            raise MissingCredentialError("Access token is required")

        self.settings = settings
        self.access_token = access_token

    def _make_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json_data: Optional[dict] = None,
    ) -> dict:
        """Make an authenticated request to the Gmail API.

        This helper:
        - Adds the Bearer auth header.
        - Applies the configured timeout.
        - Raises for non-2xx responses.
        - Returns decoded JSON or ``{}`` for 204 responses.

        Args:
            method: HTTP method (GET, POST).
            endpoint: API endpoint path relative to the user root.
            params: Query parameters.
            json_data: JSON body data.

        Returns:
            dict: Response JSON data.

        Raises:
            requests.HTTPError: If request fails.
        """
        url = f"{self.GMAIL_BASE_URL}{endpoint}"
        headers = {"Authorization": f"Bearer {self.access_token}"}

        response = requests.request(
            method=method,
            url=url,
            headers=headers,
            params=params,
            json=json_data,
            timeout=self.settings.request_timeout_seconds,
        )

        if not response.ok:
            logger.error(
                "Gmail API error: %s %s -> %s - %s",
                method,
                endpoint,
                response.status_code,
                response.text,
            )
            response.raise_for_status()

        if response.status_code == 204 or not response.content:
            return {}

        return response.json()

    def list_message_ids(
        self,
        query: str,
        page_token: Optional[str] = None,
        max_results: int = 50,
    ) -> tuple[list[str], Optional[str]]:
        """List one page of message IDs matching a Gmail search query.

        Args:
            query: Gmail search query (``q`` parameter).
            page_token: Cursor returned by the previous page, if any.
            max_results: Page size.

        Returns:
            tuple[list[str], Optional[str]]: Message IDs and the next page
            token (None when there are no more pages).
        """
        params = {"q": query, "maxResults": max_results}
        if page_token:
            params["pageToken"] = page_token

        logger.debug("Listing messages with query: %s", query)
        response = self._make_request("GET", "/messages", params=params)

        ids = [item["id"] for item in response.get("messages", []) if item.get("id")]
        next_page_token = response.get("nextPageToken") or None

        logger.debug(
            "Listed %d message ids (more pages: %s)", len(ids), bool(next_page_token)
        )
        return ids, next_page_token

    def get_message(self, message_id: str) -> Message:
        """Fetch header metadata and the preview snippet for one message.

        Header names are matched case-insensitively; missing headers become
        empty strings.

        Args:
            message_id: Gmail message ID.

        Returns:
            Message: Message snapshot.
        """
        safe_message_id = quote(message_id, safe="")
        params = {"format": "metadata", "metadataHeaders": list(METADATA_HEADERS)}

        detail = self._make_request("GET", f"/messages/{safe_message_id}", params=params)

        headers = (detail.get("payload") or {}).get("headers") or []

        def header(name: str) -> str:
            for item in headers:
                if str(item.get("name", "")).lower() == name.lower():
                    return item.get("value") or ""
            return ""

        return Message(
            id=detail.get("id") or message_id,
            thread_id=detail.get("threadId") or "",
            subject=header("Subject"),
            sender=header("From"),
            snippet=detail.get("snippet") or "",
            date=header("Date"),
            label_ids=tuple(detail.get("labelIds") or ()),
        )

    def list_labels(self) -> list[Label]:
        """List all labels in the mailbox, system labels included.

        Returns:
            list[Label]: Labels.
        """
        response = self._make_request("GET", "/labels")

        labels = []
        for item in response.get("labels", []):
            try:
                labels.append(Label.model_validate(item))
            except Exception as e:
                logger.warning(f"Failed to parse label: {e}")
                continue

        logger.debug(f"Found {len(labels)} labels")
        return labels

    def create_label(self, name: str) -> Label:
        """Create a user label visible in both the label and message lists.

        Args:
            name: Label display name.

        Returns:
            Label: Created label.
        """
        json_data = {
            "name": name,
            "labelListVisibility": "labelShow",
            "messageListVisibility": "show",
        }
        response = self._make_request("POST", "/labels", json_data=json_data)
        label = Label.model_validate(response)
        logger.info(f"Created label: {label.name} ({label.id})")
        return label

    def add_labels(self, message_id: str, label_ids: list[str]) -> None:
        """Add labels to a message.

        Only ``addLabelIds`` is sent: the message keeps its INBOX and UNREAD
        labels, so it is neither archived nor marked as read.

        Args:
            message_id: Gmail message ID.
            label_ids: Label IDs to add.
        """
        safe_message_id = quote(message_id, safe="")
        json_data = {"addLabelIds": list(label_ids)}

        self._make_request(
            "POST", f"/messages/{safe_message_id}/modify", json_data=json_data
        )
        logger.debug(f"Added labels {label_ids} to message {message_id}")
