"""
Tests for the gmail_client module.
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from src.gmail_labeler.config import Settings
from src.gmail_labeler.gmail_client import GmailClient, MissingCredentialError
from src.gmail_labeler.models import Label


@pytest.fixture
def settings():
    """Create settings for testing."""
    return Settings(groq_api_key="test-key", request_timeout_seconds=12, _env_file=None)


@pytest.fixture
def client(settings):
    """Create a Gmail client with a stubbed request helper."""
    client = GmailClient(settings, "token-123")
    client._make_request = MagicMock(return_value={})
    return client


def test_missing_access_token_raises(settings) -> None:
    """An empty access token is rejected before any request is made."""

    with pytest.raises(MissingCredentialError):
        GmailClient(settings, "")


class TestMakeRequest:
    """Tests for the authenticated request helper."""

    def test_sends_bearer_token_and_timeout(self, settings):
        """Every request carries the token and the configured timeout."""
        response = MagicMock(ok=True, status_code=200, content=b"{}")
        response.json.return_value = {"labels": []}

        with patch(
            "src.gmail_labeler.gmail_client.requests.request", return_value=response
        ) as request:
            result = GmailClient(settings, "token-123")._make_request("GET", "/labels")

        assert result == {"labels": []}
        kwargs = request.call_args.kwargs
        assert kwargs["url"] == "https://gmail.googleapis.com/gmail/v1/users/me/labels"
        assert kwargs["headers"] == {"Authorization": "Bearer token-123"}
        assert kwargs["timeout"] == 12

    def test_raises_on_error_status(self, settings):
        """Non-2xx responses raise requests.HTTPError."""
        response = MagicMock(ok=False, status_code=401, text="invalid credentials")
        response.raise_for_status.side_effect = requests.HTTPError("401 Unauthorized")

        with patch(
            "src.gmail_labeler.gmail_client.requests.request", return_value=response
        ):
            with pytest.raises(requests.HTTPError):
                GmailClient(settings, "token-123")._make_request("GET", "/labels")


class TestListMessageIds:
    """Tests for paginated message listing."""

    def test_first_page(self, client):
        """First page omits the page token."""
        client._make_request.return_value = {
            "messages": [{"id": "m1", "threadId": "t1"}, {"id": "m2", "threadId": "t2"}],
            "nextPageToken": "next-1",
        }

        ids, next_token = client.list_message_ids("in:inbox", max_results=50)

        assert ids == ["m1", "m2"]
        assert next_token == "next-1"
        args, kwargs = client._make_request.call_args
        assert args == ("GET", "/messages")
        assert kwargs["params"] == {"q": "in:inbox", "maxResults": 50}

    def test_passes_page_token(self, client):
        """Subsequent pages pass the cursor through."""
        client._make_request.return_value = {"messages": [{"id": "m3"}]}

        ids, next_token = client.list_message_ids("q", page_token="next-1")

        assert ids == ["m3"]
        assert next_token is None
        assert client._make_request.call_args.kwargs["params"]["pageToken"] == "next-1"

    def test_empty_page(self, client):
        """Gmail omits ``messages`` when nothing matches."""
        client._make_request.return_value = {"resultSizeEstimate": 0}

        assert client.list_message_ids("q") == ([], None)


class TestGetMessage:
    """Tests for message hydration."""

    def test_parses_headers_case_insensitively(self, client):
        """Headers are matched regardless of case and missing ones are empty."""
        client._make_request.return_value = {
            "id": "m1",
            "threadId": "t1",
            "snippet": "Hello there",
            "labelIds": ["INBOX", "UNREAD"],
            "payload": {
                "headers": [
                    {"name": "from", "value": "Alice <alice@example.com>"},
                    {"name": "SUBJECT", "value": "Lunch?"},
                ]
            },
        }

        message = client.get_message("m1")

        assert message.id == "m1"
        assert message.thread_id == "t1"
        assert message.sender == "Alice <alice@example.com>"
        assert message.subject == "Lunch?"
        assert message.date == ""
        assert message.snippet == "Hello there"
        assert message.label_ids == ("INBOX", "UNREAD")

    def test_requests_metadata_only(self, client):
        """Only From/Subject/Date metadata is requested."""
        client._make_request.return_value = {"id": "a/b"}

        client.get_message("a/b")

        args, kwargs = client._make_request.call_args
        assert args == ("GET", "/messages/a%2Fb")
        assert kwargs["params"] == {
            "format": "metadata",
            "metadataHeaders": ["From", "Subject", "Date"],
        }


class TestLabels:
    """Tests for label operations."""

    def test_list_labels(self, client):
        """Labels are validated into Label models."""
        client._make_request.return_value = {
            "labels": [
                {"id": "INBOX", "name": "INBOX", "type": "system"},
                {"id": "Label_1", "name": "To Reply", "type": "user"},
            ]
        }

        labels = client.list_labels()

        assert labels == [Label(id="INBOX", name="INBOX"), Label(id="Label_1", name="To Reply")]

    def test_create_label_is_visible(self, client):
        """New labels are shown in the label list and the message list."""
        client._make_request.return_value = {"id": "Label_9", "name": "Receipt"}

        label = client.create_label("Receipt")

        assert label == Label(id="Label_9", name="Receipt")
        args, kwargs = client._make_request.call_args
        assert args == ("POST", "/labels")
        assert kwargs["json_data"] == {
            "name": "Receipt",
            "labelListVisibility": "labelShow",
            "messageListVisibility": "show",
        }


class TestAddLabels:
    """Tests for applying labels to messages."""

    def test_add_only_payload(self, client):
        """The modify call only adds labels; INBOX and UNREAD are never removed."""
        client.add_labels("m1", ["Label_1"])

        args, kwargs = client._make_request.call_args
        assert args == ("POST", "/messages/m1/modify")
        assert kwargs["json_data"] == {"addLabelIds": ["Label_1"]}
        assert "removeLabelIds" not in kwargs["json_data"]

    def test_propagates_http_errors(self, client):
        """Modify failures are raised to the caller."""
        client._make_request.side_effect = requests.HTTPError("500")

        with pytest.raises(requests.HTTPError):
            client.add_labels("m1", ["Label_1"])
