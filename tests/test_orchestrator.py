"""
Tests for the orchestrator module.
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from src.gmail_labeler.config import EmailCategory, Settings
from src.gmail_labeler.gmail_client import MissingCredentialError
from src.gmail_labeler.label_resolver import LabelCache
from src.gmail_labeler.models import (
    BatchResult,
    ClassifiedMessage,
    Message,
    RunState,
    RunStatistics,
    Scope,
)
from src.gmail_labeler.orchestrator import (
    CancellationToken,
    RunOrchestrator,
    create_batch_processor,
    process_batch,
)


def _make_batch(prefix: str, count: int, errors: int = 0, next_page_token=None) -> BatchResult:
    """Create a batch result with ``count`` successful messages."""
    results = [
        ClassifiedMessage(
            message=Message(id=f"{prefix}{i}", subject=f"Subject {prefix}{i}"),
            category=EmailCategory.FYI,
        )
        for i in range(count)
    ]
    return BatchResult(
        total=count + errors,
        processed=count,
        errors=errors,
        results=results,
        next_page_token=next_page_token,
    )


@pytest.fixture
def settings():
    """Create settings without inter-batch delay."""
    return Settings(groq_api_key="test-key", inter_batch_delay_seconds=0, _env_file=None)


def _orchestrator(settings, batches):
    """Build an orchestrator whose batch processor returns ``batches`` in order."""
    processor = MagicMock()
    processor.process_batch.side_effect = batches
    factory = MagicMock(return_value=processor)
    return RunOrchestrator("token", settings=settings, batch_processor_factory=factory), processor, factory


class TestRunOrchestratorCompletion:
    """Tests for runs that exhaust all pages."""

    def test_three_batches_complete(self, settings):
        """Cursors A, B, then none give exactly three calls and summed stats."""
        batches = [
            _make_batch("a", 3, errors=1, next_page_token="A"),
            _make_batch("b", 2, next_page_token="B"),
            _make_batch("c", 1, errors=2),
        ]
        orchestrator, processor, _ = _orchestrator(settings, batches)

        progress = list(orchestrator.run_all("inbox"))

        assert [call.args for call in processor.process_batch.call_args_list] == [
            (Scope.INBOX, None),
            (Scope.INBOX, "A"),
            (Scope.INBOX, "B"),
        ]

        final = progress[-1]
        assert final.state is RunState.COMPLETED
        assert final.statistics == RunStatistics(
            total=9, processed=6, skipped=0, errors=3, batches=3
        )
        assert [r.message.id for r in final.results] == ["a0", "a1", "a2", "b0", "b1", "c0"]
        assert orchestrator.state is RunState.COMPLETED

    def test_running_snapshots_carry_only_their_batch_results(self, settings):
        """RUNNING snapshots hold that batch's results; the terminal one holds all."""
        batches = [
            _make_batch("a", 2, next_page_token="A"),
            _make_batch("b", 3, next_page_token="B"),
            _make_batch("c", 1),
        ]
        orchestrator, _, _ = _orchestrator(settings, batches)

        progress = list(orchestrator.run_all("all"))

        running = [p for p in progress if p.state is RunState.RUNNING]
        assert [[r.message.id for r in p.results] for p in running] == [
            ["a0", "a1"],
            ["b0", "b1", "b2"],
            ["c0"],
        ]
        assert [p.statistics.processed for p in running] == [2, 5, 6]
        assert [r.message.id for r in progress[-1].results] == [
            "a0", "a1", "b0", "b1", "b2", "c0"
        ]

    def test_yields_progress_after_every_batch(self, settings):
        """One RUNNING snapshot per batch, then the terminal one."""
        batches = [
            _make_batch("a", 1, next_page_token="A"),
            _make_batch("b", 1),
        ]
        orchestrator, _, _ = _orchestrator(settings, batches)

        progress = list(orchestrator.run_all("all"))

        assert [p.state for p in progress] == [
            RunState.RUNNING,
            RunState.RUNNING,
            RunState.COMPLETED,
        ]
        assert [p.statistics.batches for p in progress] == [1, 2, 2]
        assert [p.statistics.processed for p in progress] == [1, 2, 2]

    def test_fresh_label_cache_per_run(self, settings):
        """Each run builds its processor around a new label cache."""
        orchestrator, _, factory = _orchestrator(
            settings, [_make_batch("a", 1), _make_batch("b", 1)]
        )

        orchestrator.run("inbox")
        orchestrator.run("inbox")

        caches = [call.args[0] for call in factory.call_args_list]
        assert len(caches) == 2
        assert all(isinstance(cache, LabelCache) for cache in caches)
        assert caches[0] is not caches[1]

    def test_waits_between_batches_only(self, settings):
        """The inter-batch delay is observed between batches, not after the last."""
        settings.inter_batch_delay_seconds = 0.5
        orchestrator, _, _ = _orchestrator(
            settings,
            [_make_batch("a", 1, next_page_token="A"), _make_batch("b", 1)],
        )
        token = MagicMock(spec=CancellationToken)
        token.cancelled = False
        token.wait.return_value = False

        final = orchestrator.run("inbox", token)

        assert final.state is RunState.COMPLETED
        token.wait.assert_called_once_with(0.5)


class TestRunOrchestratorCancellation:
    """Tests for cooperative stop."""

    def test_stop_after_first_batch(self, settings):
        """A stop requested after batch 1 ends the run with batch 1 results."""
        batches = [
            _make_batch("a", 2, next_page_token="A"),
            _make_batch("b", 2),
        ]
        orchestrator, processor, _ = _orchestrator(settings, batches)
        token = CancellationToken()

        progress = []
        for item in orchestrator.run_all("inbox", token):
            progress.append(item)
            token.cancel()

        final = progress[-1]
        assert final.state is RunState.STOPPED
        assert processor.process_batch.call_count == 1
        assert final.statistics.batches == 1
        assert [r.message.id for r in final.results] == ["a0", "a1"]

    def test_stop_during_delay(self, settings):
        """A stop arriving while waiting between batches prevents the next batch."""
        orchestrator, processor, _ = _orchestrator(
            settings,
            [_make_batch("a", 1, next_page_token="A"), _make_batch("b", 1)],
        )
        token = MagicMock(spec=CancellationToken)
        token.cancelled = False
        token.wait.return_value = True

        final = orchestrator.run("all", token)

        assert final.state is RunState.STOPPED
        assert processor.process_batch.call_count == 1

    def test_last_page_completes_even_if_stop_requested(self, settings):
        """Exhaustion is checked before the stop request."""
        orchestrator, _, _ = _orchestrator(settings, [_make_batch("a", 1)])
        token = CancellationToken()
        token.cancel()

        final = orchestrator.run("inbox", token)

        assert final.state is RunState.COMPLETED

    def test_cancellation_token_wait(self):
        """wait returns True once cancelled."""
        token = CancellationToken()
        assert token.wait(0) is False
        token.cancel()
        assert token.cancelled is True
        assert token.wait(0) is True


class TestRunOrchestratorFailure:
    """Tests for runs ending in FAILED."""

    def test_batch_error_preserves_previous_results(self, settings):
        """An exception from a batch call fails the run but keeps prior batches."""
        batches = [
            _make_batch("a", 2, next_page_token="A"),
            requests.HTTPError("401 Client Error: Unauthorized"),
        ]
        orchestrator, processor, _ = _orchestrator(settings, batches)

        final = orchestrator.run("inbox")

        assert final.state is RunState.FAILED
        assert "401" in final.error
        assert final.statistics.batches == 1
        assert [r.message.id for r in final.results] == ["a0", "a1"]
        assert processor.process_batch.call_count == 2

    def test_setup_error_fails_run(self, settings):
        """A failure building the processor (e.g. missing token) fails the run."""
        factory = MagicMock(side_effect=MissingCredentialError("Access token is required"))
        orchestrator = RunOrchestrator("", settings=settings, batch_processor_factory=factory)

        progress = list(orchestrator.run_all("inbox"))

        assert len(progress) == 1
        assert progress[0].state is RunState.FAILED
        assert progress[0].error == "Access token is required"
        assert progress[0].statistics == RunStatistics()

    def test_default_factory_without_token_fails(self, settings):
        """The default wiring rejects an empty token as a failed run."""
        final = RunOrchestrator("", settings=settings).run("inbox")

        assert final.state is RunState.FAILED


class TestProcessBatchBoundary:
    """Tests for the single-page invocation boundary."""

    def test_missing_token_raises(self, settings):
        """The boundary rejects a missing credential."""
        with pytest.raises(MissingCredentialError):
            process_batch("", "inbox", settings=settings)

    def test_delegates_to_batch_processor(self, settings):
        """The boundary wires a processor and forwards scope and cursor."""
        expected = _make_batch("a", 1)
        with patch("src.gmail_labeler.orchestrator.create_batch_processor") as create:
            create.return_value.process_batch.return_value = expected

            result = process_batch("token", "all", "cursor", settings=settings)

        assert result is expected
        create.assert_called_once_with("token", settings)
        create.return_value.process_batch.assert_called_once_with("all", "cursor")

    def test_create_batch_processor_shares_cache(self, settings):
        """The processor's resolver uses the supplied run cache."""
        cache = LabelCache()
        with patch("src.gmail_labeler.orchestrator.EmailClassifier"):
            processor = create_batch_processor("token", settings, cache)

        assert processor.label_resolver.cache is cache
        assert processor.client.access_token == "token"
