"""FastAPI JSON API for the Gmail labeler.

Objective:
    Expose the pipeline implemented in :mod:`src.gmail_labeler.orchestrator`
    over HTTP. This module intentionally keeps business logic inside the
    orchestrator and only handles request parsing and response shaping.

High-level call tree:
    - :func:`create_app`:
        - defines routes:
            - ``GET /health`` -> :func:`health`
            - ``POST /api/process-emails`` -> :func:`process_emails`
            - ``POST /api/runs`` -> :func:`start_run` (NDJSON stream)
            - ``POST /api/runs/{run_id}/stop`` -> :func:`stop_run`
    - Dependencies (overridable via ``app.dependency_overrides``):
        - :func:`get_settings_loader`
        - :func:`get_batch_runner`
        - :func:`get_orchestrator_factory`
        - :func:`get_run_registry`

Data flow:
    - HTTP request -> parse inputs -> call orchestrator -> JSON / NDJSON.

Operational notes:
    - The caller supplies the Gmail OAuth access token in every request; the
      server never stores it beyond the lifetime of a run.
    - Stop requests are cooperative: the run ends after its current batch.
    - Settings are loaded after the request body is validated, so a
      misconfigured server still answers with an ``{"error": ...}`` payload.
"""

from __future__ import annotations

import logging
import threading
import uuid
from typing import Any, Callable, Iterator, Optional

import requests
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from .config import Settings, get_settings
from .gmail_client import MissingCredentialError
from .models import BatchResult, Scope
from .orchestrator import CancellationToken, RunOrchestrator, process_batch

logger = logging.getLogger(__name__)


class RunRegistry:
    """Tracks cancellation tokens of runs currently streaming."""

    def __init__(self) -> None:
        self._runs: dict[str, CancellationToken] = {}
        self._lock = threading.Lock()

    def register(self) -> tuple[str, CancellationToken]:
        run_id = uuid.uuid4().hex
        token = CancellationToken()
        with self._lock:
            self._runs[run_id] = token
        return run_id, token

    def cancel(self, run_id: str) -> bool:
        with self._lock:
            token = self._runs.get(run_id)
        if token is None:
            return False
        token.cancel()
        return True

    def discard(self, run_id: str) -> None:
        with self._lock:
            self._runs.pop(run_id, None)

    def __contains__(self, run_id: str) -> bool:
        with self._lock:
            return run_id in self._runs


def get_settings_loader() -> Callable[[], Settings]:
    """Return the callable that loads settings for a request.

    Handlers call it inside their error handling, after validating the
    payload. Tests override this dependency to inject fixed settings.
    """

    return get_settings


def get_batch_runner() -> Callable[..., BatchResult]:
    """Return the single-page processing function.

    Tests override this dependency with a stub.
    """

    return process_batch


def get_orchestrator_factory() -> Callable[[str, Settings], RunOrchestrator]:
    """Return a callable building a :class:`RunOrchestrator` for a token."""

    def factory(access_token: str, settings: Settings) -> RunOrchestrator:
        return RunOrchestrator(access_token, settings=settings)

    return factory


def get_run_registry(request: Request) -> RunRegistry:
    """Return the application's run registry."""

    return request.app.state.run_registry


def _error(message: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _load_settings(loader: Callable[[], Settings]) -> Settings | JSONResponse:
    """Load settings, or build a 500 error response when they are invalid."""

    try:
        return loader()
    except ValidationError as e:
        logger.error(f"Invalid server configuration: {e}")
        return _error(f"Server misconfigured: {e}", status_code=500)


def _parse_run_inputs(payload: dict[str, Any]) -> tuple[str, Scope, Optional[str]]:
    """Extract ``(access_token, scope, page_token)`` from a request payload.

    Accepts both camelCase (``accessToken``, ``pageToken``) and snake_case
    keys, and ``section`` as an alias of ``scope``. Scope defaults to ``all``.

    Raises:
        MissingCredentialError: If no access token was supplied.
        ValueError: If the scope is unknown.
    """

    access_token = payload.get("accessToken") or payload.get("access_token")
    if not access_token:
        raise MissingCredentialError("Access token is required")

    scope = Scope(payload.get("scope") or payload.get("section") or Scope.ALL.value)
    page_token = payload.get("pageToken") or payload.get("page_token")
    return access_token, scope, page_token


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        FastAPI: FastAPI app.
    """

    app = FastAPI(title="Gmail Labeler")
    app.state.run_registry = RunRegistry()

    @app.get("/health")
    def health() -> dict[str, str]:
        """Health check endpoint.

        This is intentionally simple and should not perform external calls.
        """

        return {"status": "ok"}

    @app.post("/api/process-emails")
    def process_emails(
        payload: dict[str, Any],
        settings_loader: Callable[[], Settings] = Depends(get_settings_loader),
        batch_runner: Callable[..., BatchResult] = Depends(get_batch_runner),
    ) -> Any:
        """Process one page of unlabeled messages.

        Expected request body:
            ``{"accessToken": "...", "section": "inbox", "pageToken": "..."}``

        Returns ``{total, processed, skipped, errors, results, nextPageToken?}``
        (``nextPageToken`` is omitted on the last page), a 400 ``{"error": ...}``
        when the token is missing or the page cannot be listed, or a 500
        ``{"error": ...}`` when settings cannot be loaded.
        """

        try:
            access_token, scope, page_token = _parse_run_inputs(payload)
        except (MissingCredentialError, ValueError) as e:
            return _error(str(e))

        settings = _load_settings(settings_loader)
        if isinstance(settings, JSONResponse):
            return settings

        try:
            result = batch_runner(access_token, scope, page_token, settings=settings)
        except (ValueError, requests.RequestException) as e:
            logger.error(f"Batch request failed: {e}")
            return _error(str(e))

        body = result.model_dump(mode="json", by_alias=True)
        if result.next_page_token is None:
            body.pop("nextPageToken")
        return body

    @app.post("/api/runs")
    def start_run(
        payload: dict[str, Any],
        settings_loader: Callable[[], Settings] = Depends(get_settings_loader),
        orchestrator_factory: Callable[[str, Settings], RunOrchestrator] = Depends(
            get_orchestrator_factory
        ),
        registry: RunRegistry = Depends(get_run_registry),
    ) -> Any:
        """Run every page of a scope, streaming progress as NDJSON.

        Each line is a serialized :class:`src.gmail_labeler.models.RunProgress`;
        the last line carries the terminal state. The ``X-Run-Id`` response
        header identifies the run for ``POST /api/runs/{run_id}/stop``.
        """

        try:
            access_token, scope, _ = _parse_run_inputs(payload)
        except (MissingCredentialError, ValueError) as e:
            return _error(str(e))

        settings = _load_settings(settings_loader)
        if isinstance(settings, JSONResponse):
            return settings

        orchestrator = orchestrator_factory(access_token, settings)
        run_id, token = registry.register()
        logger.info(f"Run {run_id} started (scope={scope.value})")

        def stream() -> Iterator[str]:
            try:
                for progress in orchestrator.run_all(scope, token):
                    yield progress.model_dump_json(by_alias=True) + "\n"
            finally:
                registry.discard(run_id)

        return StreamingResponse(
            stream(),
            media_type="application/x-ndjson",
            headers={"X-Run-Id": run_id},
        )

    @app.post("/api/runs/{run_id}/stop")
    def stop_run(run_id: str, registry: RunRegistry = Depends(get_run_registry)) -> Any:
        """Request a cooperative stop of a streaming run."""

        if not registry.cancel(run_id):
            return _error("Unknown run", status_code=404)

        logger.info(f"Stop requested for run {run_id}")
        return {"status": "stopping", "run_id": run_id}

    return app


app = create_app()
