"""Chunked, multi-provider extraction of legal dates and events.

Each chunk is sent to the selected provider independently, with bounded
concurrency, exponential backoff between attempts and an optional model
downgrade after transient failures. Chunk results are merged only after every
chunk task has resolved.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
import logging
from typing import Awaitable, Callable, Iterable

from legalextract.config import DowngradeScope, ExtractionSettings
from legalextract.errors import ExtractionFailed, InputError, ProviderError, SchemaInvalid
from legalextract.extraction.models import (
    SENTINEL_EVENT_TEXT,
    ExtractionEvent,
    ExtractionResult,
    sentinel_event,
)
from legalextract.extraction.parsing import parse_completion
from legalextract.extraction.prompts import SYSTEM_PROMPT, build_user_prompt
from legalextract.extraction.validator import validate_extraction
from legalextract.ingestion.chunking import TextChunk, build_chunks
from legalextract.providers.base import CompletionProvider, ProviderRequest
from legalextract.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


@dataclass(slots=True)
class ChunkOutcome:
    """Result of processing one chunk; failed chunks contribute no events."""

    index: int
    succeeded: bool
    attempts: int
    model: str
    events: list[ExtractionEvent] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass(slots=True)
class _ModelState:
    """Model in effect for chunks sharing a downgrade."""

    model: str


def merge_events(event_lists: Iterable[Iterable[ExtractionEvent]]) -> list[ExtractionEvent]:
    """Concatenate per-chunk events, keeping the first of each (date, event) pair.

    Provider-emitted "nothing found" placeholders are dropped; the orchestrator
    adds its own sentinel when the merged list ends up empty.
    """

    merged: list[ExtractionEvent] = []
    seen: set[tuple[str, str]] = set()
    for events in event_lists:
        for event in events:
            if event.event.strip() == SENTINEL_EVENT_TEXT:
                continue
            if event.dedup_key in seen:
                continue
            seen.add(event.dedup_key)
            merged.append(event)
    return merged


class ExtractionOrchestrator:
    """Run the prompt contract over every chunk of a normalized document."""

    def __init__(
        self,
        registry: ProviderRegistry,
        settings: ExtractionSettings | None = None,
        *,
        sleep: SleepFn = asyncio.sleep,
        today: Callable[[], date] = _utc_today,
    ) -> None:
        self._registry = registry
        self._settings = settings or ExtractionSettings()
        self._sleep = sleep
        self._today = today

    def backoff_delay(self, retry_number: int) -> float:
        """Delay before retry ``retry_number`` (1-based): base, 2*base, ... capped."""

        delay = self._settings.backoff_base_seconds * (2 ** (retry_number - 1))
        return min(delay, self._settings.backoff_max_seconds)

    async def extract(self, text: str, model: str, api_type: str) -> ExtractionResult:
        """Extract merged, deduplicated events from normalized text."""

        if not text or not text.strip():
            raise InputError("Document text cannot be empty", field_name="documentText")

        provider = self._registry.get(api_type)
        model_id = (model or "").strip() or provider.default_model
        chunks = build_chunks(text, max_chars=self._settings.chunk_size)
        today = self._today()

        logger.info(
            "Extracting events with %s/%s: %d chars in %d chunk(s)",
            provider.name,
            model_id,
            len(text),
            len(chunks),
        )

        semaphore = asyncio.Semaphore(self._settings.concurrency)
        shared_state = _ModelState(model_id) if self._settings.downgrade_scope is DowngradeScope.EXTRACTION else None

        # Leaving the group cancels every sibling chunk task, including on cancellation of extract().
        async with asyncio.TaskGroup() as group:
            tasks = [
                group.create_task(
                    self._process_chunk(
                        chunk,
                        provider=provider,
                        model=model_id,
                        current_year=today.year,
                        semaphore=semaphore,
                        shared_state=shared_state,
                    )
                )
                for chunk in chunks
            ]
        return self._merge([task.result() for task in tasks], today=today)

    def _merge(self, outcomes: list[ChunkOutcome], *, today: date) -> ExtractionResult:
        failed = [outcome.index for outcome in outcomes if not outcome.succeeded]
        if len(failed) == len(outcomes):
            logger.error("Extraction failed: none of %d chunk(s) succeeded", len(outcomes))
            raise ExtractionFailed(
                reason="no_chunks_succeeded",
                message=f"All {len(outcomes)} chunk(s) failed extraction",
            )
        if failed:
            logger.warning("Extraction continued without %d failed chunk(s): %s", len(failed), failed)

        events = merge_events(outcome.events for outcome in outcomes if outcome.succeeded)
        warnings = [f"chunk {outcome.index}: {warning}" for outcome in outcomes for warning in outcome.warnings]

        is_sentinel = not events
        if is_sentinel:
            events = [sentinel_event(today)]

        return ExtractionResult(
            events=events,
            chunk_count=len(outcomes),
            failed_chunks=failed,
            warnings=warnings,
            is_sentinel=is_sentinel,
        )

    async def _process_chunk(
        self,
        chunk: TextChunk,
        *,
        provider: CompletionProvider,
        model: str,
        current_year: int,
        semaphore: asyncio.Semaphore,
        shared_state: _ModelState | None,
    ) -> ChunkOutcome:
        current_model = shared_state.model if shared_state is not None else model
        user_prompt = build_user_prompt(chunk.text, current_year=current_year)
        last_error: ProviderError | None = None
        attempt = 0

        for attempt in range(1, self._settings.max_attempts + 1):
            if attempt > 1:
                delay = self.backoff_delay(attempt - 1)
                logger.info("Chunk %d: retrying in %.1fs (attempt %d)", chunk.index, delay, attempt)
                await self._sleep(delay)

            try:
                # Backoff sleeps happen outside the semaphore; only provider calls hold a slot.
                async with semaphore:
                    if shared_state is not None:
                        current_model = shared_state.model
                    request = ProviderRequest(system_prompt=SYSTEM_PROMPT, user_prompt=user_prompt, model=current_model)
                    raw = await self._call_provider(provider, request)
            except ProviderError as exc:
                last_error = exc
                if not exc.is_transient:
                    logger.warning("Chunk %d: permanent provider error: %s", chunk.index, exc)
                    break

                logger.warning("Chunk %d: transient provider error on attempt %d: %s", chunk.index, attempt, exc)
                fallback = provider.fallback_model_for(current_model)
                if fallback and attempt < self._settings.max_attempts:
                    logger.info("Chunk %d: downgrading model %s -> %s", chunk.index, current_model, fallback)
                    current_model = fallback
                    if shared_state is not None:
                        shared_state.model = fallback
                continue
            except Exception as exc:
                logger.exception("Chunk %d: provider %s raised an unexpected error", chunk.index, provider.name)
                return ChunkOutcome(
                    index=chunk.index,
                    succeeded=False,
                    attempts=attempt,
                    model=current_model,
                    error=f"Unexpected provider error: {type(exc).__name__}: {exc}",
                )

            return self._parse_chunk(chunk, raw, attempt=attempt, model=current_model)

        return ChunkOutcome(
            index=chunk.index,
            succeeded=False,
            attempts=attempt,
            model=current_model,
            error=str(last_error) if last_error is not None else "no attempts made",
        )

    async def _call_provider(
        self,
        provider: CompletionProvider,
        request: ProviderRequest,
    ) -> str:
        timeout = self._settings.provider_timeout_seconds
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(provider.complete, request.system_prompt, request.user_prompt, request.model),
                timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ProviderError(
                provider=provider.name,
                model=request.model,
                error_kind="transient",
                message=f"Provider call timed out after {timeout:g}s",
            ) from exc

    def _parse_chunk(self, chunk: TextChunk, raw: str, *, attempt: int, model: str) -> ChunkOutcome:
        try:
            report = validate_extraction(parse_completion(raw))
        except SchemaInvalid as exc:
            logger.warning("Chunk %d: unusable completion from %s: %s", chunk.index, model, exc)
            return ChunkOutcome(index=chunk.index, succeeded=False, attempts=attempt, model=model, error=str(exc))

        for error in report.field_errors:
            logger.info("Chunk %d: dropped event %s (%s: %s)", chunk.index, error.index, error.field_name, error.message)

        return ChunkOutcome(
            index=chunk.index,
            succeeded=True,
            attempts=attempt,
            model=model,
            events=report.events,
            warnings=report.warnings,
        )
