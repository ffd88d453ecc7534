from __future__ import annotations

import asyncio
from datetime import date
import json
import threading
import time

import pytest

from legalextract.config import DowngradeScope, ExtractionSettings
from legalextract.errors import ExtractionFailed, InputError, ProviderError
from legalextract.extraction.orchestrator import ExtractionOrchestrator, merge_events
from legalextract.extraction.models import SENTINEL_EVENT_TEXT, ExtractionEvent
from legalextract.extraction.prompts import SYSTEM_PROMPT
from legalextract.providers.registry import ProviderRegistry

TODAY = date(2026, 3, 14)


def _chunk_text(user_prompt: str) -> str:
    return user_prompt.rsplit("Document text:\n", 1)[1]


def _payload(*events: dict) -> str:
    return json.dumps({"dateEventTable": list(events)})


def _event(date_value: str, description: str, status: str = "completed") -> dict:
    return {"date": date_value, "event": description, "status": status, "page": None, "citation": None}


class FakeProvider:
    """Records calls and answers from a scripted responder."""

    name = "openai"

    def __init__(self, responder, *, default_model: str = "gpt-4", fallback_model: str | None = "gpt-3.5-turbo") -> None:
        self._responder = responder
        self._lock = threading.Lock()
        self.default_model = default_model
        self.fallback_model = fallback_model
        self.calls: list[tuple[str, str, str]] = []

    def fallback_model_for(self, model: str) -> str | None:
        if self.fallback_model is None or model == self.fallback_model:
            return None
        return self.fallback_model

    def complete(self, system_prompt: str, user_prompt: str, model: str) -> str:
        with self._lock:
            self.calls.append((system_prompt, user_prompt, model))
            call_number = len(self.calls)
        result = self._responder(call_number, _chunk_text(user_prompt), model)
        if isinstance(result, Exception):
            raise result
        return result


def _transient(model: str = "gpt-4") -> ProviderError:
    return ProviderError(provider="openai", model=model, error_kind="transient", message="rate limited")


def _permanent(model: str = "gpt-4") -> ProviderError:
    return ProviderError(provider="openai", model=model, error_kind="permanent", message="invalid api key")


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _orchestrator(provider: FakeProvider, **settings) -> tuple[ExtractionOrchestrator, RecordingSleep]:
    registry = ProviderRegistry()
    registry.register("openai", provider)
    sleep = RecordingSleep()
    orchestrator = ExtractionOrchestrator(
        registry,
        ExtractionSettings(**settings),
        sleep=sleep,
        today=lambda: TODAY,
    )
    return orchestrator, sleep


@pytest.mark.asyncio
async def test_single_chunk_document_returns_validated_events() -> None:
    text = "The agreement was signed on January 15, 2023."
    provider = FakeProvider(
        lambda call, chunk, model: _payload(
            {
                "date": "2023-01-15",
                "event": "Agreement signed",
                "status": "completed",
                "page": 1,
                "citation": "The agreement was signed on January 15, 2023.",
            }
        )
    )
    orchestrator, sleep = _orchestrator(provider)

    result = await orchestrator.extract(text, "gpt-4", "openai")

    assert result.to_dict() == {
        "dateEventTable": [
            {
                "date": "2023-01-15",
                "event": "Agreement signed",
                "status": "completed",
                "page": 1,
                "citation": "The agreement was signed on January 15, 2023.",
            }
        ]
    }
    assert result.chunk_count == 1
    assert result.failed_chunks == []
    assert not result.is_sentinel
    assert sleep.delays == []

    system_prompt, user_prompt, model = provider.calls[0]
    assert system_prompt == SYSTEM_PROMPT
    assert model == "gpt-4"
    assert user_prompt.endswith("Document text:\n" + text)
    assert "assume 2026" in user_prompt


@pytest.mark.asyncio
async def test_every_chunk_is_sent_once_in_order_of_text() -> None:
    text = "A" * 100 + "B" * 100 + "C" * 50
    provider = FakeProvider(lambda call, chunk, model: _payload())
    orchestrator, _ = _orchestrator(provider, chunk_size=100)

    result = await orchestrator.extract(text, "gpt-4", "openai")

    assert result.chunk_count == 3
    assert sorted(_chunk_text(user_prompt) for _, user_prompt, _ in provider.calls) == ["A" * 100, "B" * 100, "C" * 50]


@pytest.mark.asyncio
async def test_events_are_merged_in_chunk_order_and_deduplicated() -> None:
    shared = _event("2023-01-15", "Agreement signed by both parties")

    def responder(call, chunk, model):
        if chunk.startswith("A"):
            return _payload(shared, _event("2023-02-01", "First payment is due"))
        return _payload(_event("2023-03-01", "Second payment is due"), shared)

    provider = FakeProvider(responder)
    orchestrator, _ = _orchestrator(provider, chunk_size=100)

    result = await orchestrator.extract("A" * 100 + "B" * 100, "gpt-4", "openai")

    assert [(event.date, event.event) for event in result.events] == [
        ("2023-01-15", "Agreement signed by both parties"),
        ("2023-02-01", "First payment is due"),
        ("2023-03-01", "Second payment is due"),
    ]


@pytest.mark.asyncio
async def test_same_date_with_different_events_is_kept() -> None:
    provider = FakeProvider(
        lambda call, chunk, model: _payload(
            _event("2023-01-15", "Agreement signed by both parties"),
            _event("2023-01-15", "Escrow deposit received in full"),
        )
    )
    orchestrator, _ = _orchestrator(provider)

    result = await orchestrator.extract("Signed and deposited on 2023-01-15.", "gpt-4", "openai")

    assert len(result.events) == 2


@pytest.mark.asyncio
async def test_no_events_yields_single_sentinel() -> None:
    provider = FakeProvider(lambda call, chunk, model: _payload())
    orchestrator, _ = _orchestrator(provider)

    result = await orchestrator.extract("This memo contains no dates at all.", "gpt-4", "openai")

    assert result.is_sentinel
    assert [event.to_dict() for event in result.events] == [
        {
            "date": "2026-03-14",
            "event": SENTINEL_EVENT_TEXT,
            "status": "completed",
            "page": None,
            "citation": None,
        }
    ]


@pytest.mark.asyncio
async def test_provider_sentinels_are_not_mixed_with_real_events() -> None:
    def responder(call, chunk, model):
        if chunk.startswith("A"):
            return _payload(_event("2025-12-31", SENTINEL_EVENT_TEXT))
        return _payload(_event("2023-04-04", "Hearing held before the court"))

    provider = FakeProvider(responder)
    orchestrator, _ = _orchestrator(provider, chunk_size=100)

    result = await orchestrator.extract("A" * 100 + "B" * 10, "gpt-4", "openai")

    assert [event.event for event in result.events] == ["Hearing held before the court"]
    assert not result.is_sentinel


@pytest.mark.asyncio
async def test_transient_failures_back_off_and_downgrade_model() -> None:
    def responder(call, chunk, model):
        if call < 3:
            return _transient(model)
        return _payload(_event("2023-01-15", "Agreement signed by both parties"))

    provider = FakeProvider(responder)
    orchestrator, sleep = _orchestrator(provider)

    result = await orchestrator.extract("Signed on 2023-01-15.", "gpt-4", "openai")

    assert len(result.events) == 1
    assert sleep.delays == [1.0, 2.0]
    assert [model for _, _, model in provider.calls] == ["gpt-4", "gpt-3.5-turbo", "gpt-3.5-turbo"]


@pytest.mark.asyncio
async def test_exhausted_retries_fail_the_extraction() -> None:
    provider = FakeProvider(lambda call, chunk, model: _transient(model), fallback_model=None)
    orchestrator, sleep = _orchestrator(provider)

    with pytest.raises(ExtractionFailed) as exc_info:
        await orchestrator.extract("Signed on 2023-01-15.", "gpt-4", "openai")

    assert exc_info.value.reason == "no_chunks_succeeded"
    assert len(provider.calls) == 3
    assert sleep.delays == [1.0, 2.0]
    assert [model for _, _, model in provider.calls] == ["gpt-4", "gpt-4", "gpt-4"]


@pytest.mark.asyncio
async def test_backoff_is_capped() -> None:
    provider = FakeProvider(lambda call, chunk, model: _transient(model), fallback_model=None)
    orchestrator, sleep = _orchestrator(provider, max_attempts=6, backoff_base_seconds=1.0, backoff_max_seconds=5.0)

    with pytest.raises(ExtractionFailed):
        await orchestrator.extract("Signed on 2023-01-15.", "gpt-4", "openai")

    assert sleep.delays == [1.0, 2.0, 4.0, 5.0, 5.0]


@pytest.mark.asyncio
async def test_permanent_errors_are_not_retried() -> None:
    provider = FakeProvider(lambda call, chunk, model: _permanent(model))
    orchestrator, sleep = _orchestrator(provider)

    with pytest.raises(ExtractionFailed):
        await orchestrator.extract("Signed on 2023-01-15.", "gpt-4", "openai")

    assert len(provider.calls) == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_unparseable_completion_fails_chunk_without_retry() -> None:
    def responder(call, chunk, model):
        if chunk.startswith("A"):
            return "I could not find anything useful."
        return _payload(_event("2023-04-04", "Hearing held before the court"))

    provider = FakeProvider(responder)
    orchestrator, sleep = _orchestrator(provider, chunk_size=100)

    result = await orchestrator.extract("A" * 100 + "B" * 10, "gpt-4", "openai")

    assert result.failed_chunks == [0]
    assert [event.event for event in result.events] == ["Hearing held before the court"]
    assert len(provider.calls) == 2
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_invalid_events_are_dropped_and_repairs_reported() -> None:
    provider = FakeProvider(
        lambda call, chunk, model: _payload(
            {"date": "2024-13-45", "event": "Impossible hearing date", "status": "scheduled"},
            {"date": "2024-02-01", "event": "Motion to dismiss filed", "status": "completed", "page": 0},
        )
    )
    orchestrator, _ = _orchestrator(provider)

    result = await orchestrator.extract("Motion filed on 2024-02-01.", "gpt-4", "openai")

    assert [event.date for event in result.events] == ["2024-02-01"]
    assert result.events[0].page is None
    assert result.warnings and result.warnings[0].startswith("chunk 0: ")


@pytest.mark.asyncio
async def test_chunk_scope_downgrade_does_not_leak_to_other_chunks() -> None:
    def responder(call, chunk, model):
        if call == 1:
            return _transient(model)
        return _payload()

    provider = FakeProvider(responder)
    orchestrator, _ = _orchestrator(provider, chunk_size=100, concurrency=1, downgrade_scope=DowngradeScope.CHUNK)

    await orchestrator.extract("A" * 100 + "B" * 100, "gpt-4", "openai")

    models_by_chunk = {}
    for _, user_prompt, model in provider.calls:
        models_by_chunk.setdefault(_chunk_text(user_prompt)[0], []).append(model)
    assert models_by_chunk == {"A": ["gpt-4", "gpt-3.5-turbo"], "B": ["gpt-4"]}


@pytest.mark.asyncio
async def test_extraction_scope_downgrade_applies_to_waiting_chunks() -> None:
    def responder(call, chunk, model):
        if call == 1:
            return _transient(model)
        return _payload()

    provider = FakeProvider(responder)
    orchestrator, _ = _orchestrator(provider, chunk_size=100, concurrency=1, downgrade_scope=DowngradeScope.EXTRACTION)

    await orchestrator.extract("A" * 100 + "B" * 100, "gpt-4", "openai")

    models_by_chunk = {}
    for _, user_prompt, model in provider.calls:
        models_by_chunk.setdefault(_chunk_text(user_prompt)[0], []).append(model)
    assert models_by_chunk == {"A": ["gpt-4", "gpt-3.5-turbo"], "B": ["gpt-3.5-turbo"]}


@pytest.mark.asyncio
async def test_slow_provider_call_times_out_as_transient() -> None:
    def responder(call, chunk, model):
        if call == 1:
            time.sleep(0.3)
        return _payload(_event("2023-01-15", "Agreement signed by both parties"))

    provider = FakeProvider(responder, fallback_model=None)
    orchestrator, sleep = _orchestrator(provider, provider_timeout_seconds=0.05)

    result = await orchestrator.extract("Signed on 2023-01-15.", "gpt-4", "openai")

    assert len(result.events) == 1
    assert len(provider.calls) == 2
    assert sleep.delays == [1.0]


@pytest.mark.asyncio
async def test_concurrent_provider_calls_are_bounded() -> None:
    in_flight = 0
    peak = 0
    lock = threading.Lock()

    def responder(call, chunk, model):
        nonlocal in_flight, peak
        with lock:
            in_flight += 1
            peak = max(peak, in_flight)
        time.sleep(0.02)
        with lock:
            in_flight -= 1
        return _payload()

    provider = FakeProvider(responder)
    orchestrator, _ = _orchestrator(provider, chunk_size=100, concurrency=2)

    result = await orchestrator.extract("x" * 800, "gpt-4", "openai")

    assert result.chunk_count == 8
    assert len(provider.calls) == 8
    assert 1 <= peak <= 2


@pytest.mark.asyncio
async def test_blank_model_uses_provider_default() -> None:
    provider = FakeProvider(lambda call, chunk, model: _payload(), default_model="gpt-4o")
    orchestrator, _ = _orchestrator(provider)

    await orchestrator.extract("Nothing to see here.", "  ", "openai")

    assert provider.calls[0][2] == "gpt-4o"


@pytest.mark.asyncio
async def test_unknown_api_type_and_empty_text_are_input_errors() -> None:
    orchestrator, _ = _orchestrator(FakeProvider(lambda call, chunk, model: _payload()))

    with pytest.raises(InputError, match="apiType"):
        await orchestrator.extract("Signed on 2023-01-15.", "gpt-4", "anthropic")
    with pytest.raises(InputError):
        await orchestrator.extract("   ", "gpt-4", "openai")


def test_merge_events_keeps_first_occurrence() -> None:
    first = ExtractionEvent(date="2023-01-15", event="Agreement signed by both parties", status="completed", page=1)
    duplicate = ExtractionEvent(date="2023-01-15", event="Agreement signed by both parties", status="pending", page=4)

    assert merge_events([[first], [duplicate]]) == [first]


def _pending_tasks() -> list[asyncio.Task]:
    current = asyncio.current_task()
    return [task for task in asyncio.all_tasks() if task is not current and not task.done()]


@pytest.mark.asyncio
async def test_unexpected_provider_exception_fails_only_its_chunk() -> None:
    def responder(call, chunk, model):
        if chunk.startswith("A"):
            raise KeyError("choices")
        time.sleep(0.05)
        return _payload(_event("2023-04-04" if chunk.startswith("B") else "2023-05-05", f"Hearing held for part {chunk[0]}"))

    provider = FakeProvider(responder)
    orchestrator, sleep = _orchestrator(provider, chunk_size=100)

    result = await orchestrator.extract("A" * 100 + "B" * 100 + "C" * 100, "gpt-4", "openai")

    assert result.failed_chunks == [0]
    assert [event.date for event in result.events] == ["2023-04-04", "2023-05-05"]
    assert len(provider.calls) == 3
    assert sleep.delays == []
    assert _pending_tasks() == []


@pytest.mark.asyncio
async def test_cancelling_extract_cancels_pending_chunk_tasks() -> None:
    started = threading.Event()
    release = threading.Event()

    def responder(call, chunk, model):
        started.set()
        release.wait(timeout=5)
        return _payload()

    provider = FakeProvider(responder)
    orchestrator, _ = _orchestrator(provider, chunk_size=100, concurrency=1)

    task = asyncio.create_task(orchestrator.extract("A" * 100 + "B" * 100 + "C" * 100, "gpt-4", "openai"))
    try:
        assert await asyncio.to_thread(started.wait, 5)
        cancelled_at = time.monotonic()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        elapsed = time.monotonic() - cancelled_at
    finally:
        release.set()

    assert elapsed < 1.0
    assert len(provider.calls) == 1
    assert _pending_tasks() == []
