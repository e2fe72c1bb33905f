"""Tests for the CV processing orchestrator."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Optional

import pytest
from kombu import Connection

from ai_processing.errors import (
    ExtractionError,
    ExtractionErrorCode,
    FetchError,
    FetchErrorCode,
    ModelError,
    ModelErrorCode,
    PipelineError,
    PipelineStage,
)
from ai_processing.pipeline.models import ExtractedText, RawDocument
from ai_processing.pipeline.orchestrator import CvProcessingPipeline, PipelineDependencies
from ai_processing.pipeline.parser import ResultParser
from ai_processing.schemas import DocumentReference
from ai_processing.services.publisher import InMemoryResultPublisher, KombuResultPublisher

FIXED_NOW = datetime(2024, 6, 1, 9, 30, tzinfo=timezone.utc)


class DummyFetcher:
    def __init__(self, content: bytes = b"cv bytes", error: Optional[Exception] = None):
        self.content = content
        self.error = error
        self.calls: list[int] = []

    async def fetch(self, document_id: int) -> RawDocument:
        self.calls.append(document_id)
        if self.error is not None:
            raise self.error
        return RawDocument(content=self.content)


class DummyExtractor:
    def __init__(self, text: str = "Marie Dubois, ingenieure", error: Optional[Exception] = None):
        self.text = text
        self.error = error
        self.calls = 0

    async def extract(self, content: bytes) -> ExtractedText:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return ExtractedText(text=self.text)


class DummyDetector:
    def __init__(self, language: str = "fr"):
        self.language = language

    async def detect(self, sample: str) -> str:
        return self.language


class DummyModel:
    def __init__(self, answer: str = "{}", error: Optional[Exception] = None, delay: float = 0.0):
        self.answer = answer
        self.error = error
        self.delay = delay
        self.calls: list[tuple[str, str]] = []

    async def extract_profile(self, text: str, language: str) -> str:
        self.calls.append((text, language))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.answer


def _pipeline(**overrides) -> tuple[CvProcessingPipeline, PipelineDependencies]:
    deps = PipelineDependencies(
        fetcher=overrides.get("fetcher", DummyFetcher()),
        text_extractor=overrides.get("text_extractor", DummyExtractor()),
        language_detector=overrides.get("language_detector", DummyDetector()),
        extraction_client=overrides.get("extraction_client", DummyModel()),
        parser=overrides.get("parser", ResultParser()),
        publisher=overrides.get("publisher", InMemoryResultPublisher()),
    )
    pipeline = CvProcessingPipeline(deps, model_name="test-model", clock=lambda: FIXED_NOW)
    return pipeline, deps


EVENT = DocumentReference(document_id=42, subject_id="user-42")


def test_successful_run_enriches_and_publishes(model_answer_factory) -> None:
    answer = model_answer_factory()
    answer.update(
        {
            "subjectId": "someone-else",
            "documentId": 999,
            "cvLanguage": "en",
            "aiMetadata": {"modelUsed": "made-up", "documentId": "999"},
        }
    )
    model = DummyModel(answer=json.dumps(answer))
    pipeline, deps = _pipeline(extraction_client=model)

    profile = asyncio.run(pipeline.run(EVENT))

    assert profile.subject_id == "user-42"
    assert profile.document_id == 42
    assert profile.cv_language == "fr"
    assert profile.ai_metadata.model_used == "test-model"
    assert profile.ai_metadata.document_id == "42"
    assert profile.ai_metadata.detected_language == "fr"
    assert profile.ai_metadata.processed_at == FIXED_NOW
    assert profile.ats_analysis.overall_score == 78
    assert model.calls == [("Marie Dubois, ingenieure", "fr")]

    published = deps.publisher.on("cvParsed-out-0")
    assert len(published) == 1
    assert published[0]["subjectId"] == "user-42"
    assert published[0]["aiMetadata"]["processedAt"].startswith("2024-06-01T09:30:00")


def test_event_type_echoed_by_model_is_overwritten(model_answer_factory) -> None:
    answer = model_answer_factory()
    answer["eventType"] = "HACKED"
    pipeline, deps = _pipeline(extraction_client=DummyModel(answer=json.dumps(answer)))

    profile = asyncio.run(pipeline.run(EVENT))

    assert profile.event_type == "CV_PARSED"
    [published] = deps.publisher.on("cvParsed-out-0")
    assert published["eventType"] == "CV_PARSED"


def test_fetch_failure_short_circuits() -> None:
    extractor = DummyExtractor()
    pipeline, deps = _pipeline(
        fetcher=DummyFetcher(error=FetchError(FetchErrorCode.NOT_FOUND, "gone")),
        text_extractor=extractor,
    )

    with pytest.raises(PipelineError) as excinfo:
        asyncio.run(pipeline.run(EVENT))

    error = excinfo.value
    assert error.stage is PipelineStage.FETCH
    assert error.code == "NotFound"
    assert error.document_id == 42
    assert error.retryable is False
    assert isinstance(error.__cause__, FetchError)
    assert extractor.calls == 0
    assert deps.publisher.messages == []


def test_extraction_failure_is_tagged_with_stage() -> None:
    model = DummyModel()
    pipeline, deps = _pipeline(
        text_extractor=DummyExtractor(
            error=ExtractionError(ExtractionErrorCode.PARSE_FAILURE, "corrupt")
        ),
        extraction_client=model,
    )

    with pytest.raises(PipelineError) as excinfo:
        asyncio.run(pipeline.run(EVENT))

    assert excinfo.value.stage is PipelineStage.EXTRACT
    assert excinfo.value.code == "ParseFailure"
    assert model.calls == []
    assert deps.publisher.messages == []


def test_model_failure_publishes_nothing() -> None:
    pipeline, deps = _pipeline(
        extraction_client=DummyModel(
            error=ModelError(ModelErrorCode.RETRIES_EXHAUSTED, "gave up")
        )
    )

    with pytest.raises(PipelineError) as excinfo:
        asyncio.run(pipeline.run(EVENT))

    assert excinfo.value.stage is PipelineStage.MODEL
    assert excinfo.value.code == "RetriesExhausted"
    assert excinfo.value.retryable is True
    assert deps.publisher.messages == []


def test_invalid_model_json_fails_parse_stage() -> None:
    pipeline, deps = _pipeline(extraction_client=DummyModel(answer="I cannot help with that"))

    with pytest.raises(PipelineError) as excinfo:
        asyncio.run(pipeline.run(EVENT))

    assert excinfo.value.stage is PipelineStage.PARSE
    assert excinfo.value.code == "InvalidJson"
    assert deps.publisher.messages == []


def test_refused_publish_is_reported() -> None:
    pipeline, _ = _pipeline(publisher=InMemoryResultPublisher(accept=False))

    with pytest.raises(PipelineError) as excinfo:
        asyncio.run(pipeline.run(EVENT))

    assert excinfo.value.stage is PipelineStage.PUBLISH
    assert excinfo.value.code == "Rejected"
    assert excinfo.value.retryable is True


def test_unroutable_channel_is_not_retryable() -> None:
    publisher = KombuResultPublisher(connection=Connection("memory://"), routing_keys={})
    pipeline, _ = _pipeline(publisher=publisher)

    with pytest.raises(PipelineError) as excinfo:
        asyncio.run(pipeline.run(EVENT))

    assert excinfo.value.stage is PipelineStage.PUBLISH
    assert excinfo.value.code == "Unroutable"
    assert excinfo.value.retryable is False


def test_unexpected_exception_is_wrapped() -> None:
    pipeline, _ = _pipeline(extraction_client=DummyModel(error=KeyError("choices")))

    with pytest.raises(PipelineError) as excinfo:
        asyncio.run(pipeline.run(EVENT))

    assert excinfo.value.stage is PipelineStage.MODEL
    assert excinfo.value.code == "Unexpected"
    assert excinfo.value.retryable is False
    assert isinstance(excinfo.value.__cause__, KeyError)


def test_timeout_reports_stage_in_progress() -> None:
    pipeline, deps = _pipeline(extraction_client=DummyModel(delay=5.0))

    with pytest.raises(PipelineError) as excinfo:
        asyncio.run(pipeline.run(EVENT, timeout_seconds=0.05))

    assert excinfo.value.stage is PipelineStage.MODEL
    assert excinfo.value.code == "Timeout"
    assert excinfo.value.retryable is True
    assert deps.publisher.messages == []


def test_concurrent_runs_are_independent(model_answer_factory) -> None:
    pipeline, deps = _pipeline(extraction_client=DummyModel(answer=json.dumps(model_answer_factory())))
    events = [DocumentReference(document_id=i, subject_id=f"user-{i}") for i in range(1, 6)]

    async def _run_all():
        return await asyncio.gather(*(pipeline.run(event) for event in events))

    profiles = asyncio.run(_run_all())

    assert [p.document_id for p in profiles] == [1, 2, 3, 4, 5]
    assert sorted(m["subjectId"] for m in deps.publisher.on("cvParsed-out-0")) == [
        f"user-{i}" for i in range(1, 6)
    ]
