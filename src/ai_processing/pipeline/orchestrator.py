"""Orchestration of one CV processing run, from download to publication."""

from __future__ import annotations

import asyncio
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterator, Optional

from prometheus_client import Counter, Histogram

from ..constants import CV_PARSED_CHANNEL, CV_PARSED_EVENT_TYPE
from ..errors import (
    TIMEOUT_CODE,
    UNEXPECTED_CODE,
    PipelineError,
    PipelineStage,
    PublishError,
    PublishErrorCode,
    StageError,
)
from ..logging import bind_context, clear_context, get_logger
from ..schemas import DocumentReference, ProcessingMetadata, StructuredProfile
from .interfaces import (
    ContentFetcher,
    LanguageDetector,
    ResultParser,
    ResultPublisher,
    StructuredExtractionClient,
    TextExtractor,
)

logger = get_logger(__name__)

_PIPELINE_RUNS = Counter(
    "cv_pipeline_runs_total",
    "CV processing runs by outcome.",
    ("outcome",),
)
_STAGE_LATENCY = Histogram(
    "cv_pipeline_stage_duration_seconds",
    "Duration of individual CV pipeline stages.",
    ("stage", "outcome"),
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PipelineDependencies:
    """Container for the stage implementations used by a pipeline."""

    fetcher: ContentFetcher
    text_extractor: TextExtractor
    language_detector: LanguageDetector
    extraction_client: StructuredExtractionClient
    parser: ResultParser
    publisher: ResultPublisher


@dataclass
class _RunProgress:
    stage: PipelineStage = PipelineStage.FETCH


class CvProcessingPipeline:
    """Fetch, extract, detect, call the model, parse, enrich and publish one document.

    Stages run strictly in sequence and the first failure short-circuits the
    run. Every failure leaves as a :class:`PipelineError`; nothing is published
    unless every stage succeeded.
    """

    def __init__(
        self,
        deps: PipelineDependencies,
        *,
        model_name: str,
        channel: str = CV_PARSED_CHANNEL,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._deps = deps
        self._model_name = model_name
        self._channel = channel
        self._clock = clock

    async def run(
        self, event: DocumentReference, *, timeout_seconds: Optional[float] = None
    ) -> StructuredProfile:
        progress = _RunProgress()
        bind_context(documentId=event.document_id)
        start = time.perf_counter()
        logger.info("pipeline.start")
        try:
            if timeout_seconds is None:
                profile = await self._execute(event, progress)
            else:
                profile = await asyncio.wait_for(
                    self._execute(event, progress), timeout=timeout_seconds
                )
        except asyncio.TimeoutError as exc:
            error = PipelineError(
                progress.stage,
                TIMEOUT_CODE,
                f"Pipeline run exceeded {timeout_seconds}s",
                document_id=event.document_id,
            )
            self._record_failure(error, start)
            raise error from exc
        except PipelineError as exc:
            self._record_failure(exc, start)
            raise
        else:
            _PIPELINE_RUNS.labels(outcome="succeeded").inc()
            logger.info(
                "pipeline.complete", durationMs=(time.perf_counter() - start) * 1000
            )
            return profile
        finally:
            clear_context("documentId")

    async def _execute(
        self, event: DocumentReference, progress: _RunProgress
    ) -> StructuredProfile:
        deps = self._deps
        document_id = event.document_id

        progress.stage = PipelineStage.FETCH
        with self._stage(PipelineStage.FETCH, document_id):
            raw = await deps.fetcher.fetch(document_id)

        progress.stage = PipelineStage.EXTRACT
        with self._stage(PipelineStage.EXTRACT, document_id):
            extracted = await deps.text_extractor.extract(raw.content)

        progress.stage = PipelineStage.DETECT
        with self._stage(PipelineStage.DETECT, document_id):
            language = await deps.language_detector.detect(extracted.text)

        progress.stage = PipelineStage.MODEL
        with self._stage(PipelineStage.MODEL, document_id):
            raw_json = await deps.extraction_client.extract_profile(extracted.text, language)

        progress.stage = PipelineStage.PARSE
        with self._stage(PipelineStage.PARSE, document_id):
            parsed = deps.parser.parse(raw_json)

        profile = self.enrich(parsed, event, language)
        self._log_summary(profile)

        progress.stage = PipelineStage.PUBLISH
        with self._stage(PipelineStage.PUBLISH, document_id):
            accepted = await deps.publisher.publish(self._channel, profile)
            if not accepted:
                raise PublishError(
                    PublishErrorCode.REJECTED,
                    f"Channel '{self._channel}' refused the profile of document {document_id}",
                )
        logger.info("profile.published", channel=self._channel)
        return profile

    def enrich(
        self, profile: StructuredProfile, event: DocumentReference, language: str
    ) -> StructuredProfile:
        """Overwrite identity and metadata fields with trusted local values."""

        metadata = ProcessingMetadata(
            document_id=str(event.document_id),
            model_used=self._model_name,
            processed_at=self._clock(),
            detected_language=language,
        )
        return profile.model_copy(
            update={
                "event_type": CV_PARSED_EVENT_TYPE,
                "subject_id": event.subject_id,
                "document_id": event.document_id,
                "cv_language": language,
                "ai_metadata": metadata,
            }
        )

    @contextmanager
    def _stage(self, stage: PipelineStage, document_id: int) -> Iterator[None]:
        start = time.perf_counter()
        outcome = "failed"
        try:
            yield
            outcome = "succeeded"
        except StageError as exc:
            raise PipelineError.from_stage_error(exc, document_id=document_id) from exc
        except PipelineError:
            raise
        except Exception as exc:
            raise PipelineError(
                stage,
                UNEXPECTED_CODE,
                f"Unexpected {type(exc).__name__} during {stage.value}: {exc}",
                document_id=document_id,
                retryable=False,
            ) from exc
        finally:
            _STAGE_LATENCY.labels(stage=stage.value, outcome=outcome).observe(
                time.perf_counter() - start
            )

    @staticmethod
    def _log_summary(profile: StructuredProfile) -> None:
        ats = profile.ats_analysis
        breakdown = ats.score_breakdown
        logger.info(
            "profile.ats_summary",
            overallScore=ats.overall_score,
            atsCompatibility=ats.ats_compatibility or None,
            improvementPriority=ats.improvement_priority or None,
            formatScore=breakdown.format_score,
            contentScore=breakdown.content_score,
            skillsScore=breakdown.skills_score,
            experienceScore=breakdown.experience_score,
            strengths=len(ats.strengths),
            weaknesses=len(ats.weaknesses),
            recommendations=len(ats.recommendations),
            missingKeywords=len(ats.missing_keywords),
            seniorityLevel=profile.seniority_level or None,
            yearsOfExperience=profile.years_of_experience,
            cvLanguage=profile.cv_language,
            modelUsed=profile.ai_metadata.model_used,
        )

    @staticmethod
    def _record_failure(error: PipelineError, start: float) -> None:
        _PIPELINE_RUNS.labels(outcome="failed").inc()
        logger.error(
            "pipeline.failed",
            stage=error.stage.value,
            code=error.code,
            retryable=error.retryable,
            error=error.message,
            durationMs=(time.perf_counter() - start) * 1000,
        )


__all__ = ["CvProcessingPipeline", "PipelineDependencies"]
