"""Celery application and the task consuming document upload events."""

from __future__ import annotations

import asyncio
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from celery import Celery
from celery.exceptions import Reject
from celery.signals import worker_process_init, worker_process_shutdown
from pydantic import ValidationError

from ..config import AppConfig, load_config
from ..constants import PROCESSING_FAILED_CHANNEL
from ..errors import PipelineError
from ..logging import get_logger
from ..runtime.factory import PipelineRuntime, build_runtime
from ..schemas import DocumentEvent, DocumentReference, ProcessingFailedEvent, StructuredProfile

logger = get_logger(__name__)

celery_app = Celery("ai_processing")

_worker_lock = threading.Lock()
_worker_config: Optional[AppConfig] = None
_worker_runtime: Optional["WorkerRuntime"] = None


def configure_celery(config: AppConfig) -> Celery:
    """Configure the Celery application using runtime configuration."""

    global _worker_config
    _worker_config = config
    celery_app.conf.update(
        broker_url=config.celery_broker_url,
        result_backend=config.celery_result_backend,
        task_always_eager=config.celery_task_always_eager,
        task_eager_propagates=config.celery_task_eager_propagates,
        timezone="UTC",
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,
    )
    return celery_app


class WorkerRuntime:
    """Pipeline components plus the event loop they are bound to in this process."""

    def __init__(self, runtime: PipelineRuntime, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.runtime = runtime
        self.loop = loop or asyncio.new_event_loop()

    @property
    def config(self) -> AppConfig:
        return self.runtime.config

    def process(self, event: DocumentReference) -> StructuredProfile:
        return self.loop.run_until_complete(
            self.runtime.pipeline.run(
                event, timeout_seconds=self.config.pipeline_timeout_seconds
            )
        )

    def notify_failure(self, event: DocumentReference, error: PipelineError) -> bool:
        """Publish a failure notification; never raises over the original error."""

        notification = ProcessingFailedEvent(
            document_id=event.document_id,
            subject_id=event.subject_id,
            stage=error.stage.value,
            error_code=error.code,
            error_message=error.message,
            error_timestamp=datetime.now(timezone.utc),
        )
        try:
            accepted = self.loop.run_until_complete(
                self.runtime.publisher.publish(PROCESSING_FAILED_CHANNEL, notification)
            )
        except Exception:
            logger.exception("consumer.failure_notification_error", documentId=event.document_id)
            return False
        if not accepted:
            logger.error("consumer.failure_notification_refused", documentId=event.document_id)
        return accepted

    def close(self) -> None:
        if self.loop.is_closed():
            return
        self.loop.run_until_complete(self.runtime.aclose())
        self.loop.close()


def get_worker_runtime() -> WorkerRuntime:
    """Return the process-wide runtime, building it on first use."""

    global _worker_runtime
    with _worker_lock:
        if _worker_runtime is None:
            config = _worker_config or load_config()
            _worker_runtime = WorkerRuntime(build_runtime(config))
        return _worker_runtime


def set_worker_runtime(runtime: Optional[WorkerRuntime]) -> None:
    global _worker_runtime
    with _worker_lock:
        _worker_runtime = runtime


@worker_process_init.connect
def _init_worker_runtime(**_: Any) -> None:
    # Start loading the language model before the first event arrives.
    get_worker_runtime()


@worker_process_shutdown.connect
def _close_worker_runtime(**_: Any) -> None:
    global _worker_runtime
    with _worker_lock:
        runtime, _worker_runtime = _worker_runtime, None
    if runtime is not None:
        runtime.close()


def retry_countdown(config: AppConfig, retries: int) -> int:
    return min(
        config.consumer_retry_backoff_max_seconds,
        config.consumer_retry_backoff_seconds * (2**retries),
    )


@celery_app.task(
    bind=True,
    name="ai_processing.process_document_event",
    acks_late=True,
    reject_on_worker_lost=True,
)
def process_document_event(self, payload: Dict[str, Any]) -> Dict[str, Any]:
    try:
        event = DocumentEvent.model_validate(payload)
    except ValidationError as exc:
        logger.error("consumer.invalid_event", error=str(exc))
        raise Reject(f"Invalid document event: {exc}", requeue=False) from exc

    if not event.is_cv:
        logger.info(
            "consumer.skipped", documentId=event.document_id, documentType=event.document_type
        )
        return {"status": "skipped", "documentId": event.document_id}

    worker = get_worker_runtime()
    try:
        profile = worker.process(event)
    except PipelineError as exc:
        config = worker.config
        retries = self.request.retries or 0
        if exc.retryable and retries < config.consumer_max_retries:
            countdown = retry_countdown(config, retries)
            logger.warning(
                "consumer.retry",
                documentId=event.document_id,
                stage=exc.stage.value,
                code=exc.code,
                attempt=retries + 1,
                countdownSeconds=countdown,
            )
            raise self.retry(exc=exc, countdown=countdown, max_retries=config.consumer_max_retries)
        worker.notify_failure(event, exc)
        logger.error(
            "consumer.dead_lettered",
            documentId=event.document_id,
            stage=exc.stage.value,
            code=exc.code,
        )
        raise Reject(str(exc), requeue=False) from exc

    return {
        "status": "succeeded",
        "documentId": event.document_id,
        "overallScore": profile.ats_analysis.overall_score,
        "cvLanguage": profile.cv_language,
    }


__all__ = [
    "WorkerRuntime",
    "celery_app",
    "configure_celery",
    "get_worker_runtime",
    "process_document_event",
    "retry_countdown",
    "set_worker_runtime",
]
