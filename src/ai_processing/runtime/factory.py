"""Factories for building runtime components used across the AI processing service."""

from __future__ import annotations

from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

import httpx

from ..config import AppConfig, ConfigError
from ..constants import CV_PARSED_CHANNEL, PROCESSING_FAILED_CHANNEL
from ..logging import get_logger
from ..pipeline.fetcher import HttpContentFetcher
from ..pipeline.interfaces import ResultPublisher
from ..pipeline.language import LanguageDetector, LanguageModel, load_langdetect_model
from ..pipeline.orchestrator import CvProcessingPipeline, PipelineDependencies
from ..pipeline.parser import ResultParser
from ..pipeline.text_extraction import DocumentTextExtractor
from ..security.contact import ContactDetailFilter
from ..services.llm import StructuredExtractionClient
from ..services.publisher import InMemoryResultPublisher, KombuResultPublisher

logger = get_logger(__name__)


def build_executor(config: AppConfig) -> ThreadPoolExecutor:
    """Create the bounded worker pool shared by CPU-bound stages."""

    return ThreadPoolExecutor(
        max_workers=config.pipeline_worker_threads, thread_name_prefix="cv-pipeline"
    )


def build_document_client(
    config: AppConfig, *, transport: Optional[httpx.AsyncBaseTransport] = None
) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=config.document_service_base_url,
        timeout=config.document_timeout_seconds,
        follow_redirects=True,
        transport=transport,
    )


def build_llm_client(
    config: AppConfig, *, transport: Optional[httpx.AsyncBaseTransport] = None
) -> httpx.AsyncClient:
    headers = {"Content-Type": "application/json", "Accept": "application/json"}
    if config.llm_api_key:
        headers["Authorization"] = f"Bearer {config.llm_api_key}"
    timeout = httpx.Timeout(
        config.llm_read_timeout_ms / 1000, connect=config.llm_connect_timeout_ms / 1000
    )
    return httpx.AsyncClient(
        base_url=config.llm_base_url, headers=headers, timeout=timeout, transport=transport
    )


def build_language_detector(
    config: AppConfig,
    *,
    executor: Optional[Executor] = None,
    loader: Optional[Callable[[], LanguageModel]] = None,
) -> LanguageDetector:
    """Create the detector and start loading its model when configured to."""

    detector = LanguageDetector(
        default_language=config.language_default,
        min_confidence=config.language_min_confidence,
        sample_chars=config.language_sample_chars,
        loader=loader or (lambda: load_langdetect_model(seed=config.language_seed)),
        executor=executor,
    )
    if config.language_load_on_startup:
        detector.start_loading()
    return detector


def build_extraction_client(
    config: AppConfig,
    client: httpx.AsyncClient,
    *,
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> StructuredExtractionClient:
    kwargs: dict[str, Any] = {}
    if sleep is not None:
        kwargs["sleep"] = sleep
    return StructuredExtractionClient(
        client,
        model=config.llm_model,
        chat_endpoint=config.llm_chat_endpoint,
        max_input_chars=config.llm_max_input_chars,
        temperature=config.llm_temperature,
        max_tokens=config.llm_max_tokens,
        max_retries=config.llm_max_retries,
        backoff_initial_seconds=config.llm_backoff_initial_seconds,
        backoff_max_seconds=config.llm_backoff_max_seconds,
        redactor=ContactDetailFilter() if config.llm_redact_contact_details else None,
        **kwargs,
    )


def build_publisher(
    config: AppConfig, *, executor: Optional[Executor] = None
) -> InMemoryResultPublisher | KombuResultPublisher:
    """Instantiate the outbound publisher for the configured backend."""

    backend = config.publisher_backend
    if backend == "memory":
        return InMemoryResultPublisher()
    if backend == "amqp":
        return KombuResultPublisher(
            broker_url=config.publisher_broker_url,
            exchange=config.publisher_exchange,
            routing_keys={
                CV_PARSED_CHANNEL: config.cv_parsed_routing_key,
                PROCESSING_FAILED_CHANNEL: config.processing_failed_routing_key,
            },
            confirm_timeout_seconds=config.publisher_confirm_timeout_seconds,
            executor=executor,
        )
    raise ConfigError(f"Unsupported publisher backend '{backend}'")


@dataclass
class PipelineRuntime:
    """Long-lived components shared by every pipeline run of a process."""

    config: AppConfig
    pipeline: CvProcessingPipeline
    language_detector: LanguageDetector
    publisher: ResultPublisher
    executor: ThreadPoolExecutor
    http_clients: List[httpx.AsyncClient] = field(default_factory=list)

    async def aclose(self) -> None:
        for client in self.http_clients:
            await client.aclose()
        close = getattr(self.publisher, "close", None)
        if callable(close):
            close()
        self.executor.shutdown(wait=False)


def build_runtime(
    config: AppConfig,
    *,
    document_transport: Optional[httpx.AsyncBaseTransport] = None,
    llm_transport: Optional[httpx.AsyncBaseTransport] = None,
    publisher: Optional[ResultPublisher] = None,
    language_loader: Optional[Callable[[], LanguageModel]] = None,
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> PipelineRuntime:
    """Wire every stage from configuration. Keyword overrides exist for tests."""

    executor = build_executor(config)
    document_client = build_document_client(config, transport=document_transport)
    llm_client = build_llm_client(config, transport=llm_transport)
    detector = build_language_detector(config, executor=executor, loader=language_loader)
    resolved_publisher = (
        publisher if publisher is not None else build_publisher(config, executor=executor)
    )

    deps = PipelineDependencies(
        fetcher=HttpContentFetcher(document_client, download_path=config.document_download_path),
        text_extractor=DocumentTextExtractor(executor),
        language_detector=detector,
        extraction_client=build_extraction_client(config, llm_client, sleep=sleep),
        parser=ResultParser(),
        publisher=resolved_publisher,
    )
    pipeline = CvProcessingPipeline(deps, model_name=config.llm_model)
    logger.info(
        "runtime.ready",
        publisherBackend=config.publisher_backend,
        model=config.llm_model,
        workerThreads=config.pipeline_worker_threads,
    )
    return PipelineRuntime(
        config=config,
        pipeline=pipeline,
        language_detector=detector,
        publisher=resolved_publisher,
        executor=executor,
        http_clients=[document_client, llm_client],
    )


__all__ = [
    "PipelineRuntime",
    "build_document_client",
    "build_executor",
    "build_extraction_client",
    "build_language_detector",
    "build_llm_client",
    "build_publisher",
    "build_runtime",
]
