"""Runtime helper factories for the AI processing service."""

from .factory import (
    PipelineRuntime,
    build_executor,
    build_language_detector,
    build_publisher,
    build_runtime,
)

__all__ = [
    "PipelineRuntime",
    "build_executor",
    "build_language_detector",
    "build_publisher",
    "build_runtime",
]
