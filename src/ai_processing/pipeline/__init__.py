"""CV processing pipeline public interface."""

from .fetcher import HttpContentFetcher
from .language import DetectorState, LanguageDetector
from .models import ExtractedText, RawDocument
from .orchestrator import CvProcessingPipeline, PipelineDependencies
from .parser import ResultParser
from .text_extraction import DocumentTextExtractor

__all__ = [
    "CvProcessingPipeline",
    "DetectorState",
    "DocumentTextExtractor",
    "ExtractedText",
    "HttpContentFetcher",
    "LanguageDetector",
    "PipelineDependencies",
    "RawDocument",
    "ResultParser",
]
