"""Shared constants for the AI processing service."""

SERVICE_NAME = "ai-processing-service"
CORRELATION_HEADER = "X-Correlation-Id"

CV_DOCUMENT_TYPE = "CV"
CV_PARSED_EVENT_TYPE = "CV_PARSED"
CV_UPLOADED_EVENT_TYPE = "document.cv.uploaded"

# Logical outbound channels.
CV_PARSED_CHANNEL = "cvParsed-out-0"
PROCESSING_FAILED_CHANNEL = "processingFailed-out-0"

DEFAULT_DOWNLOAD_PATH = "/{document_id}/download"
TRUNCATION_MARKER = "\n[... TRUNCATED ...]"
NO_ERROR_BODY = "[No error body]"
