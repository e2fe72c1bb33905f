"""Background-loaded statistical language detection with a default fallback."""

from __future__ import annotations

import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from enum import Enum
from typing import Callable, Optional, Protocol, Sequence

from langdetect.detector_factory import PROFILES_DIRECTORY, DetectorFactory
from langdetect.lang_detect_exception import LangDetectException

from ..logging import get_logger
from ..util.concurrency import run_blocking

logger = get_logger(__name__)


class DetectorState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"


class LanguageModel(Protocol):
    """Scores a text and returns (language, probability) pairs."""

    def probabilities(self, text: str) -> Sequence[tuple[str, float]]:
        ...


class LangDetectModel:
    """langdetect profiles loaded into a private :class:`DetectorFactory`.

    The factory is read-only once loaded; each call creates its own detector.
    """

    def __init__(self, factory: DetectorFactory) -> None:
        self._factory = factory

    def probabilities(self, text: str) -> Sequence[tuple[str, float]]:
        detector = self._factory.create()
        detector.append(text)
        return [(item.lang, item.prob) for item in detector.get_probabilities()]


def load_langdetect_model(seed: Optional[int] = 0) -> LangDetectModel:
    factory = DetectorFactory()
    factory.load_profile(PROFILES_DIRECTORY)
    if seed is not None:
        factory.set_seed(seed)
    return LangDetectModel(factory)


class LanguageDetector:
    """Returns a two-letter language code for a text sample.

    The detector starts ``uninitialized`` and becomes ``ready`` once
    :meth:`start_loading` has loaded the model in the background. Until then,
    and whenever the sample is blank or the top probability is below
    ``min_confidence``, the configured default code is returned.
    """

    def __init__(
        self,
        *,
        default_language: str = "en",
        min_confidence: float = 0.8,
        sample_chars: int = 1000,
        loader: Callable[[], LanguageModel] = load_langdetect_model,
        executor: Optional[Executor] = None,
    ) -> None:
        self._default = default_language
        self._min_confidence = min_confidence
        self._sample_chars = sample_chars
        self._loader = loader
        self._executor = executor
        self._model: Optional[LanguageModel] = None
        self._load_future: Optional[Future] = None
        self._lock = threading.Lock()

    @property
    def default_language(self) -> str:
        return self._default

    @property
    def state(self) -> DetectorState:
        return DetectorState.READY if self._model is not None else DetectorState.UNINITIALIZED

    def start_loading(self) -> Future:
        """Begin loading the model in the background and return the load future.

        Calling this more than once returns the same future.
        """

        with self._lock:
            if self._load_future is None:
                if self._executor is not None:
                    self._load_future = self._executor.submit(self._load)
                else:
                    loader_pool = ThreadPoolExecutor(
                        max_workers=1, thread_name_prefix="language-loader"
                    )
                    self._load_future = loader_pool.submit(self._load)
                    loader_pool.shutdown(wait=False)
            return self._load_future

    def _load(self) -> None:
        try:
            model = self._loader()
        except Exception:
            logger.exception("language.model_load_failed")
            return
        self._model = model
        logger.info("language.model_ready")

    async def detect(self, sample: str) -> str:
        model = self._model
        if model is None:
            logger.warning("language.detector_not_ready", fallback=self._default)
            return self._default
        if not sample or not sample.strip():
            logger.info("language.blank_sample", fallback=self._default)
            return self._default
        snippet = sample[: self._sample_chars]
        return await run_blocking(self._executor, self._classify, model, snippet)

    def _classify(self, model: LanguageModel, snippet: str) -> str:
        try:
            scores = list(model.probabilities(snippet))
            if not scores:
                return self._default
            language, probability = max(scores, key=lambda item: item[1])
        except LangDetectException as exc:
            logger.warning("language.undetectable", reason=str(exc), fallback=self._default)
            return self._default
        except Exception:
            logger.exception("language.detector_failed", fallback=self._default)
            return self._default

        if probability < self._min_confidence:
            logger.info(
                "language.low_confidence",
                candidate=language,
                probability=round(probability, 4),
                fallback=self._default,
            )
            return self._default
        code = language.split("-", 1)[0].lower()
        logger.info("language.detected", language=code, probability=round(probability, 4))
        return code


__all__ = [
    "DetectorState",
    "LangDetectModel",
    "LanguageDetector",
    "LanguageModel",
    "load_langdetect_model",
]
