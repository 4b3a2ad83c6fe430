"""
Embedding providers and client for repodex.

Providers turn text into fixed-length vectors. The EmbeddingClient wraps a
provider with input truncation, bounded retries and a zero-vector fallback,
so a failing provider degrades search quality instead of blocking indexing.
"""

import concurrent.futures
import hashlib
import logging
import math
import re
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional
import httpx
from sentence_transformers import SentenceTransformer

from .config import Config
from .exceptions import EmbeddingProviderError
from .models import EmbeddingResult, EmbeddingState
from .utils import retry_on_failure

logger = logging.getLogger(__name__)


class EmbeddingProvider(ABC):
    """An external capability that maps text to a vector of fixed dimension."""

    name: str = "provider"

    def __init__(self, model: str):
        self.model = model

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Length of the vectors this provider produces."""

    @abstractmethod
    def embed(self, text: str) -> list[float]:
        """
        Embed a single text.

        Raises:
            EmbeddingProviderError: If the provider fails
        """

    def close(self) -> None:
        """Release provider resources."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.model})"


class OllamaProvider(EmbeddingProvider):
    """
    Embeddings from an Ollama server via POST /api/embeddings.

    Each request is bounded by the client timeout.
    """

    name = "ollama"

    def __init__(
        self,
        model: str = "nomic-embed-text",
        base_url: str = "http://localhost:11434",
        dimension: int = 768,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        super().__init__(model)
        self.base_url = base_url.rstrip("/")
        self._dimension = dimension
        self._client = client or httpx.Client(timeout=timeout)

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str) -> list[float]:
        try:
            response = self._client.post(
                f"{self.base_url}/api/embeddings",
                json={"model": self.model, "prompt": text},
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            raise EmbeddingProviderError(f"Ollama request failed: {e}") from e
        except ValueError as e:
            raise EmbeddingProviderError(f"Invalid JSON from Ollama: {e}") from e

        embedding = payload.get("embedding") if isinstance(payload, dict) else None
        if not isinstance(embedding, list) or not embedding:
            raise EmbeddingProviderError("Invalid embedding response from Ollama")
        return [float(v) for v in embedding]

    def close(self) -> None:
        self._client.close()


class SentenceTransformerProvider(EmbeddingProvider):
    """
    Local embeddings from a sentence-transformers model.

    The model is loaded lazily on first use; its vector size is read from
    the model at load time.
    """

    name = "sentence-transformers"

    def __init__(self, model: str = "all-MiniLM-L6-v2", device: Optional[str] = None):
        super().__init__(model)
        self.device = device
        self._model: Optional[SentenceTransformer] = None
        self._dimension: Optional[int] = None
        self._model_lock = threading.Lock()

    @property
    def st_model(self) -> SentenceTransformer:
        """Lazy-load the model on first access (thread-safe)."""
        if self._model is None:
            with self._model_lock:
                if self._model is None:
                    logger.info(f"Loading embedding model: {self.model}")
                    model = SentenceTransformer(self.model, device=self.device)
                    dimension = model.get_sentence_embedding_dimension()
                    if dimension is None:
                        dimension = len(model.encode("test", show_progress_bar=False))
                    self._dimension = int(dimension)
                    self._model = model
                    logger.info(f"Model loaded on device: {model.device} (dimension {self._dimension})")
        return self._model

    @property
    def dimension(self) -> int:
        if self._dimension is None:
            try:
                self.st_model
            except (RuntimeError, OSError, ValueError) as e:
                raise EmbeddingProviderError(f"Could not load model {self.model}: {e}") from e
        return self._dimension

    def embed(self, text: str) -> list[float]:
        try:
            embedding = self.st_model.encode(
                text,
                convert_to_numpy=True,
                show_progress_bar=False,
                normalize_embeddings=True,
            )
        except (RuntimeError, OSError, ValueError) as e:
            raise EmbeddingProviderError(f"sentence-transformers failed: {e}") from e
        return [float(v) for v in embedding.tolist()]


_TOKEN_RE = re.compile(r"[A-Za-z0-9_]+")


class HashingProvider(EmbeddingProvider):
    """
    Deterministic bag-of-words embeddings that need no model or network.

    Every token is hashed into a signed bucket and the result is
    L2-normalized. Texts without tokens map to the zero vector.
    """

    name = "hashing"

    def __init__(self, dimension: int = 256):
        super().__init__(f"sha1-bow-{dimension}")
        self._dimension = max(8, int(dimension))

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str) -> list[float]:
        bucket = [0.0] * self._dimension
        for token in _TOKEN_RE.findall(text.lower()):
            digest = hashlib.sha1(token.encode("utf-8")).digest()
            idx = int.from_bytes(digest[:4], byteorder="big") % self._dimension
            bucket[idx] += -1.0 if digest[4] % 2 else 1.0
        norm = math.sqrt(sum(v * v for v in bucket))
        if norm == 0:
            return bucket
        return [v / norm for v in bucket]


def create_provider(config: Config) -> EmbeddingProvider:
    """
    Build the embedding provider named in the [embeddings] section.

    Raises:
        ValueError: If the provider name is unknown
    """
    provider = config.get("embeddings", "provider", default="ollama")
    model = config.get("embeddings", "model", default=None)

    if provider == "ollama":
        return OllamaProvider(
            model=model or "nomic-embed-text",
            base_url=config.get("embeddings", "base_url", default="http://localhost:11434"),
            dimension=config.get("embeddings", "dimension", default=768),
            timeout=config.get("embeddings", "timeout", default=30.0),
        )
    if provider == "sentence-transformers":
        return SentenceTransformerProvider(
            model=model or "all-MiniLM-L6-v2",
            device=config.get("embeddings", "device", default=None),
        )
    if provider == "hashing":
        return HashingProvider(dimension=config.get("embeddings", "dimension", default=256))
    raise ValueError(f"Unknown embedding provider: {provider}")


class EmbeddingClient:
    """
    Turns chunk text into vectors through an EmbeddingProvider.

    Policy:
    - Text longer than max_text_length is truncated before submission
    - Each failed call is retried with exponential backoff
    - After the last retry the text gets an all-zero vector tagged FALLBACK
    - Batches run sequentially with a small delay between calls, or on a
      bounded thread pool when max_workers > 1
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        max_text_length: int = 8000,
        max_retries: int = 2,
        retry_delay: float = 0.5,
        request_delay: float = 0.01,
        max_workers: int = 1,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.provider = provider
        self.max_text_length = max_text_length
        self.max_retries = max(0, max_retries)
        self.retry_delay = retry_delay
        self.request_delay = request_delay
        self.max_workers = max(1, max_workers)
        self._sleep = sleep or time.sleep
        self._dimension: Optional[int] = None
        self._embed_with_retry = retry_on_failure(
            max_attempts=self.max_retries + 1,
            delay=self.retry_delay,
            exceptions=(EmbeddingProviderError,),
            sleep=self._sleep,
        )(self._embed_once)

    @classmethod
    def from_config(cls, config: Config, provider: Optional[EmbeddingProvider] = None) -> "EmbeddingClient":
        """Build a client from the [embeddings] configuration section."""
        return cls(
            provider or create_provider(config),
            max_text_length=config.get("embeddings", "max_text_length", default=8000),
            max_retries=config.get("embeddings", "max_retries", default=2),
            retry_delay=config.get("embeddings", "retry_delay", default=0.5),
            request_delay=config.get("embeddings", "request_delay", default=0.01),
            max_workers=config.get("embeddings", "max_workers", default=1),
        )

    @property
    def dimension(self) -> int:
        """Vector length, fixed once the provider first reports it."""
        if self._dimension is None:
            self._dimension = self.provider.dimension
        return self._dimension

    @property
    def model_name(self) -> str:
        return self.provider.model

    def zero_vector(self) -> list[float]:
        return [0.0] * self.dimension

    def embed(self, text: str) -> EmbeddingResult:
        """
        Embed a single text, degrading to a zero vector on failure.

        Args:
            text: Text to embed

        Returns:
            EmbeddingResult tagged EMBEDDED or FALLBACK
        """
        if len(text) > self.max_text_length:
            text = text[:self.max_text_length]

        try:
            vector = self._embed_with_retry(text)
        except EmbeddingProviderError as e:
            logger.warning(f"Embedding failed after {self.max_retries + 1} attempts, using zero vector: {e}")
            return EmbeddingResult(vector=self.zero_vector(), state=EmbeddingState.FALLBACK)

        if len(vector) != self.dimension:
            logger.warning(
                f"Provider returned {len(vector)}-dim vector, expected {self.dimension}; using zero vector"
            )
            return EmbeddingResult(vector=self.zero_vector(), state=EmbeddingState.FALLBACK)

        return EmbeddingResult(vector=vector, state=EmbeddingState.EMBEDDED)

    def embed_batch(self, texts: list[str]) -> list[EmbeddingResult]:
        """
        Embed multiple texts, preserving order.

        A failure on one text never aborts the batch.

        Args:
            texts: Texts to embed

        Returns:
            One EmbeddingResult per input text
        """
        if not texts:
            return []

        logger.debug(f"Generating embeddings for {len(texts)} texts")

        if self.max_workers > 1 and len(texts) > 1:
            with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                return list(executor.map(self.embed, texts))

        results = []
        for i, text in enumerate(texts):
            if i > 0 and self.request_delay > 0:
                self._sleep(self.request_delay)
            results.append(self.embed(text))
        return results

    def close(self) -> None:
        self.provider.close()

    def _embed_once(self, text: str) -> list[float]:
        try:
            return self.provider.embed(text)
        except EmbeddingProviderError:
            raise
        except Exception as e:
            raise EmbeddingProviderError(f"{self.provider.name} provider error: {e}") from e

    def __repr__(self) -> str:
        return f"EmbeddingClient(provider={self.provider!r})"
