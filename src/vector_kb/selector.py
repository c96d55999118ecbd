"""Active backend selection.

The adapter named in configuration is built on first use and reused for the
lifetime of the selector. Unknown names fall back to ``DEFAULT_BACKEND``.
"""

import asyncio
from collections.abc import Callable, Mapping

from loguru import logger

from vector_kb.backends import BackendAdapter, PineconeAdapter, QdrantAdapter
from vector_kb.config import DEFAULT_BACKEND, VectorKBConfig
from vector_kb.errors import BackendUnavailableError, UnknownBackendError

AdapterFactory = Callable[[VectorKBConfig], BackendAdapter]


def _build_qdrant(config: VectorKBConfig) -> BackendAdapter:
    return QdrantAdapter(config.backend.qdrant, config.embedding.dimensions)


def _build_pinecone(config: VectorKBConfig) -> BackendAdapter:
    return PineconeAdapter(config.backend.pinecone, config.embedding.dimensions)


DEFAULT_FACTORIES: dict[str, AdapterFactory] = {
    "qdrant": _build_qdrant,
    "pinecone": _build_pinecone,
}


class BackendSelector:
    """Memoized factory for the active backend adapter.

    ``get_adapter`` is safe under concurrent first use: the factory runs at
    most once, guarded by an ``asyncio.Lock``.
    """

    def __init__(
        self,
        config: VectorKBConfig,
        factories: Mapping[str, AdapterFactory] | None = None,
        default_backend: str = DEFAULT_BACKEND,
    ):
        self.config = config
        self.factories = dict(factories or DEFAULT_FACTORIES)
        self.default_backend = default_backend
        self.backend_name = self.resolve_name(config.backend.active)
        self._adapter: BackendAdapter | None = None
        self._lock = asyncio.Lock()

    def resolve_name(self, name: str) -> str:
        """Normalise a configured backend name, falling back to the default.

        Unknown names are logged, not raised, so a typo in configuration
        degrades to the documented default backend.
        """
        normalized = name.strip().lower()
        if normalized in self.factories:
            return normalized

        error = UnknownBackendError(name, sorted(self.factories))
        logger.warning(f"{error}. Falling back to {self.default_backend!r}")
        return self.default_backend

    async def get_adapter(self) -> BackendAdapter:
        """Return the active adapter, building it on first use.

        Raises:
            BackendUnavailableError: If the adapter cannot be constructed (for
                example a missing API key); the next call tries again
        """
        if self._adapter is not None:
            return self._adapter

        async with self._lock:
            if self._adapter is None:
                name = self.backend_name
                logger.info(f"Initializing vector backend: {name}")
                try:
                    self._adapter = self.factories[name](self.config)
                except Exception as e:
                    raise BackendUnavailableError(
                        name, f"Could not initialize backend: {e}"
                    ) from e
            return self._adapter
