"""
Model-to-adapter routing.

Resolution is pure and in-memory so that unsupported models are rejected
before any provider is contacted. An exact pattern beats any prefix; among
prefixes the longest wins; two different adapters tied on the best match
make the model ambiguous, which is reported as unsupported.
"""

from typing import Dict, List, Optional, Tuple

from .catalog import PREFIX_WILDCARD
from .exceptions import ConfigurationError, UnsupportedModelError
from .logger import get_library_logger
from .providers.base import ProviderAdapter


class AdapterRouter:
    """Resolves model ids to the adapter that serves them."""

    def __init__(self, adapters: Optional[List[ProviderAdapter]] = None):
        self.logger = get_library_logger()
        self._exact: Dict[str, ProviderAdapter] = {}
        self._prefixes: List[Tuple[str, ProviderAdapter]] = []
        self._adapters: List[ProviderAdapter] = []
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: ProviderAdapter) -> None:
        """
        Add an adapter's model patterns to the routing table.

        Raises:
            ConfigurationError: If an exact pattern is already taken by
                another adapter
        """
        if not adapter.model_patterns:
            raise ConfigurationError(f"Adapter {adapter.name} declares no model patterns")

        for pattern in adapter.model_patterns:
            if pattern.endswith(PREFIX_WILDCARD):
                self._prefixes.append((pattern[:-1], adapter))
                continue
            existing = self._exact.get(pattern)
            if existing is not None and existing is not adapter:
                raise ConfigurationError(
                    f"Model {pattern} is already served by adapter {existing.name}"
                )
            self._exact[pattern] = adapter
        self._adapters.append(adapter)
        self.logger.debug(
            f"Registered adapter {adapter.name} ({adapter.protocol.value}) "
            f"for {len(adapter.model_patterns)} pattern(s)"
        )

    @property
    def adapters(self) -> List[ProviderAdapter]:
        return list(self._adapters)

    def resolve(self, model_id: str) -> ProviderAdapter:
        """
        Find the single adapter serving ``model_id``.

        Raises:
            UnsupportedModelError: If no adapter matches, or the best match
                is shared by more than one adapter
        """
        if not model_id or not isinstance(model_id, str):
            raise UnsupportedModelError(str(model_id), "Model id is required")

        adapter = self._exact.get(model_id)
        if adapter is not None:
            return adapter

        best_len = -1
        best: List[ProviderAdapter] = []
        for stem, candidate in self._prefixes:
            if not model_id.startswith(stem):
                continue
            if len(stem) > best_len:
                best_len, best = len(stem), [candidate]
            elif len(stem) == best_len and candidate not in best:
                best.append(candidate)

        if not best:
            raise UnsupportedModelError(model_id)
        if len(best) > 1:
            names = ", ".join(a.name for a in best)
            raise UnsupportedModelError(model_id, f"Model {model_id} is ambiguous between adapters: {names}")
        return best[0]

    def supports(self, model_id: str) -> bool:
        try:
            self.resolve(model_id)
        except UnsupportedModelError:
            return False
        return True
