# alchemy/api.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .generator import ConceptGenerator, EchoGenerator
from .resolver import CombinationResolver
from .storage.kv_store import KeyValueBackend, MemoryBackend, PersistenceFailure, open_backend
from .store import Concept, DiscoveryStore, Recipe
from .workspace import Workspace

logger = logging.getLogger(__name__)


@dataclass
class Alchemy:
    """
    One player's sandbox:
    - discovered concepts and cached recipes (persisted)
    - the resolver that turns pairs into new concepts
    - the workspace tokens live on
    """
    store: DiscoveryStore
    resolver: CombinationResolver
    workspace: Workspace
    player: str = "default"

    # --- Initialization ---
    @classmethod
    def init(
        cls,
        generator: Optional[ConceptGenerator] = None,
        backend: Optional[KeyValueBackend] = None,
        seed: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> "Alchemy":
        """Fresh sandbox. Whatever the backend already holds is overwritten on first save."""
        store = DiscoveryStore(backend=backend if backend is not None else MemoryBackend())
        return cls._assemble(store, generator, seed, timeout)

    @classmethod
    def load(
        cls,
        path: Optional[str] = None,
        generator: Optional[ConceptGenerator] = None,
        backend: Optional[KeyValueBackend] = None,
        seed: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> "Alchemy":
        """Rehydrate from a save file (or an explicit backend); missing slots fall back to seeds."""
        if backend is None:
            try:
                if path is not None:
                    Path(path).parent.mkdir(parents=True, exist_ok=True)
                backend = open_backend(path)
            except (OSError, PersistenceFailure) as exc:
                # Play on from memory; nothing will be saved this session
                logger.error(f"Cannot open save file {path}: {exc}")
                backend = MemoryBackend()
        store = DiscoveryStore.load(backend)
        return cls._assemble(store, generator, seed, timeout)

    @classmethod
    def _assemble(cls, store, generator, seed, timeout) -> "Alchemy":
        resolver = CombinationResolver(store, generator or EchoGenerator(), timeout=timeout)
        workspace = Workspace(store, resolver, seed=seed)
        return cls(store=store, resolver=resolver, workspace=workspace)

    # --- Read operations ---
    def search_inventory(self, term: str = "") -> List[Concept]:
        return self.store.inventory.search(term)

    def find_concept(self, name: str) -> Optional[Concept]:
        return self.store.inventory.get(name)

    def recipes(self) -> List[Recipe]:
        return list(self.store.recipes)

    @property
    def discovered_count(self) -> int:
        return len(self.store.inventory)

    # --- Write operations ---
    async def combine(self, first: Concept, second: Concept) -> Optional[Concept]:
        """Resolve a pair outside the workspace; new results still join the inventory."""
        result = await self.resolver.combine(first, second)
        if result is not None:
            self.store.discover(result)
        return result

    def save(self) -> None:
        self.store.save()

    def close(self) -> None:
        close = getattr(self.store.backend, "close", None)
        if close is not None:
            close()
