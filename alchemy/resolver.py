# alchemy/resolver.py
import asyncio
import logging
from typing import Dict, Optional, Tuple

from .config import Config
from .generator import ConceptGenerator, GenerationFailure, parse_reply
from .store import Concept, DiscoveryStore, recipe_key

logger = logging.getLogger(__name__)


def normalize_concept(concept: Concept) -> Concept:
    """Capitalize the first character of the name; the rest is kept verbatim."""
    name = concept.name.strip()
    return Concept(name=name[:1].upper() + name[1:], glyph=concept.glyph.strip())


class CombinationResolver:
    """
    Name pair -> concept, backed by the recipe cache.

    A cache hit returns immediately. A miss asks the generator, records the
    normalized result under the sorted pair and returns it. Any generator
    failure yields None ("does not combine"); nothing is raised to the caller.

    Concurrent combines of the same pair share one in-flight generation, so the
    generator is called once and one recipe is recorded. A cancelled caller
    stops waiting; the shared generation keeps running for the others.
    """

    def __init__(self, store: DiscoveryStore, generator: ConceptGenerator, timeout: Optional[float] = None):
        self.store = store
        self.generator = generator
        self.timeout = Config.generator.TIMEOUT if timeout is None else timeout
        self._pending: Dict[Tuple[int, Tuple[str, str]], "asyncio.Future[Optional[Concept]]"] = {}

    async def combine(self, first: Concept, second: Concept) -> Optional[Concept]:
        key = recipe_key(first.name, second.name)

        cached = self.store.lookup(*key)
        if cached is not None:
            logger.debug(f"Recipe hit {key} -> {cached.name}")
            return cached

        # A generation started before a reset never serves combines made after it
        epoch = self.store.recipes.epoch
        slot = (epoch, key)
        pending = self._pending.get(slot)
        if pending is None:
            logger.debug(f"Recipe miss {key}, asking generator")
            pending = asyncio.ensure_future(self._generate(key, first, second, epoch))
            self._pending[slot] = pending
            pending.add_done_callback(lambda _: self._pending.pop(slot, None))
        return await asyncio.shield(pending)

    async def _generate(self, key: Tuple[str, str], first: Concept, second: Concept, epoch: int) -> Optional[Concept]:
        try:
            raw = await asyncio.wait_for(self.generator.generate(first, second), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Generator timed out after {self.timeout}s for {key}")
            return None
        except GenerationFailure as exc:
            logger.warning(f"Generator rejected {key}: {exc}")
            return None
        except Exception as exc:
            logger.warning(f"Error combining {key}: {exc!r}")
            return None

        if not isinstance(raw, Concept):
            logger.warning(f"Generator returned no usable concept for {key}: {raw!r}")
            return None
        try:
            checked = parse_reply(raw.to_dict())
        except GenerationFailure as exc:
            logger.warning(f"Generator returned an invalid concept for {key}: {exc}")
            return None

        result = normalize_concept(checked)
        if self.store.recipes.epoch != epoch:
            # Cache was reset while the generator was running
            logger.debug(f"Dropping recipe for {key}: cache reset mid-flight")
            return result
        self.store.record_recipe(key[0], key[1], result)
        return result
