# alchemy/store.py
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .config import Config
from .storage.kv_store import KeyValueBackend, MemoryBackend, PersistenceFailure

logger = logging.getLogger(__name__)


# --- Data models ---
@dataclass(frozen=True)
class Concept:
    name: str
    glyph: str             # single pictographic character, e.g. '💧'

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "glyph": self.glyph}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Concept":
        # 'emoji' is the key older saves used
        glyph = data.get("glyph", data.get("emoji"))
        if not isinstance(data.get("name"), str) or not isinstance(glyph, str):
            raise ValueError(f"Not a concept: {data!r}")
        return cls(name=data["name"], glyph=glyph)


@dataclass(frozen=True)
class Recipe:
    inputs: Tuple[str, str]  # always sorted
    result: Concept

    def to_dict(self) -> Dict[str, Any]:
        return {"inputs": list(self.inputs), "result": self.result.to_dict()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Recipe":
        first, second = data["inputs"]
        return cls(inputs=recipe_key(first, second), result=Concept.from_dict(data["result"]))


SEED_CONCEPTS: Tuple[Concept, ...] = (
    Concept("Water", "💧"),
    Concept("Fire", "🔥"),
    Concept("Earth", "🌍"),
    Concept("Air", "💨"),
)


def recipe_key(name_a: str, name_b: str) -> Tuple[str, str]:
    """Unordered pair of concept names as a sorted tuple (case-sensitive)."""
    first, second = sorted((name_a, name_b))
    return first, second


# --- Inventory ---
class Inventory:
    """Ordered discovered concepts, unique by exact name."""

    def __init__(self, concepts: Optional[List[Concept]] = None):
        self._concepts: List[Concept] = []
        self._names = set()
        for concept in (SEED_CONCEPTS if concepts is None else concepts):
            self.add(concept)

    def add(self, concept: Concept) -> bool:
        """Append if the name is new. Returns True when appended."""
        if concept.name in self._names:
            return False
        self._concepts.append(concept)
        self._names.add(concept.name)
        return True

    def get(self, name: str) -> Optional[Concept]:
        for concept in self._concepts:
            if concept.name == name:
                return concept
        return None

    def search(self, term: str = "") -> List[Concept]:
        """Case-insensitive substring filter over names."""
        needle = term.lower()
        return [c for c in self._concepts if needle in c.name.lower()]

    def reset(self):
        self._concepts = []
        self._names = set()
        for concept in SEED_CONCEPTS:
            self.add(concept)

    def __contains__(self, name: str) -> bool:
        return name in self._names

    def __iter__(self) -> Iterator[Concept]:
        return iter(list(self._concepts))

    def __len__(self) -> int:
        return len(self._concepts)

    def to_list(self) -> List[Dict[str, str]]:
        return [c.to_dict() for c in self._concepts]


# --- Recipe cache ---
class RecipeCache:
    """
    Insertion-ordered recipes keyed by the sorted input pair.

    `record` appends without checking for an existing entry; `lookup` scans in
    insertion order, so the first entry recorded for a pair wins.
    `epoch` advances on every reset so late writers can tell the cache they
    read from is gone.
    """

    def __init__(self, recipes: Optional[List[Recipe]] = None):
        self._recipes: List[Recipe] = list(recipes or [])
        self.epoch = 0

    def lookup(self, name_a: str, name_b: str) -> Optional[Concept]:
        key = recipe_key(name_a, name_b)
        for recipe in self._recipes:
            if recipe.inputs == key:
                return recipe.result
        return None

    def record(self, name_a: str, name_b: str, result: Concept) -> Recipe:
        recipe = Recipe(inputs=recipe_key(name_a, name_b), result=result)
        self._recipes.append(recipe)
        return recipe

    def reset(self):
        self._recipes = []
        self.epoch += 1

    def __iter__(self) -> Iterator[Recipe]:
        return iter(list(self._recipes))

    def __len__(self) -> int:
        return len(self._recipes)

    def to_list(self) -> List[Dict[str, Any]]:
        return [r.to_dict() for r in self._recipes]


# --- Core store ---
class DiscoveryStore:
    """Inventory + recipe cache with load-at-init, save-on-every-mutation persistence."""

    def __init__(
        self,
        backend: Optional[KeyValueBackend] = None,
        inventory: Optional[Inventory] = None,
        recipes: Optional[RecipeCache] = None,
    ):
        self.backend = backend if backend is not None else MemoryBackend()
        self.inventory = inventory if inventory is not None else Inventory()
        self.recipes = recipes if recipes is not None else RecipeCache()
        self.inventory_key = Config.storage.INVENTORY_KEY
        self.recipes_key = Config.storage.RECIPES_KEY

    # --- Mutations ---
    def discover(self, concept: Concept) -> bool:
        """Add a concept to the inventory. Returns True if it was new."""
        added = self.inventory.add(concept)
        if added:
            logger.info(f"New discovery: {concept.glyph} {concept.name}")
            self.save_inventory()
        return added

    def record_recipe(self, name_a: str, name_b: str, result: Concept) -> Recipe:
        recipe = self.recipes.record(name_a, name_b, result)
        self.save_recipes()
        return recipe

    def lookup(self, name_a: str, name_b: str) -> Optional[Concept]:
        return self.recipes.lookup(name_a, name_b)

    def reset(self):
        """Seed inventory, empty recipes; both persisted slots are dropped first."""
        self.inventory.reset()
        self.recipes.reset()
        for key in (self.inventory_key, self.recipes_key):
            try:
                self.backend.delete(key)
            except PersistenceFailure as exc:
                logger.error(f"Failed to clear '{key}': {exc}")
        self.save()

    # --- Persistence ---
    def save(self) -> None:
        self.save_inventory()
        self.save_recipes()

    def save_inventory(self) -> None:
        self._write(self.inventory_key, self.inventory.to_list())

    def save_recipes(self) -> None:
        self._write(self.recipes_key, self.recipes.to_list())

    def _write(self, key: str, payload: List[Dict[str, Any]]) -> None:
        # In-memory state stays authoritative when the substrate fails
        try:
            self.backend.write(key, json.dumps(payload, ensure_ascii=False))
        except PersistenceFailure as exc:
            logger.error(f"Failed to persist '{key}': {exc}")

    @classmethod
    def load(cls, backend: KeyValueBackend) -> "DiscoveryStore":
        store = cls(backend=backend)

        saved_inventory = store._read(store.inventory_key)
        if saved_inventory is not None:
            try:
                store.inventory = Inventory([Concept.from_dict(d) for d in saved_inventory])
            except (AttributeError, TypeError, ValueError, KeyError) as exc:
                logger.warning(f"Discarding corrupt inventory blob: {exc}")

        saved_recipes = store._read(store.recipes_key)
        if saved_recipes is not None:
            try:
                store.recipes = RecipeCache([Recipe.from_dict(d) for d in saved_recipes])
            except (AttributeError, TypeError, ValueError, KeyError) as exc:
                logger.warning(f"Discarding corrupt recipe blob: {exc}")

        logger.debug(f"Loaded {len(store.inventory)} concepts, {len(store.recipes)} recipes")
        return store

    def _read(self, key: str) -> Optional[Any]:
        try:
            raw = self.backend.read(key)
        except PersistenceFailure as exc:
            logger.error(f"Failed to read '{key}': {exc}")
            return None
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as exc:
            logger.warning(f"Discarding unparsable '{key}' blob: {exc}")
            return None
        if not isinstance(data, list):
            logger.warning(f"Discarding '{key}' blob: expected a list")
            return None
        return data
