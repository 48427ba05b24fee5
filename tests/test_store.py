import json

from alchemy.storage.kv_store import MemoryBackend, PersistenceFailure
from alchemy.store import (
    SEED_CONCEPTS,
    Concept,
    DiscoveryStore,
    Inventory,
    Recipe,
    RecipeCache,
    recipe_key,
)

STEAM = Concept("Steam", "💨")


class BrokenBackend(MemoryBackend):
    """Reads work, every write fails."""

    def write(self, key, value):
        raise PersistenceFailure("disk full")

    def delete(self, key):
        raise PersistenceFailure("disk full")


def test_recipe_key_is_sorted_and_case_sensitive():
    assert recipe_key("Water", "Fire") == ("Fire", "Water")
    assert recipe_key("Fire", "Water") == ("Fire", "Water")
    # Uppercase sorts before lowercase; names are not folded
    assert recipe_key("water", "Water") == ("Water", "water")


def test_inventory_starts_with_seed_set():
    inventory = Inventory()
    assert [c.name for c in inventory] == ["Water", "Fire", "Earth", "Air"]
    assert len(inventory) == 4


def test_inventory_unique_by_exact_name():
    inventory = Inventory()
    assert inventory.add(STEAM) is True
    assert inventory.add(Concept("Steam", "☁️")) is False
    assert inventory.add(Concept("steam", "☁️")) is True
    names = [c.name for c in inventory]
    assert len(names) == len(set(names))
    assert inventory.get("Steam").glyph == "💨"


def test_inventory_search_is_case_insensitive_substring():
    inventory = Inventory()
    inventory.add(STEAM)
    assert [c.name for c in inventory.search("A")] == ["Water", "Earth", "Air", "Steam"]
    assert [c.name for c in inventory.search("")] == ["Water", "Fire", "Earth", "Air", "Steam"]
    assert inventory.search("lava") == []


def test_cache_lookup_is_commutative():
    cache = RecipeCache()
    cache.record("Water", "Fire", STEAM)
    assert cache.lookup("Fire", "Water") == STEAM
    assert cache.lookup("Water", "Fire") == STEAM
    assert list(cache)[0].inputs == ("Fire", "Water")


def test_cache_first_recorded_entry_wins():
    cache = RecipeCache()
    cache.record("Fire", "Water", STEAM)
    cache.record("Water", "Fire", Concept("Mist", "🌫️"))
    assert len(cache) == 2
    assert cache.lookup("Fire", "Water") == STEAM


def test_cache_reset_advances_epoch():
    cache = RecipeCache()
    cache.record("Fire", "Water", STEAM)
    epoch = cache.epoch
    cache.reset()
    assert len(cache) == 0
    assert cache.epoch == epoch + 1
    assert cache.lookup("Fire", "Water") is None


def test_store_persists_on_every_mutation():
    backend = MemoryBackend()
    store = DiscoveryStore(backend=backend)

    store.discover(STEAM)
    saved = json.loads(backend.read("alchemy_inventory"))
    assert saved[-1] == {"name": "Steam", "glyph": "💨"}

    store.record_recipe("Water", "Fire", STEAM)
    saved = json.loads(backend.read("alchemy_recipes"))
    assert saved == [{"inputs": ["Fire", "Water"], "result": {"name": "Steam", "glyph": "💨"}}]


def test_store_roundtrip_through_backend():
    backend = MemoryBackend()
    store = DiscoveryStore(backend=backend)
    store.discover(STEAM)
    store.record_recipe("Fire", "Water", STEAM)

    loaded = DiscoveryStore.load(backend)
    assert "Steam" in loaded.inventory
    assert loaded.lookup("Water", "Fire") == STEAM


def test_load_first_run_uses_seeds():
    store = DiscoveryStore.load(MemoryBackend())
    assert tuple(store.inventory) == SEED_CONCEPTS
    assert len(store.recipes) == 0


def test_load_accepts_legacy_emoji_key_and_resorts_inputs():
    backend = MemoryBackend({
        "alchemy_inventory": json.dumps([{"name": "Water", "emoji": "💧"}, {"name": "Water", "emoji": "🌊"}]),
        "alchemy_recipes": json.dumps([{"inputs": ["Water", "Fire"], "result": {"name": "Steam", "emoji": "💨"}}]),
    })
    store = DiscoveryStore.load(backend)
    assert [c.name for c in store.inventory] == ["Water"]
    assert store.inventory.get("Water").glyph == "💧"
    assert list(store.recipes)[0] == Recipe(inputs=("Fire", "Water"), result=STEAM)


def test_load_discards_corrupt_blobs():
    backend = MemoryBackend({
        "alchemy_inventory": "{not json",
        "alchemy_recipes": json.dumps([{"inputs": ["only-one"]}]),
    })
    store = DiscoveryStore.load(backend)
    assert tuple(store.inventory) == SEED_CONCEPTS
    assert len(store.recipes) == 0


def test_persistence_failure_is_swallowed(caplog):
    store = DiscoveryStore(backend=BrokenBackend())
    assert store.discover(STEAM) is True
    store.record_recipe("Fire", "Water", STEAM)
    store.reset()

    assert tuple(store.inventory) == SEED_CONCEPTS
    assert "Failed to persist" in caplog.text


def test_reset_restores_seed_and_empties_recipes():
    backend = MemoryBackend()
    store = DiscoveryStore(backend=backend)
    store.discover(STEAM)
    store.record_recipe("Fire", "Water", STEAM)

    store.reset()

    assert tuple(store.inventory) == SEED_CONCEPTS
    assert len(store.recipes) == 0
    assert json.loads(backend.read("alchemy_recipes")) == []
    assert len(json.loads(backend.read("alchemy_inventory"))) == 4


def test_load_discards_slots_holding_non_string_values():
    backend = MemoryBackend({
        "alchemy_inventory": [{"name": "Steam", "glyph": "💨"}],
        "alchemy_recipes": {"inputs": ["Fire", "Water"]},
    })
    store = DiscoveryStore.load(backend)
    assert tuple(store.inventory) == SEED_CONCEPTS
    assert len(store.recipes) == 0
