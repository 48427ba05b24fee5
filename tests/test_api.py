import asyncio
import json
from pathlib import Path

import pytest

from alchemy.api import Alchemy
from alchemy.generator import EchoGenerator
from alchemy.storage.kv_store import MemoryBackend
from alchemy.store import SEED_CONCEPTS, Concept

from conftest import FailingGenerator, StubGenerator

WATER, FIRE, EARTH, AIR = SEED_CONCEPTS


@pytest.mark.parametrize("file_name", ["discoveries.db", "discoveries.json"])
def test_discoveries_survive_reload(tmp_path: Path, file_name):
    path = tmp_path / "player" / file_name
    gen = StubGenerator()

    first = Alchemy.load(str(path), generator=gen)
    assert asyncio.run(first.combine(WATER, FIRE)) == Concept("Steam", "💨")
    first.close()

    second = Alchemy.load(str(path), generator=gen)
    assert second.find_concept("Steam") == Concept("Steam", "💨")
    assert [r.inputs for r in second.recipes()] == [("Fire", "Water")]
    # Served from the reloaded cache
    asyncio.run(second.combine(FIRE, WATER))
    assert len(gen.calls) == 1
    second.close()


def test_workspace_is_not_persisted(tmp_path: Path):
    path = str(tmp_path / "discoveries.db")
    sandbox = Alchemy.load(path, generator=StubGenerator())
    sandbox.workspace.add_token(WATER)
    sandbox.close()

    reloaded = Alchemy.load(path)
    assert len(reloaded.workspace) == 0
    reloaded.close()


def test_combine_outside_workspace_failure_leaves_state():
    sandbox = Alchemy.init(generator=FailingGenerator())
    assert asyncio.run(sandbox.combine(WATER, EARTH)) is None
    assert sandbox.discovered_count == 4
    assert sandbox.recipes() == []


def test_default_generator_is_echo():
    sandbox = Alchemy.init()
    assert isinstance(sandbox.resolver.generator, EchoGenerator)
    result = asyncio.run(sandbox.combine(AIR, EARTH))
    assert result == Concept("Air earth", "🌍")
    assert sandbox.search_inventory("air e") == [result]


def test_inventory_uniqueness_over_many_combinations():
    sandbox = Alchemy.init(generator=StubGenerator(reply=Concept("mud", "🟫")))
    pairs = [(WATER, EARTH), (EARTH, WATER), (FIRE, EARTH), (AIR, WATER), (WATER, FIRE)]
    for first, second in pairs:
        asyncio.run(sandbox.combine(first, second))

    names = [c.name for c in sandbox.store.inventory]
    assert len(names) == len(set(names))
    assert names.count("Mud") == 1
    assert len(sandbox.recipes()) == 4


def test_json_save_with_inline_values_falls_back_to_seeds(tmp_path: Path):
    path = tmp_path / "discoveries.json"
    path.write_text(json.dumps({"alchemy_inventory": [{"name": "Steam", "glyph": "💨"}]}), encoding="utf-8")

    sandbox = Alchemy.load(str(path))

    assert sandbox.search_inventory() == list(SEED_CONCEPTS)


@pytest.mark.parametrize("file_name", ["discoveries.db", "discoveries.json"])
def test_unopenable_save_location_plays_from_memory(tmp_path: Path, file_name, caplog):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("", encoding="utf-8")

    sandbox = Alchemy.load(str(blocker / "player" / file_name), generator=StubGenerator())

    assert isinstance(sandbox.store.backend, MemoryBackend)
    assert "Cannot open save file" in caplog.text
    assert asyncio.run(sandbox.combine(WATER, FIRE)) == Concept("Steam", "💨")
    assert sandbox.find_concept("Steam") is not None
    sandbox.close()
