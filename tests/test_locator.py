"""Tests for the element locator."""

import pytest

from sceneflow.errors import LocatorNotFound
from sceneflow.locator import DEFAULT_PATTERNS, SelectorEngine
from sceneflow.store import SELECTOR_PATTERNS

from conftest import FakeElement


@pytest.mark.asyncio
async def test_first_matching_pattern_wins_and_is_cached(host, clock):
    second = DEFAULT_PATTERNS["promptInput"][1]
    element = host.add(second, FakeElement(key="editor"))
    engine = SelectorEngine(host, clock)

    assert await engine.locate("promptInput") is element
    host.queries.clear()
    assert await engine.locate("promptInput") is element
    assert host.queries == [second]


@pytest.mark.asyncio
async def test_stale_cache_falls_back_to_table(host, clock):
    patterns = DEFAULT_PATTERNS["promptInput"]
    host.add(patterns[1])
    engine = SelectorEngine(host, clock)
    await engine.locate("promptInput")

    del host.elements[patterns[1]]
    replacement = host.add(patterns[2])
    assert await engine.locate("promptInput") is replacement


@pytest.mark.asyncio
async def test_locate_retries_with_constant_spacing_then_raises(host, clock):
    engine = SelectorEngine(host, clock)
    with pytest.raises(LocatorNotFound) as exc:
        await engine.locate("generateButton", timeout_ms=3000, retries=3)
    assert exc.value.attempts == 3
    assert exc.value.element_name == "generateButton"
    assert clock.sleeps == [1.0, 1.0]


@pytest.mark.asyncio
async def test_element_appearing_between_attempts_is_found(host, clock):
    engine = SelectorEngine(host, clock)
    pattern = DEFAULT_PATTERNS["generateButton"][0]
    clock.after(0.5, lambda: host.add(pattern))
    element = await engine.locate("generateButton", timeout_ms=3000, retries=3)
    assert element is host.elements[pattern]


@pytest.mark.asyncio
async def test_find_returns_none(host, clock):
    engine = SelectorEngine(host, clock)
    assert await engine.find("tuneButton", timeout_ms=100, retries=1) is None


@pytest.mark.asyncio
async def test_learned_pattern_is_tried_first_and_persisted(host, clock, store):
    engine = SelectorEngine(host, clock, store=store)
    engine.learn("generateButton", "#my-generate")
    assert engine.patterns_for("generateButton")[0] == "#my-generate"
    assert store.get(SELECTOR_PATTERNS) == {"generateButton": ["#my-generate"]}

    fresh = SelectorEngine(host, clock, store=store)
    assert fresh.load_patterns() == 1
    patterns = fresh.patterns_for("generateButton")
    assert patterns[0] == "#my-generate"
    assert patterns.count("#my-generate") == 1
    assert len(patterns) == len(DEFAULT_PATTERNS["generateButton"]) + 1

    element = host.add("#my-generate")
    assert await fresh.locate("generateButton") is element
