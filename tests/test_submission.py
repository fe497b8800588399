"""Tests for the text and image submission protocols."""

import pytest

from sceneflow.config import QueueSettings
from sceneflow.errors import SubmissionFailed
from sceneflow.locator import DEFAULT_PATTERNS, SelectorEngine
from sceneflow.submission import RESULT_CONTAINERS, Submitter, xpath_literal
from sceneflow.tasks.models import ImagePayload, Task, TaskKind

from conftest import GENERATE_BUTTON, PROMPT_INPUT, FakeElement


def _submitter(host, clock, settle=0.0):
    return Submitter(host, SelectorEngine(host, clock), clock, image_settle_delay=settle)


@pytest.mark.asyncio
async def test_text_protocol_sets_prompt_and_clicks(ready_host, clock):
    await _submitter(ready_host, clock).submit_text("[SF_1] A boat")
    field = ready_host.elements[PROMPT_INPUT]
    assert field.value == "[SF_1] A boat"
    assert field.events == ["input", "change"]
    assert ready_host.elements[GENERATE_BUTTON].clicks == 1


@pytest.mark.asyncio
async def test_text_protocol_waits_while_button_disabled(ready_host, clock):
    button = ready_host.elements[GENERATE_BUTTON]
    button.disabled = [True, True, False]
    await _submitter(ready_host, clock).submit_text("x")
    assert button.clicks == 1
    assert clock.sleeps.count(0.5) >= 3


@pytest.mark.asyncio
async def test_text_protocol_fails_when_button_stays_disabled(ready_host, clock):
    ready_host.elements[GENERATE_BUTTON].disabled = True
    with pytest.raises(SubmissionFailed):
        await _submitter(ready_host, clock).submit_text("x")
    assert ready_host.elements[GENERATE_BUTTON].clicks == 0


@pytest.mark.asyncio
async def test_text_protocol_missing_prompt_field(host, clock):
    host.add(GENERATE_BUTTON)
    with pytest.raises(SubmissionFailed, match="promptInput"):
        await _submitter(host, clock).submit_text("x")


@pytest.mark.asyncio
async def test_text_protocol_recovers_on_retry(ready_host, clock):
    button = ready_host.elements[GENERATE_BUTTON]
    button.fail_click = RuntimeError("detached")
    clock.after(2.0, lambda: setattr(button, "fail_click", None))
    await _submitter(ready_host, clock).submit_text("x")
    assert button.clicks == 1
    assert 2.0 in clock.sleeps


@pytest.mark.asyncio
async def test_image_protocol_uses_new_file_input(ready_host, clock):
    old_input = FakeElement(key="input-0", attributes={"accept": ".txt"})
    new_input = FakeElement(key="input-1", attributes={"accept": "image/*"})
    ready_host.inputs = [old_input]
    add = ready_host.add(DEFAULT_PATTERNS["addButton"][0])
    add.on_click = lambda: ready_host.inputs.append(new_input)
    crop = ready_host.add(DEFAULT_PATTERNS["cropSaveButton"][0])

    image = ImagePayload(name="frame.png", mime_type="image/png", data=b"\x89PNG")
    await _submitter(ready_host, clock, settle=30.0).submit_image(image, "[SF_IMG] Pan left")

    assert ready_host.zoom == 0.5
    assert new_input.files == [("frame.png", "image/png", b"\x89PNG")]
    assert old_input.files == []
    assert crop.clicks == 1
    assert 30.0 in clock.sleeps
    assert ready_host.elements[PROMPT_INPUT].value == "[SF_IMG] Pan left"


@pytest.mark.asyncio
async def test_image_protocol_requires_image_bytes(ready_host, clock):
    image = ImagePayload(name="gone.png", path="/nonexistent/gone.png")
    with pytest.raises(SubmissionFailed, match="Image data missing"):
        await _submitter(ready_host, clock).submit_image(image, "x")


@pytest.mark.asyncio
async def test_configure_generation_settings_maps_count(host, clock):
    for label in ("Model", "Aspect ratio", "Duration"):
        host.add(f"//span[contains(., {xpath_literal(label)})]")
    host.add("//li[contains(., 'Veo 3.1')]")
    host.add("//li[contains(., 'Ngang')]")
    four = host.add("//li[contains(., '4')]")

    ok = await _submitter(host, clock).configure_generation_settings(QueueSettings(count="100"))
    assert ok
    assert four.clicks == 1


@pytest.mark.asyncio
async def test_missing_option_dismisses_menu(host, clock):
    host.add("//span[contains(., 'Model')]")
    assert not await _submitter(host, clock).select_dropdown_option("Model", "Nonexistent")
    assert host.dismissed == 1


def test_xpath_literal_quotes():
    assert xpath_literal("abc") == "'abc'"
    assert xpath_literal("it's") == '"it\'s"'
    assert xpath_literal("a'b\"c") == "concat('a', \"'\", 'b\"c')"


@pytest.mark.asyncio
async def test_trigger_download_outcomes(host, clock):
    task = Task(id="SF_TXT_1_0", sequence_index=1, kind=TaskKind.TEXT, text="a boat")
    submitter = _submitter(host, clock)
    assert await submitter.trigger_download(task) == "container_not_found"

    card = FakeElement(key="card", text="[SF_TXT_1_0] A boat")
    host.lists[RESULT_CONTAINERS[0]] = [card]
    assert await submitter.trigger_download(task) == "button_not_found"

    button = FakeElement(key="dl", attributes={"aria-label": "Download"})
    card.children["button"] = [button]
    assert await submitter.trigger_download(task) == "direct_download"
    assert button.clicks == 1

    quality = FakeElement(key="q", text="Original size (1080p)")
    host.lists["li, div[role='menuitem'], span, button"] = [quality]
    assert await submitter.trigger_download(task) == "clicked"
    assert quality.clicks == 1
