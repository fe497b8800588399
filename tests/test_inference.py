"""Tests for polling progress inference."""

import pytest

from sceneflow.errors import InferenceAmbiguous
from sceneflow.host.base import PageSnapshot
from sceneflow.inference.scan import (
    ProgressInference,
    completed_media,
    current_progress,
    has_error,
    infer_progress,
)


def test_one_completed_and_one_in_progress():
    snapshot = PageSnapshot(
        media_sources=["https://cdn.test/a.mp4"],
        percent_texts=["45%"],
    )
    r1, r2, r3 = infer_progress(snapshot, ["t1", "t2", "t3"])
    assert r1.is_done and r1.progress == 100 and r1.artifacts == ["https://cdn.test/a.mp4"]
    assert not r2.is_done and r2.progress == 45 and not r2.is_error
    assert not r3.is_done and r3.progress == 0


def test_duplicate_and_non_media_sources_are_ignored():
    snapshot = PageSnapshot(media_sources=["blob:x", "blob:x", "", "data:video/mp4;base64,AAA", "https://b"])
    assert completed_media(snapshot) == ["blob:x", "https://b"]


def test_current_progress_takes_highest_bare_percentage():
    snapshot = PageSnapshot(percent_texts=["12%", " 80% ", "0%", "150%", "about 90%"])
    assert current_progress(snapshot) == 80


def test_error_only_without_progress():
    snapshot = PageSnapshot(alert_texts=["Generation failed. Try a different prompt"])
    assert has_error(snapshot)
    (result,) = infer_progress(snapshot, ["t1"])
    assert result.is_error

    snapshot.percent_texts = ["30%"]
    (result,) = infer_progress(snapshot, ["t1"])
    assert not result.is_error and result.progress == 30


def test_error_phrase_in_main_text_vietnamese():
    assert has_error(PageSnapshot(main_text="Đã xảy ra lỗi"))


def test_full_progress_marks_current_done():
    snapshot = PageSnapshot(percent_texts=["100%"])
    (result,) = infer_progress(snapshot, ["t1"])
    assert result.is_done


@pytest.mark.asyncio
async def test_scan_wraps_snapshot_failures(host):
    host.fail_snapshot = True
    with pytest.raises(InferenceAmbiguous):
        await ProgressInference(host).scan(["t1"])


@pytest.mark.asyncio
async def test_scan_empty_ids_skips_page(host):
    host.fail_snapshot = True
    assert await ProgressInference(host).scan([]) == []


@pytest.mark.asyncio
async def test_baseline_media_is_not_counted(host):
    host.show(media=["https://cdn.test/old.mp4"])
    inference = ProgressInference(host)
    assert await inference.mark_baseline() == 1

    host.show(media=["https://cdn.test/old.mp4", "https://cdn.test/new.mp4"], percents=["30%"])
    r1, r2 = await inference.scan(["t1", "t2"])
    assert r1.is_done and r1.artifacts == ["https://cdn.test/new.mp4"]
    assert r2.progress == 30 and not r2.is_done
