import asyncio
import time

import pytest

from batch import BatchInProgressError, BatchProcessingError, BatchProcessor
from processor import (
    ScaleFactorError, UnsupportedFormatError, UpscaleSettings,
    data_uri_to_bytes, decode_image, original_data_uri,
)


def _size(uri):
    image = decode_image(data_uri_to_bytes(uri))
    return image.width, image.height


def test_empty_run_is_noop(fast_settings):
    states = []
    processor = BatchProcessor(fast_settings, state_callback=states.append)
    assert asyncio.run(processor.run([], 2)) == []
    assert states == []
    assert not processor.in_progress


def test_results_follow_input_order(make_file, fast_settings):
    files = [make_file("b.png", (3, 2)), make_file("a.jpg", (2, 5), fmt="JPEG"),
             make_file("c.webp", (4, 4), fmt="WEBP")]
    processor = BatchProcessor(fast_settings)

    results = asyncio.run(processor.run(files, 3))

    assert [r.file_name for r in results] == ["b.png", "a.jpg", "c.webp"]
    assert [_size(r.upscaled) for r in results] == [(9, 6), (6, 15), (12, 12)]
    for file, result in zip(files, results):
        assert result.original == original_data_uri(file)
        assert result.upscaled.startswith("data:image/png;base64,")


def test_flag_is_set_for_whole_run(make_file, fast_settings):
    states = []
    seen = []
    processor = BatchProcessor(fast_settings, state_callback=states.append)

    def progress(i, total, name):
        seen.append((i, total, name, processor.in_progress))

    asyncio.run(processor.run([make_file("1.png"), make_file("2.png")], 2, progress))

    assert seen == [(0, 2, "1.png", True), (1, 2, "2.png", True)]
    assert states == [True, False]
    assert not processor.in_progress


def test_delay_is_spent_per_file(make_file):
    processor = BatchProcessor(UpscaleSettings(processing_delay=0.2))
    start = time.monotonic()
    results = asyncio.run(processor.run([make_file(f"{i}.png") for i in range(3)], 2))
    assert len(results) == 3
    assert time.monotonic() - start >= 0.6


def test_default_delay_is_two_seconds(make_file):
    processor = BatchProcessor()
    start = time.monotonic()
    asyncio.run(processor.run([make_file()], 1))
    assert time.monotonic() - start >= 2.0


def test_iter_results_yields_one_at_a_time(make_file, fast_settings):
    processor = BatchProcessor(fast_settings)

    async def consume():
        names = []
        async for result in processor.iter_results(
            [make_file("x.png"), make_file("y.png")], 2
        ):
            names.append((result.file_name, processor.in_progress))
        return names

    assert asyncio.run(consume()) == [("x.png", True), ("y.png", True)]
    assert not processor.in_progress


def test_failure_aborts_batch(make_file, bogus_file, fast_settings):
    states = []
    processor = BatchProcessor(fast_settings, state_callback=states.append)
    files = [make_file("ok.png"), bogus_file, make_file("never.png")]
    started = []

    with pytest.raises(BatchProcessingError) as info:
        asyncio.run(processor.run(files, 2, lambda i, t, n: started.append(n)))

    err = info.value
    assert err.file_name == "notes.png"
    assert err.index == 1
    assert isinstance(err.cause, UnsupportedFormatError)
    assert err.__cause__ is err.cause
    assert started == ["ok.png", "notes.png"]
    assert states == [True, False]


def test_concurrent_run_is_rejected(make_file):
    processor = BatchProcessor(UpscaleSettings(processing_delay=0.05))
    files = [make_file(f"{i}.png") for i in range(3)]

    async def both():
        return await asyncio.gather(
            processor.run(files, 2), processor.run(files, 2),
            return_exceptions=True,
        )

    first, second = asyncio.run(both())
    assert len(first) == 3
    assert isinstance(second, BatchInProgressError)
    assert not processor.in_progress


def test_bad_scale_rejected_before_start(make_file, fast_settings):
    states = []
    processor = BatchProcessor(fast_settings, state_callback=states.append)
    with pytest.raises(ScaleFactorError):
        asyncio.run(processor.run([make_file()], 17))
    assert states == []


def test_cancel_stops_further_files(make_file, fast_settings):
    processor = BatchProcessor(fast_settings)
    started = []

    def progress(i, total, name):
        started.append(name)
        if i == 1:
            processor.cancel()

    files = [make_file(f"{i}.png") for i in range(4)]
    results = asyncio.run(processor.run(files, 2, progress))

    assert results == []
    assert started == ["0.png", "1.png"]
    assert processor.cancelled
    assert not processor.in_progress

    # next run starts clean
    assert len(asyncio.run(processor.run(files[:1], 2))) == 1
    assert not processor.cancelled


def test_cancel_when_idle_is_ignored(make_file, fast_settings):
    processor = BatchProcessor(fast_settings)
    processor.cancel()
    assert not processor.cancelled
    assert len(asyncio.run(processor.run([make_file()], 2))) == 1


def test_task_cancellation_clears_flag(make_file):
    processor = BatchProcessor(UpscaleSettings(processing_delay=5.0))

    async def scenario():
        task = asyncio.create_task(processor.run([make_file()], 2))
        await asyncio.sleep(0.05)
        assert processor.in_progress
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())
    assert not processor.in_progress


def test_settings_are_snapshotted_per_run(make_file):
    settings = UpscaleSettings(processing_delay=0.0)
    processor = BatchProcessor(settings)

    def progress(i, total, name):
        settings.brightness_gain = 2.0
        settings.processing_delay = 5.0

    start = time.monotonic()
    results = asyncio.run(processor.run(
        [make_file("a.png", (2, 2), (100, 150, 200, 255)),
         make_file("b.png", (2, 2), (100, 150, 200, 255))], 1, progress,
    ))

    assert time.monotonic() - start < 2.0
    for result in results:
        pixels = decode_image(data_uri_to_bytes(result.upscaled)).pixels
        assert tuple(pixels[:4]) == (110, 165, 220, 255)
