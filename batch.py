"""
Sequential batch pipeline: one file at a time, in submission order.
"""

import asyncio
import logging
import threading
from typing import AsyncIterator, Callable, List, Optional, Sequence

from processor import (
    InputFile, ProcessedResult, UpscaleSettings,
    check_scale, decode_image, encode_image, original_data_uri, upscale_image,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


class BatchProcessingError(RuntimeError):
    """A file failed mid-run; the whole batch is aborted."""

    def __init__(self, file_name: str, cause: BaseException, index: int = -1):
        super().__init__(f"Failed to process {file_name}: {cause}")
        self.file_name = file_name
        self.cause = cause
        self.index = index


class BatchInProgressError(RuntimeError):
    """Raised when a run is requested while another one is active."""


class BatchProcessor:
    """Runs the decode -> upscale -> encode pipeline over a list of files.

    Only one run may be active at a time. ``in_progress`` is True from the
    first file until the last one finishes; ``state_callback`` is told about
    every change of it.
    """

    def __init__(self, settings: Optional[UpscaleSettings] = None,
                 state_callback: Optional[Callable[[bool], None]] = None):
        self.settings = settings if settings is not None else UpscaleSettings()
        self.state_callback = state_callback
        self._in_progress = False
        self._cancel_event = threading.Event()

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self):
        """Ask the active run to stop before starting any further work."""
        if self._in_progress:
            logger.info("Cancellation requested")
            self._cancel_event.set()

    def _set_in_progress(self, value: bool):
        self._in_progress = value
        if self.state_callback:
            self.state_callback(value)

    def _process(self, file: InputFile, scale: int, gain: float) -> str:
        decoded = decode_image(file.data)
        upscaled = upscale_image(decoded, scale, gain)
        return encode_image(upscaled)

    async def iter_results(self, files: Sequence[InputFile], scale: int,
                           on_progress: Optional[ProgressCallback] = None,
                           ) -> AsyncIterator[ProcessedResult]:
        """Yield one result per file, in input order."""
        files = list(files)
        if not files:
            return
        check_scale(scale)
        if self._in_progress:
            raise BatchInProgressError("A batch run is already in progress")

        self._cancel_event.clear()
        self._set_in_progress(True)
        settings = self.settings.copy()
        total = len(files)
        logger.info("Upscaling %d file(s) at %dx", total, scale)
        try:
            for i, file in enumerate(files):
                if self.cancelled:
                    break
                if on_progress:
                    on_progress(i, total, file.name)
                logger.info("Processing %s (%d/%d)", file.name, i + 1, total)

                original = original_data_uri(file)
                await asyncio.sleep(settings.processing_delay)
                if self.cancelled:
                    break

                try:
                    upscaled = await asyncio.to_thread(
                        self._process, file, scale, settings.brightness_gain,
                    )
                except Exception as exc:
                    logger.error("Batch aborted at %s: %s", file.name, exc)
                    raise BatchProcessingError(file.name, exc, i) from exc

                yield ProcessedResult(
                    original=original, upscaled=upscaled, file_name=file.name,
                )
        finally:
            self._set_in_progress(False)

        if self.cancelled:
            logger.info("Batch cancelled")
        else:
            logger.info("Batch finished: %d file(s)", total)

    async def run(self, files: Sequence[InputFile], scale: int,
                  on_progress: Optional[ProgressCallback] = None,
                  ) -> List[ProcessedResult]:
        """Process every file and return the ordered results.

        Results only surface once the whole batch succeeded; a cancelled run
        returns an empty list.
        """
        results: List[ProcessedResult] = []
        gen = self.iter_results(files, scale, on_progress)
        try:
            async for result in gen:
                results.append(result)
        finally:
            await gen.aclose()
        if self.cancelled:
            return []
        return results
