"""
Session state of the upscaler window and the rules for each user action.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from batch import BatchProcessingError, BatchProcessor, ProgressCallback
from processor import (
    PROFILES, InputFile, ProcessedResult, UpscaleSettings,
    clamp_scale, original_data_uri,
)

logger = logging.getLogger(__name__)


@dataclass
class SessionState:
    """Everything the window shows, plus the batch processor driving it."""
    settings: UpscaleSettings = field(default_factory=UpscaleSettings)
    files: List[InputFile] = field(default_factory=list)
    preview: Optional[str] = None
    output_folder: Optional[str] = None
    results: List[ProcessedResult] = field(default_factory=list)

    def __post_init__(self):
        self._processor = BatchProcessor(self.settings)

    @property
    def in_progress(self) -> bool:
        return self._processor.in_progress

    @property
    def scale(self) -> int:
        return self.settings.scale

    @property
    def profile(self) -> str:
        return self.settings.profile

    # ── display helpers ──────────────────────────────────────────────

    @property
    def scale_label(self) -> str:
        if self.scale == 2:
            return "Double upscale"
        return f"{self.scale}x upscale"

    @property
    def selection_title(self) -> str:
        if self.files:
            return f"{len(self.files)} file(s) selected"
        return "Start Upscaling"

    @property
    def selection_names(self) -> str:
        return ", ".join(f.name for f in self.files)

    # ── transitions ──────────────────────────────────────────────────

    def select_files(self, files: Sequence[InputFile]):
        """Replace the selection; an empty selection is ignored.

        A run still working on the previous selection is cancelled.
        """
        files = list(files)
        if not files:
            logger.debug("Empty selection ignored")
            return
        self._processor.cancel()
        self.files = files
        self.preview = original_data_uri(files[0])
        self.results = []
        logger.info("Selected %d file(s)", len(files))

    def set_output_folder(self, label: str):
        self.output_folder = label

    def set_scale(self, scale: float):
        self.settings.scale = clamp_scale(scale)

    def set_profile(self, name: str):
        if name not in PROFILES:
            raise ValueError(f"Unknown profile: {name}")
        self.settings.profile = name

    async def run_upscale(self, on_progress: Optional[ProgressCallback] = None,
                          ) -> Optional[List[ProcessedResult]]:
        """Upscale the current selection.

        Returns the new results, or None when nothing ran (no files, a run
        already active, or the run was cancelled).
        """
        if not self.files:
            return None
        if self.in_progress:
            logger.warning("Upscale ignored: a run is already in progress")
            return None

        files = list(self.files)
        try:
            results = await self._processor.run(files, self.scale, on_progress)
        except BatchProcessingError:
            logger.error("Upscale failed; keeping previous results")
            raise

        if self._processor.cancelled:
            return None
        self.results = results
        return results

    def clear(self):
        """Drop the selection and results; settings and folder stay."""
        self._processor.cancel()
        self.files = []
        self.preview = None
        self.results = []
