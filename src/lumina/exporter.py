"""
Batch Exporter

Composites the chosen images one after another and packages the result:
a single file for one image, a ZIP archive for several.
"""

import asyncio
import io
import logging
import zipfile
from typing import Callable, List, Optional, Sequence

from .compositing.pipeline import render_bytes
from .config import settings
from .models import ExportArtifact, ImageItem

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]

MEDIA_TYPES = {"JPEG": "image/jpeg", "PNG": "image/png", "WEBP": "image/webp"}


class BatchExportError(Exception):
    """Raised when a batch export is aborted."""
    pass


class BatchExporter:
    """
    Sequential export of edited images.

    A failure on any image aborts the whole batch; no partial archive is
    ever produced.
    """

    def __init__(
        self,
        prefix: Optional[str] = None,
        archive_name: Optional[str] = None,
        fmt: Optional[str] = None,
        quality: Optional[int] = None,
    ):
        self.prefix = settings.export_prefix if prefix is None else prefix
        self.archive_name = archive_name or settings.export_archive_name
        self.fmt = (fmt or settings.export_format).upper()
        self.quality = settings.export_quality if quality is None else quality

    def output_name(self, item: ImageItem) -> str:
        return f"{self.prefix}{item.name}"

    def render(self, item: ImageItem) -> bytes:
        return render_bytes(item, preview=False, fmt=self.fmt, quality=self.quality)

    async def export(
        self,
        images: Sequence[ImageItem],
        progress: Optional[ProgressCallback] = None,
    ) -> ExportArtifact:
        """
        Render every image and package the outputs.

        Args:
            images: Images with their current adjustments and regions
            progress: Called as progress(index, total, name) before each image

        Returns:
            ExportArtifact holding a single image or a ZIP archive

        Raises:
            BatchExportError: If there is nothing to export or any image fails
        """
        if not images:
            raise BatchExportError("No images to export")

        total = len(images)
        outputs: List[tuple] = []

        logger.info(f"Rendering {total} photos...")
        for index, item in enumerate(images, start=1):
            if progress:
                progress(index, total, item.name)

            try:
                data = self.render(item)
            except Exception as e:
                logger.error(f"Export failed on {item.name} ({index}/{total}): {e}")
                raise BatchExportError("Batch export failed") from e

            outputs.append((self.output_name(item), data))
            # Yield to the event loop between images
            await asyncio.sleep(0)

        if len(outputs) == 1:
            name, data = outputs[0]
            return ExportArtifact(
                filename=name,
                media_type=MEDIA_TYPES.get(self.fmt, "application/octet-stream"),
                data=data,
                entries=[name],
            )

        return ExportArtifact(
            filename=self.archive_name,
            media_type="application/zip",
            data=build_archive(outputs),
            entries=[name for name, _ in outputs],
        )


def build_archive(outputs: Sequence[tuple]) -> bytes:
    """Pack (name, bytes) pairs into an in-memory ZIP archive."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, data in outputs:
            archive.writestr(name, data)
    return buffer.getvalue()
