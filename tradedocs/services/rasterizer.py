"""
PDF rasterization for vision-capable oracles.

Pages are rendered with pypdfium2 at a fixed DPI, downscaled so the longest
edge fits the oracle's preferred size, and PNG-encoded in memory. No files
are written; every pdfium handle is closed before returning, whether or not
each page rendered.
"""

from io import BytesIO
from pathlib import Path

import pypdfium2
from loguru import logger
from PIL import Image

from ..core.config import Settings, settings as default_settings
from ..core.errors import RasterizationFailure
from .intelligence.base import PageImage


class PdfRasterizer:
    def __init__(self, dpi: int = 300, max_edge: int = 2048, image_format: str = "PNG"):
        self.dpi = dpi
        self.max_edge = max_edge
        self.image_format = image_format

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "PdfRasterizer":
        config = config or default_settings
        return cls(dpi=config.rasterize_dpi, max_edge=config.rasterize_max_edge)

    @property
    def media_type(self) -> str:
        return f"image/{self.image_format.lower()}"

    def _encode(self, image: Image.Image, page_number: int) -> PageImage:
        if max(image.size) > self.max_edge:
            image.thumbnail((self.max_edge, self.max_edge), Image.LANCZOS)
        buffer = BytesIO()
        image.save(buffer, format=self.image_format)
        return PageImage(data=buffer.getvalue(), media_type=self.media_type, page_number=page_number)

    def rasterize(self, file_path: str | Path) -> list[PageImage]:
        """
        Convert every page of a PDF to an encoded image.

        Raises:
            RasterizationFailure: the file is not a readable PDF or a page failed to render
        """
        path = Path(file_path)
        if path.suffix.lower() != ".pdf":
            raise RasterizationFailure(f"Not a PDF: {path.name}")

        scale = self.dpi / 72.0  # PDF points to pixels
        images: list[PageImage] = []

        try:
            pdf = pypdfium2.PdfDocument(str(path))
        except Exception as e:
            raise RasterizationFailure(f"Failed to open PDF {path.name}: {e}") from e

        try:
            for page_number in range(len(pdf)):
                page = pdf[page_number]
                try:
                    bitmap = page.render(scale=scale)
                    try:
                        images.append(self._encode(bitmap.to_pil(), page_number))
                    finally:
                        bitmap.close()
                finally:
                    page.close()
        except RasterizationFailure:
            raise
        except Exception as e:
            raise RasterizationFailure(
                f"Failed to convert PDF {path.name} to images: {e}"
            ) from e
        finally:
            pdf.close()

        if not images:
            raise RasterizationFailure(f"PDF {path.name} has no pages")

        logger.info(
            "Rasterized PDF",
            file=path.name,
            pages=len(images),
            dpi=self.dpi,
        )
        return images
