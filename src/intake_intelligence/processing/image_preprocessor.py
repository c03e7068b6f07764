"""
Image preprocessing module for the Intake Intelligence System.

This module loads contractor photos from inline bytes, local paths or URLs
and prepares them for a vision analyzer: phone photos are downscaled to a
bounded size, contrast-normalised with CLAHE on the luminance channel, and
re-encoded as JPEG. The caller's ProjectImage is never modified; enhanced
bytes are returned as a separate PreparedImage.

Classes:
    PreprocessConfig: Configuration container for preprocessing parameters.
    ImagePreprocessor: Loading and enhancement engine.

Typical usage example:
    preprocessor = ImagePreprocessor(PreprocessConfig(max_dimension=1600))
    prepared = await preprocessor.prepare(project_image)
    text = await vision.analyze(prompt, prepared.data, prepared.mime_type)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import cv2
import httpx
import numpy as np

from ..models.data_structures import PreparedImage, ProjectImage
from ..utils.error_handlers import ImageAnalysisError
from ..utils.file_utils import read_file_bytes

logger = logging.getLogger(__name__)


@dataclass
class PreprocessConfig:
    """
    Configuration for image preprocessing operations.

    Attributes:
        max_dimension: Longest side, in pixels, after downscaling. Default: 2048
        jpeg_quality: JPEG re-encode quality (1-100). Default: 95
        apply_clahe: Whether to apply CLAHE to the luminance channel.
        clahe_clip_limit: Clipping limit for CLAHE.
        clahe_grid_size: Tile grid size for CLAHE.
        download_timeout: Timeout in seconds for URL downloads.
        max_file_size_mb: Largest accepted source file.
        supported_mime_types: Declared MIME types the pipeline accepts.
    """

    max_dimension: int = 2048
    jpeg_quality: int = 95
    apply_clahe: bool = True
    clahe_clip_limit: float = 2.0
    clahe_grid_size: Tuple[int, int] = (8, 8)
    download_timeout: float = 30.0
    max_file_size_mb: float = 20.0
    supported_mime_types: List[str] = field(
        default_factory=lambda: ["image/jpeg", "image/png", "image/webp"]
    )

    def __post_init__(self) -> None:
        if self.max_dimension < 1:
            raise ValueError(f"max_dimension must be positive, got {self.max_dimension}")
        if not 1 <= self.jpeg_quality <= 100:
            raise ValueError(f"jpeg_quality must be in [1, 100], got {self.jpeg_quality}")
        self.clahe_grid_size = tuple(self.clahe_grid_size)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PreprocessConfig":
        """Build from the ``image_preprocessing`` section of SystemConfig."""
        defaults = cls()
        return cls(
            max_dimension=int(data.get("max_dimension", defaults.max_dimension)),
            jpeg_quality=int(data.get("jpeg_quality", defaults.jpeg_quality)),
            apply_clahe=bool(data.get("apply_clahe", defaults.apply_clahe)),
            clahe_clip_limit=float(data.get("clahe_clip_limit", defaults.clahe_clip_limit)),
            clahe_grid_size=tuple(data.get("clahe_grid_size", defaults.clahe_grid_size)),
            download_timeout=float(
                data.get("download_timeout_seconds", defaults.download_timeout)
            ),
            max_file_size_mb=float(data.get("max_file_size_mb", defaults.max_file_size_mb)),
            supported_mime_types=list(
                data.get("supported_mime_types", defaults.supported_mime_types)
            ),
        )


class ImagePreprocessor:
    """
    Loads and enhances contractor photos.

    Decoding, resizing and CLAHE run in a worker thread so the event loop is
    never blocked. Bytes OpenCV cannot decode are passed through unchanged,
    since some analyzers accept formats OpenCV does not read.

    Attributes:
        config: Preprocessing configuration.
    """

    def __init__(
        self,
        config: Optional[PreprocessConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize the image preprocessor.

        Args:
            config: Preprocessing configuration. Defaults to PreprocessConfig().
            http_client: Shared async HTTP client for URL sources. A
                short-lived client is created per download when omitted.
        """
        self.config = config or PreprocessConfig()
        self._http_client = http_client
        logger.debug("ImagePreprocessor initialized")

    def is_supported(self, image: ProjectImage) -> bool:
        return image.mime_type.lower() in self.config.supported_mime_types

    async def prepare(self, image: ProjectImage) -> PreparedImage:
        """
        Load and enhance one image.

        Args:
            image: Caller-owned image description.

        Returns:
            PreparedImage with enhanced JPEG bytes, or the original bytes
            when they could not be decoded.

        Raises:
            FileNotFoundError: If a local path does not exist.
            ImageAnalysisError: If a URL cannot be downloaded or the source
                is empty.
        """
        data = await self.load_bytes(image)
        if not data:
            raise ImageAnalysisError(f"Image {image.image_id} is empty")

        enhanced = await asyncio.to_thread(self.enhance, data)
        if enhanced is None:
            logger.warning(
                f"Could not decode {image.filename}; sending original bytes unprocessed"
            )
            return PreparedImage(source=image, data=data, mime_type=image.mime_type)

        encoded, width, height = enhanced
        return PreparedImage(
            source=image,
            data=encoded,
            mime_type="image/jpeg",
            enhanced=True,
            width=width,
            height=height,
        )

    async def load_bytes(self, image: ProjectImage) -> bytes:
        """Read the raw encoded bytes of an image from its source."""
        if image.inline_bytes:
            return image.inline_bytes
        if image.path:
            return await asyncio.to_thread(
                read_file_bytes, image.path, self.config.max_file_size_mb
            )
        return await self._download(image.url)

    async def _download(self, url: str) -> bytes:
        try:
            if self._http_client is not None:
                response = await self._http_client.get(url, follow_redirects=True)
            else:
                async with httpx.AsyncClient(timeout=self.config.download_timeout) as client:
                    response = await client.get(url, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ImageAnalysisError(f"Failed to download image {url}: {e}") from e

        logger.debug(f"Downloaded {len(response.content)} bytes from {url}")
        return response.content

    def enhance(self, data: bytes) -> Optional[Tuple[bytes, int, int]]:
        """
        Downscale, contrast-normalise and JPEG-encode image bytes.

        Args:
            data: Encoded image bytes.

        Returns:
            Tuple of (jpeg_bytes, width, height), or None if the bytes cannot
            be decoded.
        """
        buffer = np.frombuffer(data, dtype=np.uint8)
        image = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
        if image is None:
            return None

        image = self._resize_to_fit(image)

        if self.config.apply_clahe:
            image = self._apply_clahe(image)

        ok, encoded = cv2.imencode(
            ".jpg", image, [cv2.IMWRITE_JPEG_QUALITY, self.config.jpeg_quality]
        )
        if not ok:
            return None

        height, width = image.shape[:2]
        return encoded.tobytes(), width, height

    def _resize_to_fit(self, image: np.ndarray) -> np.ndarray:
        height, width = image.shape[:2]
        longest = max(height, width)
        if longest <= self.config.max_dimension:
            return image

        scale = self.config.max_dimension / longest
        new_size = (max(1, int(width * scale)), max(1, int(height * scale)))
        return cv2.resize(image, new_size, interpolation=cv2.INTER_AREA)

    def _apply_clahe(self, image: np.ndarray) -> np.ndarray:
        # L channel only, so colours are preserved
        lab = cv2.cvtColor(image, cv2.COLOR_BGR2LAB)
        lightness, a_channel, b_channel = cv2.split(lab)
        clahe = cv2.createCLAHE(
            clipLimit=self.config.clahe_clip_limit,
            tileGridSize=self.config.clahe_grid_size,
        )
        lab = cv2.merge((clahe.apply(lightness), a_channel, b_channel))
        return cv2.cvtColor(lab, cv2.COLOR_LAB2BGR)
