"""Validate and downsize page images before sending them to the model."""

import io
import logging

from PIL import Image, UnidentifiedImageError

from webtoon_translator.errors import ImagePreparationError
from webtoon_translator.models.provider import ProviderPayload

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 15 * 1024 * 1024  # 15MB
MAX_IMAGE_DIMENSION = 4096
MIN_IMAGE_DIMENSION = 10
JPEG_QUALITY = 85


class ImagePreparer:
    """Checks image dimensions and re-encodes oversized images as JPEG."""

    def __init__(
        self,
        max_file_size: int = MAX_FILE_SIZE,
        max_dimension: int = MAX_IMAGE_DIMENSION,
        min_dimension: int = MIN_IMAGE_DIMENSION,
        jpeg_quality: int = JPEG_QUALITY,
    ):
        self._max_file_size = max_file_size
        self._max_dimension = max_dimension
        self._min_dimension = min_dimension
        self._jpeg_quality = jpeg_quality

    def prepare(self, data: bytes, file_name: str, mime_type: str = "image/jpeg") -> ProviderPayload:
        """
        Turn raw image bytes into a provider payload.

        Images within the size and dimension limits pass through unchanged.
        Larger ones are scaled to fit inside max_dimension (aspect ratio
        kept) and re-encoded as JPEG.

        Args:
            data: Raw image bytes.
            file_name: Name used in log and error messages.
            mime_type: Mime type of the original bytes.

        Returns:
            ProviderPayload holding the image.

        Raises:
            ImagePreparationError: Unreadable image or dimensions too small.
        """
        try:
            image = Image.open(io.BytesIO(data))
            width, height = image.size
        except (UnidentifiedImageError, OSError) as e:
            raise ImagePreparationError(f"Invalid image {file_name}: {e}") from e

        if not width or not height:
            raise ImagePreparationError(f"Invalid image dimensions for {file_name}")

        if width < self._min_dimension or height < self._min_dimension:
            raise ImagePreparationError(
                f"Image dimensions too small for {file_name}: {width}x{height}"
            )

        too_large = len(data) > self._max_file_size
        too_wide = max(width, height) > self._max_dimension
        if not too_large and not too_wide:
            return ProviderPayload.from_image(data, mime_type)

        if image.mode != "RGB":
            image = image.convert("RGB")
        # thumbnail never enlarges and keeps the aspect ratio
        image.thumbnail((self._max_dimension, self._max_dimension))

        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", quality=self._jpeg_quality)
        resized = buffer.getvalue()

        logger.info(
            "Resized %s from %dx%d (%d bytes) to %dx%d (%d bytes)",
            file_name,
            width,
            height,
            len(data),
            image.width,
            image.height,
            len(resized),
        )
        return ProviderPayload.from_image(resized, "image/jpeg")
