"""S3 image store for chapter page images."""

import logging
import mimetypes
from pathlib import PurePosixPath
from typing import Any

from botocore.exceptions import ClientError

from webtoon_translator.errors import ProviderPermanentError, ProviderTransientError
from webtoon_translator.models.schemas import ImageRef

logger = logging.getLogger(__name__)

IMAGE_SUFFIXES = (".jpg", ".jpeg", ".png", ".webp", ".gif", ".bmp")

# S3 error codes that will not succeed on retry
PERMANENT_ERROR_CODES = {"NoSuchKey", "NoSuchBucket", "AccessDenied", "404", "403"}


class S3ImageStore:
    """Lists and downloads page images from S3."""

    def __init__(self, client: Any, default_bucket: str = ""):
        """
        Initialize S3 image store.

        Args:
            client: boto3 S3 client instance.
            default_bucket: Bucket used when a request names none.
        """
        self._client = client
        self._default_bucket = default_bucket

    def list_images(self, prefix: str, bucket: str = "") -> list[ImageRef]:
        """
        List page images under a prefix, ordered by page number.

        Args:
            prefix: Key prefix of the chapter folder.
            bucket: S3 bucket name (defaults to the store bucket).

        Returns:
            ImageRefs sorted by the first number in the file name.
        """
        bucket = bucket or self._default_bucket
        images = []
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    key = obj["Key"]
                    if not key.lower().endswith(IMAGE_SUFFIXES):
                        continue
                    name = PurePosixPath(key).name
                    images.append(
                        ImageRef(
                            name=name,
                            key=key,
                            bucket=bucket,
                            mime_type=mimetypes.guess_type(name)[0] or "image/jpeg",
                        )
                    )
        except ClientError as e:
            logger.error("Failed to list images in s3://%s/%s: %s", bucket, prefix, e)
            raise

        images.sort(key=lambda image: (image.sort_number, image.name))
        logger.info("Found %d images in s3://%s/%s", len(images), bucket, prefix)
        return images

    def download(self, image: ImageRef) -> bytes:
        """
        Download image bytes.

        Raises:
            ProviderPermanentError: Missing object, bucket or access.
            ProviderTransientError: Any other S3 failure.
        """
        bucket = image.bucket or self._default_bucket
        try:
            response = self._client.get_object(Bucket=bucket, Key=image.key)
            content = response["Body"].read()
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            logger.error("Failed to download s3://%s/%s: %s", bucket, image.key, e)
            message = f"Failed to download {image.name}: {code or e}"
            if code in PERMANENT_ERROR_CODES:
                raise ProviderPermanentError(message) from e
            raise ProviderTransientError(message) from e

        logger.info("Read %d bytes from s3://%s/%s", len(content), bucket, image.key)
        return content
