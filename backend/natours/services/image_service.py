"""
Uploaded image processing: crop to a fixed size, re-encode as JPEG, write to disk.

Decoding and encoding are CPU bound and run in a worker thread.
"""

import asyncio
import io
import time
from pathlib import Path
from typing import Optional, Sequence

from PIL import Image, ImageOps, UnidentifiedImageError

from natours.core.errors import BadRequestError
from natours.core.logging import get_logger
from natours.core.metrics import images_processed

logger = get_logger(__name__)

USER_PHOTO_SIZE = (500, 500)
TOUR_IMAGE_SIZE = (2000, 1333)
JPEG_QUALITY = 90
MAX_TOUR_IMAGES = 3

NOT_AN_IMAGE = "Not an image! Please upload only images."


def _timestamp_ms() -> int:
    return int(time.time() * 1000)


def check_image_type(content_type: Optional[str]) -> None:
    if not content_type or not content_type.startswith("image"):
        raise BadRequestError(NOT_AN_IMAGE)


def _resize_to_jpeg(data: bytes, size: tuple[int, int], destination: Path) -> None:
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.load()
            fitted = ImageOps.fit(image.convert("RGB"), size)
    except (UnidentifiedImageError, OSError) as exc:
        raise BadRequestError(NOT_AN_IMAGE) from exc

    destination.parent.mkdir(parents=True, exist_ok=True)
    fitted.save(destination, format="JPEG", quality=JPEG_QUALITY)


async def save_user_photo(image_root: str, user_id: int, data: bytes) -> str:
    """Store a square profile photo and return its file name."""
    filename = f"user-{user_id}-{_timestamp_ms()}.jpeg"
    await asyncio.to_thread(_resize_to_jpeg, data, USER_PHOTO_SIZE, Path(image_root) / "users" / filename)
    images_processed.labels(kind="user").inc()
    logger.info("image_processed", kind="user", user_id=user_id, filename=filename)
    return filename


async def save_tour_images(
    image_root: str,
    tour_id: int,
    cover: Optional[bytes] = None,
    gallery: Sequence[bytes] = (),
) -> dict[str, object]:
    """
    Store a tour's cover and gallery images.

    Returns the fields to merge into the tour update: `image_cover` when a
    cover was given, `images` when gallery images were given.
    """
    if len(gallery) > MAX_TOUR_IMAGES:
        raise BadRequestError(f"A tour can have at most {MAX_TOUR_IMAGES} images.")

    stamp = _timestamp_ms()
    tours_dir = Path(image_root) / "tours"
    fields: dict[str, object] = {}

    written: list[str] = []
    try:
        if cover is not None:
            filename = f"tour-{tour_id}-{stamp}-cover.jpeg"
            await asyncio.to_thread(_resize_to_jpeg, cover, TOUR_IMAGE_SIZE, tours_dir / filename)
            written.append(filename)
            images_processed.labels(kind="tour-cover").inc()
            fields["image_cover"] = filename

        if gallery:
            filenames = []
            for index, data in enumerate(gallery, start=1):
                filename = f"tour-{tour_id}-{stamp}-{index}.jpeg"
                await asyncio.to_thread(_resize_to_jpeg, data, TOUR_IMAGE_SIZE, tours_dir / filename)
                written.append(filename)
                images_processed.labels(kind="tour-image").inc()
                filenames.append(filename)
            fields["images"] = filenames
    except Exception:
        _unlink(tours_dir, written)
        raise

    if fields:
        logger.info("image_processed", kind="tour", tour_id=tour_id, fields=sorted(fields))
    return fields


def _unlink(directory: Path, filenames: Sequence[str]) -> None:
    for filename in filenames:
        (directory / filename).unlink(missing_ok=True)


def remove_tour_images(image_root: str, fields: dict[str, object]) -> None:
    """Delete files stored by save_tour_images whose update was never written."""
    filenames = list(fields.get("images") or [])
    if fields.get("image_cover"):
        filenames.append(fields["image_cover"])
    _unlink(Path(image_root) / "tours", filenames)
    logger.info("images_discarded", kind="tour", filenames=filenames)


def remove_user_photo(image_root: str, filename: str) -> None:
    _unlink(Path(image_root) / "users", [filename])
    logger.info("images_discarded", kind="user", filenames=[filename])
