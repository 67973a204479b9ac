from __future__ import annotations

from io import BytesIO
import warnings

from PIL import Image, UnidentifiedImageError

from ecms.services.media.constants import (
    ALLOWED_AVATAR_CONTENT_TYPES,
    DEFAULT_REQUESTER_ROLE,
    MIB,
    PRIVILEGED_TIER_ROLES,
    SNIFFED_FORMAT_CONTENT_TYPES,
)
from ecms.services.media.exceptions import ImageValidationError
from ecms.services.media.types import ImageLimits, ValidatedImage

BASE_LIMITS = ImageLimits(
    tier="base",
    max_bytes=2 * MIB,
    min_width=128,
    min_height=128,
    max_width=1024,
    max_height=1024,
)
PRIVILEGED_LIMITS = ImageLimits(
    tier="privileged",
    max_bytes=4 * MIB,
    min_width=128,
    min_height=128,
    max_width=2048,
    max_height=2048,
)


def normalize_role(role: str | None) -> str:
    normalized = (role or "").strip().lower()
    return normalized or DEFAULT_REQUESTER_ROLE


def limits_for_role(role: str | None) -> ImageLimits:
    if normalize_role(role) in PRIVILEGED_TIER_ROLES:
        return PRIVILEGED_LIMITS
    return BASE_LIMITS


def normalize_content_type(value: str | None) -> str:
    return (value or "").split(";", 1)[0].strip().lower()


def _allowed_types() -> list[str]:
    return list(ALLOWED_AVATAR_CONTENT_TYPES)


def _unsupported_type(role: str, content_type: str) -> ImageValidationError:
    return ImageValidationError(
        reason="unsupported_type",
        message=f"Unsupported image type {content_type or '<none>'!r}. Use JPEG, PNG, or WEBP.",
        role=role,
        limits={"allowed_types": _allowed_types()},
    )


def read_image_header(data: bytes) -> tuple[str | None, int, int]:
    """Return (sniffed content type, width, height) without decoding pixels."""
    with warnings.catch_warnings():
        warnings.simplefilter("error", Image.DecompressionBombWarning)
        with Image.open(BytesIO(data)) as image:
            width, height = image.size
            return SNIFFED_FORMAT_CONTENT_TYPES.get(image.format or ""), int(width), int(height)


def validate_image(
    data: bytes,
    declared_content_type: str | None,
    role: str | None,
) -> ValidatedImage:
    """Check an avatar against the tier selected by ``role``.

    Checks run cheapest first: declared type, emptiness, byte size,
    sniffed type, then pixel dimensions. The first failure raises
    ``ImageValidationError`` carrying the violated limit.
    """
    normalized_role = normalize_role(role)
    limits = limits_for_role(normalized_role)

    content_type = normalize_content_type(declared_content_type)
    if content_type not in ALLOWED_AVATAR_CONTENT_TYPES:
        raise _unsupported_type(normalized_role, content_type)

    if not data:
        raise ImageValidationError(
            reason="empty_image",
            message="Uploaded image file is empty.",
            role=normalized_role,
            limits={"max_bytes": limits.max_bytes},
        )

    if len(data) > limits.max_bytes:
        raise ImageValidationError(
            reason="too_large",
            message=f"Uploaded image exceeds {limits.max_bytes} bytes.",
            role=normalized_role,
            limits={"max_bytes": limits.max_bytes},
        )

    try:
        sniffed_type, width, height = read_image_header(data)
    except (Image.DecompressionBombError, Image.DecompressionBombWarning) as exc:
        raise ImageValidationError(
            reason="dimensions_out_of_range",
            message="Image dimensions out of allowed range.",
            role=normalized_role,
            limits=limits.dimension_bounds(),
        ) from exc
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise ImageValidationError(
            reason="unreadable_image",
            message="Could not read image dimensions.",
            role=normalized_role,
            limits=limits.dimension_bounds(),
        ) from exc

    if sniffed_type not in ALLOWED_AVATAR_CONTENT_TYPES:
        raise _unsupported_type(normalized_role, sniffed_type or "")

    if (
        width < limits.min_width
        or height < limits.min_height
        or width > limits.max_width
        or height > limits.max_height
    ):
        raise ImageValidationError(
            reason="dimensions_out_of_range",
            message=(
                f"Image dimensions {width}x{height} out of allowed range "
                f"{limits.min_width}x{limits.min_height} to {limits.max_width}x{limits.max_height}."
            ),
            role=normalized_role,
            limits=limits.dimension_bounds(),
        )

    return ValidatedImage(
        content_type=sniffed_type,
        extension=ALLOWED_AVATAR_CONTENT_TYPES[sniffed_type],
        size_bytes=len(data),
        width=width,
        height=height,
        limits=limits,
    )
