"""Part size planning for multipart uploads."""

from .errors import ArchiveTooLargeError, ValidationError
from .treehash import MIB

MIN_PART_SIZE = MIB
MAX_PART_SIZE = 4 * 1024 * MIB
MAX_PARTS = 10_000

# Largest archive a multipart upload can hold (about 39 TiB)
MAX_ARCHIVE_SIZE = MAX_PART_SIZE * MAX_PARTS


def is_valid_part_size(part_size: int) -> bool:
    return (
        MIN_PART_SIZE <= part_size <= MAX_PART_SIZE
        and part_size & (part_size - 1) == 0
    )


def validate_part_size(part_size: int) -> None:
    """Raise ValidationError unless part_size is a power of two in [1 MiB, 4 GiB]."""
    if not isinstance(part_size, int) or isinstance(part_size, bool):
        raise ValidationError(f"Part size must be an integer, got {part_size!r}")
    if not is_valid_part_size(part_size):
        raise ValidationError(
            f"Part size {part_size} must be a power of two between "
            f"{MIN_PART_SIZE} and {MAX_PART_SIZE} bytes"
        )


def plan_part_size(archive_size: int) -> int:
    """Pick the smallest valid part size that fits an archive in 10,000 parts.

    Args:
        archive_size: Archive size in bytes, or an upper bound on it

    Returns:
        Part size in bytes (a power of two, at least 1 MiB)

    Raises:
        ValidationError: If archive_size is negative
        ArchiveTooLargeError: If no part size up to 4 GiB is large enough
    """
    if archive_size < 0:
        raise ValidationError(f"Archive size cannot be negative: {archive_size}")

    raw = (archive_size - 1) // MAX_PARTS if archive_size > 0 else 0
    # 2^(floor(log2(raw)) + 1)
    part_size = 1 << raw.bit_length() if raw > 0 else MIN_PART_SIZE
    part_size = max(part_size, MIN_PART_SIZE)

    if part_size > MAX_PART_SIZE:
        raise ArchiveTooLargeError(archive_size, MAX_ARCHIVE_SIZE)

    return part_size


def part_count(archive_size: int, part_size: int) -> int:
    """Number of parts needed for archive_size at part_size (at least one)."""
    if archive_size <= 0:
        return 1
    return -(-archive_size // part_size)
