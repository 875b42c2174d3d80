"""High-level file upload: single request or parallel multipart with resume."""

import re
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import NamedTuple

from .archive import ArchiveUploader
from .errors import GlacierError, SessionExpiredError, ValidationError
from .journal import UploadJournal, journal_key
from .log import get_logger
from .multipart import MultipartUploadSession, PartDescriptor
from .part_size import MAX_PARTS, part_count, plan_part_size, validate_part_size
from .progress import UploadProgress
from .sources import FileSource
from .transport import DEFAULT_ACCOUNT_ID, Transport
from .treehash import MIB, combine_tree_hashes

# The service recommends multipart uploads above this size
MULTIPART_THRESHOLD_BYTES = 100 * MIB


class PartRange(NamedTuple):
    index: int
    offset: int
    length: int


@dataclass
class PartResult:
    """Outcome of one part upload in a worker thread."""

    index: int
    size: int
    success: bool
    part: PartDescriptor | None = None
    error: str | None = None
    exception: BaseException | None = field(default=None, repr=False)


@dataclass
class UploadResult:
    """Result of a completed archive upload."""

    archive_id: str
    tree_hash: str
    size: int
    upload_id: str | None = None
    parts: list[PartDescriptor] = field(default_factory=list)
    resumed_parts: int = 0
    elapsed_seconds: float = 0.0

    @property
    def multipart(self) -> bool:
        return self.upload_id is not None


class PartUploadFailed(GlacierError):
    """Raised when one or more parts could not be uploaded.

    The upload id stays valid on the service, so the upload can be resumed.
    """

    def __init__(self, upload_id: str | None, failures: list[PartResult]):
        self.upload_id = upload_id
        self.failures = sorted(failures, key=lambda r: r.index)
        indices = ", ".join(str(r.index) for r in self.failures)
        super().__init__(
            f"{len(self.failures)} part(s) of upload {upload_id} failed: {indices}"
        )


def parse_size(size_str: str) -> int:
    """Parse human-readable size string (e.g., "64MB", "1GB") to bytes."""
    size_str = size_str.strip().upper()
    match = re.match(r"^(\d+(?:\.\d+)?)\s*(KB|MB|GB|TB|B)?$", size_str)
    if not match:
        raise ValueError(f"Invalid size format: {size_str}")

    value = float(match.group(1))
    unit = match.group(2) or "B"

    multipliers = {
        "B": 1,
        "KB": 1024,
        "MB": 1024 * 1024,
        "GB": 1024 * 1024 * 1024,
        "TB": 1024 * 1024 * 1024 * 1024,
    }

    return int(value * multipliers[unit])


def iter_part_ranges(size: int, part_size: int) -> list[PartRange]:
    """Split size bytes into part_size windows; the last may be shorter."""
    return [
        PartRange(index, offset, min(part_size, size - offset))
        for index, offset in enumerate(range(0, size, part_size))
    ]


def upload_part_worker(
    session: MultipartUploadSession,
    file_path: str | Path,
    part_range: PartRange,
    progress: UploadProgress | None = None,
) -> PartResult:
    """Upload one part from its own file handle, for use with ThreadPoolExecutor."""
    index, offset, length = part_range
    try:
        with open(file_path, "rb") as f:
            part = session.upload_part(index, FileSource(f, offset, length))

        if progress is not None:
            progress.complete_part(length)

        return PartResult(index=index, size=length, success=True, part=part)

    except Exception as e:
        if progress is not None:
            progress.fail_part()

        return PartResult(index=index, size=length, success=False, error=str(e), exception=e)


def _resume_session(
    transport: Transport,
    vault: str,
    journal: UploadJournal,
    key: str,
    account_id: str,
) -> tuple[MultipartUploadSession, dict[int, PartDescriptor]] | None:
    """Reattach to a journaled upload, keeping only parts the service confirms."""
    logger = get_logger()
    entry = journal.get(key)
    if entry is None:
        return None

    session = MultipartUploadSession.resume(
        transport, vault, entry.upload_id, entry.part_size, account_id=account_id
    )
    try:
        remote = {p.index: p for p in session.list_parts()}
    except SessionExpiredError:
        logger.warning(f"Journaled upload {entry.upload_id} has expired; starting over")
        journal.finish(key)
        return None

    confirmed = {i: p for i, p in entry.parts.items() if remote.get(i) == p}
    logger.info(
        f"Resuming upload {entry.upload_id}: {len(confirmed)} of "
        f"{len(entry.parts)} journaled parts confirmed by the service"
    )
    return session, confirmed


def upload_multipart(
    transport: Transport,
    vault: str,
    file_path: str | Path,
    description: str = "",
    part_size: int | None = None,
    workers: int = 4,
    journal: UploadJournal | None = None,
    show_progress: bool = True,
    account_id: str = DEFAULT_ACCOUNT_ID,
) -> UploadResult:
    """Upload a file as a multipart archive, sending parts in parallel.

    Raises:
        PartUploadFailed: One or more parts failed; the upload stays resumable
        GlacierError: Initiation or completion failed
    """
    logger = get_logger()
    start_time = time.time()
    file_path = Path(file_path)
    size = file_path.stat().st_size

    if size == 0:
        raise ValidationError("Empty files cannot be uploaded as multipart archives")
    if workers < 1:
        raise ValidationError(f"Worker count must be at least 1, got {workers}")

    key = journal_key(vault, file_path) if journal is not None else None
    done: dict[int, PartDescriptor] = {}
    resumed = None
    if journal is not None and key is not None:
        for stale in journal.prune_stale(vault, file_path, key):
            logger.warning(
                f"{file_path.name} changed since upload {stale.upload_id} started; "
                f"dropping it from the journal. Use --abort {stale.upload_id} to discard it."
            )
        resumed = _resume_session(transport, vault, journal, key, account_id)

    if resumed is not None:
        session, done = resumed
        if part_size is not None and part_size != session.part_size:
            logger.warning(
                f"Ignoring requested part size {part_size}; upload {session.upload_id} "
                f"uses {session.part_size}"
            )
    else:
        if part_size is None:
            part_size = plan_part_size(size)
        else:
            validate_part_size(part_size)
            if part_count(size, part_size) > MAX_PARTS:
                raise ValidationError(
                    f"Part size {part_size} needs {part_count(size, part_size)} parts; "
                    f"the limit is {MAX_PARTS}"
                )

        session = MultipartUploadSession(transport, vault, account_id=account_id)
        session.initiate(part_size, description)
        if journal is not None and key is not None:
            assert session.upload_id is not None
            journal.start(key, vault, file_path, size, session.upload_id, part_size)

    assert session.part_size is not None
    ranges = iter_part_ranges(size, session.part_size)
    pending = [r for r in ranges if r.index not in done]
    logger.info(
        f"Uploading {file_path.name}: {len(ranges)} parts of {session.part_size} bytes, "
        f"{len(pending)} to send"
    )

    progress = UploadProgress(
        total_parts=len(ranges),
        total_bytes=size,
        show_progress=show_progress,
        description=file_path.name,
    )
    for part in done.values():
        progress.complete_part(part.size)

    failures: list[PartResult] = []
    try:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(upload_part_worker, session, file_path, r, progress): r
                for r in pending
            }

            for future in as_completed(futures):
                result = future.result()
                if result.success and result.part is not None:
                    done[result.index] = result.part
                    if journal is not None and key is not None:
                        journal.record_part(key, result.part)
                else:
                    logger.error(f"Part {result.index} failed: {result.error}")
                    failures.append(result)
    finally:
        progress.close()

    if failures:
        raise PartUploadFailed(session.upload_id, failures)

    parts = [done[r.index] for r in ranges]
    archive_id = session.complete(parts, size)
    if journal is not None and key is not None:
        journal.finish(key)

    return UploadResult(
        archive_id=archive_id,
        tree_hash=combine_tree_hashes(p.tree_hash for p in parts),
        size=size,
        upload_id=session.upload_id,
        parts=parts,
        resumed_parts=len(ranges) - len(pending),
        elapsed_seconds=time.time() - start_time,
    )


def upload_file(
    transport: Transport,
    vault: str,
    file_path: str | Path,
    description: str = "",
    part_size: int | None = None,
    workers: int = 4,
    multipart_threshold: int = MULTIPART_THRESHOLD_BYTES,
    journal: UploadJournal | None = None,
    show_progress: bool = True,
    account_id: str = DEFAULT_ACCOUNT_ID,
) -> UploadResult:
    """Upload a file, choosing single-request or multipart by size."""
    logger = get_logger()
    file_path = Path(file_path)
    size = file_path.stat().st_size

    if size == 0 or size < multipart_threshold:
        start_time = time.time()
        with open(file_path, "rb") as f:
            stored = ArchiveUploader(transport, account_id=account_id).store(
                vault, FileSource(f), description
            )
        logger.debug(f"Uploaded {file_path} -> {stored.archive_id}")
        return UploadResult(
            archive_id=stored.archive_id,
            tree_hash=stored.tree_hash,
            size=stored.size,
            elapsed_seconds=time.time() - start_time,
        )

    return upload_multipart(
        transport,
        vault,
        file_path,
        description=description,
        part_size=part_size,
        workers=workers,
        journal=journal,
        show_progress=show_progress,
        account_id=account_id,
    )
