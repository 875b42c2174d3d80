"""Progress reporting for uploads."""

from threading import RLock

from tqdm import tqdm


class UploadProgress:
    """Thread-safe aggregate progress bar for parallel part uploads."""

    def __init__(
        self,
        total_parts: int,
        total_bytes: int,
        show_progress: bool = True,
        description: str = "Uploading",
    ) -> None:
        self.total_parts = total_parts
        self.total_bytes = total_bytes
        self._lock = RLock()
        self._completed_bytes = 0
        self._completed_parts = 0
        self._failed_parts = 0

        self._pbar: tqdm | None  # type: ignore[type-arg]
        if show_progress:
            self._pbar = tqdm(
                total=total_bytes,
                unit="B",
                unit_scale=True,
                desc=description,
                ncols=80,
            )
        else:
            self._pbar = None

    def complete_part(self, size: int) -> None:
        with self._lock:
            self._completed_bytes += size
            self._completed_parts += 1
            if self._pbar is not None:
                self._pbar.update(size)
                self._pbar.set_postfix(
                    parts=f"{self._completed_parts}/{self.total_parts}",
                    refresh=False,
                )

    def fail_part(self) -> None:
        with self._lock:
            self._failed_parts += 1

    def close(self) -> None:
        if self._pbar is not None:
            self._pbar.close()

    @property
    def completed_bytes(self) -> int:
        with self._lock:
            return self._completed_bytes

    @property
    def completed_parts(self) -> int:
        with self._lock:
            return self._completed_parts

    @property
    def failed_parts(self) -> int:
        with self._lock:
            return self._failed_parts
