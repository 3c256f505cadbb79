# catalog/reconciler.py
"""
Image-set reconciliation.

Given the images a product currently owns and a batch of uploaded files,
`reconcile` works out the next image set and the storage side effects needed
to reach it, without touching the store. `perform_uploads`, `rollback` and
`delete_objects` then carry out those side effects.
"""
import enum
import hashlib
import logging
import mimetypes
import os
import time
from concurrent.futures import ThreadPoolExecutor, wait, FIRST_EXCEPTION
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from .errors import StorageError, UploadTimeoutError, PartialUploadFailure

logger = logging.getLogger(__name__)


class ImageMode(str, enum.Enum):
    APPEND_FIXED_SLOTS = "append_fixed_slots"
    APPEND_VARIABLE = "append_variable"
    REPLACE_ALL = "replace_all"

    @property
    def appends(self) -> bool:
        return self is not ImageMode.REPLACE_ALL


@dataclass(frozen=True)
class FileBlob:
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class StoredImage:
    key: str
    url: str


@dataclass
class Plan:
    uploads: List[Tuple[FileBlob, str]] = field(default_factory=list)   # (file, target key)
    final: List[StoredImage] = field(default_factory=list)
    to_delete: List[StoredImage] = field(default_factory=list)
    dropped: List[FileBlob] = field(default_factory=list)

    @property
    def final_urls(self) -> List[str]:
        return [img.url for img in self.final]

    @property
    def urls_to_delete(self) -> List[str]:
        return [img.url for img in self.to_delete]

    @property
    def image_main(self) -> Optional[str]:
        return self.final[0].url if self.final else None


def _extension(blob: FileBlob) -> str:
    ext = os.path.splitext(blob.filename or "")[1].lower()
    if not ext:
        ext = mimetypes.guess_extension(blob.content_type or "") or ""
    return ext


def object_key(folder: str, position: int, blob: FileBlob) -> str:
    """Deterministic key: same folder, slot and bytes always map to the same object."""
    digest = hashlib.sha256(blob.data).hexdigest()[:16]
    return f"{folder}/{position:02d}-{digest}{_extension(blob)}"


def reconcile(
    current: Sequence[StoredImage],
    uploads: Sequence[FileBlob],
    capacity: int,
    mode: ImageMode,
    folder: str,
    public_url: Callable[[str], str],
) -> Plan:
    if capacity < 0:
        raise ValueError("capacity must be non-negative")

    current = list(current)
    uploads = list(uploads)
    plan = Plan()

    if mode.appends:
        kept = current[:capacity]
        plan.to_delete.extend(current[capacity:])
        room = capacity - len(kept)
    else:
        if not uploads:
            # Nothing to replace with, leave the set as it is
            plan.final = current[:capacity]
            plan.to_delete.extend(current[capacity:])
            return plan
        kept = []
        room = capacity

    accepted, plan.dropped = uploads[:room], uploads[room:]
    if plan.dropped:
        logger.warning(
            f"Image set for '{folder}' is full ({capacity}), dropping "
            f"{len(plan.dropped)} upload(s): {[b.filename for b in plan.dropped]}"
        )

    new_images = []
    for offset, blob in enumerate(accepted):
        key = object_key(folder, len(kept) + offset, blob)
        plan.uploads.append((blob, key))
        new_images.append(StoredImage(key=key, url=public_url(key)))

    plan.final = kept + new_images

    if not mode.appends:
        final_keys = {img.key for img in plan.final}
        plan.to_delete.extend(img for img in current if img.key not in final_keys)

    return plan


# ---------------------------------------------------------
# Store side effects
# ---------------------------------------------------------
def perform_uploads(store, plan: Plan, deadline: float, workers: int = 4) -> List[str]:
    """
    Upload every file in the plan, fanned out over a thread pool.

    Returns the uploaded keys in plan order. On the first failure, or when
    `deadline` seconds elapse, raises PartialUploadFailure listing the keys
    that did reach the store. All worker threads have finished by the time
    this returns or raises.
    """
    if not plan.uploads:
        return []

    started = time.monotonic()
    executor = ThreadPoolExecutor(max_workers=max(1, min(workers, len(plan.uploads))))
    try:
        futures = [
            executor.submit(store.put, key, blob.data, blob.content_type)
            for blob, key in plan.uploads
        ]
        done, not_done = wait(futures, timeout=deadline, return_when=FIRST_EXCEPTION)

        timed_out = False
        if not_done:
            first_error = any(f.exception() is not None for f in done)
            for f in not_done:
                f.cancel()
            timed_out = not first_error
        # Wait out anything already running so its outcome is known
        wait(futures)
    finally:
        executor.shutdown(wait=True)

    succeeded, failed_at, cause = [], None, None
    for i, (fut, (_, key)) in enumerate(zip(futures, plan.uploads)):
        if fut.cancelled():
            continue
        err = fut.exception()
        if err is None:
            succeeded.append(key)
        elif failed_at is None:
            failed_at, cause = i, err

    if timed_out:
        elapsed = time.monotonic() - started
        cause = UploadTimeoutError(f"upload batch exceeded {deadline}s (ran {elapsed:.1f}s)")
        raise PartialUploadFailure(succeeded, failed_at, cause) from cause
    if cause is not None:
        raise PartialUploadFailure(succeeded, failed_at, cause) from cause

    logger.info(f"Uploaded {len(succeeded)} object(s) in {time.monotonic() - started:.2f}s")
    return succeeded


def rollback(store, keys: Sequence[str]) -> None:
    """Compensating delete for objects that must not outlive a failed operation."""
    orphaned = []
    for key in keys:
        try:
            store.delete(key)
        except Exception:
            logger.exception(f"Rollback could not delete '{key}'")
            orphaned.append(key)
    if orphaned:
        logger.error(f"❌ Orphaned storage objects after rollback: {orphaned}")
    elif keys:
        logger.info(f"Rolled back {len(keys)} uploaded object(s)")


def delete_objects(store, keys: Sequence[str], workers: int = 4) -> None:
    """Delete every key; raise StorageError if any delete failed."""
    keys = list(keys)
    if not keys:
        return

    with ThreadPoolExecutor(max_workers=max(1, min(workers, len(keys)))) as executor:
        futures = {executor.submit(store.delete, key): key for key in keys}
        wait(futures)

    failed = [(futures[f], f.exception()) for f in futures if f.exception() is not None]
    if failed:
        for key, err in failed:
            logger.error(f"Failed to delete '{key}': {err}")
        raise StorageError(f"{len(failed)} of {len(keys)} object deletes failed") from failed[0][1]
