"""Reassembly of binary uploads delivered as a sequence of chunks.

Each upload is tracked by an ``UploadSession`` in an ``UploadStore``. The
first chunk for an id declares the total size; chunks are appended in the
order they arrive and the session completes, and leaves the store, on the
chunk that brings it to exactly the declared size. Closed ids are remembered
for a while so that late or duplicate chunks are rejected instead of opening
a fresh session.
"""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

from ktp_ocr.exceptions import OversizedUploadError, UploadRejectedError
from ktp_ocr.utils.logger import get_logger

logger = get_logger(__name__)


class SessionState(StrEnum):
    """Lifecycle state of an upload session."""

    OPEN = "open"
    COMPLETE = "complete"
    EXPIRED = "expired"
    DISCARDED = "discarded"


class AcceptStatus(StrEnum):
    """Outcome of accepting one chunk."""

    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    OVERSIZED = "oversized"
    REJECTED = "rejected"


@dataclass
class UploadSession:
    """Buffer and bookkeeping for one upload in progress."""

    id: str
    expected_size: int
    created_at: float
    updated_at: float
    buffer: bytearray = field(default_factory=bytearray)
    state: SessionState = SessionState.OPEN
    chunks: int = 0

    @property
    def received(self) -> int:
        return len(self.buffer)


@dataclass
class AcceptResult:
    """Result of ``UploadStore.accept`` for a single chunk."""

    status: AcceptStatus
    upload_id: str
    sequence: int | None = None
    total_chunks: int | None = None
    received: int | None = None
    payload: bytes | None = None
    reason: str | None = None


class UploadStore:
    """Thread-safe store of upload sessions keyed by upload id.

    Args:
        idle_timeout: Seconds an open session may go without a chunk
            before ``evict_idle`` expires it.
        closed_retention: Seconds a closed id is remembered for rejecting
            late chunks.
        max_upload_bytes: Largest total size an upload may declare.
            ``None`` disables the limit.
        clock: Monotonic time source.
    """

    def __init__(
        self,
        idle_timeout: float = 300.0,
        closed_retention: float = 600.0,
        max_upload_bytes: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.idle_timeout = idle_timeout
        self.closed_retention = closed_retention
        self.max_upload_bytes = max_upload_bytes
        self._clock = clock
        self._sessions: dict[str, UploadSession] = {}
        self._closed: dict[str, tuple[SessionState, float]] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, upload_id: object) -> bool:
        return upload_id in self._sessions

    def get(self, upload_id: str) -> UploadSession | None:
        return self._sessions.get(upload_id)

    def closed_state(self, upload_id: str) -> SessionState | None:
        """Return the final state of a recently closed upload, if any."""
        closed = self._closed.get(upload_id)
        return closed[0] if closed else None

    def open(self, upload_id: str, expected_size: int) -> UploadSession:
        """Start a session, or return the one already open for ``upload_id``.

        Raises:
            UploadRejectedError: If ``upload_id`` was recently closed.
            OversizedUploadError: If ``expected_size`` exceeds the limit.
        """
        with self._lock:
            session = self._sessions.get(upload_id)
            if session is not None:
                return session
            state = self.closed_state(upload_id)
            if state is not None:
                raise UploadRejectedError(upload_id, f"upload already {state}")
            limit = self.max_upload_bytes
            if limit is not None and expected_size > limit:
                self._close(upload_id, SessionState.DISCARDED)
                raise OversizedUploadError(
                    upload_id,
                    f"declared size {expected_size} exceeds limit "
                    f"{self.max_upload_bytes}",
                )
            now = self._clock()
            session = UploadSession(
                id=upload_id,
                expected_size=expected_size,
                created_at=now,
                updated_at=now,
            )
            self._sessions[upload_id] = session
            logger.debug("Opened upload %s (%d bytes)", upload_id, expected_size)
            return session

    def append(self, upload_id: str, data: bytes) -> UploadSession:
        """Append ``data`` to an open session.

        Raises:
            UploadRejectedError: If no session is open for ``upload_id``.
        """
        with self._lock:
            session = self._sessions.get(upload_id)
            if session is None:
                raise UploadRejectedError(upload_id, "upload is not open")
            session.buffer.extend(data)
            session.chunks += 1
            session.updated_at = self._clock()
            return session

    def complete(self, upload_id: str) -> bytes:
        """Close a session as complete and return its payload.

        Raises:
            UploadRejectedError: If no session is open for ``upload_id``.
        """
        with self._lock:
            session = self._sessions.get(upload_id)
            if session is None:
                raise UploadRejectedError(upload_id, "upload is not open")
            self._close(upload_id, SessionState.COMPLETE)
            return bytes(session.buffer)

    def discard(
        self, upload_id: str, state: SessionState = SessionState.DISCARDED
    ) -> None:
        """Drop a session without completing it."""
        with self._lock:
            if upload_id in self._sessions:
                self._close(upload_id, state)

    def evict_idle(self, now: float | None = None) -> list[str]:
        """Expire idle sessions and forget old closed ids.

        Args:
            now: Current clock reading; defaults to the store's clock.

        Returns:
            Ids of the sessions that were expired.
        """
        with self._lock:
            now = self._clock() if now is None else now
            expired = [
                upload_id
                for upload_id, session in self._sessions.items()
                if now - session.updated_at > self.idle_timeout
            ]
            for upload_id in expired:
                self._close(upload_id, SessionState.EXPIRED, now)
            stale = [
                upload_id
                for upload_id, (_, closed_at) in self._closed.items()
                if now - closed_at > self.closed_retention
            ]
            for upload_id in stale:
                del self._closed[upload_id]

        if expired:
            logger.info("Expired %d idle uploads: %s", len(expired), ", ".join(expired))
        return expired

    def accept(
        self,
        upload_id: str,
        sequence: int | None,
        total_chunks: int | None,
        declared_size: int,
        chunk: bytes,
    ) -> AcceptResult:
        """Add one chunk to its upload and report the upload's progress.

        Args:
            upload_id: Upload the chunk belongs to.
            sequence: Chunk sequence number, echoed back only.
            total_chunks: Expected chunk count, echoed back only.
            declared_size: Total payload size; only the first chunk's
                value is used.
            chunk: Chunk bytes.

        Returns:
            ``COMPLETE`` with the payload exactly once per upload,
            ``IN_PROGRESS`` until then, ``OVERSIZED`` when the upload
            grows past its declared size, and ``REJECTED`` for chunks of
            an upload that is already closed. ``received`` is left unset
            when the chunk was refused before being added.
        """

        def result(status: AcceptStatus, **kwargs: object) -> AcceptResult:
            return AcceptResult(
                status=status,
                upload_id=upload_id,
                sequence=sequence,
                total_chunks=total_chunks,
                **kwargs,
            )

        with self._lock:
            try:
                session = self.open(upload_id, declared_size)
            except OversizedUploadError as exc:
                logger.warning("Discarding upload: %s", exc)
                return result(AcceptStatus.OVERSIZED, reason=str(exc))
            except UploadRejectedError as exc:
                logger.warning("Rejected chunk %s: %s", sequence, exc)
                return result(AcceptStatus.REJECTED, reason=str(exc))

            session = self.append(upload_id, chunk)
            received = session.received

            if received > session.expected_size:
                self._close(upload_id, SessionState.DISCARDED)
                reason = (
                    f"received {received} bytes, "
                    f"declared {session.expected_size}"
                )
                logger.warning("Discarding oversized upload %s: %s", upload_id, reason)
                return result(AcceptStatus.OVERSIZED, received=received, reason=reason)

            if received == session.expected_size:
                payload = self.complete(upload_id)
                logger.info(
                    "Upload %s complete: %d bytes in %d chunks",
                    upload_id,
                    received,
                    session.chunks,
                )
                return result(AcceptStatus.COMPLETE, received=received, payload=payload)

            return result(AcceptStatus.IN_PROGRESS, received=received)

    def _close(
        self, upload_id: str, state: SessionState, now: float | None = None
    ) -> None:
        session = self._sessions.pop(upload_id, None)
        if session is not None:
            session.state = state
        self._closed[upload_id] = (state, self._clock() if now is None else now)
