"""Polling of file ingestion (chunking + embedding) status."""
import asyncio
import logging
from typing import Callable, Dict, Iterable, List, Optional, Set

from config import FILE_POLL_INTERVAL, FILE_POLL_MAX_ATTEMPTS, STATUS_POLL_INTERVAL
from models.file_record import FileRecord
from services.errors import TransportError
from services.vector_index_client import VectorIndexClient

UpdateCallback = Callable[[List[FileRecord]], None]


class IngestionSession:
    """
    Polls the batched file list for a set of tracked files until each one
    is settled (ready or failed).

    A session is an async context manager; leaving the block cancels the
    polling task so no timer outlives the caller.
    """

    def __init__(
        self,
        client: VectorIndexClient,
        tenant_id: str,
        file_ids: Iterable[str],
        interval: float = STATUS_POLL_INTERVAL,
        on_update: Optional[UpdateCallback] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.client = client
        self.tenant_id = tenant_id
        self.interval = interval
        self.on_update = on_update
        self.logger = logger or logging.getLogger(__name__)

        self.tracked_ids: Set[str] = set(file_ids)
        self.records: Dict[str, FileRecord] = {}
        self._task: Optional["asyncio.Task[Dict[str, FileRecord]]"] = None

    @property
    def pending_ids(self) -> Set[str]:
        """Tracked files not yet ready or failed (including ones not seen yet)."""
        return {
            file_id for file_id in self.tracked_ids
            if file_id not in self.records or not self.records[file_id].is_settled
        }

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def finished(self) -> bool:
        return self._task is not None and self._task.done()

    @property
    def error(self) -> Optional[BaseException]:
        """Exception that ended the polling loop, if any."""
        if not self.finished or self._task.cancelled():
            return None
        return self._task.exception()

    def snapshot(self) -> List[FileRecord]:
        return [self.records[file_id] for file_id in sorted(self.records)]

    def start(self) -> "IngestionSession":
        if not self.running:
            self._task = asyncio.create_task(self._run())
        return self

    async def stop(self) -> None:
        """Cancel the polling loop and wait for it to finish."""
        if self._task is None:
            return
        if not self._task.done():
            self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            # Reported through wait() and `error`
            self.logger.warning(f"Ingestion session ended with an error: {e}")
        self.logger.debug(f"Ingestion session stopped for {len(self.tracked_ids)} files")

    async def wait(self) -> Dict[str, FileRecord]:
        """Wait until every tracked file is settled; returns the final records."""
        if self._task is None:
            self.start()
        return await self._task

    async def __aenter__(self) -> "IngestionSession":
        return self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def _run(self) -> Dict[str, FileRecord]:
        while True:
            await self.poll_once()
            if not self.pending_ids:
                break
            await asyncio.sleep(self.interval)

        self.logger.info(f"All {len(self.tracked_ids)} tracked files settled")
        return dict(self.records)

    async def poll_once(self) -> bool:
        """
        Fetch the file list once and update tracked records.

        Returns:
            False if the fetch failed; the files themselves are unaffected
            and the next interval retries.
        """
        try:
            listed = await self.client.list_files(self.tenant_id)
        except TransportError as e:
            self.logger.warning(
                f"Status fetch failed, retrying in {self.interval}s: {e}",
                extra={"tenant_id": self.tenant_id, "status": e.status}
            )
            return False

        by_id = {record.id: record for record in listed}
        for file_id in sorted(self.tracked_ids):
            record = by_id.get(file_id)
            if record is None:
                # Deleted server-side; not a tracker failure
                self.logger.info(f"File {file_id} is no longer listed, stop tracking")
                self.tracked_ids.discard(file_id)
                self.records.pop(file_id, None)
                continue

            previous = self.records.get(file_id)
            self.records[file_id] = record
            if record.is_settled and (previous is None or not previous.is_settled):
                if record.is_failed:
                    self.logger.warning(
                        f"File {record.name} failed ingestion: "
                        f"{record.chunking_error or record.embedding_error or 'unknown error'}",
                        extra={"file_id": file_id}
                    )
                else:
                    self.logger.info(
                        f"File {record.name} ready ({record.chunk_count} chunks)",
                        extra={"file_id": file_id}
                    )

        if self.on_update is not None:
            try:
                self.on_update(self.snapshot())
            except Exception as e:
                # Listener errors never end polling
                self.logger.error(f"Ingestion update callback failed: {e}", exc_info=True)
        return True


class IngestionTracker:
    """Creates polling sessions and runs bounded single-file polls."""

    def __init__(
        self,
        client: VectorIndexClient,
        poll_interval: float = STATUS_POLL_INTERVAL,
        logger: Optional[logging.Logger] = None
    ):
        self.client = client
        self.poll_interval = poll_interval
        self.logger = logger or logging.getLogger(__name__)
        self._sessions: List[IngestionSession] = []

    def track(
        self,
        tenant_id: str,
        file_ids: Iterable[str],
        on_update: Optional[UpdateCallback] = None
    ) -> IngestionSession:
        """Create a session for the given files (started on `start()` or `async with`)."""
        session = IngestionSession(
            self.client,
            tenant_id,
            file_ids,
            interval=self.poll_interval,
            on_update=on_update,
            logger=self.logger,
        )
        self._sessions = [s for s in self._sessions if not s.finished]
        self._sessions.append(session)
        return session

    async def stop_all(self) -> None:
        """Cancel every running session (e.g. on view teardown)."""
        sessions, self._sessions = self._sessions, []
        for session in sessions:
            await session.stop()

    async def poll_until_ready(
        self,
        file_id: str,
        tenant_id: str,
        max_attempts: int = FILE_POLL_MAX_ATTEMPTS,
        interval: float = FILE_POLL_INTERVAL
    ) -> bool:
        """
        Poll one file until embedding completes.

        Args:
            file_id: File to poll
            tenant_id: Caller-resolved tenant identifier
            max_attempts: Maximum number of status fetches
            interval: Seconds between fetches

        Returns:
            True once the file is ready; False on timeout, terminal failure,
            or if the file was deleted (404)
        """
        for attempt in range(1, max_attempts + 1):
            try:
                record = await self.client.get_file(file_id, tenant_id)
            except TransportError as e:
                if e.status == 404:
                    self.logger.info(f"File {file_id} not found, stop polling")
                    return False
                self.logger.warning(
                    f"Status check {attempt}/{max_attempts} for {file_id} failed: {e}"
                )
            else:
                if record.finish_embedding:
                    self.logger.info(f"File {file_id} ready after {attempt} attempts")
                    return True
                if record.is_failed:
                    self.logger.warning(f"File {file_id} failed ingestion, stop polling")
                    return False

            if attempt < max_attempts:
                await asyncio.sleep(interval)

        self.logger.warning(f"File {file_id} not ready after {max_attempts} attempts")
        return False
