"""Order-preserving transcript accumulation with full-transcript flushes."""

from __future__ import annotations

import inspect
import logging
from typing import Awaitable, Callable, Iterable, Optional, Union

from meetmate.services.transcription.base import TranscriptSegment

PersistCallback = Callable[[list[TranscriptSegment]], Union[None, Awaitable[None]]]
UpdateCallback = Callable[[list[TranscriptSegment]], Union[None, Awaitable[None]]]


async def _maybe_await(result) -> None:
    if inspect.isawaitable(result):
        await result


class TranscriptAccumulator:
    """Appends each chunk's segments and flushes the whole transcript.

    The persistence callback always receives the full sequence, never a
    delta, so a failed flush is repaired by the next successful one. Only the
    chunk chain calls ``append`` and it does so sequentially, so no locking is
    needed.
    """

    def __init__(
        self,
        persist: PersistCallback,
        on_update: Optional[UpdateCallback] = None,
        initial: Iterable[TranscriptSegment] = (),
    ) -> None:
        self._persist = persist
        self._on_update = on_update
        self._segments: list[TranscriptSegment] = list(initial)
        self._dirty = False
        self._closed = False
        self._flush_count = 0
        self._logger = logging.getLogger("meetmate.accumulator")

    @property
    def segments(self) -> list[TranscriptSegment]:
        return list(self._segments)

    @property
    def dirty(self) -> bool:
        """True while the store is behind the in-memory transcript."""
        return self._dirty

    @property
    def flush_count(self) -> int:
        return self._flush_count

    def texts(self) -> list[str]:
        return [segment.text for segment in self._segments]

    def close(self) -> None:
        self._closed = True

    async def append(self, segments: Iterable[TranscriptSegment]) -> bool:
        """Append one cycle's segments; returns True when a flush succeeded."""
        batch = [segment for segment in segments if segment.text]
        if self._closed:
            if batch:
                self._logger.warning("Ignoring %d late segment(s) after stop", len(batch))
            return False
        if not batch and not self._dirty:
            return False

        self._segments.extend(batch)
        if batch and self._on_update is not None:
            try:
                await _maybe_await(self._on_update(batch))
            except Exception as exc:
                self._logger.warning("Transcript subscriber failed: %s", exc)
        return await self.flush()

    async def flush(self) -> bool:
        snapshot = list(self._segments)
        try:
            await _maybe_await(self._persist(snapshot))
        except Exception as exc:
            self._dirty = True
            self._logger.warning(
                "Transcript flush failed (segments=%d), will retry on next flush: %s",
                len(snapshot),
                exc,
            )
            return False
        self._dirty = False
        self._flush_count += 1
        self._logger.debug("Transcript flushed: segments=%d", len(snapshot))
        return True
