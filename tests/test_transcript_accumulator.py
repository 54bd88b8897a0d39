from conftest import ListSink
from meetmate.services.transcript_accumulator import TranscriptAccumulator
from meetmate.services.transcription.base import TranscriptSegment


def _seg(text: str) -> TranscriptSegment:
    return TranscriptSegment(text=text, timestamp="2024-05-01T10:00:00+00:00")


async def test_every_flush_carries_the_full_transcript():
    sink = ListSink()
    accumulator = TranscriptAccumulator(sink)

    await accumulator.append([_seg("a")])
    await accumulator.append([_seg("b"), _seg("c")])

    assert sink.flushes == [["a"], ["a", "b", "c"]]
    assert accumulator.flush_count == 2


async def test_empty_batch_without_pending_changes_does_not_flush():
    sink = ListSink()
    accumulator = TranscriptAccumulator(sink)

    assert await accumulator.append([]) is False
    assert await accumulator.append([_seg("")]) is False
    assert sink.flushes == []


async def test_failed_flush_is_repaired_by_next_flush():
    sink = ListSink(fail_times=1)
    accumulator = TranscriptAccumulator(sink)

    assert await accumulator.append([_seg("a")]) is False
    assert accumulator.dirty
    assert accumulator.texts() == ["a"]

    # An empty cycle still retries while the store is behind.
    assert await accumulator.append([]) is True
    assert sink.flushes == [["a"]]
    assert not accumulator.dirty


async def test_initial_segments_are_kept_ahead_of_new_ones():
    sink = ListSink()
    accumulator = TranscriptAccumulator(sink, initial=[_seg("earlier")])

    await accumulator.append([_seg("later")])

    assert sink.last == ["earlier", "later"]


async def test_subscriber_gets_only_the_new_batch_and_its_failure_is_contained():
    batches = []

    async def on_update(batch):
        batches.append([segment.text for segment in batch])
        raise RuntimeError("subscriber down")

    sink = ListSink()
    accumulator = TranscriptAccumulator(sink, on_update=on_update)

    await accumulator.append([_seg("a")])
    await accumulator.append([_seg("b")])

    assert batches == [["a"], ["b"]]
    assert sink.last == ["a", "b"]


async def test_closed_accumulator_ignores_late_segments():
    sink = ListSink()
    accumulator = TranscriptAccumulator(sink)
    await accumulator.append([_seg("a")])
    accumulator.close()

    assert await accumulator.append([_seg("late")]) is False
    assert accumulator.texts() == ["a"]
    assert sink.flushes == [["a"]]
