"""
Chunked story uploads.

Large stories arrive as numbered chunks. The first chunk creates (or, on
edit, resets) the story and its StoryChunk tracker; every later chunk is
appended to both, and the chunk whose index is ``totalChunks - 1`` finalizes
the story. Each chunk is applied under a per-story lock, inside one
transaction that also row-locks the story, so the story and its tracker are
always written together.

With STORY_CHUNKS_STRICT enabled (the default) continuation chunks must be
contiguous: the next index after the last applied one, with the session's
declared total. Disabling it restores trusting the client's indices, where
the last index completes the story even if chunks in between never arrived.
"""
import os
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select

from . import storage
from .core import STORY_CHUNKS_APPLIED, STORY_UPLOADS_COMPLETED, STORY_CHUNKS_REJECTED
from .errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from .locks import story_locks
from .models import transaction
from .models.stories import Story
from .models.story_chunks import StoryChunk
from .models.users import User
from .schemas.stories import (
    StoryChunkIn,
    StoryCreateIn,
    StoryEditChunkIn,
    StoryUpdateIn,
    story_snapshot,
)

logger = logging.getLogger(__name__)

STRICT_CHUNKS = os.getenv('STORY_CHUNKS_STRICT', '1').lower() not in ('0', 'false', 'no', 'off')


@dataclass
class UploadResult:
    story: dict
    message: str
    created: bool = False
    chunks_received: Optional[int] = None
    total_chunks: Optional[int] = None

    @property
    def is_complete(self) -> bool:
        return self.story['isComplete']

    def as_data(self) -> dict:
        data = dict(self.story)
        if self.chunks_received is not None:
            data.update(chunksReceived=self.chunks_received, totalChunks=self.total_chunks,
                        isComplete=self.is_complete)
        return data


def _is_last(payload: StoryChunkIn) -> bool:
    return payload.chunk_index == payload.total_chunks - 1


def _set_complete(story: Story, done: bool) -> None:
    story.is_complete = done
    if done and story.published_at is None:
        story.published_at = datetime.now(timezone.utc)


def _apply_metadata(story: Story, payload) -> None:
    if payload.title is not None:
        story.title = payload.title
    if payload.image is not None:
        story.image = payload.image
    if payload.audio is not None:
        story.audio = payload.audio
    if payload.audio_duration is not None:
        story.audio_duration = payload.audio_duration


def _reject(reason: str, error):
    STORY_CHUNKS_REJECTED.labels(reason=reason).inc()
    logger.warning(f'Story chunk rejected ({reason}): {error.message}')
    return error


def _check_continuation(tracker: StoryChunk, payload: StoryChunkIn) -> None:
    """Refuse chunks that cannot follow the tracker's last applied chunk."""
    if not STRICT_CHUNKS:
        return
    if tracker.is_complete:
        raise _reject('session_complete', NotFoundError(
            'Story upload already completed; start a new session from chunk 0'))
    if payload.total_chunks != tracker.total_chunks:
        raise _reject('total_mismatch', ConflictError(
            f'totalChunks {payload.total_chunks} does not match the session total {tracker.total_chunks}',
            extra={'expectedChunkIndex': tracker.chunk_index + 1, 'totalChunks': tracker.total_chunks}))
    expected = tracker.chunk_index + 1
    if payload.chunk_index != expected:
        reason = 'duplicate' if payload.chunk_index <= tracker.chunk_index else 'out_of_order'
        raise _reject(reason, ConflictError(
            f'Expected chunk {expected} but received chunk {payload.chunk_index}',
            extra={'expectedChunkIndex': expected, 'totalChunks': tracker.total_chunks}))


def _append_chunk(story: Story, tracker: StoryChunk, payload: StoryChunkIn) -> None:
    # the tracker holds the authoritative upload; the story mirrors it
    tracker.content = tracker.content + payload.content
    story.content = tracker.content
    tracker.received_chunks = tracker.received_chunks + 1
    tracker.chunk_index = payload.chunk_index
    if _is_last(payload):
        _apply_metadata(story, payload)
        _set_complete(story, True)
        tracker.is_complete = True


async def _owned_story(session, story_id: int, author_id: int) -> Optional[Story]:
    # row lock so concurrent writers on other processes wait for this transaction
    res = await session.execute(
        select(Story).where(Story.id == story_id, Story.author_id == author_id).with_for_update()
    )
    return res.scalars().first()


async def _ensure_author(session, author_id: int) -> None:
    if await session.get(User, author_id) is None:
        raise ForbiddenError('You are not authorized to create a story')


async def _snapshot(session, story: Story) -> dict:
    await session.flush()
    await session.refresh(story)
    return story_snapshot(story)


def _chunk_message(payload: StoryChunkIn, done_message: str) -> str:
    if _is_last(payload):
        return done_message
    if payload.chunk_index == 0:
        return 'First chunk received successfully'
    return f'Chunk {payload.chunk_index + 1} of {payload.total_chunks} received successfully'


def _record(flow: str, payload: StoryChunkIn, kind: str) -> None:
    STORY_CHUNKS_APPLIED.labels(flow=flow, kind=kind).inc()
    if _is_last(payload):
        STORY_UPLOADS_COMPLETED.labels(flow=flow).inc()


# ==================== CREATE ====================

async def create_story(author_id: int, payload: StoryCreateIn) -> UploadResult:
    """Single-shot story: created complete, no tracker."""
    async with transaction('Error while creating story') as session:
        await _ensure_author(session, author_id)
        story = Story(
            author_id=author_id,
            title=payload.title,
            content=payload.content,
            image=payload.image or '',
            audio=payload.audio or '',
            audio_duration=payload.audio_duration,
        )
        _set_complete(story, True)
        session.add(story)
        snapshot = await _snapshot(session, story)
    logger.info(f"Story {snapshot['id']} created by {author_id}")
    return UploadResult(story=snapshot, message='Story created successfully', created=True)


async def submit_story_chunk(author_id: int, payload: StoryChunkIn) -> UploadResult:
    if payload.chunk_index == 0:
        return await _start_story(author_id, payload)
    if payload.story_id is None:
        raise _reject('missing_story_id', ValidationError('Story ID is required for chunk uploads'))

    async with story_locks.hold(payload.story_id):
        async with transaction('Error while appending story chunk') as session:
            story = await _owned_story(session, payload.story_id, author_id)
            if story is None or story.is_complete:
                raise _reject('story_not_found', NotFoundError('Story not found or already completed'))
            tracker = await session.get(StoryChunk, payload.story_id)
            if tracker is None:
                raise _reject('tracker_not_found', NotFoundError('Story chunk tracking information not found'))
            _check_continuation(tracker, payload)
            _append_chunk(story, tracker, payload)
            snapshot = await _snapshot(session, story)
            received = tracker.received_chunks

    _record('create', payload, 'append')
    logger.info(f'Story {payload.story_id}: chunk {payload.chunk_index + 1}/{payload.total_chunks} appended '
                f'({received} received)')
    return UploadResult(story=snapshot, message=_chunk_message(payload, 'Story completed successfully'),
                        chunks_received=received, total_chunks=payload.total_chunks)


async def _start_story(author_id: int, payload: StoryChunkIn) -> UploadResult:
    done = _is_last(payload)
    async with transaction('Error while creating story') as session:
        await _ensure_author(session, author_id)
        story = Story(
            author_id=author_id,
            title=payload.title,
            content=payload.content,
            image=payload.image or '',
            audio=payload.audio or '',
            audio_duration=payload.audio_duration,
        )
        _set_complete(story, done)
        session.add(story)
        await session.flush()
        session.add(StoryChunk(
            story_id=story.id,
            content=payload.content,
            chunk_index=0,
            received_chunks=1,
            total_chunks=payload.total_chunks,
            is_complete=done,
        ))
        snapshot = await _snapshot(session, story)

    _record('create', payload, 'first')
    logger.info(f"Story {snapshot['id']}: upload started by {author_id} ({payload.total_chunks} chunks)")
    return UploadResult(story=snapshot, message=_chunk_message(payload, 'Story completed successfully'),
                        created=True, chunks_received=1, total_chunks=payload.total_chunks)


# ==================== EDIT ====================

async def update_story(author_id: int, story_id: int, payload: StoryUpdateIn) -> UploadResult:
    """Single-shot edit of the provided fields; the chunk tracker is left alone."""
    if payload.content is None and payload.title is None and payload.image is None \
            and payload.audio is None and payload.audio_duration is None:
        raise ValidationError('No update fields provided')

    async with story_locks.hold(story_id):
        async with transaction('Error while updating story') as session:
            story = await _owned_story(session, story_id, author_id)
            if story is None:
                raise NotFoundError('Story not found or you are not authorized to edit this story')
            if payload.content is not None:
                story.content = payload.content
            _apply_metadata(story, payload)
            snapshot = await _snapshot(session, story)

    await _discard_replaced_media(payload)
    logger.info(f'Story {story_id} updated by {author_id}')
    return UploadResult(story=snapshot, message='Story updated successfully')


async def submit_edit_chunk(author_id: int, story_id: int, payload: StoryEditChunkIn) -> UploadResult:
    async with story_locks.hold(story_id):
        async with transaction('Error while updating story') as session:
            story = await _owned_story(session, story_id, author_id)
            if story is None:
                raise _reject('story_not_found', NotFoundError(
                    'Story not found or you are not authorized to edit this story'))
            tracker = await session.get(StoryChunk, story_id)

            if payload.chunk_index == 0:
                kind = 'reset' if tracker is not None else 'first'
                tracker = _restart_session(story, tracker, payload)
                session.add(tracker)
            else:
                if tracker is None:
                    raise _reject('tracker_not_found', NotFoundError('Story chunk tracking information not found'))
                _check_continuation(tracker, payload)
                _append_chunk(story, tracker, payload)
                kind = 'append'
            snapshot = await _snapshot(session, story)
            received = tracker.received_chunks

    _record('edit', payload, kind)
    logger.info(f'Story {story_id}: edit chunk {payload.chunk_index + 1}/{payload.total_chunks} applied ({kind})')
    await _discard_replaced_media(payload)
    return UploadResult(story=snapshot, message=_chunk_message(payload, 'Story updated successfully'),
                        chunks_received=received, total_chunks=payload.total_chunks)


def _restart_session(story: Story, tracker: Optional[StoryChunk], payload: StoryChunkIn) -> StoryChunk:
    """Chunk 0 of an edit: overwrite the story content and reset (or create) its tracker."""
    done = _is_last(payload)
    if tracker is None:
        tracker = StoryChunk(story_id=story.id)
    tracker.content = payload.content
    tracker.chunk_index = 0
    tracker.received_chunks = 1
    tracker.total_chunks = payload.total_chunks
    tracker.is_complete = done

    story.content = payload.content
    _set_complete(story, done)
    _apply_metadata(story, payload)
    return tracker


async def _discard_replaced_media(payload) -> None:
    """Best effort: a failed delete only leaves an orphaned object behind."""
    for url in (payload.image_before_change, payload.audio_before_change):
        if url and not await storage.delete_object(url):
            logger.warning(f'Could not delete replaced story media {url}')
