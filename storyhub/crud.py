from .models import AsyncSessionLocal, transaction
from .models.stories import Story
from .models.story_chunks import StoryChunk
from .models.comments import Comment
from .models.likes import Like
from .models.reports import Report
from .models.hidden_stories import HiddenStory
from .models.favorites import Favorite
from .errors import NotFoundError, ValidationError
from .locks import story_locks
from . import storage
from sqlalchemy import select, delete, func, or_, and_
from sqlalchemy.exc import IntegrityError
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Tuple
import logging

logger = logging.getLogger(__name__)


async def get_complete_story(story_id: int) -> Story:
    """A published story; drafts are reported as missing."""
    async with AsyncSessionLocal() as session:
        story = await session.get(Story, story_id)
        if not story or not story.is_complete:
            raise NotFoundError('Story not found')
        return story


async def engagement(story_ids: Iterable[int], viewer_id: Optional[int] = None) -> Dict[int, dict]:
    """likeCount / commentCount / isLiked / isFavorite per story id"""
    ids = list(story_ids)
    out = {sid: {'likeCount': 0, 'commentCount': 0, 'isLiked': False, 'isFavorite': False} for sid in ids}
    if not ids:
        return out
    async with AsyncSessionLocal() as session:
        likes = await session.execute(
            select(Like.story_id, func.count(Like.id)).where(Like.story_id.in_(ids)).group_by(Like.story_id)
        )
        for sid, n in likes.all():
            out[sid]['likeCount'] = n
        comments = await session.execute(
            select(Comment.story_id, func.count(Comment.id)).where(Comment.story_id.in_(ids)).group_by(Comment.story_id)
        )
        for sid, n in comments.all():
            out[sid]['commentCount'] = n
        if viewer_id is not None:
            liked = await session.execute(
                select(Like.story_id).where(Like.story_id.in_(ids), Like.user_id == viewer_id)
            )
            for sid in liked.scalars().all():
                out[sid]['isLiked'] = True
            favorites = await session.execute(
                select(Favorite.story_id).where(Favorite.story_id.in_(ids), Favorite.user_id == viewer_id)
            )
            for sid in favorites.scalars().all():
                out[sid]['isFavorite'] = True
    return out


async def list_stories(page: int, page_size: int, author_id: Optional[int] = None,
                       viewer_id: Optional[int] = None) -> Tuple[List[Story], int]:
    """Newest first. Without author_id only complete stories are listed; an author sees their drafts too.

    A viewer never sees stories they reported or hid.
    """
    if author_id is None:
        where = Story.is_complete.is_(True)
    else:
        where = Story.author_id == author_id
    if viewer_id is not None:
        where = and_(
            where,
            Story.id.not_in(select(Report.story_id).where(Report.reporter_id == viewer_id)),
            Story.id.not_in(select(HiddenStory.story_id).where(HiddenStory.user_id == viewer_id)),
        )
    async with AsyncSessionLocal() as session:
        total = await session.scalar(select(func.count(Story.id)).where(where))
        res = await session.execute(
            select(Story).where(where)
            .order_by(Story.created_at.desc(), Story.id.desc())
            .offset((page - 1) * page_size).limit(page_size)
        )
        return res.scalars().all(), total or 0


async def get_upload_progress(author_id: int, story_id: int) -> StoryChunk:
    async with AsyncSessionLocal() as session:
        res = await session.execute(
            select(StoryChunk).join(Story, Story.id == StoryChunk.story_id)
            .where(StoryChunk.story_id == story_id, Story.author_id == author_id)
        )
        tracker = res.scalars().first()
        if not tracker:
            raise NotFoundError('Story chunk tracking information not found')
        return tracker


async def _delete_story_rows(session, story_id: int) -> None:
    await session.execute(delete(StoryChunk).where(StoryChunk.story_id == story_id))
    await session.execute(delete(Comment).where(Comment.story_id == story_id))
    await session.execute(delete(Like).where(Like.story_id == story_id))
    await session.execute(delete(Favorite).where(Favorite.story_id == story_id))
    await session.execute(delete(HiddenStory).where(HiddenStory.story_id == story_id))
    await session.execute(delete(Report).where(Report.story_id == story_id))
    await session.execute(delete(Story).where(Story.id == story_id))


async def _delete_media(*urls: str) -> None:
    for url in urls:
        if url and not await storage.delete_object(url):
            logger.warning(f'Could not delete story media {url}')


async def delete_story(author_id: int, story_id: int) -> None:
    """Remove a story with its tracker, comments and likes, then its media."""
    async with story_locks.hold(story_id):
        async with transaction('Error while deleting story') as session:
            res = await session.execute(
                select(Story).where(Story.id == story_id, Story.author_id == author_id).with_for_update()
            )
            story = res.scalars().first()
            if not story:
                raise NotFoundError('Story not found or you are not authorized to delete this story')
            image, audio = story.image, story.audio
            await _delete_story_rows(session, story_id)
    logger.info(f'Story {story_id} deleted by {author_id}')
    await _delete_media(image, audio)


async def toggle_like(user_id: int, story_id: int) -> bool:
    """Like or unlike; returns whether the story is liked afterwards."""
    await get_complete_story(story_id)
    async with AsyncSessionLocal() as session:
        res = await session.execute(select(Like).where(Like.story_id == story_id, Like.user_id == user_id))
        existing = res.scalars().first()
        if existing:
            await session.delete(existing)
            await session.commit()
            return False
        try:
            session.add(Like(story_id=story_id, user_id=user_id))
            await session.commit()
        except IntegrityError:
            # concurrent like from the same user already landed
            await session.rollback()
        return True


async def add_comment(author_id: int, story_id: int, content: str) -> Comment:
    await get_complete_story(story_id)
    async with AsyncSessionLocal() as session:
        c = Comment(story_id=story_id, author_id=author_id, content=content)
        session.add(c)
        await session.commit()
        await session.refresh(c)
        return c


async def list_comments(story_id: int, page: int, page_size: int) -> Tuple[List[Comment], int]:
    await get_complete_story(story_id)
    async with AsyncSessionLocal() as session:
        total = await session.scalar(select(func.count(Comment.id)).where(Comment.story_id == story_id))
        res = await session.execute(
            select(Comment).where(Comment.story_id == story_id)
            .order_by(Comment.created_at.desc(), Comment.id.desc())
            .offset((page - 1) * page_size).limit(page_size)
        )
        return res.scalars().all(), total or 0


# Visibility: reports, hidden stories, favorites

async def report_story(user_id: int, story_id: int, reason: str) -> Report:
    await get_complete_story(story_id)
    async with AsyncSessionLocal() as session:
        report = Report(story_id=story_id, reporter_id=user_id, reason=reason)
        session.add(report)
        await session.commit()
        await session.refresh(report)
    logger.info(f'Story {story_id} reported by {user_id}')
    return report


async def hide_story(user_id: int, story_id: int) -> HiddenStory:
    await get_complete_story(story_id)
    async with AsyncSessionLocal() as session:
        res = await session.execute(
            select(HiddenStory).where(HiddenStory.story_id == story_id, HiddenStory.user_id == user_id)
        )
        if res.scalars().first():
            raise ValidationError('Story is already hidden for this user')
        hidden = HiddenStory(story_id=story_id, user_id=user_id)
        session.add(hidden)
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            raise ValidationError('Story is already hidden for this user')
        await session.refresh(hidden)
        return hidden


async def toggle_favorite(user_id: int, story_id: int) -> bool:
    """Add or remove a favorite; returns whether the story is a favorite afterwards."""
    await get_complete_story(story_id)
    async with AsyncSessionLocal() as session:
        res = await session.execute(
            select(Favorite).where(Favorite.story_id == story_id, Favorite.user_id == user_id)
        )
        existing = res.scalars().first()
        if existing:
            await session.delete(existing)
            await session.commit()
            return False
        try:
            session.add(Favorite(story_id=story_id, user_id=user_id))
            await session.commit()
        except IntegrityError:
            await session.rollback()
        return True


async def list_favorites(user_id: int, page: int, page_size: int) -> Tuple[List[Story], int]:
    """Most recently favorited first; stories back in draft are skipped."""
    where = and_(Favorite.user_id == user_id, Story.is_complete.is_(True))
    async with AsyncSessionLocal() as session:
        total = await session.scalar(
            select(func.count(Favorite.id)).join(Story, Story.id == Favorite.story_id).where(where)
        )
        res = await session.execute(
            select(Story).join(Favorite, Favorite.story_id == Story.id).where(where)
            .order_by(Favorite.created_at.desc(), Favorite.id.desc())
            .offset((page - 1) * page_size).limit(page_size)
        )
        return res.scalars().all(), total or 0


async def top_liked_stories(limit: int = 3) -> List[Tuple[Story, int]]:
    like_count = func.count(Like.id).label('like_count')
    async with AsyncSessionLocal() as session:
        res = await session.execute(
            select(Story, like_count).outerjoin(Like, Like.story_id == Story.id)
            .where(Story.is_complete.is_(True))
            .group_by(Story.id)
            .order_by(like_count.desc(), Story.created_at.desc(), Story.id.desc())
            .limit(limit)
        )
        return [(story, n) for story, n in res.all()]


async def list_reports(page: int, page_size: int) -> Tuple[List[Report], int]:
    """Reports still waiting for moderation, newest first."""
    async with AsyncSessionLocal() as session:
        total = await session.scalar(select(func.count(Report.id)).where(Report.is_new.is_(True)))
        res = await session.execute(
            select(Report).where(Report.is_new.is_(True))
            .order_by(Report.created_at.desc(), Report.id.desc())
            .offset((page - 1) * page_size).limit(page_size)
        )
        return res.scalars().all(), total or 0


async def get_reported_story(story_id: int) -> Tuple[Story, int]:
    async with AsyncSessionLocal() as session:
        story = await session.get(Story, story_id)
        count = await session.scalar(select(func.count(Report.id)).where(Report.story_id == story_id))
        if not story or not count:
            raise NotFoundError('Reported story not found')
        return story, count


# Draft reaping

def _idle_drafts(cutoff: datetime):
    return select(Story).outerjoin(StoryChunk, StoryChunk.story_id == Story.id).where(
        Story.is_complete.is_(False),
        Story.published_at.is_(None),
        or_(
            StoryChunk.updated_at < cutoff,
            and_(StoryChunk.story_id.is_(None), Story.created_at < cutoff),
        ),
    )


async def purge_abandoned_drafts(older_than: timedelta, now: Optional[datetime] = None) -> List[int]:
    """Delete drafts whose upload session has been idle longer than `older_than`."""
    cutoff = (now or datetime.now(timezone.utc)) - older_than
    async with AsyncSessionLocal() as session:
        res = await session.execute(_idle_drafts(cutoff).with_only_columns(Story.id))
        candidates = res.scalars().all()

    purged = []
    for story_id in candidates:
        async with story_locks.hold(story_id):
            async with transaction('Error while purging story draft') as session:
                # re-check under the lock: a chunk may have arrived since the scan
                res = await session.execute(
                    _idle_drafts(cutoff).where(Story.id == story_id).with_for_update(of=Story)
                )
                story = res.scalars().first()
                if not story:
                    continue
                image, audio = story.image, story.audio
                await _delete_story_rows(session, story_id)
        await _delete_media(image, audio)
        purged.append(story_id)
    if purged:
        logger.info(f'Purged {len(purged)} abandoned story drafts: {purged}')
    return purged
