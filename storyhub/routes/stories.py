"""
Story Routes
Chunked and single-shot story publishing, editing, and the story feed with likes and comments.
"""

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from typing import Any, Dict

from ..auth import get_current_user, require_roles
from ..cache import check_rate_limit
from ..chunks import create_story, submit_story_chunk, update_story, submit_edit_chunk
from ..crud import (
    add_comment,
    delete_story,
    engagement,
    get_complete_story,
    get_reported_story,
    get_upload_progress,
    hide_story,
    list_comments,
    list_favorites,
    list_reports,
    list_stories,
    report_story,
    toggle_favorite,
    toggle_like,
    top_liked_stories,
)
from ..errors import RateLimitError, ValidationError, field_errors
from ..schemas.comments import CommentIn, CommentOut
from ..schemas.reports import ReportIn, ReportOut
from ..schemas.stories import (
    MediaPresignIn,
    StoryChunkIn,
    StoryCreateIn,
    StoryEditChunkIn,
    StoryUpdateIn,
    UploadProgressOut,
    story_snapshot,
)
from ..storage import generate_presigned_upload, public_url, story_media_key

router = APIRouter()

MAX_PAGE_SIZE = 10

student_only = require_roles('student')
members = require_roles('student', 'parent', 'therapist')
admin_only = require_roles('admin')


def _parse(schema, payload: Dict[str, Any]):
    try:
        return schema.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError('Validation Error', errors=field_errors(e))


async def _rate_limit(user_id: int, action: str, limit: int):
    if not await check_rate_limit(user_id, action, limit=limit, window=3600):
        raise RateLimitError('Rate limit exceeded. Too many requests.')


def _pagination(page: int, page_size: int, total: int, total_key: str) -> dict:
    total_pages = (total + page_size - 1) // page_size
    return {
        'currentPage': page,
        'pageSize': page_size,
        total_key: total,
        'totalPages': total_pages,
        'hasNextPage': page < total_pages,
        'hasPreviousPage': page > 1,
    }


async def _story_page(stories, total, page, page_size, viewer_id, message):
    stats = await engagement([s.id for s in stories], viewer_id)
    return {
        'status': True,
        'message': message,
        'data': [{**story_snapshot(s), **stats[s.id]} for s in stories],
        'pagination': _pagination(page, page_size, total, 'totalStories'),
    }


# ==================== PUBLISHING ====================

@router.post('/')
async def create(payload: Dict[str, Any] = Body(...), current_user: dict = Depends(student_only)):
    """Create a story in one request, or upload it chunk by chunk (isChunk=true)."""
    await _rate_limit(current_user['id'], 'story_chunk', 600)
    if payload.get('isChunk') is True:
        result = await submit_story_chunk(current_user['id'], _parse(StoryChunkIn, payload))
    else:
        result = await create_story(current_user['id'], _parse(StoryCreateIn, payload))
    return JSONResponse(
        status_code=201 if result.created else 200,
        content={'status': True, 'message': result.message, 'data': result.as_data()},
    )


@router.put('/{story_id}')
async def edit(story_id: int, payload: Dict[str, Any] = Body(...), current_user: dict = Depends(student_only)):
    await _rate_limit(current_user['id'], 'story_chunk', 600)
    if payload.get('isChunk') is True:
        result = await submit_edit_chunk(current_user['id'], story_id, _parse(StoryEditChunkIn, payload))
    else:
        result = await update_story(current_user['id'], story_id, _parse(StoryUpdateIn, payload))
    return {'status': True, 'message': result.message, 'data': result.as_data()}


@router.get('/{story_id}/progress')
async def upload_progress(story_id: int, current_user: dict = Depends(student_only)):
    """Tracker state so an interrupted client can resume from the next chunk."""
    tracker = await get_upload_progress(current_user['id'], story_id)
    progress = UploadProgressOut(
        story_id=tracker.story_id,
        chunk_index=tracker.chunk_index,
        chunks_received=tracker.received_chunks,
        total_chunks=tracker.total_chunks,
        is_complete=tracker.is_complete,
        next_chunk_index=None if tracker.is_complete else tracker.chunk_index + 1,
    )
    return {'status': True, 'message': 'Upload progress retrieved successfully',
            'data': progress.model_dump(by_alias=True)}


@router.delete('/{story_id}')
async def remove(story_id: int, current_user: dict = Depends(student_only)):
    await delete_story(current_user['id'], story_id)
    return {'status': True, 'message': 'Story deleted successfully'}


@router.post('/media/presign')
async def presign_media_upload(payload: MediaPresignIn, current_user: dict = Depends(student_only)):
    """Presigned PUT for story images/audio; the returned url goes into the story's image/audio field."""
    await _rate_limit(current_user['id'], 'story_media_presign', 60)
    key = story_media_key(current_user['id'], payload.filename)
    upload_url = await generate_presigned_upload(key, payload.content_type)
    return {'status': True, 'message': 'Upload URL generated successfully',
            'data': {'uploadUrl': upload_url, 'key': key, 'url': public_url(key)}}


# ==================== FEED ====================

@router.get('/')
async def feed(page: int = Query(1, ge=1), limit: int = Query(10, ge=1),
               current_user: dict = Depends(get_current_user)):
    page_size = min(limit, MAX_PAGE_SIZE)
    stories, total = await list_stories(page, page_size, viewer_id=current_user['id'])
    return await _story_page(stories, total, page, page_size, current_user['id'],
                             'Stories retrieved successfully')


@router.get('/me')
async def my_stories(page: int = Query(1, ge=1), limit: int = Query(10, ge=1),
                     current_user: dict = Depends(student_only)):
    page_size = min(limit, MAX_PAGE_SIZE)
    stories, total = await list_stories(page, page_size, author_id=current_user['id'])
    return await _story_page(stories, total, page, page_size, current_user['id'],
                             'Your stories retrieved successfully')


@router.get('/top-liked')
async def top_liked():
    ranked = await top_liked_stories(3)
    return {'status': True, 'message': 'Top 3 liked stories retrieved successfully',
            'data': [{**story_snapshot(s), 'likeCount': n} for s, n in ranked]}


@router.get('/favorites')
async def favorites(page: int = Query(1, ge=1), limit: int = Query(10, ge=1),
                    current_user: dict = Depends(student_only)):
    page_size = min(limit, MAX_PAGE_SIZE)
    stories, total = await list_favorites(current_user['id'], page, page_size)
    return await _story_page(stories, total, page, page_size, current_user['id'],
                             'Favorite stories retrieved successfully')


# ==================== MODERATION ====================

@router.get('/reports')
async def reports(page: int = Query(1, ge=1), limit: int = Query(10, ge=1),
                  current_user: dict = Depends(admin_only)):
    page_size = min(limit, MAX_PAGE_SIZE)
    rows, total = await list_reports(page, page_size)
    return {
        'status': True,
        'message': 'Reported stories retrieved successfully',
        'data': [ReportOut.model_validate(r).model_dump(mode='json', by_alias=True) for r in rows],
        'pagination': _pagination(page, page_size, total, 'totalReports'),
    }


@router.get('/reports/{story_id}')
async def reported_story(story_id: int, current_user: dict = Depends(admin_only)):
    story, count = await get_reported_story(story_id)
    return {'status': True, 'message': 'Reported story retrieved successfully',
            'data': {**story_snapshot(story), 'reportCount': count}}


@router.get('/{story_id}')
async def get_story(story_id: int):
    story = await get_complete_story(story_id)
    stats = await engagement([story.id])
    return {'status': True, 'message': 'Story retrieved successfully',
            'data': {**story_snapshot(story), **stats[story.id]}}


@router.post('/{story_id}/like')
async def like(story_id: int, current_user: dict = Depends(members)):
    await _rate_limit(current_user['id'], 'story_like', 120)
    liked = await toggle_like(current_user['id'], story_id)
    message = 'Successfully liked the story' if liked else 'Successfully unliked the story'
    return {'status': True, 'message': message, 'liked': liked}


@router.post('/{story_id}/comments')
async def comment(story_id: int, payload: CommentIn, current_user: dict = Depends(members)):
    await _rate_limit(current_user['id'], 'story_comment', 120)
    c = await add_comment(current_user['id'], story_id, payload.comment)
    return {'status': True, 'message': 'Comment added successfully',
            'data': CommentOut.model_validate(c).model_dump(mode='json', by_alias=True)}


@router.get('/{story_id}/comments')
async def comments(story_id: int, page: int = Query(1, ge=1), limit: int = Query(10, ge=1)):
    page_size = min(limit, MAX_PAGE_SIZE)
    rows, total = await list_comments(story_id, page, page_size)
    return {
        'status': True,
        'message': 'Comments retrieved successfully',
        'data': [CommentOut.model_validate(c).model_dump(mode='json', by_alias=True) for c in rows],
        'pagination': _pagination(page, page_size, total, 'totalComments'),
    }


@router.post('/{story_id}/report')
async def report(story_id: int, payload: ReportIn, current_user: dict = Depends(members)):
    await _rate_limit(current_user['id'], 'story_report', 120)
    r = await report_story(current_user['id'], story_id, payload.reason)
    return JSONResponse(status_code=201, content={
        'status': True, 'message': 'Story reported successfully',
        'data': ReportOut.model_validate(r).model_dump(mode='json', by_alias=True),
    })


@router.post('/{story_id}/hide')
async def hide(story_id: int, current_user: dict = Depends(members)):
    """Drop a story from this user's feed."""
    await _rate_limit(current_user['id'], 'story_hide', 120)
    await hide_story(current_user['id'], story_id)
    return JSONResponse(status_code=201, content={'status': True, 'message': 'Story hidden successfully'})


@router.post('/{story_id}/favorite')
async def favorite(story_id: int, current_user: dict = Depends(members)):
    await _rate_limit(current_user['id'], 'story_favorite', 120)
    added = await toggle_favorite(current_user['id'], story_id)
    if added:
        return JSONResponse(status_code=201, content={
            'status': True, 'message': 'Story added to favorites successfully', 'isFavorite': True})
    return {'status': True, 'message': 'Story removed from favorites successfully', 'isFavorite': False}
