import pytest
from sqlalchemy import func, select

from storyhub.models import AsyncSessionLocal
from storyhub.models.comments import Comment
from storyhub.models.likes import Like
from storyhub.models.story_chunks import StoryChunk


async def upload_in_chunks(client, headers, parts, **metadata):
    """Uploads parts as one chunked story and returns the last response."""
    total = len(parts)
    res = await client.post('/api/stories/', headers=headers, json={
        'isChunk': True, 'content': parts[0], 'chunkIndex': 0, 'totalChunks': total, **metadata,
    })
    story_id = res.json()['data']['id']
    for i, part in enumerate(parts[1:], start=1):
        res = await client.post('/api/stories/', headers=headers, json={
            'isChunk': True, 'content': part, 'chunkIndex': i, 'totalChunks': total, 'storyId': story_id,
            **metadata,
        })
    return res


async def count(model, **filters):
    async with AsyncSessionLocal() as session:
        q = select(func.count()).select_from(model)
        for name, value in filters.items():
            q = q.where(getattr(model, name) == value)
        return await session.scalar(q)


@pytest.mark.asyncio
async def test_chunked_upload_flow(client, student, auth_headers):
    headers = auth_headers(student)
    first = await client.post('/api/stories/', headers=headers, json={
        'isChunk': True, 'content': 'Hello ', 'chunkIndex': 0, 'totalChunks': 3, 'title': 'Greeting',
    })
    assert first.status_code == 201
    body = first.json()
    assert body['status'] is True
    assert body['message'] == 'First chunk received successfully'
    assert body['data']['chunksReceived'] == 1
    assert body['data']['isComplete'] is False
    story_id = body['data']['id']

    second = await client.post('/api/stories/', headers=headers, json={
        'isChunk': True, 'content': 'World', 'chunkIndex': 1, 'totalChunks': 3, 'storyId': story_id,
    })
    assert second.status_code == 200
    assert second.json()['message'] == 'Chunk 2 of 3 received successfully'

    last = await client.post('/api/stories/', headers=headers, json={
        'isChunk': True, 'content': '!', 'chunkIndex': 2, 'totalChunks': 3, 'storyId': story_id,
    })
    assert last.status_code == 200
    data = last.json()['data']
    assert last.json()['message'] == 'Story completed successfully'
    assert data['content'] == 'Hello World!'
    assert data['isComplete'] is True
    assert data['chunksReceived'] == 3
    assert data['totalChunks'] == 3

    res = await client.get(f'/api/stories/{story_id}')
    assert res.status_code == 200
    assert res.json()['data']['content'] == 'Hello World!'
    assert res.json()['data']['title'] == 'Greeting'


@pytest.mark.asyncio
async def test_single_shot_create(client, student, auth_headers):
    res = await client.post('/api/stories/', headers=auth_headers(student), json={
        'content': 'A whole story', 'title': 'Complete', 'audioDuration': 12.5,
    })
    assert res.status_code == 201
    data = res.json()['data']
    assert res.json()['message'] == 'Story created successfully'
    assert data['authorId'] == student.id
    assert data['audioDuration'] == 12.5
    assert data['isComplete'] is True
    assert 'chunksReceived' not in data
    assert await count(StoryChunk) == 0


@pytest.mark.asyncio
async def test_validation_errors_use_wire_names(client, student, auth_headers):
    headers = auth_headers(student)
    res = await client.post('/api/stories/', headers=headers, json={'content': ''})
    assert res.status_code == 400
    body = res.json()
    assert body['status'] is False
    assert body['message'] == 'Validation Error'
    assert body['errors'][0]['field'] == 'content'

    res = await client.post('/api/stories/', headers=headers, json={
        'isChunk': True, 'content': 'x', 'chunkIndex': -1, 'totalChunks': 2,
    })
    assert res.status_code == 400
    assert res.json()['errors'][0]['field'] == 'chunkIndex'


@pytest.mark.asyncio
async def test_chunk_index_must_be_below_total(client, student, auth_headers):
    res = await client.post('/api/stories/', headers=auth_headers(student), json={
        'isChunk': True, 'content': 'x', 'chunkIndex': 3, 'totalChunks': 3, 'storyId': 1,
    })
    assert res.status_code == 400
    assert await count(StoryChunk) == 0


@pytest.mark.asyncio
async def test_continuation_without_story_id(client, student, auth_headers):
    res = await client.post('/api/stories/', headers=auth_headers(student), json={
        'isChunk': True, 'content': 'x', 'chunkIndex': 1, 'totalChunks': 3,
    })
    assert res.status_code == 400
    assert res.json()['message'] == 'Story ID is required for chunk uploads'


@pytest.mark.asyncio
async def test_publishing_requires_student_token(client, parent, auth_headers):
    res = await client.post('/api/stories/', json={'content': 'anonymous'})
    assert res.status_code == 401
    assert res.json()['status'] is False

    res = await client.post('/api/stories/', headers={'Authorization': 'Bearer not-a-token'},
                            json={'content': 'forged'})
    assert res.status_code == 401

    res = await client.post('/api/stories/', headers=auth_headers(parent), json={'content': 'parent'})
    assert res.status_code == 403


@pytest.mark.asyncio
async def test_out_of_order_chunk_is_conflict(client, student, auth_headers):
    headers = auth_headers(student)
    first = await client.post('/api/stories/', headers=headers, json={
        'isChunk': True, 'content': 'a', 'chunkIndex': 0, 'totalChunks': 3,
    })
    story_id = first.json()['data']['id']

    res = await client.post('/api/stories/', headers=headers, json={
        'isChunk': True, 'content': 'c', 'chunkIndex': 2, 'totalChunks': 3, 'storyId': story_id,
    })
    assert res.status_code == 409
    assert res.json()['expectedChunkIndex'] == 1

    progress = await client.get(f'/api/stories/{story_id}/progress', headers=headers)
    assert progress.status_code == 200
    assert progress.json()['data'] == {
        'storyId': story_id, 'chunkIndex': 0, 'chunksReceived': 1,
        'totalChunks': 3, 'isComplete': False, 'nextChunkIndex': 1,
    }


@pytest.mark.asyncio
async def test_progress_of_finished_upload(client, student, other_student, auth_headers):
    res = await upload_in_chunks(client, auth_headers(student), ['one ', 'two'])
    story_id = res.json()['data']['id']

    progress = await client.get(f'/api/stories/{story_id}/progress', headers=auth_headers(student))
    assert progress.json()['data']['isComplete'] is True
    assert progress.json()['data']['nextChunkIndex'] is None

    res = await client.get(f'/api/stories/{story_id}/progress', headers=auth_headers(other_student))
    assert res.status_code == 404


@pytest.mark.asyncio
async def test_drafts_stay_private(client, student, other_student, auth_headers):
    headers = auth_headers(student)
    first = await client.post('/api/stories/', headers=headers, json={
        'isChunk': True, 'content': 'draft', 'chunkIndex': 0, 'totalChunks': 2,
    })
    story_id = first.json()['data']['id']
    viewer = auth_headers(other_student)

    assert (await client.get(f'/api/stories/{story_id}')).status_code == 404
    assert (await client.post(f'/api/stories/{story_id}/like', headers=viewer)).status_code == 404
    res = await client.post(f'/api/stories/{story_id}/comments', headers=viewer, json={'comment': 'hi'})
    assert res.status_code == 404

    feed = await client.get('/api/stories/', headers=viewer)
    assert feed.json()['data'] == []
    assert feed.json()['pagination']['totalStories'] == 0

    mine = await client.get('/api/stories/me', headers=headers)
    assert [s['id'] for s in mine.json()['data']] == [story_id]
    assert mine.json()['data'][0]['isComplete'] is False


@pytest.mark.asyncio
async def test_feed_pagination_and_engagement(client, student, other_student, parent, auth_headers):
    headers = auth_headers(student)
    ids = []
    for i in range(12):
        res = await client.post('/api/stories/', headers=headers, json={'content': f'story {i}'})
        ids.append(res.json()['data']['id'])
    newest = ids[-1]

    await client.post(f'/api/stories/{newest}/like', headers=auth_headers(parent))
    await client.post(f'/api/stories/{newest}/comments', headers=auth_headers(other_student),
                      json={'comment': 'Lovely'})

    page = await client.get('/api/stories/?page=1&limit=50', headers=auth_headers(parent))
    body = page.json()
    assert body['pagination'] == {
        'currentPage': 1, 'pageSize': 10, 'totalStories': 12, 'totalPages': 2,
        'hasNextPage': True, 'hasPreviousPage': False,
    }
    assert len(body['data']) == 10
    top = body['data'][0]
    assert top['id'] == newest
    assert top['likeCount'] == 1
    assert top['commentCount'] == 1
    assert top['isLiked'] is True

    second = await client.get('/api/stories/?page=2', headers=auth_headers(other_student))
    assert len(second.json()['data']) == 2
    assert second.json()['pagination']['hasPreviousPage'] is True

    assert (await client.get('/api/stories/')).status_code == 401


@pytest.mark.asyncio
async def test_like_toggles(client, student, other_student, auth_headers):
    res = await client.post('/api/stories/', headers=auth_headers(student), json={'content': 'likeable'})
    story_id = res.json()['data']['id']
    viewer = auth_headers(other_student)

    liked = await client.post(f'/api/stories/{story_id}/like', headers=viewer)
    assert liked.json()['liked'] is True
    assert liked.json()['message'] == 'Successfully liked the story'

    unliked = await client.post(f'/api/stories/{story_id}/like', headers=viewer)
    assert unliked.json()['liked'] is False
    assert await count(Like, story_id=story_id) == 0


@pytest.mark.asyncio
async def test_comments(client, student, other_student, auth_headers):
    res = await client.post('/api/stories/', headers=auth_headers(student), json={'content': 'talk about me'})
    story_id = res.json()['data']['id']

    added = await client.post(f'/api/stories/{story_id}/comments', headers=auth_headers(other_student),
                              json={'comment': 'Nice one'})
    assert added.status_code == 200
    assert added.json()['data']['content'] == 'Nice one'
    assert added.json()['data']['authorId'] == other_student.id

    bad = await client.post(f'/api/stories/{story_id}/comments', headers=auth_headers(other_student),
                            json={'comment': ''})
    assert bad.status_code == 400

    listed = await client.get(f'/api/stories/{story_id}/comments')
    assert listed.json()['pagination']['totalComments'] == 1
    assert listed.json()['data'][0]['storyId'] == story_id


@pytest.mark.asyncio
async def test_edit_in_chunks(client, student, auth_headers):
    headers = auth_headers(student)
    res = await client.post('/api/stories/', headers=headers, json={'content': 'Original'})
    story_id = res.json()['data']['id']

    first = await client.put(f'/api/stories/{story_id}', headers=headers, json={
        'isChunk': True, 'content': 'Brand ', 'chunkIndex': 0, 'totalChunks': 2,
    })
    assert first.status_code == 200
    assert first.json()['data']['isComplete'] is False
    assert (await client.get(f'/api/stories/{story_id}')).status_code == 404

    last = await client.put(f'/api/stories/{story_id}', headers=headers, json={
        'isChunk': True, 'content': 'new', 'chunkIndex': 1, 'totalChunks': 2,
    })
    assert last.json()['message'] == 'Story updated successfully'
    assert last.json()['data']['content'] == 'Brand new'
    assert (await client.get(f'/api/stories/{story_id}')).json()['data']['content'] == 'Brand new'


@pytest.mark.asyncio
async def test_plain_edit(client, student, other_student, auth_headers, deleted_media):
    headers = auth_headers(student)
    res = await client.post('/api/stories/', headers=headers, json={
        'content': 'Song', 'audio': 'https://bucket.s3.amazonaws.com/old.mp3',
    })
    story_id = res.json()['data']['id']

    res = await client.put(f'/api/stories/{story_id}', headers=headers, json={})
    assert res.status_code == 400
    assert res.json()['message'] == 'No update fields provided'

    res = await client.put(f'/api/stories/{story_id}', headers=auth_headers(other_student),
                           json={'title': 'Hijacked'})
    assert res.status_code == 404

    res = await client.put(f'/api/stories/{story_id}', headers=headers, json={
        'audio': 'https://bucket.s3.amazonaws.com/new.mp3',
        'audioBeforeChange': 'https://bucket.s3.amazonaws.com/old.mp3',
    })
    assert res.status_code == 200
    assert res.json()['data']['audio'] == 'https://bucket.s3.amazonaws.com/new.mp3'
    assert res.json()['data']['content'] == 'Song'
    assert deleted_media == ['https://bucket.s3.amazonaws.com/old.mp3']


@pytest.mark.asyncio
async def test_delete_removes_everything(client, student, other_student, auth_headers, deleted_media):
    headers = auth_headers(student)
    res = await upload_in_chunks(client, headers, ['a', 'b'], image='https://bucket.s3.amazonaws.com/pic.png')
    story_id = res.json()['data']['id']
    viewer = auth_headers(other_student)
    await client.post(f'/api/stories/{story_id}/like', headers=viewer)
    await client.post(f'/api/stories/{story_id}/comments', headers=viewer, json={'comment': 'bye'})

    res = await client.delete(f'/api/stories/{story_id}', headers=viewer)
    assert res.status_code == 404

    res = await client.delete(f'/api/stories/{story_id}', headers=headers)
    assert res.status_code == 200
    assert res.json() == {'status': True, 'message': 'Story deleted successfully'}

    assert await count(StoryChunk, story_id=story_id) == 0
    assert await count(Comment, story_id=story_id) == 0
    assert await count(Like, story_id=story_id) == 0
    assert deleted_media == ['https://bucket.s3.amazonaws.com/pic.png']
    assert (await client.get(f'/api/stories/{story_id}')).status_code == 404
