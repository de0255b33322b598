import os
import uuid
import logging
from typing import Optional
from urllib.parse import urlparse, unquote

import aioboto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

# Support both AWS_S3_BUCKET (preferred) and legacy AWS_S3_BUCKET_NAME
S3_BUCKET = os.getenv('AWS_S3_BUCKET') or os.getenv('AWS_S3_BUCKET_NAME')
# Prefer AWS_S3_REGION if provided; fall back to AWS_REGION, then us-east-1
S3_REGION = os.getenv('AWS_S3_REGION') or os.getenv('AWS_REGION', 'us-east-1')


def _client(session: aioboto3.Session):
    return session.client('s3', region_name=S3_REGION,
                          aws_secret_access_key=os.getenv('AWS_SECRET_ACCESS_KEY'),
                          aws_access_key_id=os.getenv('AWS_ACCESS_KEY_ID'),
                          config=Config(signature_version='s3v4'))


def object_key_from_url(url: str) -> Optional[str]:
    """Object key of a stored media URL: its path without the leading slash."""
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return None
    key = unquote(parsed.path).lstrip('/')
    return key or None


def public_url(key: str) -> str:
    return f"https://{S3_BUCKET}.s3.{S3_REGION}.amazonaws.com/{key}"


async def generate_presigned_upload(key: str, content_type: str, expires_in=3600):
    session = aioboto3.Session()
    async with _client(session) as client:
        url = await client.generate_presigned_url('put_object',
                                                  Params={'Bucket': S3_BUCKET, 'Key': key, 'ContentType': content_type},
                                                  ExpiresIn=expires_in)
        return url


def story_media_key(user_id: int, filename: str) -> str:
    safe_name = os.path.basename(filename).replace(' ', '_')
    return f'stories/{user_id}/{uuid.uuid4().hex[:12]}_{safe_name}'


async def delete_object(url: str) -> bool:
    """Delete the object behind a media URL. An empty URL counts as deleted."""
    if not url:
        return True
    key = object_key_from_url(url)
    if not key:
        logger.warning(f'Refusing to delete media with invalid URL: {url!r}')
        return False
    session = aioboto3.Session()
    try:
        async with _client(session) as client:
            await client.delete_object(Bucket=S3_BUCKET, Key=key)
            return True
    except (BotoCoreError, ClientError) as e:
        logger.warning(f'S3 delete failed for {key}: {e}')
        return False
