from typing import Iterable, List

import boto3

from .config import settings
from .logger import logger

s3 = boto3.client(
    "s3",
    aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
    aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
    region_name=settings.AWS_REGION_NAME,
    endpoint_url=settings.AWS_ENDPOINT_URL,
)


def delete_image_object(key: str) -> None:
    s3.delete_object(Bucket=settings.S3_BUCKET_NAME, Key=key)
    logger.info(f"Deleted image object from S3: {key}")


def delete_image_objects(keys: Iterable[str]) -> List[str]:
    """
    Delete stored image objects one by one. Returns the keys that could not be
    deleted; a failure never stops the remaining deletions.
    """
    failures = []
    for key in keys:
        if not key:
            continue
        try:
            delete_image_object(key)
        except Exception as e:
            logger.error(f"Failed to delete image object {key}: {e}")
            failures.append(key)
    return failures
