"""
Helpers shared by the entity routers
"""
from typing import Any, Tuple

from ..entities import EntityConfig, get_entity
from ..tasks import dispatch_extraction_task
from ..logger import logger


def entity_config(entity: str) -> EntityConfig:
    """Path dependency: resolve the `{entity}` segment, 404 if unknown."""
    return get_entity(entity)


def enqueue_extraction(args: Tuple[Any, ...]) -> None:
    try:
        dispatch_extraction_task.apply_async(args=args, queue="extraction")
    except Exception as e:
        logger.warning(f"apply_async failed, falling back to delay: {e}")
        dispatch_extraction_task.delay(*args)
