import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor

from .celery_app import celery
from ..services.image_store import delete_image

log = logging.getLogger(__name__)

def _run_async(coro):
    """
    asyncio.run() for the sync task body. Eager tasks are invoked from inside
    the web app's running loop, so there the coroutine gets its own thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    with ThreadPoolExecutor(max_workers=1) as pool:
        return pool.submit(asyncio.run, coro).result()

@celery.task(bind=True, ignore_result=True)
def remove_image_task(self, filename: str) -> bool:
    """
    Best-effort removal of an image that is no longer referenced by any entry.
    A failed removal is logged; it never fails the request that queued it.
    """
    task_id = self.request.id
    log.info(f"[Task ID: {task_id}] Removing stale image: {filename}")
    removed = _run_async(delete_image(filename))
    if not removed:
        log.warning(f"[Task ID: {task_id}] Image {filename} was not removed")
    return removed
