import logging

from fastapi import APIRouter, HTTPException, Request

from ingestly.models.queue import SubmitRequest, SubmitResponse
from ingestly.models.task import QueueStats, ScrapingTask
from ingestly.routers.limits import limiter
from ingestly.services.task_queue import TaskQueue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/queue")


def _get_queue(request: Request) -> TaskQueue:
    queue = getattr(request.app.state, "task_queue", None)
    if queue is None:
        raise HTTPException(status_code=503, detail="The task queue is not running.")
    return queue


@router.post("/tasks", response_model=SubmitResponse, status_code=202, summary="Queue scraping tasks")
@limiter.limit("20/minute")
async def submit_tasks(request: Request, body: SubmitRequest) -> SubmitResponse:
    queue = _get_queue(request)
    tasks = []
    for item in body.tasks:
        fields = item.model_dump(exclude_none=True)
        fields["url"] = str(item.url)
        tasks.append(ScrapingTask(**fields))
    task_ids = await queue.submit_many(tasks)
    logger.info("Queued %d tasks", len(task_ids))
    return SubmitResponse(task_ids=task_ids)


@router.get("/stats", response_model=QueueStats, summary="Queue counters")
async def queue_stats(request: Request) -> QueueStats:
    return await _get_queue(request).stats()


@router.delete("", summary="Discard every queued and finished task")
async def clear_queue(request: Request) -> dict:
    removed = await _get_queue(request).clear()
    return {"removed": removed}
