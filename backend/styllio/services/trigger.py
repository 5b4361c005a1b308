"""
Hand-off of style transfer work to the separately deployed worker.

The worker is addressed only by task name (settings.STYLE_TRANSFER_TASK); this
service never imports or runs it. Submission is fire-and-forget: the returned
execution id is stored on the job and the worker reports back through the
internal job status endpoint.
"""
from __future__ import annotations

import time
from typing import Any, Dict, Iterable, List, Optional

from celery import Celery

from ..config import settings
from ..exceptions import FunctionNotConfiguredError, ProcessingTriggerError
from ..logger import logger
from ..workers import celery_app


def build_payload(job_id: str, image_urls: List[str], style_name: str) -> Dict[str, Any]:
    return {
        "jobId": job_id,
        "imageUrls": list(image_urls),
        "styleName": style_name,
        "timestamp": int(time.time()),
    }


def _payload_job_id(task_info: Dict[str, Any]) -> Optional[str]:
    # scheduled entries wrap the request
    request = task_info.get("request", task_info)
    kwargs = request.get("kwargs") or {}
    if isinstance(kwargs, dict):
        payload = kwargs.get("payload")
        if isinstance(payload, dict):
            return payload.get("jobId")
    for arg in request.get("args") or ():
        if isinstance(arg, dict) and "jobId" in arg:
            return arg["jobId"]
    return None


class ProcessingTrigger:
    def __init__(
        self,
        app: Celery = celery_app,
        task_name: Optional[str] = None,
        queue: Optional[str] = None,
        inspect_timeout: float = 1.0,
    ):
        self.app = app
        self.task_name = settings.STYLE_TRANSFER_TASK if task_name is None else task_name
        self.queue = queue or settings.STYLE_TRANSFER_QUEUE
        self.inspect_timeout = inspect_timeout

    def _in_flight(self) -> Iterable[Dict[str, Any]]:
        inspector = self.app.control.inspect(timeout=self.inspect_timeout)
        for snapshot in (inspector.active(), inspector.reserved(), inspector.scheduled()):
            for tasks in (snapshot or {}).values():
                for task_info in tasks or ():
                    yield task_info

    def find_execution(self, job_id: str) -> Optional[str]:
        """
        Look for a queued or running execution already working on `job_id`.
        """
        try:
            for task_info in self._in_flight():
                if task_info.get("request", task_info).get("name") != self.task_name:
                    continue
                if _payload_job_id(task_info) == job_id:
                    return task_info.get("request", task_info).get("id")
        except Exception as e:
            # the broker being unreachable surfaces again on submission
            logger.warning(f"Could not inspect running executions: {e}", extra={"job_id": job_id})
        return None

    def trigger(self, job_id: str, image_urls: List[str], style_name: str) -> str:
        if not self.task_name:
            raise FunctionNotConfiguredError()

        existing = self.find_execution(job_id)
        if existing:
            logger.info(
                f"Reusing execution {existing} for job {job_id}",
                extra={"job_id": job_id, "execution_ref": existing},
            )
            return existing

        payload = build_payload(job_id, image_urls, style_name)
        try:
            result = self.app.send_task(self.task_name, kwargs={"payload": payload}, queue=self.queue)
        except Exception as e:
            logger.error(
                f"Failed to submit style transfer for job {job_id}: {e}",
                extra={"job_id": job_id, "error_type": type(e).__name__},
            )
            raise ProcessingTriggerError(f"Failed to trigger function: {e}")

        logger.info(
            f"Triggered style transfer execution {result.id}",
            extra={"job_id": job_id, "execution_ref": result.id, "style": style_name, "image_count": len(image_urls)},
        )
        return result.id


processing_trigger = ProcessingTrigger()
