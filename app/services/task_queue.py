"""
Task queue clients used to hand audit tasks to the worker entry point.

Delivery is at-least-once: the worker must tolerate duplicates.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping
from typing import Any, Protocol

import requests
from fastapi import BackgroundTasks

logger = logging.getLogger(__name__)


class TaskQueueError(RuntimeError):
    """
    Raised when a task cannot be accepted by the queue transport.
    """


class TaskExecutor(Protocol):
    def submit(self, task: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        ...


class FastAPIBackgroundTaskExecutor:
    """
    Runs tasks after the current response has been sent.
    """

    def __init__(self, background_tasks: BackgroundTasks) -> None:
        self._background_tasks = background_tasks

    def submit(self, task: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        self._background_tasks.add_task(task, *args, **kwargs)


class AuditTaskQueue(Protocol):
    def enqueue(self, queue_name: str, target_path: str, payload: Mapping[str, Any]) -> str:
        ...


def _new_task_id(queue_name: str) -> str:
    return f"{queue_name}-{uuid.uuid4().hex}"


class BackgroundTaskQueue:
    """
    In-process queue: dispatches the payload to the handler registered for the
    target path through a task executor.
    """

    def __init__(
        self,
        executor: TaskExecutor,
        handlers: Mapping[str, Callable[[dict[str, Any]], Any]],
    ) -> None:
        self._executor = executor
        self._handlers = dict(handlers)

    def enqueue(self, queue_name: str, target_path: str, payload: Mapping[str, Any]) -> str:
        handler = self._handlers.get(target_path)
        if handler is None:
            raise TaskQueueError(f"No handler registered for target path {target_path!r}")

        task_id = _new_task_id(queue_name)
        self._executor.submit(handler, dict(payload))
        logger.info("Queued in-process task task_id=%s target=%s", task_id, target_path)
        return task_id


class HTTPTaskQueue:
    """
    Pushes tasks to the worker endpoint of a running service over HTTP.
    """

    def __init__(
        self,
        service_url: str,
        *,
        timeout_seconds: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        if not service_url:
            raise ValueError("service_url is required for HTTPTaskQueue")
        self._service_url = service_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._session = session or requests.Session()

    def enqueue(self, queue_name: str, target_path: str, payload: Mapping[str, Any]) -> str:
        task_id = _new_task_id(queue_name)
        url = f"{self._service_url}/{target_path.lstrip('/')}"
        headers = {
            "Content-Type": "application/json",
            "X-Task-Queue": queue_name,
            "X-Task-Id": task_id,
        }

        try:
            response = self._session.post(
                url,
                json=dict(payload),
                headers=headers,
                timeout=self._timeout_seconds,
            )
        except requests.RequestException as exc:
            raise TaskQueueError(f"Request to {url} failed: {exc}") from exc

        if response.status_code >= 400:
            raise TaskQueueError(
                f"Worker endpoint {url} rejected task with HTTP {response.status_code}"
            )

        logger.info("Queued HTTP task task_id=%s url=%s", task_id, url)
        return task_id
