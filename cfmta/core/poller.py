"""
Polling of deploy-service jobs until they reach a terminal state.

Polls at a fixed interval with no overall timeout: deployments can
legitimately run for many minutes. The wait between polls is a
threading.Event wait, so a caller can stop it promptly from another
thread; an optional deadline does the same from within.
"""

import logging
import threading
import time
from typing import Callable, Iterable, List, Optional, Tuple, Union

from ..errors import ApiError, JobFailedError, PollCancelledError
from .client import DeployServiceClient
from .models import JobSnapshot, JobStatus

logger = logging.getLogger(__name__)

StatusSet = Union[JobStatus, Iterable[JobStatus]]

TOO_MANY_REQUESTS = 429


def _as_tuple(statuses: StatusSet) -> Tuple[JobStatus, ...]:
    if isinstance(statuses, JobStatus):
        return (statuses,)
    return tuple(statuses)


def is_transient(error: ApiError) -> bool:
    """Transport failures, 5xx and 429 may succeed on the next poll; other 4xx never will."""
    status = error.status_code
    return status is None or status >= 500 or status == TOO_MANY_REQUESTS


class JobPoller:
    """
    Long-poll loop over a job status endpoint.

    Transient fetch errors are logged and retried on the next tick;
    only a terminal job state, a permanent fetch error, cancellation or
    the deadline ends the loop.
    """

    def __init__(self, client: DeployServiceClient, interval: float = 2.0):
        self.client = client
        self.interval = interval

    def poll(
        self,
        fetch: Callable[[], JobSnapshot],
        target: StatusSet = JobStatus.FINISHED,
        cancel_event: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
        description: str = "job",
        keep_waiting: StatusSet = (),
    ) -> JobSnapshot:
        """
        Call `fetch` until the job reaches `target` or another terminal state.

        Args:
            fetch: Returns the current JobSnapshot
            target: Terminal state(s) that count as success
            cancel_event: Set by the caller to stop polling
            deadline: Seconds after which polling stops as cancelled
            description: Used in log and error messages
            keep_waiting: Terminal states that do not end polling

        Returns:
            The snapshot that reached `target`

        Raises:
            JobFailedError: If the job ends in a different terminal state
            ApiError: If fetching fails with a non-transient error
            PollCancelledError: If cancelled or the deadline passes
        """
        targets = _as_tuple(target)
        waiting = _as_tuple(keep_waiting)
        cancel_event = cancel_event or threading.Event()
        expires_at = time.monotonic() + deadline if deadline is not None else None
        attempt = 0

        while True:
            self._check_cancelled(cancel_event, expires_at, description)
            attempt += 1

            try:
                snapshot = fetch()
            except ApiError as e:
                if not is_transient(e):
                    logger.error(f"Polling {description} failed permanently: {e}")
                    raise
                logger.warning(f"Polling {description} failed (attempt {attempt}), retrying: {e}")
            else:
                logger.debug(f"{description} {snapshot.job_id} is {snapshot.status.value}")
                if snapshot.status in targets:
                    return snapshot
                if snapshot.status.is_terminal and snapshot.status not in waiting:
                    raise self._failure(snapshot, description)

            wait = self.interval
            if expires_at is not None:
                wait = max(0.0, min(wait, expires_at - time.monotonic()))
            if cancel_event.wait(wait):
                self._check_cancelled(cancel_event, expires_at, description)

    def poll_upload_job(
        self,
        space: str,
        job_id: str,
        target: StatusSet = JobStatus.FINISHED,
        app_instance: Optional[str] = None,
        namespace: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
    ) -> JobSnapshot:
        """Poll an upload-from-URL job, routed to the instance that owns it."""
        return self.poll(
            lambda: self.client.get_upload_job(space, job_id, namespace, app_instance),
            target=target,
            cancel_event=cancel_event,
            deadline=deadline,
            description="upload job",
        )

    def poll_operation(
        self,
        space: str,
        operation_id: str,
        target: StatusSet = JobStatus.FINISHED,
        cancel_event: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
        keep_waiting: StatusSet = (),
    ) -> JobSnapshot:
        """Poll a deploy-service operation."""
        return self.poll(
            lambda: self.client.get_operation(space, operation_id),
            target=target,
            cancel_event=cancel_event,
            deadline=deadline,
            description="operation",
            keep_waiting=keep_waiting,
        )

    @staticmethod
    def _check_cancelled(
        cancel_event: threading.Event, expires_at: Optional[float], description: str
    ) -> None:
        if cancel_event.is_set():
            raise PollCancelledError("Polling cancelled", f"Stopped waiting for {description}")
        if expires_at is not None and time.monotonic() >= expires_at:
            raise PollCancelledError(
                "Polling deadline exceeded", f"Stopped waiting for {description}"
            )

    @staticmethod
    def _failure(snapshot: JobSnapshot, description: str) -> JobFailedError:
        messages: List[str] = list(snapshot.messages)
        if snapshot.error and snapshot.error not in messages:
            messages.append(snapshot.error)
        return JobFailedError(
            f"{description.capitalize()} {snapshot.job_id} ended in state {snapshot.status.value}",
            snapshot.log or "no log available",
            status=snapshot.status,
            messages=messages,
        )
