"""
Abort-then-proceed handling of in-flight MTA operations.

The deploy-service runs at most one operation per MTA id and rejects a
new one while another holds the MTA lock. Operations that ended in
ERROR or ACTION_REQUIRED keep holding it until they are aborted. Before
starting an operation we look for a lock holder with the same id and
namespace, abort it and wait until the abort has taken effect, so a
failed or crashed pass cannot block later passes.
"""

import logging
import threading
from typing import Optional

from ..errors import ApiError, JobFailedError, OngoingOperationError
from .client import DeployServiceClient
from .models import JobStatus, OperationInfo
from .poller import JobPoller

logger = logging.getLogger(__name__)


class OperationGuard:
    """Finds and aborts the active operation of an MTA, if any."""

    TITLE = "Unable to check for and abort ongoing MTA operation"

    # an operation that finished on its own no longer holds the lock either
    RESOLVED_STATES = (JobStatus.ABORTED, JobStatus.FINISHED)
    # the state an operation was stuck in may still be reported until the abort lands
    PENDING_ABORT_STATES = (JobStatus.ERROR, JobStatus.ACTION_REQUIRED)

    def __init__(self, client: DeployServiceClient, poller: JobPoller):
        self.client = client
        self.poller = poller

    def find_active(
        self, space: str, mta_id: str, namespace: Optional[str] = None
    ) -> Optional[OperationInfo]:
        """Return the active operation for this MTA id and namespace, if any."""
        for operation in self.client.list_operations(space, mta_id):
            if operation.mta_id != mta_id or operation.namespace != namespace:
                continue
            if operation.is_active:
                return operation
        return None

    def ensure_no_active_operation(
        self,
        space: str,
        mta_id: str,
        namespace: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
    ) -> Optional[OperationInfo]:
        """
        Abort the active operation for the MTA and wait for it to stop.

        Returns:
            The aborted operation, or None if nothing was running

        Raises:
            OngoingOperationError: If listing, aborting or waiting fails
        """
        try:
            active = self.find_active(space, mta_id, namespace)
            if active is None:
                logger.debug(f"No ongoing operation for MTA {mta_id}")
                return None

            logger.warning(
                f"Aborting ongoing {active.process_type} operation {active.id} "
                f"for MTA {mta_id}"
            )
            self.client.abort_operation(space, active.id)
            snapshot = self.poller.poll_operation(
                space,
                active.id,
                target=self.RESOLVED_STATES,
                cancel_event=cancel_event,
                deadline=deadline,
                keep_waiting=self.PENDING_ABORT_STATES,
            )
            if snapshot.status == JobStatus.FINISHED:
                logger.info(f"Operation {active.id} finished before it could be aborted")
            else:
                logger.info(f"Aborted operation {active.id}")
            return active

        except (ApiError, JobFailedError) as e:
            raise OngoingOperationError(self.TITLE, f"Request failed with {e}") from e
