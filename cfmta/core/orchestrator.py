"""
MTA deployment lifecycle.

MtaResource drives one reconciliation pass per call:

    Uploading -> ExtensionsStaged -> ConflictChecked -> OperationStarted
    -> Polling -> Reconciled

with Failed reachable from every state. Steps run strictly in sequence,
and nothing is committed unless the pass reaches Reconciled. Passes
share no mutable state, so passes for different MTA ids can run in
parallel threads.
"""

import dataclasses
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from ..config.defaults import DEFAULT_SETTINGS
from ..errors import (
    ApiError,
    DeploymentError,
    IdentityConflictError,
    JobFailedError,
    NotFoundError,
)
from .client import CloudControllerClient, DeployServiceClient
from .models import (
    DataSourceQuery,
    DeployStrategy,
    DesiredState,
    JobSnapshot,
    Mta,
    Operation,
    ProcessType,
    ResourceId,
    ResourceState,
)
from .operation_guard import OperationGuard
from .poller import JobPoller
from .uploader import ArchiveUploader, ExtensionDescriptorMaterializer

logger = logging.getLogger(__name__)

BLUE_GREEN_FLAGS = {
    "noConfirm": True,
    "skipIdleStart": True,
    "keepOriginalAppNamesAfterDeploy": True,
}


class PassState(str, Enum):
    UPLOADING = "Uploading"
    EXTENSIONS_STAGED = "ExtensionsStaged"
    CONFLICT_CHECKED = "ConflictChecked"
    OPERATION_STARTED = "OperationStarted"
    POLLING = "Polling"
    RECONCILED = "Reconciled"
    FAILED = "Failed"


class ReconciliationPass:
    """State of a single create, update or delete pass."""

    def __init__(self, action: str, space: str):
        self.action = action
        self.space = space
        self.mta_id: Optional[str] = None
        self.state: Optional[PassState] = None
        self.history: List[PassState] = []
        self.error: Optional[Exception] = None

    def advance(self, state: PassState):
        self.state = state
        self.history.append(state)
        logger.info(f"[{self.action} {self.mta_id or '<pending>'}] {state.value}")

    def fail(self, error: Exception):
        self.error = error
        self.advance(PassState.FAILED)

    @property
    def succeeded(self) -> bool:
        return self.state == PassState.RECONCILED


def build_deploy_operation(
    desired: DesiredState,
    archive_id: str,
    mta_id: str,
    extension_ids: Optional[List[str]] = None,
) -> Operation:
    """Build the DEPLOY or BLUE_GREEN_DEPLOY request for a desired state."""
    parameters: Dict[str, Any] = {
        "appArchiveId": archive_id,
        "mtaId": mta_id,
    }
    if desired.strategy is DeployStrategy.BLUE_GREEN:
        parameters.update(BLUE_GREEN_FLAGS)
    if desired.version_rule is not None:
        parameters["versionRule"] = desired.version_rule.value
    if extension_ids:
        parameters["mtaExtDescriptorId"] = ExtensionDescriptorMaterializer.join_ids(extension_ids)
    if desired.modules:
        parameters["modulesForDeployment"] = ",".join(desired.modules)

    return Operation(
        process_type=desired.strategy.process_type,
        namespace=desired.namespace,
        parameters=parameters,
    )


def build_undeploy_operation(mta_id: str, namespace: Optional[str] = None) -> Operation:
    return Operation(
        process_type=ProcessType.UNDEPLOY,
        namespace=namespace,
        parameters={"mtaId": mta_id, "deleteServices": True},
    )


@dataclass
class _PassServices:
    """Collaborators bound to the deploy-service used by one pass."""
    client: DeployServiceClient
    poller: JobPoller
    guard: OperationGuard
    uploader: ArchiveUploader
    materializer: ExtensionDescriptorMaterializer


class MtaResource:
    """
    Create, read, update, delete and import of a deployed MTA.

    Every mutating verb accepts `cancel_event` (a threading.Event the
    caller may set from another thread) and `deadline` (seconds); both
    only bound the waits on remote jobs.
    """

    def __init__(
        self,
        client: DeployServiceClient,
        cf_client: Optional[CloudControllerClient] = None,
        poll_interval: Optional[float] = None,
        temp_dir: Optional[str] = None,
    ):
        self.client = client
        self.cf_client = cf_client
        if poll_interval is None:
            poll_interval = DEFAULT_SETTINGS["polling"]["interval"]
        self.poll_interval = poll_interval
        self.temp_dir = temp_dir

    @classmethod
    def from_settings(cls, settings, session=None, token=None) -> "MtaResource":
        """Build clients from Settings; the space lookup is enabled when api_url is set."""
        client = DeployServiceClient.from_settings(settings, session=session, token=token)
        cf_client = None
        if settings.get("api_url"):
            cf_client = CloudControllerClient(
                settings.get("api_url"),
                session=client.session,
                token=client.token,
                timeout=settings.http_timeout,
                verify=bool(settings.get("http.verify_ssl", True)),
            )
        return cls(
            client,
            cf_client=cf_client,
            poll_interval=settings.poll_interval,
            temp_dir=settings.descriptor_temp_dir,
        )

    # -- verbs -------------------------------------------------------------

    def create(
        self,
        desired: DesiredState,
        cancel_event: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
    ) -> ResourceState:
        return self._upsert(desired, None, cancel_event, deadline)

    def update(
        self,
        desired: DesiredState,
        prior: ResourceState,
        cancel_event: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
    ) -> ResourceState:
        return self._upsert(desired, prior, cancel_event, deadline)

    def apply(
        self,
        desired: DesiredState,
        prior: Optional[ResourceState] = None,
        cancel_event: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
    ) -> ResourceState:
        """Create, update, or replace (delete then create) as the change requires."""
        if prior is None:
            return self.create(desired, cancel_event, deadline)
        if desired.requires_replacement(prior.space, prior.namespace):
            logger.info(f"MTA {prior.resource_id} must be replaced")
            self.delete(prior, cancel_event, deadline)
            return self.create(desired, cancel_event, deadline)
        return self.update(desired, prior, cancel_event, deadline)

    def read(self, prior: ResourceState) -> Optional[ResourceState]:
        """
        Refresh the observed MTA.

        Returns:
            The refreshed state, or None if the MTA no longer exists

        Raises:
            DeploymentError: If the lookup fails for another reason
        """
        client = self._client_for(prior.deploy_url)
        try:
            mta = client.get_mta(prior.space, prior.id, prior.namespace)
        except NotFoundError:
            logger.info(f"MTA {prior.resource_id} no longer exists, removing it from state")
            return None
        except ApiError as e:
            raise DeploymentError("Unable to fetch MTA details", f"Request failed with {e}") from e
        logger.debug(f"Read MTA {prior.resource_id}")
        return dataclasses.replace(prior, observed=mta)

    def delete(
        self,
        prior: ResourceState,
        cancel_event: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
    ) -> None:
        """Undeploy the MTA together with its services."""
        run = ReconciliationPass("delete", prior.space)
        run.mta_id = prior.id
        services = self._services(prior.deploy_url)
        try:
            services.guard.ensure_no_active_operation(
                prior.space, prior.id, prior.namespace, cancel_event, deadline
            )
            run.advance(PassState.CONFLICT_CHECKED)

            operation = build_undeploy_operation(prior.id, prior.namespace)
            operation_id = self._start(services.client, prior.space, operation)
            run.advance(PassState.OPERATION_STARTED)

            run.advance(PassState.POLLING)
            self._wait(services, prior.space, operation_id, cancel_event, deadline)
            run.advance(PassState.RECONCILED)
        except Exception as e:
            run.fail(e)
            raise

    @staticmethod
    def import_state(import_id: str) -> ResourceState:
        """
        Turn an import id (space/mtaId[/namespace]) into a state to read.

        Raises:
            ValidationError: If the id does not have 2 or 3 segments
        """
        resource_id = ResourceId.parse(import_id)
        return ResourceState(
            id=resource_id.mta_id,
            space=resource_id.space,
            namespace=resource_id.namespace,
        )

    # -- pass internals ----------------------------------------------------

    def _upsert(
        self,
        desired: DesiredState,
        prior: Optional[ResourceState],
        cancel_event: Optional[threading.Event],
        deadline: Optional[float],
    ) -> ResourceState:
        run = ReconciliationPass("update" if prior else "create", desired.space)
        services = self._services(desired.deploy_url)
        space, namespace = desired.space, desired.namespace
        try:
            self._check_space(space)

            run.advance(PassState.UPLOADING)
            uploaded = services.uploader.upload(
                space, desired.archive, namespace, cancel_event, deadline
            )
            mta_id = uploaded.mta_id
            run.mta_id = mta_id

            if prior is not None and prior.id and prior.id != mta_id:
                raise IdentityConflictError(
                    f"New MTA ID {mta_id} not matching with the existing ID {prior.id}",
                    "For deploying new MTA, rather taint the resource and try again.",
                )

            extension_ids: List[str] = []
            if desired.extension_descriptors is not None:
                extension_ids = services.materializer.upload(
                    space, desired.extension_descriptors, namespace
                )
                run.advance(PassState.EXTENSIONS_STAGED)

            services.guard.ensure_no_active_operation(
                space, mta_id, namespace, cancel_event, deadline
            )
            run.advance(PassState.CONFLICT_CHECKED)

            operation = build_deploy_operation(desired, uploaded.file.id, mta_id, extension_ids)
            operation_id = self._start(services.client, space, operation)
            run.advance(PassState.OPERATION_STARTED)

            run.advance(PassState.POLLING)
            self._wait(services, space, operation_id, cancel_event, deadline)

            mta = self._fetch(services.client, space, mta_id, namespace)
            run.advance(PassState.RECONCILED)
        except Exception as e:
            run.fail(e)
            raise

        return ResourceState(
            id=mta.metadata.id or mta_id,
            space=space,
            namespace=namespace,
            observed=mta,
            desired=desired,
            deploy_url=desired.deploy_url,
        )

    def _client_for(self, deploy_url: Optional[str]) -> DeployServiceClient:
        if deploy_url:
            return self.client.with_base_url(deploy_url)
        return self.client

    def _services(self, deploy_url: Optional[str]) -> _PassServices:
        client = self._client_for(deploy_url)
        poller = JobPoller(client, interval=self.poll_interval)
        return _PassServices(
            client=client,
            poller=poller,
            guard=OperationGuard(client, poller),
            uploader=ArchiveUploader(client, poller),
            materializer=ExtensionDescriptorMaterializer(client, temp_dir=self.temp_dir),
        )

    def _check_space(self, space: str) -> None:
        if self.cf_client is None:
            return
        try:
            self.cf_client.get_space(space)
        except ApiError as e:
            raise DeploymentError("Unable to fetch Space details", f"Request failed with {e}") from e

    @staticmethod
    def _start(client: DeployServiceClient, space: str, operation: Operation) -> str:
        try:
            operation_id = client.start_operation(space, operation)
        except ApiError as e:
            raise DeploymentError(
                f"Unable to start MTA {operation.process_type.value} operation",
                f"Request failed with {e}",
            ) from e
        logger.info(f"Started {operation.process_type.value} operation {operation_id}")
        return operation_id

    @staticmethod
    def _wait(
        services: _PassServices,
        space: str,
        operation_id: str,
        cancel_event: Optional[threading.Event],
        deadline: Optional[float],
    ) -> JobSnapshot:
        redact = services.client.redactor.redact
        try:
            snapshot = services.poller.poll_operation(
                space, operation_id, cancel_event=cancel_event, deadline=deadline
            )
        except JobFailedError as e:
            for line in e.messages:
                logger.info(redact(line))
            raise JobFailedError(
                "Failure in polling MTA operation",
                redact(e.detail),
                status=e.status,
                messages=[redact(line) for line in e.messages],
            ) from e
        except ApiError as e:
            raise DeploymentError(
                "Failure in polling MTA operation", f"Request failed with {e}"
            ) from e

        for line in snapshot.messages:
            logger.info(redact(line))
        return snapshot

    @staticmethod
    def _fetch(client: DeployServiceClient, space: str, mta_id: str, namespace: Optional[str]) -> Mta:
        try:
            return client.get_mta(space, mta_id, namespace)
        except ApiError as e:
            raise DeploymentError("Unable to fetch MTA details", f"Request failed with {e}") from e


class MtaDataSource:
    """Read-only lookup of an MTA that is already deployed."""

    def __init__(
        self,
        client: DeployServiceClient,
        cf_client: Optional[CloudControllerClient] = None,
    ):
        self.client = client
        self.cf_client = cf_client

    def read(self, query: DataSourceQuery) -> Mta:
        """
        Raises:
            DeploymentError: If the space or the MTA cannot be fetched,
                including when the MTA does not exist
        """
        client = self.client.with_base_url(query.deploy_url) if query.deploy_url else self.client

        if self.cf_client is not None:
            try:
                self.cf_client.get_space(query.space)
            except ApiError as e:
                raise DeploymentError(
                    "Unable to fetch Space details", f"Request failed with {e}"
                ) from e

        try:
            mta = client.get_mta(query.space, query.mta_id, query.namespace)
        except ApiError as e:
            raise DeploymentError("Unable to fetch MTA details", f"Request failed with {e}") from e

        logger.debug(f"Read MTA data source {query.mta_id}")
        return mta
