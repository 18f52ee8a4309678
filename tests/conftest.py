"""Shared fixtures: a scripted in-memory deploy-service and MTA archive builder."""

import itertools
import os
import threading
import zipfile
from typing import Dict, List, Optional, Tuple

import pytest
import yaml

from cfmta.core.models import (
    JobSnapshot,
    JobStatus,
    Module,
    Mta,
    MtaIdentity,
    OperationInfo,
    OperationJobResult,
    ProcessType,
    UploadedFile,
    UploadJobResult,
)
from cfmta.errors import ApiError, NotFoundError
from cfmta.security.secure_memory import OutputRedactor

SPACE = "0d8b2ef4-3c1e-4b5a-9a4e-6f1d2c3b4a59"


def make_mtar(directory, mta_id="com.example.shop", version="1.0.0", descriptor=True, name=None):
    """Write a minimal .mtar archive and return its path."""
    path = os.path.join(str(directory), name or f"{mta_id}.mtar")
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr("META-INF/MANIFEST.MF", "Manifest-Version: 1.0\n")
        if descriptor:
            archive.writestr(
                "META-INF/mtad.yaml",
                yaml.safe_dump({
                    "_schema-version": "3.1",
                    "ID": mta_id,
                    "version": version,
                    "modules": [{"name": "web", "type": "javascript.nodejs"}],
                }),
            )
    return path


class FakeDeployService:
    """
    In-memory stand-in for DeployServiceClient.

    Operations finish immediately unless a status script is queued for
    them with `script_operation`. Deploy operations register the MTA so
    a later get_mta finds it; undeploy removes it.
    """

    def __init__(self):
        self.redactor = OutputRedactor()
        self.base_urls: List[str] = []
        self.uploads: List[Tuple[str, str, Optional[str]]] = []
        self.url_uploads: List[Tuple[str, str, Optional[str]]] = []
        self.started: List = []
        self.aborted: List[str] = []
        self.active: List[OperationInfo] = []
        self.mtas: Dict[Tuple[str, Optional[str]], Mta] = {}
        self.upload_failures: Dict[str, Exception] = {}
        self.upload_job_script: List[JobSnapshot] = []
        self.operation_scripts: Dict[str, List[JobSnapshot]] = {}
        self.next_operation_script: Optional[List[JobSnapshot]] = None
        self.start_error: Optional[Exception] = None
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    # -- client surface ------------------------------------------------

    def with_base_url(self, base_url):
        self.base_urls.append(base_url)
        return self

    def upload_file(self, space, file_path, namespace=None):
        name = os.path.basename(file_path)
        with self._lock:
            self.uploads.append((space, file_path, namespace))
        if name in self.upload_failures:
            raise self.upload_failures[name]
        return UploadedFile(id=f"file-{next(self._ids)}", namespace=namespace, name=name)

    def upload_file_from_url(self, space, file_url, namespace=None):
        self.url_uploads.append((space, file_url, namespace))
        return "upload-job-1", "instance-3"

    def get_upload_job(self, space, job_id, namespace=None, app_instance=None):
        snapshot = self.upload_job_script.pop(0)
        if isinstance(snapshot, Exception):
            raise snapshot
        return snapshot

    def start_operation(self, space, operation):
        if self.start_error is not None:
            raise self.start_error
        operation_id = f"op-{next(self._ids)}"
        with self._lock:
            self.started.append((space, operation))
        if self.next_operation_script is not None:
            self.operation_scripts[operation_id] = self.next_operation_script
            self.next_operation_script = None
        self._apply(operation)
        return operation_id

    def get_operation(self, space, operation_id):
        script = self.operation_scripts.get(operation_id)
        if script:
            snapshot = script.pop(0) if len(script) > 1 else script[0]
            if isinstance(snapshot, Exception):
                raise snapshot
            return snapshot
        return operation_snapshot(operation_id, JobStatus.FINISHED, ["Process finished."])

    def list_operations(self, space, mta_id):
        return [op for op in self.active if op.mta_id == mta_id]

    def abort_operation(self, space, operation_id):
        self.aborted.append(operation_id)
        self.active = [op for op in self.active if op.id != operation_id]

    def get_mta(self, space, mta_id, namespace=None):
        try:
            return self.mtas[(mta_id, namespace)]
        except KeyError:
            raise NotFoundError("Unable to fetch MTA details", f"MTA not found: {mta_id}", 404)

    # -- helpers -------------------------------------------------------

    def deploy(self, mta_id, namespace=None, version="1.0.0"):
        self.mtas[(mta_id, namespace)] = Mta(
            metadata=MtaIdentity(id=mta_id, version=version, namespace=namespace),
            modules=(
                Module(
                    module_name="web",
                    app_name=f"{mta_id}-web",
                    services=("db",),
                    uris=(f"{mta_id}.cfapps.example.com",),
                ),
            ),
            services=("db",),
        )

    def _apply(self, operation):
        mta_id = operation.parameters["mtaId"]
        if operation.process_type == ProcessType.UNDEPLOY:
            self.mtas.pop((mta_id, operation.namespace), None)
        else:
            self.deploy(mta_id, operation.namespace)

    @property
    def started_operations(self):
        return [operation for _, operation in self.started]


def operation_snapshot(operation_id, status, messages=()):
    return JobSnapshot(
        job_id=operation_id,
        status=status,
        messages=tuple(messages),
        result=OperationJobResult(operation_id=operation_id, process_type="DEPLOY", mta_id=""),
    )


def upload_snapshot(status, mta_id="", file_id="", error=""):
    return JobSnapshot(
        job_id="upload-job-1",
        status=status,
        result=UploadJobResult(
            mta_id=mta_id,
            file=UploadedFile(id=file_id) if file_id else None,
        ),
        error=error,
    )


@pytest.fixture
def service():
    return FakeDeployService()


@pytest.fixture
def mtar(tmp_path):
    return make_mtar(tmp_path)


@pytest.fixture
def transient_error():
    return ApiError("Unable to fetch MTA operation", "Request failed with 502", 502)
