"""
Staging of deployment archives and extension descriptors on the deploy-service.

Local archives are uploaded synchronously and their MTA id is read from
the embedded descriptor. Remote archives are fetched by the
deploy-service itself as an asynchronous job that has to be polled.
"""

import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from typing import List, Optional

from ..errors import ApiError, JobFailedError, MtaIdMissingError, UploadError
from ..security.sanitizer import InputSanitizer
from ..utils.validators import file_sha256
from .archive import read_archive_descriptor
from .client import DeployServiceClient
from .models import (
    ArchiveSource,
    DescriptorContents,
    DescriptorFiles,
    ExtensionDescriptors,
    LocalArchive,
    RemoteArchive,
    UploadedFile,
    UploadJobResult,
)
from .poller import JobPoller

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadedArchive:
    """An archive staged on the deploy-service and the MTA id it carries."""
    file: UploadedFile
    mta_id: str


class ArchiveUploader:
    """Uploads an MTA archive from a local path or a remote URL."""

    def __init__(self, client: DeployServiceClient, poller: JobPoller):
        self.client = client
        self.poller = poller

    def upload(
        self,
        space: str,
        archive: ArchiveSource,
        namespace: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
    ) -> UploadedArchive:
        """
        Stage the archive and determine its MTA id.

        Raises:
            ValidationError: If a local archive path does not exist
            UploadError: If the upload or the upload job fails
            MtaIdMissingError: If no MTA id can be determined
            PollCancelledError: If waiting for a remote upload is cancelled
        """
        if isinstance(archive, LocalArchive):
            return self._upload_local(space, archive.path, namespace)
        if isinstance(archive, RemoteArchive):
            return self._upload_remote(space, archive.url, namespace, cancel_event, deadline)
        raise TypeError(f"Unsupported archive source: {archive!r}")

    def _upload_local(self, space: str, path: str, namespace: Optional[str]) -> UploadedArchive:
        path = InputSanitizer.sanitize_archive_path(path)
        logger.info(f"Uploading MTA archive {os.path.basename(path)}")
        logger.debug(f"sha256 of {path}: {file_sha256(path)}")

        try:
            uploaded = self.client.upload_file(space, path, namespace)
        except (ApiError, OSError) as e:
            raise UploadError("Unable to upload mtar file", f"Request failed with {e}") from e

        # the upload response does not reliably carry the MTA id
        identity = read_archive_descriptor(path)
        return UploadedArchive(file=uploaded, mta_id=identity.id)

    def _upload_remote(
        self,
        space: str,
        url: str,
        namespace: Optional[str],
        cancel_event: Optional[threading.Event],
        deadline: Optional[float],
    ) -> UploadedArchive:
        logger.info(f"Uploading MTA archive from {url}")
        try:
            job_id, app_instance = self.client.upload_file_from_url(space, url, namespace)
        except ApiError as e:
            raise UploadError("Unable to upload remote mtar file", f"Request failed with {e}") from e

        try:
            snapshot = self.poller.poll_upload_job(
                space,
                job_id,
                app_instance=app_instance,
                namespace=namespace,
                cancel_event=cancel_event,
                deadline=deadline,
            )
        except (ApiError, JobFailedError) as e:
            raise UploadError("Unable to poll MTAR upload job", f"Request failed with {e}") from e

        result = snapshot.result
        if not isinstance(result, UploadJobResult) or result.file is None:
            raise UploadError(
                "Unable to poll MTAR upload job",
                f"Upload job {job_id} finished without a file",
            )
        if not result.mta_id:
            raise MtaIdMissingError(
                "MTA ID missing",
                f"Upload job {job_id} finished without an MTA ID",
            )
        return UploadedArchive(file=result.file, mta_id=result.mta_id)


class ExtensionDescriptorMaterializer:
    """
    Uploads extension descriptors and collects their file ids.

    Inline contents are written to temporary files first. Those files
    are removed once uploading ends, whether it succeeded or not.
    """

    SUFFIX = ".mtaext"

    def __init__(self, client: DeployServiceClient, temp_dir: Optional[str] = None):
        self.client = client
        self.temp_dir = temp_dir

    def upload(
        self,
        space: str,
        descriptors: Optional[ExtensionDescriptors],
        namespace: Optional[str] = None,
    ) -> List[str]:
        """
        Upload every descriptor.

        Returns:
            Uploaded file ids, in declaration order; empty when none given

        Raises:
            ValidationError: If a descriptor path does not exist
            UploadError: If staging or uploading a descriptor fails
        """
        if descriptors is None:
            return []

        if isinstance(descriptors, DescriptorFiles):
            paths = [InputSanitizer.sanitize_archive_path(p) for p in descriptors.paths]
            return self._upload_all(space, paths, namespace)

        if isinstance(descriptors, DescriptorContents):
            staged: List[str] = []
            try:
                for content in descriptors.contents:
                    staged.append(self._stage(content))
                return self._upload_all(space, staged, namespace)
            finally:
                self._cleanup(staged)

        raise TypeError(f"Unsupported extension descriptors: {descriptors!r}")

    @staticmethod
    def join_ids(file_ids: List[str]) -> str:
        """Format file ids for the mtaExtDescriptorId operation parameter."""
        return ",".join(file_ids)

    def _upload_all(self, space: str, paths: List[str], namespace: Optional[str]) -> List[str]:
        file_ids = []
        for path in paths:
            try:
                uploaded = self.client.upload_file(space, path, namespace)
            except (ApiError, OSError) as e:
                raise UploadError(
                    "Unable to upload mta extension descriptor",
                    f"Request failed with {e}",
                ) from e
            file_ids.append(uploaded.id)
        logger.info(f"Uploaded {len(file_ids)} extension descriptor(s)")
        return file_ids

    def _stage(self, content: str) -> str:
        try:
            fd, path = tempfile.mkstemp(suffix=self.SUFFIX, dir=self.temp_dir)
        except OSError as e:
            raise UploadError(
                "Error in creating files from extension descriptors", str(e)
            ) from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
        except OSError as e:
            self._cleanup([path])
            raise UploadError(
                "Error in creating files from extension descriptors",
                f"Failed to write to file {path} Error : {e}",
            ) from e
        return path

    @staticmethod
    def _cleanup(paths: List[str]) -> None:
        for path in paths:
            try:
                os.remove(path)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"Failed to remove extension descriptor file {path}: {e}")
