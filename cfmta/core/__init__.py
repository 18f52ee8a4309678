"""
Core MTA deployment functionality for cfmta.

This module provides the business logic for deploying Multi-Target
Applications to Cloud Foundry:
- Uploading archives and extension descriptors
- Polling deploy-service jobs and operations
- Aborting conflicting operations
- Driving create/update/delete passes to completion
"""

from .models import (
    DataSourceQuery,
    DescriptorContents,
    DescriptorFiles,
    DeployStrategy,
    DesiredState,
    JobSnapshot,
    JobStatus,
    LocalArchive,
    Module,
    Mta,
    MtaIdentity,
    Operation,
    ProcessType,
    RemoteArchive,
    ResourceId,
    ResourceState,
    UploadedFile,
    VersionRule,
)
from .archive import read_archive_descriptor
from .client import CloudControllerClient, DeployServiceClient, derive_deploy_url
from .poller import JobPoller
from .operation_guard import OperationGuard
from .uploader import ArchiveUploader, ExtensionDescriptorMaterializer, UploadedArchive
from .orchestrator import MtaDataSource, MtaResource, PassState
from .resource_config import ResourceConfigParser

__all__ = [
    "DataSourceQuery",
    "DescriptorContents",
    "DescriptorFiles",
    "DeployStrategy",
    "DesiredState",
    "JobSnapshot",
    "JobStatus",
    "LocalArchive",
    "Module",
    "Mta",
    "MtaIdentity",
    "Operation",
    "ProcessType",
    "RemoteArchive",
    "ResourceId",
    "ResourceState",
    "UploadedFile",
    "VersionRule",
    "read_archive_descriptor",
    "CloudControllerClient",
    "DeployServiceClient",
    "derive_deploy_url",
    "JobPoller",
    "OperationGuard",
    "ArchiveUploader",
    "ExtensionDescriptorMaterializer",
    "UploadedArchive",
    "MtaDataSource",
    "MtaResource",
    "PassState",
    "ResourceConfigParser",
]
