"""
Data model for MTA deployments.

Server-side projections (MtaIdentity, Module, Mta, UploadedFile) are
immutable and rebuilt from every response. Desired configuration is
expressed with tagged unions so mutually exclusive options cannot be
set together.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from ..errors import ValidationError
from ..security.sanitizer import InputSanitizer


# ---------------------------------------------------------------------------
# Remote state projections
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MtaIdentity:
    """Identifies a deployed MTA within a space. Namespace takes part in equality."""
    id: str
    version: str = ""
    namespace: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MtaIdentity":
        return cls(
            id=data.get("id", ""),
            version=data.get("version") or "",
            namespace=data.get("namespace") or None,
        )


@dataclass(frozen=True)
class Module:
    """A deployable unit of an MTA, as last reported by the deploy-service."""
    module_name: str
    app_name: str
    created_on: str = ""
    updated_on: str = ""
    provided_dependency_names: Tuple[str, ...] = ()
    services: Tuple[str, ...] = ()
    uris: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Module":
        return cls(
            module_name=data.get("moduleName", ""),
            app_name=data.get("appName", ""),
            created_on=data.get("createdOn") or "",
            updated_on=data.get("updatedOn") or "",
            # the deploy-service API spells it "Dendency"
            provided_dependency_names=tuple(data.get("providedDendencyNames") or ()),
            services=tuple(data.get("services") or ()),
            uris=tuple(data.get("uris") or ()),
        )


@dataclass(frozen=True)
class Mta:
    """Observed state of a deployed MTA: identity, modules and services."""
    metadata: MtaIdentity
    modules: Tuple[Module, ...] = ()
    services: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Mta":
        return cls(
            metadata=MtaIdentity.from_dict(data.get("metadata") or {}),
            modules=tuple(Module.from_dict(m) for m in data.get("modules") or ()),
            services=tuple(data.get("services") or ()),
        )

    @property
    def id(self) -> str:
        return self.metadata.id


@dataclass(frozen=True)
class UploadedFile:
    """Server-side handle to an uploaded archive or descriptor."""
    id: str
    namespace: Optional[str] = None
    name: str = ""
    digest: str = ""
    digest_algorithm: str = ""
    size: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UploadedFile":
        return cls(
            id=data.get("id", ""),
            namespace=data.get("namespace") or None,
            name=data.get("name") or "",
            digest=data.get("digest") or "",
            digest_algorithm=data.get("digestAlgorithm") or "",
            size=int(data.get("size") or 0),
        )


# ---------------------------------------------------------------------------
# Jobs and operations
# ---------------------------------------------------------------------------

class JobStatus(str, Enum):
    """State of an upload job or deploy-service operation."""
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    FINISHED = "FINISHED"
    ERROR = "ERROR"
    FAILED = "FAILED"
    ABORTED = "ABORTED"
    ACTION_REQUIRED = "ACTION_REQUIRED"

    @property
    def is_terminal(self) -> bool:
        return self not in (JobStatus.QUEUED, JobStatus.RUNNING)

    @classmethod
    def parse(cls, value: str) -> "JobStatus":
        """Parse a status string case-insensitively. Raises ValueError if unknown."""
        return cls((value or "").upper())


class ProcessType(str, Enum):
    DEPLOY = "DEPLOY"
    BLUE_GREEN_DEPLOY = "BLUE_GREEN_DEPLOY"
    UNDEPLOY = "UNDEPLOY"


@dataclass
class Operation:
    """An operation request as sent to the deploy-service."""
    process_type: ProcessType
    namespace: Optional[str] = None
    parameters: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "processType": self.process_type.value,
            "parameters": dict(self.parameters),
        }
        if self.namespace:
            payload["namespace"] = self.namespace
        return payload


@dataclass(frozen=True)
class OperationInfo:
    """Summary of an operation as returned by the operations listing."""
    id: str
    process_type: str
    state: Optional[JobStatus]
    mta_id: str
    namespace: Optional[str] = None

    # states in which the deploy-service still holds the MTA lock
    LOCKING_STATES = (
        JobStatus.QUEUED,
        JobStatus.RUNNING,
        JobStatus.ERROR,
        JobStatus.ACTION_REQUIRED,
    )

    @property
    def is_active(self) -> bool:
        return self.state in self.LOCKING_STATES

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OperationInfo":
        try:
            state: Optional[JobStatus] = JobStatus.parse(data.get("state", ""))
        except ValueError:
            state = None
        return cls(
            id=data.get("processId", ""),
            process_type=data.get("processType", ""),
            state=state,
            mta_id=data.get("mtaId", ""),
            namespace=data.get("namespace") or None,
        )


@dataclass(frozen=True)
class UploadJobResult:
    """Result carried by a finished upload-from-URL job."""
    mta_id: str
    file: Optional[UploadedFile]


@dataclass(frozen=True)
class OperationJobResult:
    """Result carried by a deploy-service operation."""
    operation_id: str
    process_type: str
    mta_id: str


JobResult = Union[UploadJobResult, OperationJobResult]


@dataclass(frozen=True)
class JobSnapshot:
    """
    One observation of a remote job.

    The envelope is the same for every job kind; `result` holds the
    kind-specific variant.
    """
    job_id: str
    status: JobStatus
    messages: Tuple[str, ...] = ()
    result: Optional[JobResult] = None
    error: str = ""

    @property
    def log(self) -> str:
        lines = list(self.messages)
        if self.error and self.error not in lines:
            lines.append(self.error)
        return "\n".join(lines)

    @property
    def last_message(self) -> str:
        if self.error:
            return self.error
        return self.messages[-1] if self.messages else ""


# ---------------------------------------------------------------------------
# Desired configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LocalArchive:
    path: str


@dataclass(frozen=True)
class RemoteArchive:
    url: str


ArchiveSource = Union[LocalArchive, RemoteArchive]


@dataclass(frozen=True)
class DescriptorFiles:
    """Extension descriptors given as local file paths."""
    paths: Tuple[str, ...]


@dataclass(frozen=True)
class DescriptorContents:
    """Extension descriptors given inline; staged to temporary files for upload."""
    contents: Tuple[str, ...]


ExtensionDescriptors = Union[DescriptorFiles, DescriptorContents]


class DeployStrategy(str, Enum):
    DEPLOY = "deploy"
    BLUE_GREEN = "blue-green-deploy"

    @property
    def process_type(self) -> ProcessType:
        if self is DeployStrategy.BLUE_GREEN:
            return ProcessType.BLUE_GREEN_DEPLOY
        return ProcessType.DEPLOY


class VersionRule(str, Enum):
    HIGHER = "HIGHER"
    SAME_HIGHER = "SAME_HIGHER"
    ALL = "ALL"


def _parse_enum(enum_cls, value: Any, attribute: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(
            f"Invalid {attribute}",
            f"'{value}' is not one of: {allowed}",
        )


def _string_set(value: Any, attribute: str) -> Tuple[str, ...]:
    """Normalize a set-typed attribute: non-empty, de-duplicated, order kept."""
    if isinstance(value, str):
        value = [value]
    items = tuple(dict.fromkeys(str(v) for v in value))
    if not items:
        raise ValidationError(
            f"Invalid {attribute}",
            f"Attribute {attribute} set must contain at least 1 element",
        )
    return items


@dataclass(frozen=True)
class DesiredState:
    """
    Declared configuration of one MTA resource.

    Attributes:
        space: GUID of the target space
        archive: Local archive path or remote archive URL
        namespace: Optional MTA namespace
        extension_descriptors: Descriptor paths or inline contents, or None
        strategy: Normal or blue-green deploy
        version_rule: Optional version rule for the deploy operation
        modules: Subset of modules to deploy; empty means all
        deploy_url: Deploy-service URL override
        source_code_hash: Opaque hash used only to detect archive changes
    """
    space: str
    archive: ArchiveSource
    namespace: Optional[str] = None
    extension_descriptors: Optional[ExtensionDescriptors] = None
    strategy: DeployStrategy = DeployStrategy.DEPLOY
    version_rule: Optional[VersionRule] = None
    modules: Tuple[str, ...] = ()
    deploy_url: Optional[str] = None
    source_code_hash: Optional[str] = None

    @classmethod
    def from_attributes(cls, attributes: Dict[str, Any]) -> "DesiredState":
        """
        Build from flat resource attributes (mtar_path, mtar_url, space, ...).

        Only presence and format are checked here; the archive and
        descriptor files are checked when they are uploaded.

        Raises:
            ValidationError: On malformed values or conflicting attributes
        """
        attrs = {k: v for k, v in attributes.items() if v is not None}

        space = InputSanitizer.sanitize_space_guid(attrs.get("space", ""))

        has_path = "mtar_path" in attrs
        has_url = "mtar_url" in attrs
        if has_path == has_url:
            raise ValidationError(
                "Invalid Attribute Combination",
                "Exactly one of these attributes must be configured: [mtar_path, mtar_url]",
            )
        if has_path:
            if not attrs["mtar_path"]:
                raise ValidationError("Invalid mtar_path", "Path cannot be empty")
            archive: ArchiveSource = LocalArchive(path=str(attrs["mtar_path"]))
        else:
            archive = RemoteArchive(url=InputSanitizer.sanitize_url(str(attrs["mtar_url"])))

        if "extension_descriptors" in attrs and "extension_descriptors_string" in attrs:
            raise ValidationError(
                "Invalid Attribute Combination",
                "Attribute extension_descriptors cannot be specified when "
                "extension_descriptors_string is specified",
            )
        descriptors: Optional[ExtensionDescriptors] = None
        if "extension_descriptors" in attrs:
            descriptors = DescriptorFiles(
                paths=_string_set(attrs["extension_descriptors"], "extension_descriptors")
            )
        elif "extension_descriptors_string" in attrs:
            descriptors = DescriptorContents(
                contents=_string_set(
                    attrs["extension_descriptors_string"], "extension_descriptors_string"
                )
            )

        strategy = _parse_enum(
            DeployStrategy, attrs.get("deploy_strategy", "deploy"), "deploy_strategy"
        )
        version_rule = None
        if "version_rule" in attrs:
            version_rule = _parse_enum(VersionRule, attrs["version_rule"], "version_rule")

        modules: Tuple[str, ...] = ()
        if "modules" in attrs:
            modules = _string_set(attrs["modules"], "modules")

        deploy_url = None
        if attrs.get("deploy_url"):
            deploy_url = InputSanitizer.sanitize_url(str(attrs["deploy_url"]))

        return cls(
            space=space,
            archive=archive,
            namespace=InputSanitizer.sanitize_namespace(attrs.get("namespace")),
            extension_descriptors=descriptors,
            strategy=strategy,
            version_rule=version_rule,
            modules=modules,
            deploy_url=deploy_url,
            source_code_hash=attrs.get("source_code_hash") or None,
        )

    def requires_replacement(self, prior_space: str, prior_namespace: Optional[str]) -> bool:
        """
        Whether moving from the prior space/namespace needs destroy-then-create.

        A space change always does; a namespace change does only when a
        namespace is configured now.
        """
        if self.space != prior_space:
            return True
        return self.namespace is not None and self.namespace != prior_namespace


# ---------------------------------------------------------------------------
# Resource identity and state
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ResourceId:
    """Resource identifier formatted as spaceId/mtaId[/namespace]."""
    space: str
    mta_id: str
    namespace: Optional[str] = None

    SEPARATOR = "/"

    @classmethod
    def parse(cls, import_id: str) -> "ResourceId":
        """
        Parse an import identifier.

        Raises:
            ValidationError: Unless the id has 2 or 3 non-empty segments
        """
        parts = (import_id or "").split(cls.SEPARATOR)
        if len(parts) not in (2, 3) or not all(parts):
            raise ValidationError(
                "Resource Import ID of Invalid format",
                "The format for import ID should be of [space_guid]/[mta_id] OR "
                "[space_guid]/[mta_id]/[namespace]",
            )
        namespace = parts[2] if len(parts) == 3 else None
        return cls(space=parts[0], mta_id=parts[1], namespace=namespace)

    def __str__(self) -> str:
        parts = [self.space, self.mta_id]
        if self.namespace:
            parts.append(self.namespace)
        return self.SEPARATOR.join(parts)


@dataclass(frozen=True)
class ResourceState:
    """
    Committed state of one MTA resource after a successful pass.

    `desired` is None for a freshly imported resource.
    """
    id: str
    space: str
    namespace: Optional[str] = None
    observed: Optional[Mta] = None
    desired: Optional[DesiredState] = None
    deploy_url: Optional[str] = None

    @property
    def resource_id(self) -> str:
        return str(ResourceId(self.space, self.id, self.namespace))


@dataclass(frozen=True)
class DataSourceQuery:
    """Lookup of an existing MTA by id, as declared in a data block."""
    space: str
    mta_id: str
    namespace: Optional[str] = None
    deploy_url: Optional[str] = None

    @classmethod
    def from_attributes(cls, attributes: Dict[str, Any]) -> "DataSourceQuery":
        deploy_url = attributes.get("deploy_url")
        return cls(
            space=InputSanitizer.sanitize_space_guid(attributes.get("space") or ""),
            mta_id=InputSanitizer.sanitize_mta_id(attributes.get("id") or ""),
            namespace=InputSanitizer.sanitize_namespace(attributes.get("namespace")),
            deploy_url=InputSanitizer.sanitize_url(deploy_url) if deploy_url else None,
        )
