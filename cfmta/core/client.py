"""
REST clients for the MTA deploy-service and the Cloud Controller.

Thin wrappers over requests: each method maps to one endpoint and
decodes the response into the data model. Authentication is supplied
by the caller as a prepared requests.Session or a bearer token.
"""

import logging
import os
from typing import Any, Dict, List, Optional, Tuple, Union
from urllib.parse import urlparse, urlunparse

import requests

from ..errors import ApiError, NotFoundError
from ..security.secure_memory import OutputRedactor, SecureString
from .models import (
    JobSnapshot,
    JobStatus,
    Mta,
    Operation,
    OperationInfo,
    OperationJobResult,
    UploadedFile,
    UploadJobResult,
)

logger = logging.getLogger(__name__)

MTA_NOT_FOUND = "MTA not found"


def derive_deploy_url(api_url: str) -> str:
    """
    Derive the default deploy-service URL from the Cloud Controller URL.

    The first host label is replaced with "deploy-service":
    https://api.cf.example.com -> https://deploy-service.cf.example.com

    Raises:
        ValueError: If the URL has no multi-label host
    """
    parsed = urlparse(api_url)
    host = parsed.hostname or ""
    labels = host.split(".", 1)
    if len(labels) != 2 or not labels[1]:
        raise ValueError(f"Cannot derive deploy-service URL from '{api_url}'")

    netloc = f"deploy-service.{labels[1]}"
    if parsed.port:
        netloc = f"{netloc}:{parsed.port}"
    return urlunparse((parsed.scheme, netloc, parsed.path.rstrip("/"), "", "", ""))


def _job_id_from_location(location: Optional[str]) -> str:
    """Last path segment of a Location header, e.g. .../operations/<id>."""
    if not location:
        return ""
    path = urlparse(location).path
    return path.rstrip("/").rsplit("/", 1)[-1]


class _RestClient:
    """Shared request handling: auth header, timeouts and error mapping."""

    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        token: Optional[Union[str, SecureString]] = None,
        timeout: float = 60,
        verify: bool = True,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session if session is not None else requests.Session()
        token = SecureString.coerce(token)
        self._token: Optional[SecureString] = token
        self.timeout = timeout
        self.verify = verify
        self.redactor = OutputRedactor([token] if token is not None else [])

    @property
    def token(self) -> Optional[SecureString]:
        return self._token

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token is not None:
            headers["Authorization"] = self._token.bearer()
        if extra:
            headers.update(extra)
        return headers

    def _request(
        self,
        method: str,
        url: str,
        title: str,
        headers: Optional[Dict[str, str]] = None,
        **kwargs,
    ) -> requests.Response:
        """
        Perform a request and map failures onto ApiError.

        Raises:
            NotFoundError: On HTTP 404
            ApiError: On transport errors and any other non-2xx status
        """
        kwargs.setdefault("timeout", self.timeout)
        kwargs.setdefault("verify", self.verify)
        logger.debug(f"{method} {url}")

        try:
            response = self.session.request(method, url, headers=self._headers(headers), **kwargs)
        except requests.RequestException as e:
            raise ApiError(title, self.redactor.redact(f"Request failed with {e}")) from e

        if response.status_code == 404:
            raise NotFoundError(
                title,
                self.redactor.redact(self._error_text(response)),
                status_code=404,
            )
        if not response.ok:
            raise ApiError(
                title,
                self.redactor.redact(
                    f"Request failed with status {response.status_code}: "
                    f"{self._error_text(response)}"
                ),
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _error_text(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text
        if isinstance(body, dict):
            for key in ("description", "message", "error", "errors"):
                if body.get(key):
                    return str(body[key])
        return response.text

    @staticmethod
    def _json(response: requests.Response, title: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise ApiError(title, f"Invalid JSON in response: {e}") from e

    @classmethod
    def _json_object(cls, response: requests.Response, title: str) -> Dict[str, Any]:
        body = cls._json(response, title)
        if not isinstance(body, dict):
            raise ApiError(title, "Unexpected response body")
        return body

    @classmethod
    def _json_list(cls, response: requests.Response, title: str) -> List[Dict[str, Any]]:
        body = cls._json(response, title)
        if body is None:
            return []
        if not isinstance(body, list) or not all(isinstance(item, dict) for item in body):
            raise ApiError(title, "Unexpected response body")
        return body


class DeployServiceClient(_RestClient):
    """
    Client for the MTA deploy-service REST API.

    All endpoints are scoped to a space under /api/v1/spaces/{space}.
    """

    API_PREFIX = "/api/v1/spaces"
    APP_INSTANCE_HEADER = "x-cf-app-instance"

    def __init__(self, base_url: str, upload_timeout: float = 600, **kwargs):
        super().__init__(base_url, **kwargs)
        self.upload_timeout = upload_timeout

    @classmethod
    def from_settings(
        cls,
        settings,
        session: Optional[requests.Session] = None,
        token: Optional[Union[str, SecureString]] = None,
        deploy_url: Optional[str] = None,
    ) -> "DeployServiceClient":
        """Build a client from Settings; `deploy_url` overrides the configured URL."""
        return cls(
            settings.resolve_deploy_url(deploy_url),
            session=session,
            token=token,
            timeout=settings.http_timeout,
            upload_timeout=settings.upload_timeout,
            verify=bool(settings.get("http.verify_ssl", True)),
        )

    def with_base_url(self, base_url: str) -> "DeployServiceClient":
        """Return a client for another deploy-service sharing session and credentials."""
        return DeployServiceClient(
            base_url,
            upload_timeout=self.upload_timeout,
            session=self.session,
            token=self.token,
            timeout=self.timeout,
            verify=self.verify,
        )

    def _url(self, space: str, *parts: str) -> str:
        return "/".join([self.base_url + self.API_PREFIX, space] + list(parts))

    @staticmethod
    def _namespace_params(namespace: Optional[str]) -> Dict[str, str]:
        return {"namespace": namespace} if namespace else {}

    # -- files -------------------------------------------------------------

    def upload_file(self, space: str, file_path: str, namespace: Optional[str] = None) -> UploadedFile:
        """
        Upload a local archive or extension descriptor.

        Raises:
            ApiError: If the request fails
            OSError: If the file cannot be opened
        """
        title = "Unable to upload file"
        with open(file_path, "rb") as f:
            response = self._request(
                "POST",
                self._url(space, "files"),
                title,
                params=self._namespace_params(namespace),
                files={"file": (os.path.basename(file_path), f, "application/octet-stream")},
                timeout=self.upload_timeout,
            )
        return UploadedFile.from_dict(self._json_object(response, title))

    def upload_file_from_url(
        self, space: str, file_url: str, namespace: Optional[str] = None
    ) -> Tuple[str, Optional[str]]:
        """
        Ask the deploy-service to fetch an archive from a URL.

        Returns:
            (job_id, app_instance) where app_instance routes later polls
            to the backend instance that owns the job
        """
        title = "Unable to upload file from URL"
        response = self._request(
            "POST",
            self._url(space, "files", "async"),
            title,
            params=self._namespace_params(namespace),
            json={"file_url": file_url},
        )
        job_id = _job_id_from_location(response.headers.get("Location"))
        if not job_id:
            raise ApiError(title, "Response carries no job location")
        return job_id, response.headers.get(self.APP_INSTANCE_HEADER)

    def get_upload_job(
        self,
        space: str,
        job_id: str,
        namespace: Optional[str] = None,
        app_instance: Optional[str] = None,
    ) -> JobSnapshot:
        title = "Unable to fetch upload job"
        headers = {self.APP_INSTANCE_HEADER: app_instance} if app_instance else None
        response = self._request(
            "GET",
            self._url(space, "files", "jobs", job_id),
            title,
            headers=headers,
            params=self._namespace_params(namespace),
        )
        body = self._json_object(response, title)
        file_data = body.get("file")
        return JobSnapshot(
            job_id=job_id,
            status=self._parse_status(body.get("status"), title),
            result=UploadJobResult(
                mta_id=body.get("mta_id") or "",
                file=UploadedFile.from_dict(file_data) if isinstance(file_data, dict) else None,
            ),
            error=body.get("error") or "",
        )

    # -- operations --------------------------------------------------------

    def start_operation(self, space: str, operation: Operation) -> str:
        """Start an operation and return its id."""
        title = f"Unable to start MTA {operation.process_type.value} operation"
        response = self._request(
            "POST",
            self._url(space, "operations"),
            title,
            json=operation.to_payload(),
        )
        operation_id = _job_id_from_location(response.headers.get("Location"))
        if not operation_id:
            raise ApiError(title, "Response carries no operation location")
        return operation_id

    def get_operation(self, space: str, operation_id: str) -> JobSnapshot:
        title = "Unable to fetch MTA operation"
        response = self._request(
            "GET",
            self._url(space, "operations", operation_id),
            title,
            params={"embed": "messages"},
        )
        body = self._json_object(response, title)
        messages = tuple(
            m["text"]
            for m in body.get("messages") or ()
            if isinstance(m, dict) and m.get("text")
        )
        return JobSnapshot(
            job_id=operation_id,
            status=self._parse_status(body.get("state"), title),
            messages=messages,
            result=OperationJobResult(
                operation_id=body.get("processId") or operation_id,
                process_type=body.get("processType") or "",
                mta_id=body.get("mtaId") or "",
            ),
        )

    def list_operations(self, space: str, mta_id: str) -> List[OperationInfo]:
        title = "Unable to list MTA operations"
        response = self._request(
            "GET",
            self._url(space, "operations"),
            title,
            params={"mtaId": mta_id},
        )
        return [OperationInfo.from_dict(item) for item in self._json_list(response, title)]

    def abort_operation(self, space: str, operation_id: str) -> None:
        self._request(
            "POST",
            self._url(space, "operations", operation_id),
            "Unable to abort MTA operation",
            params={"actionId": "abort"},
        )

    # -- mtas --------------------------------------------------------------

    def get_mta(self, space: str, mta_id: str, namespace: Optional[str] = None) -> Mta:
        """
        Fetch the deployed MTA descriptor.

        Raises:
            NotFoundError: If no such MTA is deployed in the space
        """
        title = "Unable to fetch MTA details"
        try:
            response = self._request(
                "GET",
                self._url(space, "mtas", mta_id),
                title,
                params=self._namespace_params(namespace),
            )
        except NotFoundError as e:
            raise NotFoundError(title, f"{MTA_NOT_FOUND}: {mta_id}", status_code=404) from e
        return Mta.from_dict(self._json_object(response, title))

    @staticmethod
    def _parse_status(value: Optional[str], title: str) -> JobStatus:
        try:
            return JobStatus.parse(value or "")
        except ValueError:
            raise ApiError(title, f"Unexpected job status '{value}'")


class CloudControllerClient(_RestClient):
    """Minimal Cloud Controller v3 client used to confirm a space exists."""

    def get_space(self, space_guid: str) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: If the space does not exist or is not visible
        """
        title = "Unable to fetch Space details"
        response = self._request("GET", f"{self.base_url}/v3/spaces/{space_guid}", title)
        return self._json(response, title)
