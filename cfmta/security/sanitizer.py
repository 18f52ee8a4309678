"""
Input validation for cfmta.

Every check here runs before any network call is made, so malformed
configuration fails locally:
- Space GUIDs must be UUIDs
- Namespaces must be valid host labels
- Archive paths must point to existing files
- Archive and deploy-service URLs must be absolute http(s) URLs
"""

import os
import re
from typing import Optional
from urllib.parse import urlparse

from ..errors import ValidationError


class InputSanitizer:
    """
    Provides input validation and normalization methods.

    All methods raise ValidationError if validation fails.
    """

    UUID_PATTERN = re.compile(
        r'^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$'
    )

    # Single DNS label: the deploy-service appends the namespace to app hosts
    NAMESPACE_PATTERN = re.compile(r'^[a-zA-Z0-9]([a-zA-Z0-9-]*[a-zA-Z0-9])?$')

    MAX_NAMESPACE_LENGTH = 63
    MAX_MTA_ID_LENGTH = 128

    ALLOWED_URL_SCHEMES = ("http", "https")

    @staticmethod
    def sanitize_space_guid(space: str) -> str:
        """
        Validate a Cloud Foundry space GUID.

        Args:
            space: Space GUID to validate

        Returns:
            The GUID, lower-cased

        Raises:
            ValidationError: If the value is not a UUID
        """
        if not space:
            raise ValidationError("Invalid space", "Space GUID cannot be empty")

        if not InputSanitizer.UUID_PATTERN.match(space):
            raise ValidationError("Invalid space", f"'{space}' is not a valid UUID")

        return space.lower()

    @staticmethod
    def sanitize_namespace(namespace: Optional[str]) -> Optional[str]:
        """
        Validate an MTA namespace.

        Empty strings are treated as "no namespace" and returned as None.

        Raises:
            ValidationError: If the namespace is not a valid host label
        """
        if namespace is None or namespace == "":
            return None

        if len(namespace) > InputSanitizer.MAX_NAMESPACE_LENGTH:
            raise ValidationError(
                "Invalid namespace",
                f"Namespace too long (max {InputSanitizer.MAX_NAMESPACE_LENGTH})",
            )

        if not InputSanitizer.NAMESPACE_PATTERN.match(namespace):
            raise ValidationError(
                "Invalid namespace",
                f"'{namespace}' should be of valid host format: letters, digits and "
                "inner hyphens only",
            )

        return namespace

    @staticmethod
    def sanitize_mta_id(mta_id: str) -> str:
        """
        Validate an MTA id used in a resource identifier.

        Raises:
            ValidationError: If empty, too long or containing '/'
        """
        if not mta_id:
            raise ValidationError("Invalid MTA ID", "MTA ID cannot be empty")

        if len(mta_id) > InputSanitizer.MAX_MTA_ID_LENGTH:
            raise ValidationError(
                "Invalid MTA ID",
                f"MTA ID too long (max {InputSanitizer.MAX_MTA_ID_LENGTH})",
            )

        if "/" in mta_id:
            raise ValidationError("Invalid MTA ID", f"'{mta_id}' must not contain '/'")

        return mta_id

    @staticmethod
    def sanitize_archive_path(path: str) -> str:
        """
        Validate and normalize a local file path.

        Args:
            path: Path to an archive or extension descriptor

        Returns:
            Normalized absolute path

        Raises:
            ValidationError: If the path is empty, missing, or not a file
        """
        if not path:
            raise ValidationError("Invalid file path", "Path cannot be empty")

        try:
            abs_path = os.path.realpath(os.path.expanduser(path))
        except (OSError, ValueError) as e:
            raise ValidationError("Invalid file path", f"{path}: {e}")

        if not os.path.exists(abs_path):
            raise ValidationError("Invalid file path", f"Path does not exist: {path}")

        if not os.path.isfile(abs_path):
            raise ValidationError("Invalid file path", f"Path is not a file: {path}")

        return abs_path

    @staticmethod
    def sanitize_url(url: str) -> str:
        """
        Validate an absolute http(s) URL.

        Raises:
            ValidationError: If the URL has no host or an unsupported scheme
        """
        if not url:
            raise ValidationError("Invalid URL", "URL cannot be empty")

        parsed = urlparse(url)
        if parsed.scheme not in InputSanitizer.ALLOWED_URL_SCHEMES or not parsed.netloc:
            raise ValidationError(
                "Invalid URL",
                f"'{url}' must be an absolute http or https URL",
            )

        return url
