"""
Validation and file helpers for MTA archives.
"""

import hashlib
import zipfile
from pathlib import Path
from typing import Optional, Tuple

DEPLOYMENT_DESCRIPTOR = "META-INF/mtad.yaml"


def validate_archive_file(archive_path: str) -> Tuple[bool, Optional[str]]:
    """
    Check that a file looks like an MTA archive.

    A valid archive is a zip file containing META-INF/mtad.yaml.

    Args:
        archive_path: Path to the .mtar file

    Returns:
        Tuple of (is_valid, error_message)
        If valid, error_message is None
    """
    path = Path(archive_path)

    if not path.is_file():
        return False, f"Archive not found: {archive_path}"

    if not zipfile.is_zipfile(path):
        return False, f"Not a zip archive: {archive_path}"

    try:
        with zipfile.ZipFile(path) as archive:
            if DEPLOYMENT_DESCRIPTOR not in archive.namelist():
                return False, f"{DEPLOYMENT_DESCRIPTOR} missing in {path.name}"
    except (zipfile.BadZipFile, OSError) as e:
        return False, f"Unreadable archive {path.name}: {e}"

    return True, None


def file_sha256(file_path: str, chunk_size: int = 1024 * 1024) -> str:
    """Return the hex SHA-256 digest of a file, read in chunks."""
    digest = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()
