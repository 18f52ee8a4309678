"""
Reading the deployment descriptor embedded in an MTA archive.

An .mtar file is a zip archive whose META-INF/mtad.yaml holds the MTA
id, version and (optionally) namespace. No network access is needed.
"""

import logging
import zipfile

import yaml

from ..errors import MtaIdMissingError
from ..utils.validators import DEPLOYMENT_DESCRIPTOR
from .models import MtaIdentity

logger = logging.getLogger(__name__)


def read_archive_descriptor(archive_path: str) -> MtaIdentity:
    """
    Extract the MTA identity from an archive's deployment descriptor.

    Args:
        archive_path: Local path of the .mtar file

    Returns:
        MtaIdentity taken from the descriptor's ID, version and namespace

    Raises:
        MtaIdMissingError: If the archive, descriptor or ID cannot be read
    """
    try:
        with zipfile.ZipFile(archive_path) as archive:
            with archive.open(DEPLOYMENT_DESCRIPTOR) as f:
                descriptor = yaml.safe_load(f)
    except KeyError:
        raise MtaIdMissingError(
            "MTA ID missing",
            f"Could not get MTA ID from deployment descriptor: "
            f"{DEPLOYMENT_DESCRIPTOR} not found in {archive_path}",
        )
    except (zipfile.BadZipFile, OSError) as e:
        raise MtaIdMissingError(
            "MTA ID missing",
            f"Could not get MTA ID from deployment descriptor: {e}",
        ) from e
    except yaml.YAMLError as e:
        raise MtaIdMissingError(
            "MTA ID missing",
            f"Could not get MTA ID from deployment descriptor: invalid YAML: {e}",
        ) from e

    if not isinstance(descriptor, dict) or not descriptor.get("ID"):
        raise MtaIdMissingError(
            "MTA ID missing",
            f"Could not get MTA ID from deployment descriptor in {archive_path}",
        )

    identity = MtaIdentity(
        id=str(descriptor["ID"]),
        version=str(descriptor.get("version") or ""),
        namespace=descriptor.get("namespace") or None,
    )
    logger.debug(f"Read descriptor of {archive_path}: {identity}")
    return identity
