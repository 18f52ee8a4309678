"""
Reading MTA resources and data sources from Terraform configuration.

Parses the .tf files of a project with python-hcl2 and turns each
`resource "cloudfoundry_mta"` block into a DesiredState and each
`data "cloudfoundry_mta"` block into a DataSourceQuery.
"""

import glob
import logging
import os
from typing import Any, Dict, List, Optional, Tuple

import hcl2

from ..errors import MtaError, ValidationError
from ..utils.validators import validate_archive_file
from .models import DataSourceQuery, DesiredState, LocalArchive

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "cloudfoundry_mta"


class ResourceConfigParser:
    """
    Parser for cloudfoundry_mta blocks in a Terraform project.

    Results are cached per parser instance.
    """

    def __init__(self, project_path: str):
        """
        Args:
            project_path: Path to Terraform project directory
        """
        self.project_path = project_path
        self._resources: Optional[Dict[str, DesiredState]] = None
        self._data_sources: Optional[Dict[str, DataSourceQuery]] = None

    def _tf_files(self) -> List[str]:
        return sorted(glob.glob(os.path.join(self.project_path, "*.tf")))

    def _load_blocks(self, block_kind: str) -> Dict[str, Dict[str, Any]]:
        """
        Collect the attributes of every cloudfoundry_mta block of one kind.

        Args:
            block_kind: "resource" or "data"

        Returns:
            Dict of block name to raw attributes
        """
        blocks: Dict[str, Dict[str, Any]] = {}
        tf_files = self._tf_files()

        if not tf_files:
            logger.warning(f"No .tf files found in {self.project_path}")
            return blocks

        for tf_file in tf_files:
            try:
                with open(tf_file, 'r', encoding='utf-8') as f:
                    parsed = hcl2.load(f)
            except Exception as e:
                raise ValidationError(
                    "Invalid Terraform configuration",
                    f"Syntax error in {os.path.basename(tf_file)}: {e}",
                ) from e

            for block in parsed.get(block_kind, []):
                for block_type, named in block.items():
                    # newer hcl2 releases keep the quotes on block labels
                    if self._unquote(block_type) != RESOURCE_TYPE:
                        continue
                    for name, config in named.items():
                        blocks[self._unquote(name)] = self._normalize(config)

        return blocks

    def parse_resources(self) -> Dict[str, DesiredState]:
        """
        Build a DesiredState for every cloudfoundry_mta resource.

        Raises:
            ValidationError: On syntax errors or invalid attributes; the
                detail names the offending resource
        """
        if self._resources is not None:
            return self._resources

        resources = {}
        for name, attributes in self._load_blocks("resource").items():
            try:
                resources[name] = DesiredState.from_attributes(attributes)
            except ValidationError as e:
                raise ValidationError(e.title, f"{RESOURCE_TYPE}.{name}: {e.detail}") from e

        logger.info(f"Parsed {len(resources)} {RESOURCE_TYPE} resource(s)")
        self._resources = resources
        return self._resources

    def parse_data_sources(self) -> Dict[str, DataSourceQuery]:
        """Build a DataSourceQuery for every cloudfoundry_mta data block."""
        if self._data_sources is not None:
            return self._data_sources

        data_sources = {}
        for name, attributes in self._load_blocks("data").items():
            try:
                data_sources[name] = DataSourceQuery.from_attributes(attributes)
            except ValidationError as e:
                raise ValidationError(e.title, f"data.{RESOURCE_TYPE}.{name}: {e.detail}") from e

        self._data_sources = data_sources
        return self._data_sources

    def validate(self) -> Tuple[bool, Optional[str]]:
        """
        Validate the configuration without touching the network.

        Local archives referenced by mtar_path must exist and contain a
        deployment descriptor.

        Returns:
            Tuple of (is_valid, error_message)
            If valid, error_message is None
        """
        if not self._tf_files():
            return False, "No .tf files found in project"

        try:
            resources = self.parse_resources()
            self.parse_data_sources()
        except MtaError as e:
            return False, str(e)

        for name, desired in resources.items():
            if isinstance(desired.archive, LocalArchive):
                path = desired.archive.path
                if not os.path.isabs(path):
                    path = os.path.join(self.project_path, path)
                is_valid, error = validate_archive_file(path)
                if not is_valid:
                    return False, f"{RESOURCE_TYPE}.{name}: {error}"

        return True, None

    @classmethod
    def _normalize(cls, config: Dict[str, Any]) -> Dict[str, Any]:
        """Flatten hcl2 output into plain attribute values."""
        attributes = {}
        for key, value in config.items():
            if key.startswith("__"):
                # hcl2 block metadata such as __start_line__
                continue
            attributes[key] = cls._clean(cls._unwrap(value))
        return attributes

    @staticmethod
    def _unwrap(value: Any) -> Any:
        """Unwrap a scalar that hcl2 wrapped in a single-element list."""
        if isinstance(value, list) and len(value) == 1 and not isinstance(value[0], str):
            return value[0]
        return value

    @classmethod
    def _clean(cls, value: Any) -> Any:
        if isinstance(value, str):
            return cls._unquote(value)
        if isinstance(value, list):
            return [cls._clean(v) for v in value]
        return value

    @staticmethod
    def _unquote(value: str) -> str:
        """Strip the surrounding quotes some hcl2 versions keep on strings."""
        if len(value) >= 2 and value[0] == value[-1] == '"':
            return value[1:-1]
        return value
