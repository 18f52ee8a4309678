"""Tests for the data model: identifiers, desired state and API projections."""

import pytest

from cfmta.core.models import (
    DataSourceQuery,
    DescriptorContents,
    DescriptorFiles,
    DeployStrategy,
    DesiredState,
    JobSnapshot,
    JobStatus,
    LocalArchive,
    Mta,
    Operation,
    OperationInfo,
    ProcessType,
    RemoteArchive,
    ResourceId,
    ResourceState,
    VersionRule,
)
from cfmta.errors import ValidationError

from conftest import SPACE


def _attrs(**overrides):
    attributes = {"space": SPACE, "mtar_path": "/work/shop.mtar"}
    attributes.update(overrides)
    return attributes


# ---------------------------------------------------------------------------
# Resource identifiers
# ---------------------------------------------------------------------------

class TestResourceId:
    def test_two_segments(self):
        rid = ResourceId.parse("space-123/mta-abc")
        assert (rid.space, rid.mta_id, rid.namespace) == ("space-123", "mta-abc", None)

    def test_three_segments(self):
        rid = ResourceId.parse("space-123/mta-abc/ns1")
        assert rid.namespace == "ns1"

    @pytest.mark.parametrize("bad", ["a", "a/b/c/d", "", "a//c", "/b", "a/"])
    def test_invalid_formats(self, bad):
        with pytest.raises(ValidationError) as excinfo:
            ResourceId.parse(bad)
        assert excinfo.value.title == "Resource Import ID of Invalid format"

    def test_str_round_trip(self):
        assert str(ResourceId.parse("s/m/n")) == "s/m/n"
        assert str(ResourceId("s", "m")) == "s/m"

    def test_resource_state_id(self):
        state = ResourceState(id="com.example.shop", space=SPACE, namespace="blue")
        assert state.resource_id == f"{SPACE}/com.example.shop/blue"


# ---------------------------------------------------------------------------
# Desired state
# ---------------------------------------------------------------------------

class TestDesiredState:
    def test_defaults(self):
        desired = DesiredState.from_attributes(_attrs())

        assert desired.archive == LocalArchive("/work/shop.mtar")
        assert desired.strategy is DeployStrategy.DEPLOY
        assert desired.version_rule is None
        assert desired.modules == ()
        assert desired.extension_descriptors is None
        assert desired.namespace is None

    def test_remote_archive(self):
        desired = DesiredState.from_attributes(
            {"space": SPACE, "mtar_url": "https://artifacts.example.com/shop.mtar"}
        )
        assert isinstance(desired.archive, RemoteArchive)

    def test_path_and_url_are_exclusive(self):
        with pytest.raises(ValidationError):
            DesiredState.from_attributes(_attrs(mtar_url="https://artifacts.example.com/a.mtar"))

    def test_one_archive_source_is_required(self):
        with pytest.raises(ValidationError):
            DesiredState.from_attributes({"space": SPACE})

    def test_null_attributes_count_as_unset(self):
        desired = DesiredState.from_attributes(_attrs(mtar_url=None, namespace=None))
        assert isinstance(desired.archive, LocalArchive)

    def test_descriptor_forms_are_exclusive(self):
        with pytest.raises(ValidationError):
            DesiredState.from_attributes(
                _attrs(extension_descriptors=["a.mtaext"], extension_descriptors_string=["ID: a"])
            )

    def test_descriptor_paths(self):
        desired = DesiredState.from_attributes(_attrs(extension_descriptors=["a.mtaext", "b.mtaext"]))
        assert desired.extension_descriptors == DescriptorFiles(("a.mtaext", "b.mtaext"))

    def test_descriptor_contents(self):
        desired = DesiredState.from_attributes(_attrs(extension_descriptors_string=["ID: a"]))
        assert desired.extension_descriptors == DescriptorContents(("ID: a",))

    def test_empty_sets_are_rejected(self):
        with pytest.raises(ValidationError):
            DesiredState.from_attributes(_attrs(modules=[]))
        with pytest.raises(ValidationError):
            DesiredState.from_attributes(_attrs(extension_descriptors=[]))

    def test_modules_are_deduplicated(self):
        desired = DesiredState.from_attributes(_attrs(modules=["web", "srv", "web"]))
        assert desired.modules == ("web", "srv")

    def test_enums(self):
        desired = DesiredState.from_attributes(
            _attrs(deploy_strategy="blue-green-deploy", version_rule="SAME_HIGHER")
        )
        assert desired.strategy is DeployStrategy.BLUE_GREEN
        assert desired.strategy.process_type is ProcessType.BLUE_GREEN_DEPLOY
        assert desired.version_rule is VersionRule.SAME_HIGHER

    @pytest.mark.parametrize(
        "overrides",
        [
            {"deploy_strategy": "rolling"},
            {"version_rule": "LOWER"},
            {"space": "not-a-guid"},
            {"namespace": "has space"},
            {"deploy_url": "deploy-service.example.com"},
        ],
    )
    def test_invalid_values(self, overrides):
        with pytest.raises(ValidationError):
            DesiredState.from_attributes(_attrs(**overrides))


class TestRequiresReplacement:
    def test_same_space_and_namespace(self):
        desired = DesiredState.from_attributes(_attrs(namespace="blue"))
        assert not desired.requires_replacement(SPACE, "blue")

    def test_space_change(self):
        desired = DesiredState.from_attributes(_attrs())
        assert desired.requires_replacement("11111111-2222-3333-4444-555555555555", None)

    def test_namespace_change(self):
        desired = DesiredState.from_attributes(_attrs(namespace="green"))
        assert desired.requires_replacement(SPACE, "blue")

    def test_dropping_namespace_keeps_resource(self):
        desired = DesiredState.from_attributes(_attrs())
        assert not desired.requires_replacement(SPACE, "blue")


# ---------------------------------------------------------------------------
# API projections
# ---------------------------------------------------------------------------

class TestProjections:
    def test_mta_from_dict(self):
        mta = Mta.from_dict({
            "metadata": {"id": "com.example.shop", "version": "1.2.0", "namespace": "blue"},
            "modules": [{
                "moduleName": "web",
                "appName": "blue-web",
                "createdOn": "2024-03-01",
                "updatedOn": "2024-03-02",
                "providedDendencyNames": ["web_api"],
                "services": ["db"],
                "uris": ["blue-web.cfapps.example.com"],
            }],
            "services": ["db", "xsuaa"],
        })

        assert mta.id == "com.example.shop"
        assert mta.metadata.namespace == "blue"
        assert mta.modules[0].provided_dependency_names == ("web_api",)
        assert mta.modules[0].uris == ("blue-web.cfapps.example.com",)
        assert mta.services == ("db", "xsuaa")

    def test_mta_from_sparse_dict(self):
        mta = Mta.from_dict({"metadata": {"id": "x"}, "modules": None})
        assert mta.modules == ()
        assert mta.metadata.version == ""

    def test_operation_payload(self):
        op = Operation(ProcessType.UNDEPLOY, namespace="blue", parameters={"mtaId": "m"})
        assert op.to_payload() == {
            "processType": "UNDEPLOY",
            "parameters": {"mtaId": "m"},
            "namespace": "blue",
        }
        assert "namespace" not in Operation(ProcessType.DEPLOY).to_payload()

    def test_operation_info(self):
        info = OperationInfo.from_dict(
            {"processId": "p1", "processType": "DEPLOY", "state": "running", "mtaId": "m"}
        )
        assert info.state is JobStatus.RUNNING
        assert info.is_active

        # failed operations keep the MTA locked until aborted
        for state in ("ERROR", "ACTION_REQUIRED"):
            assert OperationInfo.from_dict({"processId": "p3", "state": state}).is_active
        for state in ("FINISHED", "ABORTED"):
            assert not OperationInfo.from_dict({"processId": "p4", "state": state}).is_active

        unknown = OperationInfo.from_dict({"processId": "p2", "state": "SLEEPING"})
        assert unknown.state is None
        assert not unknown.is_active

    def test_job_status(self):
        assert JobStatus.parse("finished") is JobStatus.FINISHED
        assert not JobStatus.QUEUED.is_terminal
        assert JobStatus.ACTION_REQUIRED.is_terminal
        with pytest.raises(ValueError):
            JobStatus.parse("DONE")

    def test_snapshot_log_appends_error(self):
        snapshot = JobSnapshot("j", JobStatus.ERROR, messages=("a", "b"), error="boom")
        assert snapshot.log == "a\nb\nboom"
        assert snapshot.last_message == "boom"


class TestDataSourceQuery:
    def test_from_attributes(self):
        query = DataSourceQuery.from_attributes({"space": SPACE, "id": "com.example.shop"})
        assert query.mta_id == "com.example.shop"
        assert query.namespace is None

    def test_id_required(self):
        with pytest.raises(ValidationError):
            DataSourceQuery.from_attributes({"space": SPACE})
