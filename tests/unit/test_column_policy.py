"""
Column policy construction and policy/schema drift.
"""
import dataclasses

import pytest

from pawsitters.controllers import (
    AddressController,
    BookingController,
    BreedController,
    CertificationController,
    PetController,
    ReviewController,
    RoleController,
    SpeciesController,
    UserController,
)
from pawsitters.domain.column_policy import ColumnPolicy, ColumnPolicyError
from pawsitters.models import Pet, Role

CONTROLLERS = [
    RoleController,
    SpeciesController,
    BreedController,
    UserController,
    AddressController,
    CertificationController,
    PetController,
    BookingController,
    ReviewController,
]


class TestConstruction:

    def test_allowed_defaults_to_required_and_updatable(self):
        policy = ColumnPolicy.build(required=["name"], updatable=["size"])
        assert policy.allowed == {"name", "size"}

    def test_required_outside_allowed_fails(self):
        with pytest.raises(ColumnPolicyError, match="Required"):
            ColumnPolicy.build(required=["name", "size"], allowed=["name"])

    def test_updatable_outside_allowed_fails(self):
        with pytest.raises(ColumnPolicyError, match="Updatable"):
            ColumnPolicy(required={"name"}, updatable={"size"}, allowed={"name"})

    def test_sets_are_frozen(self):
        policy = ColumnPolicy.build(required=["name"])
        assert isinstance(policy.required, frozenset)
        with pytest.raises(dataclasses.FrozenInstanceError):
            policy.required = frozenset({"other"})

    def test_unique_may_name_any_column(self):
        policy = ColumnPolicy.build(required=["role"], unique=["role"])
        assert policy.unique == {"role"}

    def test_controller_policy_built_once(self):
        assert PetController.column_policy() is PetController.column_policy()


class TestFromMetadata:

    def test_role_policy_from_schema(self, registry):
        policy = ColumnPolicy.from_metadata(registry.get(Role), unique=["role"])
        assert policy.required == {"role"}
        assert policy.allowed == {"role"}
        assert policy.updatable == {"role"}

    def test_exclude_drops_columns(self, registry):
        policy = ColumnPolicy.from_metadata(registry.get(Pet), exclude=["user", "status"], updatable=["name"])
        assert "user" not in policy.allowed
        assert "status" not in policy.allowed
        assert "user" not in policy.required
        assert policy.updatable == {"name"}


class TestDrift:

    @pytest.mark.parametrize("controller", CONTROLLERS, ids=lambda c: c.__name__)
    def test_controllers_match_schema(self, controller, registry):
        metadata = registry.get(controller.model)
        assert controller.column_policy().drift(metadata, controller.ASSIGNED) == {"unknown": [], "uncovered": []}

    @pytest.mark.parametrize("controller", CONTROLLERS, ids=lambda c: c.__name__)
    def test_protected_columns_exist(self, controller, registry):
        metadata = registry.get(controller.model)
        assert all(metadata.is_known_column(name) for name in controller.PROTECTED)

    def test_drift_reports_unknown_and_uncovered(self, registry):
        policy = ColumnPolicy.build(required=["name", "nickname"])
        drift = policy.drift(registry.get(Pet))
        assert drift["unknown"] == ["nickname"]
        assert drift["uncovered"] == ["birthdate", "breed", "description", "gender", "size", "user"]
