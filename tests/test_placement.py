"""Tests for placement legality checks."""

from __future__ import annotations

import pytest

from beaconnet.models import Node
from beaconnet.placement import PlacementValidator


@pytest.fixture
def validator():
    return PlacementValidator(bounds=(-500, -500, 500, 500), nodes=[Node(id="a", x=0.0, y=0.0)])


class TestPlacementValidator:
    def test_open_field(self):
        assert PlacementValidator().is_valid_position((1e6, -1e6), "pioneer").valid

    def test_valid_position(self, validator):
        check = validator.is_valid_position((100.0, 0.0), "pioneer")
        assert check.valid
        assert check.reasons == ()

    def test_outside_bounds(self, validator):
        check = validator.is_valid_position((600.0, 0.0), "pioneer")
        assert not check.valid
        assert any("bounds" in r for r in check.reasons)

    def test_too_close(self, validator):
        check = validator.is_valid_position((50.0, 0.0), "pioneer")
        assert not check.valid
        assert any("Too close" in r for r in check.reasons)

    def test_spacing_depends_on_type(self, validator):
        assert validator.is_valid_position((70.0, 0.0), "harvester").valid
        assert not validator.is_valid_position((70.0, 0.0), "architect").valid

    def test_unknown_type_has_no_spacing(self, validator):
        assert validator.is_valid_position((1.0, 0.0), "wanderer").valid

    def test_both_reasons(self):
        v = PlacementValidator(bounds=(0, 0, 10, 10), nodes=[Node(id="a", x=12.0, y=0.0)])
        check = v.is_valid_position((11.0, 0.0), "pioneer")
        assert len(check.reasons) == 2

    def test_bad_bounds(self):
        with pytest.raises(ValueError):
            PlacementValidator(bounds=(10, 0, 0, 10))
