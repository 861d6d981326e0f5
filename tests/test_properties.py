"""
Tests for run-scoped property overrides.
"""

import pytest

from models.geometry import Length, LengthUnit, Location
from pipeline.errors import TypeMismatchError
from pipeline.properties import (
    PropertyOverride,
    PropertyResolver,
    ValueType,
    normalize_overrides,
    property_key,
    split_property_key,
)

NUMBER_OR_LENGTH = (ValueType.NUMBER, ValueType.LENGTH)


@pytest.fixture
def resolver():
    """Resolver calibrated at 0.1 mm per pixel."""
    return PropertyResolver(Location(0.1, 0.1, 0.0))


class TestPropertyKeys:
    def test_property_key(self):
        assert property_key("BlurGaussian", "kernel_size") == "BlurGaussian.kernel_size"

    def test_split_uses_last_dot(self):
        assert split_property_key("fiducial.blur.kernel_size") == ("fiducial.blur", "kernel_size")

    def test_split_rejects_undotted(self):
        with pytest.raises(ValueError):
            split_property_key("kernel_size")


class TestPropertyOverride:
    def test_number(self):
        override = PropertyOverride.of("a.b", 7)
        assert override.value_type is ValueType.NUMBER
        assert override.value == 7

    def test_bool_is_not_a_number(self):
        assert PropertyOverride.of("a.b", True).value_type is ValueType.BOOLEAN

    def test_length_object(self):
        override = PropertyOverride.of("a.b", Length(0.5))
        assert override.value_type is ValueType.LENGTH

    def test_strings_are_inferred(self):
        assert PropertyOverride.of("a.b", "7").value_type is ValueType.NUMBER
        assert PropertyOverride.of("a.b", "0.5mm").value == Length(0.5, LengthUnit.MILLIMETERS)
        assert PropertyOverride.of("a.b", "false").value is False
        assert PropertyOverride.of("a.b", "hello").value_type is ValueType.TEXT

    def test_unsupported_value(self):
        with pytest.raises(TypeError):
            PropertyOverride.of("a.b", object())

    def test_parse_assignment(self):
        override = PropertyOverride.parse("BlurGaussian.kernel_size = 0.5mm")
        assert override.property_name == "BlurGaussian.kernel_size"
        assert override.value_type is ValueType.LENGTH

    def test_parse_requires_equals(self):
        with pytest.raises(ValueError):
            PropertyOverride.parse("BlurGaussian.kernel_size")

    def test_parse_requires_dotted_key(self):
        with pytest.raises(ValueError):
            PropertyOverride.parse("kernel_size=3")

    def test_normalize_overrides(self):
        table = normalize_overrides({"a.b": 3, "c.d": "1mm"})
        assert table["a.b"].value_type is ValueType.NUMBER
        assert table["c.d"].value_type is ValueType.LENGTH

        listed = normalize_overrides([PropertyOverride.of("x.y", 1)])
        assert list(listed) == ["x.y"]

        assert normalize_overrides(None) == {}


class TestPropertyResolver:
    def test_no_override_returns_base_unchanged(self, resolver):
        base = object()
        assert resolver.resolve(base, {}, "a.b", NUMBER_OR_LENGTH) is base

    def test_empty_property_name_ignores_table(self, resolver):
        assert resolver.resolve(3, {"a.b": 9}, "", NUMBER_OR_LENGTH) == 3
        assert resolver.resolve(3, {"a.b": 9}, None, NUMBER_OR_LENGTH) == 3

    def test_other_keys_do_not_apply(self, resolver):
        assert resolver.resolve(3, {"other.b": 9}, "a.b", NUMBER_OR_LENGTH) == 3

    def test_number_override(self, resolver):
        assert resolver.resolve(3, {"a.b": 9}, "a.b", NUMBER_OR_LENGTH) == 9

    def test_number_override_truncates_for_integer_base(self, resolver):
        value = resolver.resolve(3, {"a.b": 7.9}, "a.b", NUMBER_OR_LENGTH)
        assert value == 7
        assert isinstance(value, int)

    def test_number_override_float_base(self, resolver):
        assert resolver.resolve(1.5, {"a.b": "2.25"}, "a.b", NUMBER_OR_LENGTH) == 2.25

    def test_length_override_converted_to_pixels(self, resolver):
        # 0.5mm at 0.1mm/px
        assert resolver.resolve(3, {"a.b": "0.5mm"}, "a.b", NUMBER_OR_LENGTH) == 5

    def test_length_override_other_units(self, resolver):
        value = resolver.resolve(3.0, {"a.b": Length(0.1, LengthUnit.CENTIMETERS)}, "a.b", NUMBER_OR_LENGTH)
        assert value == pytest.approx(10.0)

    def test_length_base_keeps_length(self, resolver):
        value = resolver.resolve(Length(1.0), {"a.b": "2mm"}, "a.b", NUMBER_OR_LENGTH)
        assert value == Length(2.0)

    def test_first_matching_type_wins(self, resolver):
        # "2mm" is not a number, so the length coercion (second) applies
        assert resolver.resolve(3, {"a.b": "2mm"}, "a.b", NUMBER_OR_LENGTH) == 20

    def test_length_without_calibration_fails(self):
        resolver = PropertyResolver(None)
        with pytest.raises(TypeMismatchError):
            resolver.resolve(3, {"a.b": "0.5mm"}, "a.b", NUMBER_OR_LENGTH)

    def test_length_with_zero_calibration_fails(self):
        resolver = PropertyResolver(Location(0.0, 0.0, 0.0))
        with pytest.raises(TypeMismatchError):
            resolver.resolve(3, {"a.b": "0.5mm"}, "a.b", NUMBER_OR_LENGTH)

    def test_text_for_number_fails(self, resolver):
        with pytest.raises(TypeMismatchError) as exc_info:
            resolver.resolve(3, {"BlurGaussian.kernel_size": "wide"}, "BlurGaussian.kernel_size",
                             NUMBER_OR_LENGTH)
        assert exc_info.value.property_name == "BlurGaussian.kernel_size"
        assert "BlurGaussian.kernel_size" in str(exc_info.value)

    def test_boolean(self, resolver):
        assert resolver.resolve(False, {"a.b": "true"}, "a.b", (ValueType.BOOLEAN,)) is True
        with pytest.raises(TypeMismatchError):
            resolver.resolve(False, {"a.b": 1}, "a.b", (ValueType.BOOLEAN,))

    def test_number_for_boolean_base_fails(self, resolver):
        with pytest.raises(TypeMismatchError):
            resolver.resolve(False, {"a.b": 1}, "a.b", (ValueType.NUMBER,))

    def test_text(self, resolver):
        assert resolver.resolve("BGR2GRAY", {"a.b": "BGR2HSV"}, "a.b", (ValueType.TEXT,)) == "BGR2HSV"

    def test_accepts_override_objects(self, resolver):
        table = {"a.b": PropertyOverride.of("a.b", 11)}
        assert resolver.resolve(3, table, "a.b", NUMBER_OR_LENGTH) == 11


class TestToPixels:
    def test_plain_number_passes_through(self, resolver):
        assert resolver.to_pixels(5) == 5

    def test_length(self, resolver):
        assert resolver.to_pixels(Length(1.0)) == pytest.approx(10.0)

    def test_anisotropic_uses_mean(self):
        resolver = PropertyResolver(Location(0.1, 0.3, 0.0))
        assert resolver.to_pixels(Length(1.0)) == pytest.approx(5.0)

    def test_calibration_in_other_units(self):
        resolver = PropertyResolver(Location(0.004, 0.004, 0.0, 0.0, LengthUnit.INCHES))
        assert resolver.to_pixels(Length(0.1, LengthUnit.INCHES)) == pytest.approx(25.0)

    def test_uncalibrated(self):
        with pytest.raises(TypeMismatchError):
            PropertyResolver(None).to_pixels(Length(1.0), "Hough.min_diameter")
