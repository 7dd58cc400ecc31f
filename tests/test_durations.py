import pytest

from prodsched.core.durations import DurationTable
from prodsched.core.errors import InvalidInputError
from prodsched.core.models import Part


def test_missing_part_uses_fallback_constants():
    table = DurationTable()
    assert table.estimate(None, 3) == (20, 30)


def test_unknown_part_type_uses_fallback_constants():
    table = DurationTable()
    assert table.estimate(Part(part_id="X1", part_type="mystery"), 3) == (20, 30)
    assert table.estimate(Part(part_id="X2", part_type=None), 3) == (20, 30)


def test_known_part_types():
    table = DurationTable()
    assert table.estimate(Part(part_id="C1", part_type="cup"), 2) == (30, 30)
    assert table.estimate(Part(part_id="B1", part_type="baffle"), 4) == (20, 40)


@pytest.mark.parametrize("quantity", [0, -1])
def test_non_positive_quantity_is_rejected(quantity):
    with pytest.raises(InvalidInputError, match="quantity must be positive"):
        DurationTable().estimate(None, quantity)


def test_table_from_config_is_extensible():
    table = DurationTable.from_dict(
        {
            "default": {"setup_minutes": 25, "minutes_per_unit": 12},
            "types": {"gear": {"setup_minutes": 45, "minutes_per_unit": 5}},
        }
    )
    assert table.estimate(Part(part_id="G1", part_type="gear"), 2) == (45, 10)
    # cup is not in this table anymore -> configured defaults
    assert table.estimate(Part(part_id="C1", part_type="cup"), 2) == (25, 24)

    again = DurationTable.from_dict(table.to_dict())
    assert again == table


def test_table_from_config_rejects_zero_rate():
    with pytest.raises(ValueError):
        DurationTable.from_dict({"types": {"gear": {"setup_minutes": 10, "minutes_per_unit": 0}}})
    with pytest.raises(ValueError):
        DurationTable.from_dict({"default": {"setup_minutes": -5, "minutes_per_unit": 10}})


@pytest.mark.parametrize("quantity", [2.5, 2.0, "3", True])
def test_non_integer_quantity_is_rejected_not_rounded(quantity):
    with pytest.raises(InvalidInputError, match="whole number"):
        DurationTable().estimate(None, quantity)
