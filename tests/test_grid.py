import pytest

from horario.schemas.timetable import Weekday
from horario.services.grid import GridPositionMapper
from tests.factories import make_allocation


@pytest.fixture
def mapper(catalog):
    return GridPositionMapper(catalog)


def test_allocation_is_positioned_by_weekday_and_slot(mapper, sections):
    allocation = make_allocation("a1", sections["alg"], weekday="QUARTA", start="13:50", end="14:40")
    position = mapper.find_position(allocation)
    assert position.weekday == Weekday.wednesday
    assert position.day_index == 2
    assert position.slot_index == 4
    assert position.key == (Weekday.wednesday, 4)


def test_allocations_sharing_a_cell_are_grouped(mapper, sections):
    first = make_allocation("a1", sections["alg"])
    second = make_allocation("a2", sections["web"])
    third = make_allocation("a3", sections["redes"], weekday="TERCA")
    grid = mapper.group_by_position([first, second, third])
    assert [item.id for item in grid[(Weekday.monday, 0)]] == ["a1", "a2"]
    assert [item.id for item in grid[(Weekday.tuesday, 0)]] == ["a3"]
    assert len(grid) == 2


def test_range_not_in_catalog_is_unpositioned(mapper, sections):
    odd = make_allocation("odd", sections["alg"], start="07:45", end="08:15")
    assert mapper.find_position(odd) is None
    assert mapper.group_by_position([odd]) == {}
    assert mapper.unpositioned([odd]) == [odd]


def test_sub_range_is_positioned_when_enabled(catalog, sections):
    mapper = GridPositionMapper(catalog, allow_sub_slot_ranges=True)
    odd = make_allocation("odd", sections["alg"], start="07:45", end="08:15")
    assert mapper.find_position(odd).slot_index == 0


def test_weekday_outside_shown_days_is_unpositioned(catalog, sections):
    mapper = GridPositionMapper(catalog, days=[Weekday.monday, Weekday.tuesday])
    saturday = make_allocation("sat", sections["alg"], weekday="SABADO")
    assert mapper.find_position(saturday) is None
    assert mapper.cell_count == 12


def test_free_cells_exclude_occupied(mapper, sections):
    allocation = make_allocation("a1", sections["alg"])
    free = mapper.free_cells([allocation])
    assert (Weekday.monday, 0) not in free
    assert (Weekday.monday, 1) in free
    assert len(free) == 35


def test_allocation_stats(mapper, sections):
    allocations = [
        make_allocation("a1", sections["alg"]),
        make_allocation("a2", sections["web"]),
        make_allocation("a3", sections["redes"], weekday="SEXTA", start="19:00", end="19:50"),
    ]
    stats = mapper.calculate_allocation_stats(allocations)
    assert stats.total_slots == 36
    assert stats.allocated_slots == 2
    assert stats.free_slots == 34
    assert stats.utilization_rate == pytest.approx(2 / 36 * 100)
    assert stats.overlap_count == 1
    assert {item.id for item in stats.overlapping_pairs[0]} == {"a1", "a2"}
