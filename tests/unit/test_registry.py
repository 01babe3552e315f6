from decimal import Decimal

import pytest

from poolwatch.data.registry import PoolRegistry
from poolwatch.errors import DuplicatePool, PoolNotFound, ValidationError
from poolwatch.utils.types import PoolConfig

def _pool(pid, name=None, lo="0.998", hi="1.002"):
    return PoolConfig(id=pid, name=name or pid, min=Decimal(lo), max=Decimal(hi))

def test_list_keeps_insertion_order():
    reg = PoolRegistry()
    for pid in ["0xc", "0xa", "0xb"]:
        reg.add(_pool(pid))
    assert [p.id for p in reg.list()] == ["0xc", "0xa", "0xb"]
    assert len(reg) == 3

def test_defaults():
    p = _pool("0x1")
    assert (p.decimals0, p.decimals1, p.invert) == (6, 6, False)

def test_duplicate_id_rejected():
    reg = PoolRegistry()
    reg.add(_pool("0x1", "A"))
    with pytest.raises(DuplicatePool):
        reg.add(_pool("0x1", "B"))
    assert [p.name for p in reg.list()] == ["A"]
    assert issubclass(DuplicatePool, ValidationError)

def test_edit_by_position():
    reg = PoolRegistry()
    reg.add(_pool("0x1"))
    reg.add(_pool("0x2"))
    updated = reg.edit(1, Decimal("0.9"), Decimal("1.1"))
    assert updated.id == "0x2"
    assert reg.get("0x2").min == Decimal("0.9")
    assert reg.get("0x1").min == Decimal("0.998")

@pytest.mark.parametrize("index", [2, -1, 99])
def test_out_of_range_index_does_not_mutate(index):
    reg = PoolRegistry()
    reg.add(_pool("0x1"))
    reg.add(_pool("0x2"))
    with pytest.raises(IndexError):
        reg.edit(index, Decimal("0"), Decimal("1"))
    with pytest.raises(IndexError):
        reg.remove(index)
    assert [(p.id, p.min) for p in reg.list()] == [("0x1", Decimal("0.998")), ("0x2", Decimal("0.998"))]

def test_remove_returns_config():
    reg = PoolRegistry()
    reg.add(_pool("0x1", "A"))
    reg.add(_pool("0x2", "B"))
    removed = reg.remove(0)
    assert removed.name == "A"
    assert [p.id for p in reg.list()] == ["0x2"]
    assert "0x1" not in reg

def test_get_missing_raises():
    with pytest.raises(PoolNotFound):
        PoolRegistry().get("0xnope")

def test_list_returns_copies():
    reg = PoolRegistry()
    reg.add(_pool("0x1"))
    snap = reg.list()
    snap[0].max = Decimal("5")
    assert reg.get("0x1").max == Decimal("1.002")

def test_get_returns_copy():
    reg = PoolRegistry()
    reg.add(_pool("0x1"))
    reg.get("0x1").min = Decimal("0.1")
    assert reg.get("0x1").min == Decimal("0.998")
    assert reg.list()[0].min == Decimal("0.998")
