import pytest

from netplugin_gstate.bitset import Bitset


def test_new_bitset_is_empty():
    bitset = Bitset.for_width(4)

    assert len(bitset) == 16
    assert bitset.count() == 0
    assert bitset.next_set() is None


def test_set_clear_test():
    bitset = Bitset(10)

    bitset.set(3).set(7)
    assert bitset.test(3)
    assert bitset.test(7)
    assert not bitset.test(4)

    bitset.clear(3)
    assert not bitset.test(3)
    assert bitset.count() == 1


def test_out_of_range_index_raises():
    bitset = Bitset(8)

    with pytest.raises(IndexError):
        bitset.set(8)
    with pytest.raises(IndexError):
        bitset.test(-1)


def test_next_set_is_first_fit():
    bitset = Bitset(100)
    bitset.set(42).set(5).set(99)

    assert bitset.next_set() == 5
    assert bitset.next_set(5) == 5
    assert bitset.next_set(6) == 42
    assert bitset.next_set(43) == 99
    assert bitset.next_set(100) is None
    assert list(bitset) == [5, 42, 99]


def test_complement_is_an_independent_copy():
    bitset = Bitset(8).set_range(0, 3)

    flipped = bitset.complement()
    assert list(flipped) == [4, 5, 6, 7]

    flipped.clear(4)
    assert not bitset.test(4)
    assert bitset.count() == 4


def test_set_range_inclusive():
    bitset = Bitset(16).set_range(2, 5)

    assert list(bitset) == [2, 3, 4, 5]


def test_dump_and_serialisation():
    bitset = Bitset(4).set(0).set(2)

    assert bitset.dump_as_bits() == "0101"
    restored = Bitset.from_dict(bitset.to_dict())
    assert restored == bitset
    assert restored is not bitset


def test_from_dict_rejects_overflowing_bits():
    with pytest.raises(ValueError):
        Bitset.from_dict({"length": 2, "bits": "ff"})
