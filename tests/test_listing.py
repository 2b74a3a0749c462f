import json
import uuid

import pytest

from apersync.atom import Atom
from apersync.listing import (
    AbsolutePosition,
    After,
    ApplyTo,
    Before,
    Beginning,
    End,
    List,
    ListOperation,
    Move,
)
from apersync.zeno_index import ZenoIndex


def values(lst):
    return [item.value.value for item in lst]


def locations_by_id(lst):
    return {item.id: item.location for item in lst}


def test_get_location():
    my_list = List()
    ids = []
    for i in range(10):
        item_id, transition = my_list.append(Atom(i))
        ids.append(item_id)
        my_list.apply(transition)

    items = list(my_list)
    where = locations_by_id(my_list)

    assert my_list.get_location(Beginning()) < items[0].location
    assert my_list.get_location(End()) > items[-1].location
    assert my_list.get_location(AbsolutePosition(where[ids[4]])) == where[ids[4]]
    assert my_list.get_location(Before(ids[7], where[ids[7]])) < where[ids[7]]
    assert my_list.get_location(After(ids[7], where[ids[7]])) > where[ids[7]]


def test_get_location_uses_fallback_for_missing_item():
    my_list = List()
    fallback = ZenoIndex(b"\x10")
    missing = uuid.uuid4()
    assert my_list.get_location(Before(missing, fallback)) == ZenoIndex.new_before(fallback)
    assert my_list.get_location(After(missing, fallback)) == ZenoIndex.new_after(fallback)
    assert my_list.get_location(Beginning()) == ZenoIndex()
    assert my_list.get_location(End()) == ZenoIndex()


def test_insert_between_merge():
    my_list = List()
    id1, transition1 = my_list.append(Atom(1))
    id2, transition2 = my_list.append(Atom(2))

    my_list.apply(transition2)
    my_list.apply(transition1)

    _id3, transition3 = my_list.insert_between(id2, id1, Atom(3))
    _id4, transition4 = my_list.insert_between(id2, id1, Atom(4))

    my_list.apply(transition4)
    assert values(my_list) == [2, 4, 1]
    my_list.apply(transition3)
    assert values(my_list) == [2, 4, 3, 1]


def test_list():
    lst = List()

    lst.apply(lst.append(Atom(5))[1])
    lst.apply(lst.append(Atom(3))[1])
    lst.apply(lst.append(Atom(143))[1])
    lst.apply(lst.prepend(Atom(99))[1])
    assert values(lst) == [99, 5, 3, 143]

    locations = [item.location for item in lst]
    lst.apply(lst.insert(ZenoIndex.new_between(locations[2], locations[3]), Atom(44))[1])
    lst.apply(lst.insert(ZenoIndex.new_between(locations[0], locations[1]), Atom(23))[1])
    lst.apply(lst.insert(ZenoIndex.new_between(locations[1], locations[2]), Atom(84))[1])
    assert values(lst) == [99, 23, 5, 84, 3, 44, 143]

    uuids = [item.id for item in lst]
    lst.apply(lst.delete(uuids[2]))
    lst.apply(lst.delete(uuids[3]))
    assert values(lst) == [99, 23, 3, 44, 143]

    uuids = [item.id for item in lst]
    locations = [item.location for item in lst]
    lst.apply(lst.move_item(uuids[0], ZenoIndex.new_between(locations[2], locations[3])))
    lst.apply(lst.move_item(uuids[4], ZenoIndex.new_before(locations[0])))
    assert values(lst) == [143, 23, 3, 99, 44]


def test_len_tracks_entries():
    lst = List()
    first_id, op = lst.append(Atom(1))
    lst.apply(op)
    lst.apply(lst.append(Atom(2))[1])
    assert len(lst) == 2
    lst.apply(lst.delete(first_id))
    assert len(lst) == 1
    assert values(lst) == [2]


def test_map_item_applies_to_entry():
    lst = List()
    item_id, op = lst.append(Atom(1))
    lst.apply(op)
    transition = lst.map_item(item_id, lambda atom: atom.replace(atom.value + 10))
    assert transition == ApplyTo(item_id, Atom(1).replace(11))
    lst.apply(transition)
    assert values(lst) == [11]


def test_map_item_unknown_raises():
    lst = List()
    with pytest.raises(KeyError):
        lst.map_item(uuid.uuid4(), lambda atom: atom.replace(0))


def test_insert_between_unknown_raises():
    lst = List()
    item_id, op = lst.append(Atom(1))
    lst.apply(op)
    with pytest.raises(KeyError):
        lst.insert_between(item_id, uuid.uuid4(), Atom(2))


def test_operations_on_missing_items_are_ignored():
    lst = List()
    lst.apply(lst.append(Atom(7))[1])
    before = lst.clone()
    missing = uuid.uuid4()
    lst.apply(ApplyTo(missing, Atom(0).replace(1)))
    lst.apply(Move(missing, ZenoIndex(b"\x01")))
    lst.apply(lst.delete(missing))
    assert lst == before


def test_apply_rejects_foreign_transition():
    with pytest.raises(TypeError):
        List().apply(Atom(0).replace(1))


def test_wire_round_trip():
    lst = List()
    lst.apply(lst.append(Atom(1))[1])
    lst.apply(lst.prepend(Atom(2))[1])
    data = json.loads(json.dumps(lst.to_wire()))
    back = List.from_wire(data, Atom)
    assert back == lst
    assert values(back) == [2, 1]


def test_move_operation_wire_round_trip():
    op = Move(uuid.uuid4(), ZenoIndex(b"\x05\x80"))
    assert ListOperation.from_wire(op.to_wire()) == op


def test_clone_is_independent():
    lst = List()
    item_id, op = lst.append(Atom(1))
    lst.apply(op)
    copy = lst.clone()
    lst.apply(lst.map_item(item_id, lambda atom: atom.replace(5)))
    assert values(copy) == [1]
    assert values(lst) == [5]