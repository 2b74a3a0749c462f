import pytest

from apersync.atom import Atom, Constant, InvalidTransition, ReplaceAtom


def test_replace():
    atom = Atom(5)
    assert atom.value == 5
    atom.apply(atom.replace(8))
    assert atom.value == 8


def test_replace_builds_transition_without_changing_value():
    atom = Atom("a")
    transition = atom.replace("b")
    assert transition == ReplaceAtom("b")
    assert atom.value == "a"


def test_atom_rejects_other_transitions():
    with pytest.raises(TypeError):
        Atom(1).apply(InvalidTransition())


def test_atom_round_trip():
    atom = Atom([1, 2])
    assert Atom.from_wire(atom.to_wire()) == atom


def test_atom_wire_format():
    assert Atom(5).to_wire() == {"value": 5}


def test_replace_atom_round_trip():
    transition = ReplaceAtom(8)
    assert ReplaceAtom.from_wire(transition.to_wire()) == transition


def test_atom_clone_is_independent():
    atom = Atom(1)
    copy_ = atom.clone()
    copy_.apply(copy_.replace(2))
    assert atom.value == 1
    assert copy_.value == 2


def test_atom_transition_type_decodes_replacements():
    transition = Atom(1).replace(3)
    assert Atom.transition_type.from_wire(transition.to_wire()) == ReplaceAtom(3)


def test_constant_value():
    constant = Constant(5)
    assert constant.value == 5


def test_constant_rejects_transitions():
    constant = Constant(5)
    with pytest.raises(TypeError):
        constant.apply(InvalidTransition())
    assert constant.value == 5


def test_constant_round_trip():
    constant = Constant("fixed")
    assert Constant.from_wire(constant.to_wire()) == constant


def test_invalid_transition_round_trip():
    assert InvalidTransition.from_wire(InvalidTransition().to_wire()) == InvalidTransition()