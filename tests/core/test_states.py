import pytest

from bayalign.core.states import (
    E,
    G1,
    G2,
    M,
    StateSpace,
    get_state_space,
    state_space_for_nodes,
)


def test_pairwise_space_has_match_gap_gap_end():
    space = get_state_space(2)
    assert space.nstates == 3
    assert space.nstates + 1 == 4
    assert space.endstate == E

    assert space.presence_mask(M) == 0b11
    assert space.presence_mask(G1) == 0b01
    assert space.presence_mask(G2) == 0b10
    assert [space.substate(S, 0) for S in (M, G1, G2)] == [M, G1, G2]
    assert space.substate(space.endstate, 0) == E


def test_pairwise_emission_predicates():
    space = get_state_space(2)
    assert space.dl(M) and space.di(M)
    assert space.dl(G1) and not space.di(G1)
    assert not space.dl(G2) and space.di(G2)


def test_three_way_state_count():
    space = get_state_space(3)
    # 1 (all four) + 3 (centre + two) + 3 (centre + one) + 1 (centre) + 3 * 9 (one leaf)
    assert space.nstates == 1 + 3 + 3 + 1 + 27
    assert space.endstate == 35
    assert len(space.get_state_emit()) == 35


def test_five_way_state_count_is_stable():
    space = get_state_space(5)
    assert space.nstates == 412
    fresh = StateSpace(6, [(4, 0), (4, 1), (5, 2), (5, 3), (4, 5)])
    assert fresh.states_list == space.states_list


def test_states_are_sorted_and_unique():
    for n_way in (2, 3, 5):
        codes = get_state_space(n_way).states_list
        assert codes == sorted(set(codes))


def test_findstate_and_bits_to_states_invert_codes():
    for n_way in (2, 3, 5):
        space = get_state_space(n_way)
        for S, code in enumerate(space.states_list):
            assert space.findstate(code) == S
            assert space.bits_to_states(code) == S
            assert space.code(S) == code


def test_empty_presence_has_no_state():
    space = get_state_space(2)
    assert space.bits_to_states(0) == -1
    # Both edge endpoints absent is not a pairwise column
    assert space.bits_to_states(space.encode(0, [M])) == -1


def test_disconnected_presence_has_no_state():
    space = get_state_space(3)
    # Leaves 1 and 2 without the centre
    assert space.bits_to_states(0b0110) == -1
    assert space.findstate(space.encode(0b0110, [G2, G2, M])) == -1


def test_bits_to_states_rebuilds_implied_fields():
    space = get_state_space(3)
    # Only the presence bits matter for edges touching a present position
    S = space.bits_to_states(0b0001)
    assert S >= 0
    assert space.substates(S) == [G1, G1, G1]
    assert space.not_present_mask(S) == 0


def test_remembered_states_of_absent_edges():
    space = get_state_space(3)
    S = space.bits_to_states(space.encode(0b0010, [G2, G1, M]))
    assert space.presence_mask(S) == 0b0010
    assert space.substates(S) == [G2, G1, M]
    assert space.advances(S, 0)
    assert not space.advances(S, 1)
    assert not space.advances(S, 2)
    assert space.not_present_mask(S) == 0b110
    assert space.dj(S) is False
    assert space.di(S) is True
    assert space.state_name(S) == "0010/G2,-G1,-M"


def test_remembered_end_is_not_legal():
    space = get_state_space(3)
    assert space.bits_to_states(space.encode(0b0010, [G2, E, M])) == -1


def test_order_key_puts_shallow_tops_first():
    space = get_state_space(3)
    assert space.order_key(0b0001) == (0, 0, 0b0001)
    assert space.order_key(0b0010) == (1, 1, 0b0010)
    assert space.order_key(0b0010) < space.order_key(0b1000)
    with pytest.raises(ValueError):
        space.order_key(0)


def test_code_out_of_range():
    space = get_state_space(2)
    assert space.code(space.endstate) == 0
    with pytest.raises(IndexError):
        space.code(7)


def test_invalid_state_spaces():
    with pytest.raises(ValueError):
        get_state_space(4)
    with pytest.raises(ValueError):
        StateSpace(3, [(0, 1)])
    with pytest.raises(ValueError):
        StateSpace(3, [(0, 1), (2, 1)])
    with pytest.raises(ValueError):
        StateSpace(2, [(0, 0)])


def test_state_space_for_nodes():
    assert state_space_for_nodes([7, 3]).name == "2-way"
    assert state_space_for_nodes([0, 1, 2, 3]).name == "3-way"
    assert state_space_for_nodes(range(6)).name == "5-way"
    with pytest.raises(ValueError):
        state_space_for_nodes([1, 2, 3])
