"""
Tests for the flat decision-variable layout.
"""

import pytest

from planning.layout import ACTUATOR_CHANNELS, STATE_CHANNELS, VariableLayout


def test_sizes():
    lay = VariableLayout(25)
    assert lay.n_vars == 6 * 25 + 2 * 24
    assert lay.n_constraints == 6 * 25


def test_offsets_are_contiguous_and_increasing():
    lay = VariableLayout(7)
    channels = STATE_CHANNELS + ACTUATOR_CHANNELS
    expected_start = 0
    for ch in channels:
        assert lay.start(ch) == expected_start
        expected_start += lay.length(ch)
    assert expected_start == lay.n_vars


def test_named_offsets_match_start():
    lay = VariableLayout(10)
    assert lay.x_start == 0
    assert lay.y_start == 10
    assert lay.psi_start == 20
    assert lay.v_start == 30
    assert lay.cte_start == 40
    assert lay.epsi_start == 50
    assert lay.delta_start == 60
    assert lay.a_start == 69


def test_block_slices():
    lay = VariableLayout(4)
    assert lay.block('v') == slice(12, 16)
    assert lay.block('a') == slice(27, 30)


def test_index_bounds():
    lay = VariableLayout(3)
    assert lay.index('epsi', 2) == lay.epsi_start + 2
    with pytest.raises(IndexError):
        lay.index('delta', 2)


def test_unknown_channel():
    with pytest.raises(KeyError):
        VariableLayout(3).start('omega')


@pytest.mark.parametrize("N", [0, 1, -3])
def test_short_horizon_rejected(N):
    with pytest.raises(ValueError):
        VariableLayout(N)
