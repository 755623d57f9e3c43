# This script is to test the network engine (validation, adjacency indexes, KVL coefficients and demand)

import numpy as np
import pytest

from core.config import NetConfig
from core.network import MalformedInputError, NetworkClass
from factories.network_factory import make_network, make_network_config


def test_default_network_builds():
    net = NetworkClass()
    assert net.Set_bch == [1, 2]
    assert net.lines_out_of["150"] == [1]
    assert net.lines_into["2"] == [2]
    assert net.lines_by_type["damaged"] == [2]


def test_feeder_adjacency_and_types():
    net = make_network("feeder_8_bus_restoration")
    assert net.name == "feeder_8_bus_restoration"
    assert net.lines_into["7"] == [7, 8, 9]
    assert net.lines_out_of["2"] == [3, 5]
    assert net.lines_by_type["regulator"] == [1]
    assert net.lines_by_type["switch"] == [8]
    assert net.lines_by_type["damaged"] == [3, 6]
    assert net.lines_by_type["candidate"] == [9]
    assert net.lines_by_type["unrepairable"] == [10]


def test_unknown_preset():
    with pytest.raises(ValueError, match="Unknown network preset"):
        make_network("no_such_network")


def test_malformed_input_is_a_value_error():
    assert issubclass(MalformedInputError, ValueError)


@pytest.mark.parametrize("field, value, message", [
    ("bch", [["150", "1"], ["1", "99"]], "undefined bus"),
    ("bch", [["150", "1"], ["1", "1"]], "to itself"),
    ("bch_config", [1, 42], "no matching matrix"),
    ("bch_type", ["fixed", "broken"], "unknown type"),
    ("bch_length", [0.1], "entries"),
    ("bch_Smax", [1000.0, -1.0], "negative"),
    ("bus", ["150", "1", "1"], "Duplicate bus"),
    ("root_bus", "999", "Root bus"),
    ("Pd_base", [[0, 0, 0], [40, 40, 40]], "entries"),
    ("profile_shape", [1.0, -0.5], "non-negative"),
    ("bch_repair_cost", [0.0, 0.0, 1500.0], "bch_repair_cost' has 3 entries"),
    ("bch_build_cost", [0.0], "bch_build_cost' has 1 entries"),
    ("bch_available", [1], "bch_available' has 1 entries"),
    ("Qcap", [[0, 0, 0], [30, 30, 30]], "Qcap' has 2 entries"),
    ("Qcap", [[0, 0, 0], [30, 30], [0, 0, 0]], "phase entries"),
    ("Qd_base", None, "missing"),
])
def test_malformed_network_is_rejected(field, value, message):
    ncon = NetConfig()
    setattr(ncon.data.net, field, value)
    with pytest.raises(MalformedInputError, match=message):
        NetworkClass(ncon)


def test_branch_phase_must_exist_at_both_ends():
    ncon = NetConfig()
    ncon.data.net.bus_phase = [[1, 1, 1], [1, 1, 1], [1, 0, 0]]
    with pytest.raises(MalformedInputError, match="phase 2"):
        NetworkClass(ncon)


def test_impedance_matrix_must_be_3x3():
    ncon = NetConfig()
    ncon.data.net.line_config = {1: {"R": [[0.1, 0.0], [0.0, 0.1]], "X": [[0.1] * 3] * 3}}
    with pytest.raises(MalformedInputError, match="3x3"):
        NetworkClass(ncon)


def test_kvl_diagonal_matches_per_unit_impedance():
    net = NetworkClass()
    n = net.data.net
    z_base = n.base_kV ** 2 * 1000 / (3 * n.base_kVA)
    R = np.array(n.line_config[1]["R"])
    X = np.array(n.line_config[1]["X"])

    expected_r = R.diagonal() * n.bch_length[0] / z_base / n.base_kVA
    expected_x = X.diagonal() * n.bch_length[0] / z_base / n.base_kVA
    assert np.allclose(net.kvl_r[1].diagonal(), expected_r)
    assert np.allclose(net.kvl_x[1].diagonal(), expected_x)


def test_kvl_coefficients_of_single_phase_branch():
    net = make_network("feeder_8_bus_restoration")
    r, x = net.kvl_r[11], net.kvl_x[11]
    assert r[0, 0] > 0 and x[0, 0] > 0
    mask = np.ones((3, 3), dtype=bool)
    mask[0, 0] = False
    assert np.all(r[mask] == 0) and np.all(x[mask] == 0)


def test_zero_impedance_branch_has_no_voltage_drop():
    net = make_network("feeder_8_bus_restoration")
    assert np.all(net.kvl_r[8] == 0) and np.all(net.kvl_x[8] == 0)


def test_demand_follows_shape_and_phase_mask():
    net = make_network("feeder_8_bus_restoration")
    assert net.get_active_demand("4", 1, 3) == pytest.approx(40.0)
    assert net.get_active_demand("4", 1, 1) == pytest.approx(28.0)
    assert net.get_reactive_demand("6", 3, 2) == pytest.approx(16.0)
    assert net.get_active_demand("8", 2, 3) == 0.0


def test_capacitors_are_disabled_by_default():
    ncon = NetConfig()
    ncon.data.net.Qcap = [[0, 0, 0], [30, 30, 30], [0, 0, 0]]
    assert NetworkClass(ncon).get_capacitor_injection("1", 1) == 0.0

    ncon.data.net.enable_capacitors = True
    assert NetworkClass(ncon).get_capacitor_injection("1", 1) == 30


def test_find_islanded_buses():
    ncon = make_network_config("two_bus_single_damaged_line")
    ncon.data.net.bus = ["150", "1", "9"]
    ncon.data.net.bus_phase = [[1, 1, 1], [1, 1, 1], [1, 1, 1]]
    ncon.data.net.Pd_base = [[0, 0, 0], [50, 50, 50], [5, 5, 5]]
    ncon.data.net.Qd_base = [[0, 0, 0], [25, 25, 25], [0, 0, 0]]
    assert NetworkClass(ncon).find_islanded_buses() == ["9"]


def test_presets_do_not_share_impedance_matrices():
    ncon = make_network_config("feeder_8_bus_restoration")
    ncon.data.net.line_config[1]["R"][0][0] = 99.0
    fresh = make_network_config("feeder_8_bus_restoration")
    assert fresh.data.net.line_config[1]["R"][0][0] == pytest.approx(0.4576)
    assert make_network_config("four_bus_all_fixed").data.net.line_config[1]["R"][0][0] == pytest.approx(0.4576)
