import copy

from core.config import NetConfig
from core.network import NetworkClass


# IEEE 123-bus feeder impedance configurations (ohm per mile)
LINE_CONFIG_IEEE123 = {
    1: {"R": [[0.4576, 0.1560, 0.1535],
              [0.1560, 0.4666, 0.1580],
              [0.1535, 0.1580, 0.4615]],
        "X": [[1.0780, 0.5017, 0.3849],
              [0.5017, 1.0482, 0.4236],
              [0.3849, 0.4236, 1.0651]]},
    6: {"R": [[0.4615, 0.1580, 0.1535],
              [0.1580, 0.4666, 0.1560],
              [0.1535, 0.1560, 0.4576]],
        "X": [[1.0651, 0.4236, 0.3849],
              [0.4236, 1.0482, 0.5017],
              [0.3849, 0.5017, 1.0780]]},
    9: {"R": [[1.3292, 0.0, 0.0],
              [0.0, 0.0, 0.0],
              [0.0, 0.0, 0.0]],
        "X": [[1.3475, 0.0, 0.0],
              [0.0, 0.0, 0.0],
              [0.0, 0.0, 0.0]]},
    # switches and regulators (no series impedance)
    "zero": {"R": [[0.0] * 3 for _ in range(3)],
             "X": [[0.0] * 3 for _ in range(3)]},
}


def make_network_config(name: str) -> NetConfig:
    # build the right config object
    ncon = NetConfig()  # initialize the 'ncon' objective as the default

    if name == 'two_bus_single_damaged_line':
        """
        Substation bus feeding a single load bus through one damaged (repairable) line
        """
        # 1) Bus data
        ncon.data.net.bus = ["150", "1"]
        ncon.data.net.root_bus = "150"
        ncon.data.net.bus_phase = [[1, 1, 1], [1, 1, 1]]
        ncon.data.net.Pd_base = [[0, 0, 0], [50, 50, 50]]
        ncon.data.net.Qd_base = [[0, 0, 0], [25, 25, 25]]
        ncon.data.net.profile_shape = None

        # 2) Branch data
        ncon.data.net.bch = [["150", "1"]]
        ncon.data.net.bch_length = [0.1]
        ncon.data.net.bch_phase = [[1, 1, 1]]
        ncon.data.net.bch_config = [1]
        ncon.data.net.bch_type = ["damaged"]
        ncon.data.net.bch_Smax = [1000.0]
        ncon.data.net.bch_repair_cost = [1000.0]
        ncon.data.net.bch_build_cost = [0.0]
        ncon.data.net.bch_available = [1]

        ncon.data.net.line_config = copy.deepcopy({1: LINE_CONFIG_IEEE123[1]})

    elif name == 'four_bus_all_fixed':
        """
        Undamaged 4-bus radial feeder (all branches always energized, no candidate resources)
        """
        ncon.data.net.bus = ["150", "1", "2", "3"]
        ncon.data.net.root_bus = "150"
        ncon.data.net.bus_phase = [[1, 1, 1]] * 4
        ncon.data.net.Pd_base = [[0, 0, 0], [40, 35, 30], [20, 20, 25], [15, 10, 10]]
        ncon.data.net.Qd_base = [[0, 0, 0], [20, 15, 15], [10, 10, 10], [5, 5, 5]]
        ncon.data.net.profile_shape = [0.8, 1.0]

        ncon.data.net.bch = [["150", "1"], ["1", "2"], ["2", "3"]]
        ncon.data.net.bch_length = [0.2, 0.15, 0.1]
        ncon.data.net.bch_phase = [[1, 1, 1]] * 3
        ncon.data.net.bch_config = [1, 1, 6]
        ncon.data.net.bch_type = ["fixed"] * 3
        ncon.data.net.bch_Smax = [1000.0] * 3
        ncon.data.net.bch_repair_cost = [0.0] * 3
        ncon.data.net.bch_build_cost = [0.0] * 3
        ncon.data.net.bch_available = [1] * 3

        ncon.data.net.line_config = copy.deepcopy({1: LINE_CONFIG_IEEE123[1], 6: LINE_CONFIG_IEEE123[6]})

    elif name == 'feeder_8_bus_restoration':
        """
        Damaged 8-load-bus feeder behind a voltage regulator, with a normally-open tie switch,
        two repairable branches, one unrepairable branch, a candidate new branch and a single-phase lateral:

            150 -(reg)- 1 - 2 -(dmg)- 3 - 4
                        |   |         |   |
                        |   5 -(dmg)- 6 - 7      4-7: tie switch, 5-7: candidate, 1-4: unrepairable
                        |             3 - 8      (phase a only)
        """
        ncon.data.net.bus = ["150", "1", "2", "3", "4", "5", "6", "7", "8"]
        ncon.data.net.root_bus = "150"
        ncon.data.net.bus_phase = [[1, 1, 1]] * 8 + [[1, 0, 0]]
        ncon.data.net.Pd_base = [[0, 0, 0],
                                 [20, 20, 20], [30, 25, 30], [25, 30, 25], [40, 40, 35],
                                 [20, 15, 20], [35, 35, 40], [30, 30, 30], [15, 0, 0]]
        ncon.data.net.Qd_base = [[0, 0, 0],
                                 [10, 10, 10], [15, 10, 15], [10, 15, 10], [20, 20, 15],
                                 [10, 5, 10], [15, 15, 20], [15, 15, 15], [5, 0, 0]]
        ncon.data.net.profile_shape = [0.7, 0.8, 1.0, 1.0, 0.9, 0.8]

        ncon.data.net.bch = [["150", "1"], ["1", "2"], ["2", "3"], ["3", "4"], ["2", "5"], ["5", "6"],
                             ["6", "7"], ["4", "7"], ["5", "7"], ["1", "4"], ["3", "8"]]
        ncon.data.net.bch_length = [0.0, 0.3, 0.25, 0.2, 0.3, 0.25, 0.2, 0.0, 0.35, 0.4, 0.15]
        ncon.data.net.bch_phase = [[1, 1, 1]] * 10 + [[1, 0, 0]]
        ncon.data.net.bch_config = ["zero", 1, 1, 6, 1, 6, 6, "zero", 1, 1, 9]
        ncon.data.net.bch_type = ["regulator", "fixed", "damaged", "fixed", "fixed", "damaged",
                                  "fixed", "switch", "candidate", "unrepairable", "fixed"]
        ncon.data.net.bch_Smax = [1000.0, 800.0, 500.0, 500.0, 500.0, 400.0, 400.0, 300.0, 300.0, 500.0, 100.0]
        ncon.data.net.bch_repair_cost = [0, 0, 1500.0, 0, 0, 1200.0, 0, 0, 0, 0, 0]
        ncon.data.net.bch_build_cost = [0, 0, 0, 0, 0, 0, 0, 0, 2500.0, 0, 0]
        ncon.data.net.bch_available = [1] * 11

        ncon.data.net.line_config = copy.deepcopy({key: LINE_CONFIG_IEEE123[key] for key in (1, 6, 9, "zero")})

    else:
        raise ValueError(f"Unknown network preset '{name}'")

    return ncon


def make_network(name: str) -> NetworkClass:
    net = NetworkClass(make_network_config(name))
    net.name = name
    return net
