# This script contains the network engine of the three-phase restoration model:
# topology validation, adjacency indexes, linearized KVL coefficients and demand derivation

import numpy as np

from core.config import NetConfig


PHASES = (1, 2, 3)
BRANCH_TYPES = ("fixed", "switch", "regulator", "damaged", "unrepairable", "candidate")


class MalformedInputError(ValueError):
    """Raised when the restoration data is inconsistent and no model can be built from it"""


class NetworkClass:
    def __init__(self, obj=None):

        # Get default values from config
        if obj is None:
            obj = NetConfig()

        for pars in obj.__dict__.keys():
            setattr(self, pars, getattr(obj, pars))

        self.name = getattr(self, "name", "network")

        # Check data consistency before anything is derived from it
        self.validate()

        # Adjacency indexes (built once, used by every balance-type constraint)
        self.bus_index = {b: i for i, b in enumerate(self.data.net.bus)}
        self.Set_bch = list(range(1, len(self.data.net.bch) + 1))

        self.lines_into = {b: [] for b in self.data.net.bus}
        self.lines_out_of = {b: [] for b in self.data.net.bus}
        self.lines_by_type = {tp: [] for tp in BRANCH_TYPES}

        for l in self.Set_bch:
            fr_bus, to_bus = self.data.net.bch[l - 1]
            self.lines_out_of[fr_bus].append(l)
            self.lines_into[to_bus].append(l)
            self.lines_by_type[self.data.net.bch_type[l - 1]].append(l)

        # Linearized KVL coefficients of each branch
        self.kvl_r, self.kvl_x = self.compute_kvl_coefficients()

    def validate(self):
        """
        Reject inconsistent network data before a model is built from it.
        """
        net = self.data.net
        buses = net.bus

        if len(set(buses)) != len(buses):
            dup = sorted({b for b in buses if buses.count(b) > 1})
            raise MalformedInputError(f"Duplicate bus ids: {dup}")

        if net.root_bus not in buses:
            raise MalformedInputError(f"Root bus '{net.root_bus}' is not in the bus list")

        # - per-bus data must be aligned with the bus list
        for field in ("bus_phase", "Pd_base", "Qd_base", "Qcap"):
            values = getattr(net, field, None)
            if values is None:
                if field == "Qcap":
                    continue
                raise MalformedInputError(f"'{field}' is missing")
            if len(values) != len(buses):
                raise MalformedInputError(f"'{field}' has {len(values)} entries but there are {len(buses)} buses")
            for b, row in zip(buses, values):
                if len(row) != len(PHASES):
                    raise MalformedInputError(f"'{field}' of bus '{b}' must have {len(PHASES)} phase entries")

        # - per-branch data must be aligned with the branch list
        num_bch = len(net.bch)
        for field in ("bch_length", "bch_phase", "bch_config", "bch_type", "bch_Smax"):
            if len(getattr(net, field)) != num_bch:
                raise MalformedInputError(f"'{field}' has {len(getattr(net, field))} entries "
                                          f"but there are {num_bch} branches")

        # - optional cost and availability lists, when given, follow the same alignment
        for field in ("bch_repair_cost", "bch_build_cost", "bch_available"):
            values = getattr(net, field, None)
            if values is not None and len(values) != num_bch:
                raise MalformedInputError(f"'{field}' has {len(values)} entries but there are {num_bch} branches")

        bus_phase = dict(zip(buses, net.bus_phase))

        for l, (fr_bus, to_bus) in enumerate(net.bch, start=1):
            for b in (fr_bus, to_bus):
                if b not in bus_phase:
                    raise MalformedInputError(f"Branch {l} ({fr_bus}->{to_bus}) references undefined bus '{b}'")
            if fr_bus == to_bus:
                raise MalformedInputError(f"Branch {l} connects bus '{fr_bus}' to itself")

            if net.bch_type[l - 1] not in BRANCH_TYPES:
                raise MalformedInputError(f"Branch {l} has unknown type '{net.bch_type[l - 1]}'")

            if net.bch_config[l - 1] not in net.line_config:
                raise MalformedInputError(f"Branch {l} references impedance configuration "
                                          f"'{net.bch_config[l - 1]}' with no matching matrix")

            mask = net.bch_phase[l - 1]
            if len(mask) != len(PHASES):
                raise MalformedInputError(f"Phase mask of branch {l} must have {len(PHASES)} entries")
            for p in PHASES:
                if mask[p - 1] and not (bus_phase[fr_bus][p - 1] and bus_phase[to_bus][p - 1]):
                    raise MalformedInputError(f"Branch {l} carries phase {p} which is not available "
                                              f"at both '{fr_bus}' and '{to_bus}'")

            if net.bch_length[l - 1] < 0 or net.bch_Smax[l - 1] < 0:
                raise MalformedInputError(f"Branch {l} has a negative length or rating")

        for cfg_id, cfg in net.line_config.items():
            for key in ("R", "X"):
                if np.shape(cfg.get(key)) != (3, 3):
                    raise MalformedInputError(f"Impedance configuration '{cfg_id}' needs a 3x3 '{key}' matrix")

        if net.profile_shape is not None and any(v < 0 for v in net.profile_shape):
            raise MalformedInputError("Load shape multipliers must be non-negative")

    def compute_kvl_coefficients(self):
        """
        Compute the 3x3 coefficient matrices of the linearized three-phase KVL for every branch:

            V2_i - V2_j = 2 * (r_tilde @ P + x_tilde @ Q)

        with r_tilde = Re(G)*R + Im(G)*X, x_tilde = Re(G)*X - Im(G)*R, G = a a^H, a = [1, alpha, alpha^2],
        alpha = exp(-j 2 pi / 3). Impedances are converted into p.u. and divided by the power base, so that the
        coefficients multiply flows expressed in kW / kvar.
        """
        net = self.data.net

        alpha = np.exp(-2j * np.pi / 3)
        a = np.array([1, alpha, alpha ** 2])
        gamma = np.outer(a, a.conj())

        z_base = net.base_kV ** 2 * 1000 / (3 * net.base_kVA)  # per-phase impedance base (ohm)

        kvl_r = {}
        kvl_x = {}
        for l in self.Set_bch:
            cfg = net.line_config[net.bch_config[l - 1]]
            mask = np.array(net.bch_phase[l - 1], dtype=float)
            mask2 = np.outer(mask, mask)

            R_pu = np.asarray(cfg["R"], dtype=float) * net.bch_length[l - 1] / z_base * mask2
            X_pu = np.asarray(cfg["X"], dtype=float) * net.bch_length[l - 1] / z_base * mask2

            r_tilde = gamma.real * R_pu + gamma.imag * X_pu
            x_tilde = gamma.real * X_pu - gamma.imag * R_pu

            kvl_r[l] = r_tilde / net.base_kVA
            kvl_x[l] = x_tilde / net.base_kVA

        return kvl_r, kvl_x

    def bus_has_phase(self, b, p):
        return bool(self.data.net.bus_phase[self.bus_index[b]][p - 1])

    def load_shape(self, hour):
        """Hourly multiplier of the base demand (hour is 1-based)"""
        shape = self.data.net.profile_shape
        if shape is None:
            return 1.0
        return shape[hour - 1]

    def get_active_demand(self, b, p, hour):
        """Active demand at bus b, phase p, for a given hour of the representative day (kW)"""
        idx = self.bus_index[b]
        return self.data.net.Pd_base[idx][p - 1] * self.load_shape(hour) * self.data.net.bus_phase[idx][p - 1]

    def get_reactive_demand(self, b, p, hour):
        """Reactive demand at bus b, phase p, for a given hour of the representative day (kvar)"""
        idx = self.bus_index[b]
        return self.data.net.Qd_base[idx][p - 1] * self.load_shape(hour) * self.data.net.bus_phase[idx][p - 1]

    def get_capacitor_injection(self, b, p):
        """Reactive injection of the capacitor bank at bus b (zero unless capacitors are enabled)"""
        net = self.data.net
        if not net.enable_capacitors or net.Qcap is None:
            return 0.0
        return net.Qcap[self.bus_index[b]][p - 1] * net.bus_phase[self.bus_index[b]][p - 1]

    def find_islanded_buses(self):
        """
        Return a sorted list of all buses that are not connected
        to any branch (i.e. never appear in self.data.net.bch).
        """
        all_buses = set(self.data.net.bus)

        connected = set()
        for (i, j) in self.data.net.bch:
            connected.add(i)
            connected.add(j)

        return sorted(all_buses - connected)

