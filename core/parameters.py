# This script derives the immutable parameter snapshot of the restoration model
# (demand, fuel bounds, budgets and big-M constants are all computed here, before any Pyomo component exists)

from dataclasses import dataclass
from types import MappingProxyType

import numpy as np

from core.network import PHASES, MalformedInputError


def _frozen(d):
    return MappingProxyType(dict(d))


@dataclass(frozen=True)
class ParameterSnapshot:
    # index sets
    Set_bus: tuple
    Set_phase: tuple
    Set_bch: tuple
    Set_bch_on: tuple  # always energized ('fixed' and 'regulator')
    Set_bch_off: tuple  # never energized ('unrepairable' and blocked candidates)
    Set_bch_switch: tuple
    Set_bch_reg: tuple
    Set_task: tuple
    Set_task_rep: tuple
    Set_task_new: tuple
    Set_sub: tuple
    Set_gen: tuple
    Set_crew: tuple
    Set_node: tuple
    Set_arc: tuple
    Set_ts: tuple
    Set_ts_build: tuple
    Set_ts_run: tuple

    # network
    root_bus: str
    root_rating: float
    bch_from: MappingProxyType
    bch_to: MappingProxyType
    bch_phase: MappingProxyType  # (l, p) -> 0/1
    bus_phase: MappingProxyType  # (b, p) -> 0/1
    Smax: MappingProxyType
    kvl_r: MappingProxyType  # (l, p, q) -> coefficient
    kvl_x: MappingProxyType
    lines_into: MappingProxyType
    lines_out_of: MappingProxyType

    # demand
    Pd: MappingProxyType  # (b, p, t) for all t
    Qd: MappingProxyType  # (b, p, t) for build t
    Qcap: MappingProxyType  # (b, p)

    # voltage
    V2_min: float
    V2_max: float
    V2_root: float
    V2_reg_ratio: tuple

    # horizon
    H: int
    dt: float
    D: float
    weight: MappingProxyType

    # resources
    sub_bus: MappingProxyType
    sub_Pmax: MappingProxyType  # (s, p)
    sub_Qmax: MappingProxyType
    sub_avail_ts: MappingProxyType
    gen_bus: MappingProxyType
    gen_Pmax: MappingProxyType  # (g, p)
    gen_Qmax: MappingProxyType
    gen_avail_ts: MappingProxyType
    gen_fuel_rate: MappingProxyType
    gen_reserve_factor: float

    # routing
    travel_time: MappingProxyType
    service_time: MappingProxyType
    crew_tasks: MappingProxyType

    # fuel
    F_min: MappingProxyType
    F_max: MappingProxyType
    fuel_budget: float

    # costs
    voll: MappingProxyType
    rep_cost: MappingProxyType
    build_cost: MappingProxyType
    sub_install_cost: MappingProxyType
    gen_install_cost: MappingProxyType
    cost_travel: float
    cost_fuel: float
    cost_root_energy: float

    # policy caps
    max_subs: int
    max_gens: int
    max_new_lines: int

    # big-M constants
    M_route: float
    M_volt: float
    M_flow: float


def derive_bigm(net, hrz, res, cfg, verbose=True):
    """
    Derive the smallest safe big-M constants and reconcile them with the configured ones.

    - routing: an arrival time never exceeds the build horizon (a visited task must become available within it),
      so H*dt + max service + max travel dominates every disjunctive arrival-time relation
    - voltage: with a branch switched off (or a phase absent) its flows are zero, so the KVL residual is bounded
      by the squared-voltage range; the flow term is added on top to cover any phase coupling
    - virtual flow: at most one unit per bus travels through a branch
    """
    max_travel = max(res.travel_time.values(), default=0.0)
    max_service = max(res.service_time.values(), default=0.0)
    M_route = hrz.H * hrz.dt + max_service + max_travel

    V2_max = net.data.net.V_max ** 2
    flow_term = 0.0
    for l in net.Set_bch:
        coef = np.abs(net.kvl_r[l]) + np.abs(net.kvl_x[l])
        flow_term = max(flow_term, 2 * float(coef.sum(axis=1).max()) * net.data.net.bch_Smax[l - 1])
    M_volt = V2_max + flow_term

    M_flow = float(len(net.data.net.bus))

    derived = {"routing": M_route, "voltage": M_volt, "virtual_flow": M_flow}
    chosen = {}
    for key, value in derived.items():
        configured = getattr(cfg.data.bigm, key)
        if configured is None:
            chosen[key] = value
            continue
        if configured < value and verbose:
            print(f"Warning: configured big-M '{key}' = {configured} is below the dominance bound {value:.4g}; "
                  f"the relaxed constraints may cut off feasible solutions")
        chosen[key] = float(configured)

    return chosen["routing"], chosen["voltage"], chosen["virtual_flow"]


def derive_fuel_bounds(res, hrz, cfg):
    """
    Fuel allocation bounds of every candidate generator and the portfolio budget (gallons)

    - minimum: a minimum on-site run at full three-phase rating
    - maximum: the energy of the whole horizon (build day + replayed days) at full rating
    - budget: the average generator over the whole horizon, times the cap on installable generators
    """
    r = res.data.res
    F_min, F_max = {}, {}
    full_load = {}
    for g in res.Set_gen:
        full_load[g] = r.gen_fuel_rate[g - 1] * sum(r.gen_Pmax[g - 1])
        F_max[g] = full_load[g] * hrz.total_energy_hours
        F_min[g] = min(full_load[g] * cfg.data.pol.gen_min_run_hours, F_max[g])

    if res.Set_gen:
        budget = float(np.mean(list(full_load.values()))) * hrz.total_energy_hours * cfg.data.pol.max_gens
    else:
        budget = 0.0

    return F_min, F_max, budget


def derive_parameters(net, hrz, res, cfg, verbose=True):
    """
    Build the parameter snapshot from the network, horizon and resource engines plus the restoration config.
    """
    n = net.data.net
    r = res.data.res
    cost = cfg.data.cost
    pol = cfg.data.pol

    if n.profile_shape is not None and len(n.profile_shape) < hrz.H:
        raise MalformedInputError(f"Load shape has {len(n.profile_shape)} entries but the build horizon "
                                  f"has {hrz.H} timesteps")
    for name in ("max_subs", "max_gens", "max_new_lines"):
        if getattr(pol, name) < 0:
            raise MalformedInputError(f"Policy cap '{name}' must be non-negative")
    if not 0 <= pol.gen_reserve_factor < 1:
        raise MalformedInputError(f"Generator reserve factor must lie in [0, 1), got {pol.gen_reserve_factor}")

    Set_bus = tuple(n.bus)
    Set_bch = tuple(net.Set_bch)

    # demand of every bus, phase and timestep (run steps replay the build-phase shape)
    Pd = {(b, p, t): net.get_active_demand(b, p, hrz.hour_of(t))
          for b in Set_bus for p in PHASES for t in hrz.Set_ts}
    Qd = {(b, p, t): net.get_reactive_demand(b, p, hrz.hour_of(t))
          for b in Set_bus for p in PHASES for t in hrz.Set_ts_build}
    Qcap = {(b, p): net.get_capacitor_injection(b, p) for b in Set_bus for p in PHASES}

    voll = {b: cost.voll for b in Set_bus}
    if cost.voll_bus:
        for b, v in cost.voll_bus.items():
            if b not in voll:
                raise MalformedInputError(f"Value of lost load given for undefined bus '{b}'")
            voll[b] = v

    kvl_r = {(l, p, q): float(net.kvl_r[l][p - 1, q - 1]) for l in Set_bch for p in PHASES for q in PHASES}
    kvl_x = {(l, p, q): float(net.kvl_x[l][p - 1, q - 1]) for l in Set_bch for p in PHASES for q in PHASES}

    F_min, F_max, fuel_budget = derive_fuel_bounds(res, hrz, cfg)
    M_route, M_volt, M_flow = derive_bigm(net, hrz, res, cfg, verbose=verbose)

    repair_cost = getattr(n, "bch_repair_cost", None) or [0.0] * len(Set_bch)
    build_cost = getattr(n, "bch_build_cost", None) or [0.0] * len(Set_bch)

    return ParameterSnapshot(
        Set_bus=Set_bus,
        Set_phase=PHASES,
        Set_bch=Set_bch,
        Set_bch_on=tuple(sorted(net.lines_by_type["fixed"] + net.lines_by_type["regulator"])),
        Set_bch_off=tuple(sorted(net.lines_by_type["unrepairable"] + res.Set_bch_blocked)),
        Set_bch_switch=tuple(net.lines_by_type["switch"]),
        Set_bch_reg=tuple(net.lines_by_type["regulator"]),
        Set_task=tuple(res.Set_task),
        Set_task_rep=tuple(res.Set_task_rep),
        Set_task_new=tuple(res.Set_task_new),
        Set_sub=tuple(res.Set_sub),
        Set_gen=tuple(res.Set_gen),
        Set_crew=tuple(res.Set_crew),
        Set_node=tuple(res.Set_node),
        Set_arc=tuple(res.Set_arc),
        Set_ts=tuple(hrz.Set_ts),
        Set_ts_build=tuple(hrz.Set_ts_build),
        Set_ts_run=tuple(hrz.Set_ts_run),

        root_bus=n.root_bus,
        root_rating=float(n.root_rating),
        bch_from=_frozen({l: n.bch[l - 1][0] for l in Set_bch}),
        bch_to=_frozen({l: n.bch[l - 1][1] for l in Set_bch}),
        bch_phase=_frozen({(l, p): int(n.bch_phase[l - 1][p - 1]) for l in Set_bch for p in PHASES}),
        bus_phase=_frozen({(b, p): int(net.bus_has_phase(b, p)) for b in Set_bus for p in PHASES}),
        Smax=_frozen({l: float(n.bch_Smax[l - 1]) for l in Set_bch}),
        kvl_r=_frozen(kvl_r),
        kvl_x=_frozen(kvl_x),
        lines_into=_frozen({b: tuple(net.lines_into[b]) for b in Set_bus}),
        lines_out_of=_frozen({b: tuple(net.lines_out_of[b]) for b in Set_bus}),

        Pd=_frozen(Pd),
        Qd=_frozen(Qd),
        Qcap=_frozen(Qcap),

        V2_min=n.V_min ** 2,
        V2_max=n.V_max ** 2,
        V2_root=n.V_root ** 2,
        V2_reg_ratio=(n.regulator_ratio[0] ** 2, n.regulator_ratio[1] ** 2),

        H=hrz.H,
        dt=hrz.dt,
        D=hrz.D,
        weight=_frozen({t: hrz.weight(t) for t in hrz.Set_ts}),

        sub_bus=_frozen({s: r.sub_bus[s - 1] for s in res.Set_sub}),
        sub_Pmax=_frozen({(s, p): float(r.sub_Pmax[s - 1][p - 1]) for s in res.Set_sub for p in PHASES}),
        sub_Qmax=_frozen({(s, p): float(r.sub_Qmax[s - 1][p - 1]) for s in res.Set_sub for p in PHASES}),
        sub_avail_ts=_frozen({s: int(r.sub_avail_ts[s - 1]) for s in res.Set_sub}),
        gen_bus=_frozen({g: r.gen_bus[g - 1] for g in res.Set_gen}),
        gen_Pmax=_frozen({(g, p): float(r.gen_Pmax[g - 1][p - 1]) for g in res.Set_gen for p in PHASES}),
        gen_Qmax=_frozen({(g, p): float(r.gen_Qmax[g - 1][p - 1]) for g in res.Set_gen for p in PHASES}),
        gen_avail_ts=_frozen({g: int(r.gen_avail_ts[g - 1]) for g in res.Set_gen}),
        gen_fuel_rate=_frozen({g: float(r.gen_fuel_rate[g - 1]) for g in res.Set_gen}),
        gen_reserve_factor=float(pol.gen_reserve_factor),

        travel_time=_frozen(res.travel_time),
        service_time=_frozen(res.service_time),
        crew_tasks=_frozen({c: tuple(ks) for c, ks in res.crew_tasks.items()}),

        F_min=_frozen(F_min),
        F_max=_frozen(F_max),
        fuel_budget=fuel_budget,

        voll=_frozen(voll),
        rep_cost=_frozen({k: float(repair_cost[k - 1]) for k in res.Set_task_rep}),
        build_cost=_frozen({k: float(build_cost[k - 1]) for k in res.Set_task_new}),
        sub_install_cost=_frozen({s: float(r.sub_install_cost[s - 1]) for s in res.Set_sub}),
        gen_install_cost=_frozen({g: float(r.gen_install_cost[g - 1]) for g in res.Set_gen}),
        cost_travel=float(cost.travel),
        cost_fuel=float(cost.fuel),
        cost_root_energy=float(cost.root_energy),

        max_subs=int(pol.max_subs),
        max_gens=int(pol.max_gens),
        max_new_lines=int(pol.max_new_lines),

        M_route=M_route,
        M_volt=M_volt,
        M_flow=M_flow,
    )
