# This script is to test solved restoration cases end to end (requires the HiGHS solver)

import pyomo.environ as pyo
import pytest

from core.fuel import fuel_consumption
from core.restoration_model import RestorationClass
from factories.case_factory import make_restoration_case, make_restoration_config


TOL = 1e-5


def on(var):
    return int(round(pyo.value(var, exception=False) or 0))


def solve_case(cfg, solver_name, **kwargs):
    rm = RestorationClass(cfg, verbose=False)
    model = rm.build_restoration_model(verbose=False)
    results = rm.solve_restoration_model(model, solver_name=solver_name, **kwargs)
    return rm, model, results


def assert_served_buses_meet_full_demand(rm, model):
    """A served bus has its full per-phase demand balanced with zero slack"""
    par = rm.par
    for b in par.Set_bus:
        subs = [s for s in par.Set_sub if par.sub_bus[s] == b]
        gens = [g for g in par.Set_gen if par.gen_bus[g] == b]
        for t in par.Set_ts:
            if not on(model.w[b, t]):
                continue
            for p in par.Set_phase:
                supply = sum(pyo.value(model.P_sub[s, p, t]) for s in subs)
                supply += sum(pyo.value(model.P_gen[g, p, t]) for g in gens)
                if b == par.root_bus:
                    supply += pyo.value(model.P_root[p, t])
                supply += sum(pyo.value(model.P[l, p, t]) for l in par.lines_into[b] if par.bch_phase[l, p])
                supply -= sum(pyo.value(model.P[l, p, t]) for l in par.lines_out_of[b] if par.bch_phase[l, p])
                assert supply == pytest.approx(par.Pd[b, p, t], abs=1e-4)


# ------------------------------------------------------------------
# Single damaged line: repair or shed, whichever is cheaper
# ------------------------------------------------------------------

def test_single_repair_is_worth_it(solver_name):
    rm, model, results = solve_case(make_restoration_config("single_repair"), solver_name)

    # crew leaves at 0, arrives at 0.5 h, completes at 1.5 h -> branch usable from step 2;
    # cost = repair 1000 + travel 1 h x 50 + step-1 shedding 150 kW x 10
    assert results["outcome"] == "optimal"
    assert results["objective"] == pytest.approx(1000 + 50 + 1500, rel=1e-6)

    assert on(model.y[1]) == 1
    assert on(model.z[1, 2]) == 1
    assert [on(model.e[1, t]) for t in rm.par.Set_ts] == [0, 1, 1, 1]
    assert [on(model.w["1", t]) for t in rm.par.Set_ts] == [0, 1, 1, 1]

    tables = rm.get_solution_tables(model)
    task = tables["tasks"].iloc[0]
    assert task["available_ts"] == 2
    assert 1.5 - TOL <= task["completion_h"] <= 2.0 + TOL
    assert tables["routes"].iloc[0]["route"] == "0 -> 1 -> 0"
    assert tables["costs"]["value"].sum() == pytest.approx(results["objective"])


def test_single_repair_too_expensive_sheds_instead(solver_name):
    cfg = make_restoration_config("single_repair")
    cfg.data.net.bch_repair_cost = [10000.0]
    rm, model, results = solve_case(cfg, solver_name)

    # 150 kW shed over 2 build steps plus 2 run steps (D = 1) at 10 per kWh
    assert results["outcome"] == "optimal"
    assert results["objective"] == pytest.approx(4 * 1500, rel=1e-6)
    assert on(model.y[1]) == 0
    assert all(on(model.e[1, t]) == 0 for t in rm.par.Set_ts)
    assert pyo.value(model.Cost_travel) == pytest.approx(0)


def test_repair_that_cannot_finish_in_time_is_not_selected(solver_name):
    cfg = make_restoration_config("single_repair")
    cfg.data.res.service_time = {1: 5.0}
    rm, model, results = solve_case(cfg, solver_name)

    assert results["outcome"] == "optimal"
    assert on(model.y[1]) == 0
    assert results["objective"] == pytest.approx(4 * 1500, rel=1e-6)


# ------------------------------------------------------------------
# Undamaged feeder: pure load flow
# ------------------------------------------------------------------

def test_pure_load_flow_serves_everything(solver_name):
    rm, model, results = solve_case(make_restoration_config("pure_load_flow"), solver_name)

    assert results["outcome"] == "optimal"
    assert results["objective"] == pytest.approx(0, abs=1e-6)
    for b in rm.par.Set_bus:
        if any(rm.par.Pd[b, p, 1] > 0 for p in rm.par.Set_phase):
            assert all(on(model.w[b, t]) == 1 for t in rm.par.Set_ts)
    assert_served_buses_meet_full_demand(rm, model)
    assert rm.check_radial_forest(model) == []

    # voltages stay within limits and drop along the feeder
    for t in rm.par.Set_ts_build:
        assert pyo.value(model.V["150", 1, t]) == pytest.approx(1.0)
        assert pyo.value(model.V["3", 1, t]) < pyo.value(model.V["1", 1, t]) <= 1.0 + TOL


def test_infeasible_data_is_reported_as_infeasible(solver_name):
    cfg = make_restoration_config("pure_load_flow")
    cfg.data.net.V_min = 1.05  # root voltage pinned below the lower limit
    rm, model, results = solve_case(cfg, solver_name)

    assert results["outcome"] == "infeasible"
    assert results["objective"] is None


# ------------------------------------------------------------------
# Damaged 8-bus feeder
# ------------------------------------------------------------------

@pytest.fixture(scope="module")
def solved_feeder(solver_name):
    rm = make_restoration_case("feeder_8_bus_restoration")
    model = rm.build_restoration_model(verbose=False)
    results = rm.solve_restoration_model(model, solver_name=solver_name, time_limit=300)
    return rm, model, results


def test_feeder_is_solved(solved_feeder):
    rm, model, results = solved_feeder
    assert results["outcome"] == "optimal"
    assert results["gap"] == 0.0
    assert results["runtime_s"] >= 0


def test_feeder_topology_is_radial(solved_feeder):
    rm, model, results = solved_feeder
    assert rm.check_radial_forest(model) == []


def test_feeder_task_status_is_a_step_function(solved_feeder):
    rm, model, results = solved_feeder
    par = rm.par
    for k in par.Set_task:
        status = [on(model.e[k, t]) for t in par.Set_ts_build]
        assert status == sorted(status)
        picks = [t for t in par.Set_ts_build if on(model.z[k, t])]
        assert len(picks) == on(model.y[k])
        if picks:
            assert status == [int(t >= picks[0]) for t in par.Set_ts_build]
        else:
            assert sum(status) == 0


def test_feeder_availability_follows_crew_completion(solved_feeder):
    rm, model, results = solved_feeder
    tasks = rm.get_solution_tables(model)["tasks"]
    for _, row in tasks[tasks["selected"] == 1].iterrows():
        assert row["available_ts"] * rm.par.dt >= row["completion_h"] - TOL


def test_feeder_topology_is_frozen_in_run_phase(solved_feeder):
    rm, model, results = solved_feeder
    par = rm.par
    for l in par.Set_bch:
        for t in par.Set_ts_run:
            assert on(model.e[l, t]) == on(model.e[l, par.H])


def test_feeder_fixed_branches_keep_their_status(solved_feeder):
    rm, model, results = solved_feeder
    par = rm.par
    for t in par.Set_ts:
        assert all(on(model.e[l, t]) == 1 for l in par.Set_bch_on)
        assert all(on(model.e[l, t]) == 0 for l in par.Set_bch_off)


def test_feeder_flow_gating(solved_feeder):
    rm, model, results = solved_feeder
    par = rm.par
    for l in par.Set_bch:
        for p in par.Set_phase:
            for t in par.Set_ts:
                flow = abs(pyo.value(model.P[l, p, t]))
                if on(model.e[l, t]) and par.bch_phase[l, p]:
                    assert flow <= par.Smax[l] + TOL
                else:
                    assert flow <= TOL


def test_feeder_fuel_budget(solved_feeder):
    rm, model, results = solved_feeder
    par = rm.par
    assert sum(pyo.value(model.F[g]) for g in par.Set_gen) <= par.fuel_budget + TOL
    for g in par.Set_gen:
        assert fuel_consumption(model, par, g) <= pyo.value(model.F[g]) + TOL
        if not on(model.u_gen[g]):
            assert pyo.value(model.F[g]) == pytest.approx(0, abs=TOL)


def test_feeder_served_buses_meet_full_demand(solved_feeder):
    rm, model, results = solved_feeder
    assert_served_buses_meet_full_demand(rm, model)


def test_feeder_solution_tables(solved_feeder):
    rm, model, results = solved_feeder
    tables = rm.get_solution_tables(model)

    assert set(tables) == {"line_status", "tasks", "routes", "installs", "served", "costs"}
    assert len(tables["line_status"]) == len(rm.par.Set_bch) * len(rm.par.Set_ts)
    assert list(tables["tasks"]["branch"]) == [3, 6, 9]
    assert list(tables["routes"]["crew"]) == [1, 2]
    assert tables["costs"]["value"].sum() == pytest.approx(results["objective"], rel=1e-6)

    # every selected task is on exactly one crew tour
    visited = [int(n) for route in tables["routes"]["route"] for n in route.split(" -> ") if n != "0"]
    selected = list(tables["tasks"].loc[tables["tasks"]["selected"] == 1, "branch"])
    assert sorted(visited) == sorted(selected)


# ------------------------------------------------------------------
# Resource exhaustion is reported apart from infeasibility
# ------------------------------------------------------------------

def test_zero_time_limit_reports_no_solution(solver_name):
    rm = make_restoration_case("feeder_8_bus_restoration")
    model = rm.build_restoration_model(verbose=False)
    results = rm.solve_restoration_model(model, solver_name=solver_name, time_limit=0, verbose=False)

    assert results["outcome"] == "no_solution"
    assert results["objective"] is None and results["gap"] is None
    assert results["termination"] == str(pyo.TerminationCondition.maxTimeLimit)


def test_stopping_at_first_incumbent_reports_gap(solved_feeder, solver_name):
    rm_opt, model_opt, results_opt = solved_feeder

    rm = make_restoration_case("feeder_8_bus_restoration")
    model = rm.build_restoration_model(verbose=False)
    results = rm.solve_restoration_model(model, solver_name=solver_name, verbose=False,
                                         mip_max_improving_sols=1)

    assert results["outcome"] == "time_limited"
    assert results["objective"] >= results_opt["objective"] - 1e-6
    assert results["gap"] > 0
    # the reported gap brackets the optimum between the dual bound and the incumbent
    bound = results["objective"] - results["gap"] * abs(results["objective"])
    assert bound <= results_opt["objective"] + 1e-6
