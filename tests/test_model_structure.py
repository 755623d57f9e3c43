# This script is to test the structure of the generated restoration model (no solver needed)

import pyomo.environ as pyo
import pytest

from factories.case_factory import make_restoration_case


@pytest.fixture(scope="module")
def feeder():
    rm = make_restoration_case("feeder_8_bus_restoration")
    return rm, rm.build_restoration_model(verbose=False)


@pytest.fixture(scope="module")
def load_flow():
    rm = make_restoration_case("pure_load_flow")
    return rm, rm.build_restoration_model(verbose=False)


def test_reactive_and_voltage_state_only_in_build_phase(feeder):
    rm, model = feeder
    H = rm.par.H
    assert (2, 1, H) in model.Q and (2, 1, H + 1) not in model.Q
    assert (2, 1, H + 1) in model.P
    assert ("3", 1, H + 1) not in model.V
    assert ("3", 1, H + 1) in model.Constraint_PowerBalance_P
    assert ("3", 1, H + 1) not in model.Constraint_PowerBalance_Q


def test_kvl_only_in_build_phase_and_not_on_regulators(feeder):
    rm, model = feeder
    assert all(t <= rm.par.H for (l, p, t) in model.Constraint_KVL_upper)
    assert (1, 1, 1) not in model.Constraint_KVL_upper
    assert (2, 1, 1) in model.Constraint_KVL_upper
    assert (1, 1, 1) in model.Constraint_Regulator_lower
    assert (1, 1, 1) in model.Constraint_Regulator_upper


def test_radiality_only_in_build_phase(feeder):
    rm, model = feeder
    assert max(t for (b, t) in model.gamma) == rm.par.H
    assert max(t for (l, d, t) in model.beta) == rm.par.H
    assert len(model.Constraint_VirtualBalance) == len(rm.par.Set_bus) * rm.par.H


def test_topology_freeze_covers_run_phase(feeder):
    rm, model = feeder
    assert len(model.Constraint_TopologyFreeze) == len(rm.par.Set_bch) * rm.par.H
    assert all(t > rm.par.H for (l, t) in model.Constraint_TopologyFreeze)


def test_fixed_status_constraints(feeder):
    rm, model = feeder
    assert (10, 1) in model.Constraint_AlwaysOff
    assert (1, 1) in model.Constraint_AlwaysOn
    # switches and tasks are not fixed
    assert (8, 1) not in model.Constraint_AlwaysOn and (8, 1) not in model.Constraint_AlwaysOff
    assert (3, 1) not in model.Constraint_AlwaysOn and (3, 1) not in model.Constraint_AlwaysOff


def test_resource_output_is_zero_before_availability(feeder):
    rm, model = feeder
    # substation 1 arrives at step 3, generator 1 at step 2
    assert model.Constraint_SubLimit_P[1, 1, 2].equality
    assert not model.Constraint_SubLimit_P[1, 1, 3].equality
    assert model.Constraint_GenLimit_P[1, 1, 1].equality
    assert not model.Constraint_GenLimit_P[1, 1, 2].equality
    # run phase is not gated by the availability step
    assert not model.Constraint_SubLimit_P[1, 1, rm.par.H + 1].equality


def test_routing_structure(feeder):
    rm, model = feeder
    assert len(model.x) == 12
    assert set(model.Constraint_Visit) == {3, 6, 9}
    # crew 1 may not work on branch 6
    assert (6, 1) not in model.Constraint_TourConservation
    assert (6, 1) not in model.Constraint_CompletionTime
    assert all(j != 0 for (i, j, c) in model.Constraint_ArrivalPropagation)


def test_caps_and_objective(feeder):
    rm, model = feeder
    assert hasattr(model, "Constraint_MaxSubs")
    assert hasattr(model, "Constraint_MaxGens")
    assert hasattr(model, "Constraint_MaxNewLines")
    assert hasattr(model, "Constraint_FuelBudget")
    assert model.Objective.sense == pyo.minimize


def test_pure_load_flow_has_no_installation_terms(load_flow):
    rm, model = load_flow
    assert len(model.Set_sub) == 0 and len(model.Set_gen) == 0
    assert len(model.Set_task) == 0 and len(model.x) == 0
    assert pyo.value(model.Cost_install) == 0
    assert pyo.value(model.Cost_repair) == 0
    assert pyo.value(model.Cost_build) == 0
    assert pyo.value(model.Cost_fuel) == 0
    assert not hasattr(model, "Constraint_MaxSubs")
    assert not hasattr(model, "Constraint_FuelBudget")


def test_demand_parameter_feeds_unserved_cost(feeder):
    rm, model = feeder
    par = rm.par
    assert pyo.value(model.Pd["4", 1, 1]) == pytest.approx(par.Pd["4", 1, 1])
    assert not any(hasattr(model, name) for name in ("BigM_route", "BigM_volt", "BigM_flow"))

    for b in par.Set_bus:
        for t in par.Set_ts:
            model.w[b, t].value = 0
    expected = sum(par.weight[t] * par.dt * par.voll[b] * par.Pd[b, p, t]
                   for b in par.Set_bus for p in par.Set_phase for t in par.Set_ts)
    assert pyo.value(model.Cost_unserved) == pytest.approx(expected)
