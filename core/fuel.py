# This script contains the fuel accounting of portable generators (allocation bounds, budget and consumption)

import pyomo.environ as pyo


def add_fuel_constraints(model, par):
    """
    Requires model.u_gen and model.P_gen. Fuel quantities are in gallons.
    """
    # ------ Variables ------
    model.F = pyo.Var(model.Set_gen, within=pyo.NonNegativeReals)  # fuel allocated to each generator

    # ------ Constraints ------
    # 1) Install-dependent allocation bounds
    model.Constraint_FuelMin = pyo.Constraint(
        model.Set_gen, rule=lambda model, g: model.F[g] >= par.F_min[g] * model.u_gen[g])
    model.Constraint_FuelMax = pyo.Constraint(
        model.Set_gen, rule=lambda model, g: model.F[g] <= par.F_max[g] * model.u_gen[g])

    # 2) Portfolio-wide budget
    if par.Set_gen:
        model.Constraint_FuelBudget = pyo.Constraint(expr=sum(model.F[g] for g in model.Set_gen) <= par.fuel_budget)

    # 3) Consumption over the build day plus the replayed days cannot exceed the allocation
    def fuel_consumption_rule(model, g):
        build = sum(model.P_gen[g, p, t] for p in model.Set_phase for t in model.Set_ts_build)
        run = sum(model.P_gen[g, p, t] for p in model.Set_phase for t in model.Set_ts_run)
        return par.gen_fuel_rate[g] * par.dt * (build + par.D * run) <= model.F[g]

    model.Constraint_FuelConsumption = pyo.Constraint(model.Set_gen, rule=fuel_consumption_rule)

    # ------ Cost ------
    model.Cost_fuel = pyo.Expression(expr=sum(par.cost_fuel * model.F[g] for g in model.Set_gen))

    return model


def fuel_consumption(model, par, g):
    """Fuel burnt by generator g in the solved model (gallons)"""
    build = sum(pyo.value(model.P_gen[g, p, t]) for p in par.Set_phase for t in par.Set_ts_build)
    run = sum(pyo.value(model.P_gen[g, p, t]) for p in par.Set_phase for t in par.Set_ts_run)
    return par.gen_fuel_rate[g] * par.dt * (build + par.D * run)
