# This script contains the linearized three-phase power flow of the restoration model:
# nodal balances, big-M gated KVL, regulator ratio bands, voltage limits, flow gating and resource outputs

import pyomo.environ as pyo


def add_power_flow_constraints(model, par):
    """
    Active-power physics hold over the whole horizon; reactive power, voltages and KVL only over the build phase.

    Requires model.e (branch energization), model.u_sub and model.u_gen.
    """
    subs_at = {b: [s for s in par.Set_sub if par.sub_bus[s] == b] for b in par.Set_bus}
    gens_at = {b: [g for g in par.Set_gen if par.gen_bus[g] == b] for b in par.Set_bus}
    root = par.root_bus

    # ------ Variables ------
    # 1) Branch flows (kW / kvar)
    model.P = pyo.Var(model.Set_bch, model.Set_phase, model.Set_ts, within=pyo.Reals)
    model.Q = pyo.Var(model.Set_bch, model.Set_phase, model.Set_ts_build, within=pyo.Reals)

    # 2) Squared voltage magnitudes (scaled to zero where the phase is missing at the bus)
    def V_bounds(model, b, p, t):
        return par.V2_min * par.bus_phase[b, p], par.V2_max * par.bus_phase[b, p]

    model.V = pyo.Var(model.Set_bus, model.Set_phase, model.Set_ts_build, bounds=V_bounds)

    # 3) Substation transfer at the root bus
    def P_root_bounds(model, p, t):
        return 0, par.root_rating * par.bus_phase[root, p]

    def Q_root_bounds(model, p, t):
        return -par.root_rating * par.bus_phase[root, p], par.root_rating * par.bus_phase[root, p]

    model.P_root = pyo.Var(model.Set_phase, model.Set_ts, bounds=P_root_bounds)
    model.Q_root = pyo.Var(model.Set_phase, model.Set_ts_build, bounds=Q_root_bounds)

    # 4) Portable resource outputs
    model.P_sub = pyo.Var(model.Set_sub, model.Set_phase, model.Set_ts, within=pyo.NonNegativeReals)
    model.Q_sub = pyo.Var(model.Set_sub, model.Set_phase, model.Set_ts_build, within=pyo.Reals)
    model.P_gen = pyo.Var(model.Set_gen, model.Set_phase, model.Set_ts, within=pyo.NonNegativeReals)
    model.Q_gen = pyo.Var(model.Set_gen, model.Set_phase, model.Set_ts_build, within=pyo.Reals)

    # 5) Load-service indicator (1 = the whole bus demand is served)
    model.w = pyo.Var(model.Set_bus, model.Set_ts, within=pyo.Binary)

    # ------ Constraints ------
    # 1) Active power balance at each bus, phase and timestep
    def P_balance_rule(model, b, p, t):
        injections = [model.P_sub[s, p, t] for s in subs_at[b]] + [model.P_gen[g, p, t] for g in gens_at[b]]
        if b == root:
            injections.append(model.P_root[p, t])
        Pf_in = [model.P[l, p, t] for l in par.lines_into[b] if par.bch_phase[l, p]]
        Pf_out = [model.P[l, p, t] for l in par.lines_out_of[b] if par.bch_phase[l, p]]
        if not (injections or Pf_in or Pf_out) and par.Pd[b, p, t] == 0:
            return pyo.Constraint.Skip
        return sum(injections) + sum(Pf_in) - sum(Pf_out) == model.w[b, t] * par.Pd[b, p, t]

    model.Constraint_PowerBalance_P = pyo.Constraint(model.Set_bus, model.Set_phase, model.Set_ts,
                                                     rule=P_balance_rule)

    # 2) Reactive power balance (build phase; capacitor injection is zero unless enabled)
    def Q_balance_rule(model, b, p, t):
        injections = [model.Q_sub[s, p, t] for s in subs_at[b]] + [model.Q_gen[g, p, t] for g in gens_at[b]]
        if b == root:
            injections.append(model.Q_root[p, t])
        Qf_in = [model.Q[l, p, t] for l in par.lines_into[b] if par.bch_phase[l, p]]
        Qf_out = [model.Q[l, p, t] for l in par.lines_out_of[b] if par.bch_phase[l, p]]
        if not (injections or Qf_in or Qf_out) and par.Qd[b, p, t] == 0:
            return pyo.Constraint.Skip
        return (sum(injections) + par.Qcap[b, p] + sum(Qf_in) - sum(Qf_out)
                == model.w[b, t] * par.Qd[b, p, t])

    model.Constraint_PowerBalance_Q = pyo.Constraint(model.Set_bus, model.Set_phase, model.Set_ts_build,
                                                     rule=Q_balance_rule)

    # 3) Linearized KVL, relaxed by big-M when the branch is off or the phase is absent (regulators excluded)
    def kvl_residual(model, l, p, t):
        fr_bus, to_bus = par.bch_from[l], par.bch_to[l]
        drop = sum(par.kvl_r[l, p, q] * model.P[l, q, t] + par.kvl_x[l, p, q] * model.Q[l, q, t]
                   for q in par.Set_phase if par.bch_phase[l, q])
        return model.V[fr_bus, p, t] - model.V[to_bus, p, t] - 2 * drop

    def kvl_relaxation(model, l, p, t):
        return par.M_volt * (1 - model.e[l, t]) + par.M_volt * (1 - par.bch_phase[l, p])

    def kvl_upper_rule(model, l, p, t):
        if l in par.Set_bch_reg:
            return pyo.Constraint.Skip
        return kvl_residual(model, l, p, t) <= kvl_relaxation(model, l, p, t)

    def kvl_lower_rule(model, l, p, t):
        if l in par.Set_bch_reg:
            return pyo.Constraint.Skip
        return kvl_residual(model, l, p, t) >= -kvl_relaxation(model, l, p, t)

    model.Constraint_KVL_upper = pyo.Constraint(model.Set_bch, model.Set_phase, model.Set_ts_build,
                                                rule=kvl_upper_rule)
    model.Constraint_KVL_lower = pyo.Constraint(model.Set_bch, model.Set_phase, model.Set_ts_build,
                                                rule=kvl_lower_rule)

    # 4) Regulator voltage-ratio band on the phases it carries
    def regulator_lower_rule(model, l, p, t):
        if not par.bch_phase[l, p]:
            return pyo.Constraint.Skip
        return model.V[par.bch_to[l], p, t] >= par.V2_reg_ratio[0] * model.V[par.bch_from[l], p, t]

    def regulator_upper_rule(model, l, p, t):
        if not par.bch_phase[l, p]:
            return pyo.Constraint.Skip
        return model.V[par.bch_to[l], p, t] <= par.V2_reg_ratio[1] * model.V[par.bch_from[l], p, t]

    model.Constraint_Regulator_lower = pyo.Constraint(model.Set_bch_reg, model.Set_phase, model.Set_ts_build,
                                                      rule=regulator_lower_rule)
    model.Constraint_Regulator_upper = pyo.Constraint(model.Set_bch_reg, model.Set_phase, model.Set_ts_build,
                                                      rule=regulator_upper_rule)

    # 5) Root voltage pinned to nominal over the build phase
    def root_voltage_rule(model, p, t):
        if not par.bus_phase[root, p]:
            return pyo.Constraint.Skip
        return model.V[root, p, t] == par.V2_root

    model.Constraint_RootVoltage = pyo.Constraint(model.Set_phase, model.Set_ts_build, rule=root_voltage_rule)

    # 6) Flow gating: zero when the branch is off or the phase absent, rating-bounded otherwise
    def P_flow_upper_rule(model, l, p, t):
        return model.P[l, p, t] <= par.Smax[l] * par.bch_phase[l, p] * model.e[l, t]

    def P_flow_lower_rule(model, l, p, t):
        return model.P[l, p, t] >= -par.Smax[l] * par.bch_phase[l, p] * model.e[l, t]

    def Q_flow_upper_rule(model, l, p, t):
        return model.Q[l, p, t] <= par.Smax[l] * par.bch_phase[l, p] * model.e[l, t]

    def Q_flow_lower_rule(model, l, p, t):
        return model.Q[l, p, t] >= -par.Smax[l] * par.bch_phase[l, p] * model.e[l, t]

    model.Constraint_FlowLimit_P_upper = pyo.Constraint(model.Set_bch, model.Set_phase, model.Set_ts,
                                                        rule=P_flow_upper_rule)
    model.Constraint_FlowLimit_P_lower = pyo.Constraint(model.Set_bch, model.Set_phase, model.Set_ts,
                                                        rule=P_flow_lower_rule)
    model.Constraint_FlowLimit_Q_upper = pyo.Constraint(model.Set_bch, model.Set_phase, model.Set_ts_build,
                                                        rule=Q_flow_upper_rule)
    model.Constraint_FlowLimit_Q_lower = pyo.Constraint(model.Set_bch, model.Set_phase, model.Set_ts_build,
                                                        rule=Q_flow_lower_rule)

    # 7) Portable substation output: rating x install x phase availability, nothing before it arrives
    def sub_delivers(s, t):
        return t > par.H or t >= par.sub_avail_ts[s]

    def P_sub_limit_rule(model, s, p, t):
        if not sub_delivers(s, t):
            return model.P_sub[s, p, t] == 0
        return model.P_sub[s, p, t] <= par.sub_Pmax[s, p] * par.bus_phase[par.sub_bus[s], p] * model.u_sub[s]

    def Q_sub_upper_rule(model, s, p, t):
        if not sub_delivers(s, t):
            return model.Q_sub[s, p, t] == 0
        return model.Q_sub[s, p, t] <= par.sub_Qmax[s, p] * par.bus_phase[par.sub_bus[s], p] * model.u_sub[s]

    def Q_sub_lower_rule(model, s, p, t):
        if not sub_delivers(s, t):
            return pyo.Constraint.Skip
        return model.Q_sub[s, p, t] >= -par.sub_Qmax[s, p] * par.bus_phase[par.sub_bus[s], p] * model.u_sub[s]

    model.Constraint_SubLimit_P = pyo.Constraint(model.Set_sub, model.Set_phase, model.Set_ts,
                                                 rule=P_sub_limit_rule)
    model.Constraint_SubLimit_Q_upper = pyo.Constraint(model.Set_sub, model.Set_phase, model.Set_ts_build,
                                                       rule=Q_sub_upper_rule)
    model.Constraint_SubLimit_Q_lower = pyo.Constraint(model.Set_sub, model.Set_phase, model.Set_ts_build,
                                                       rule=Q_sub_lower_rule)

    # 8) Portable generator output, de-rated by the reserve factor
    derate = 1 - par.gen_reserve_factor

    def gen_delivers(g, t):
        return t > par.H or t >= par.gen_avail_ts[g]

    def P_gen_limit_rule(model, g, p, t):
        if not gen_delivers(g, t):
            return model.P_gen[g, p, t] == 0
        return (model.P_gen[g, p, t]
                <= derate * par.gen_Pmax[g, p] * par.bus_phase[par.gen_bus[g], p] * model.u_gen[g])

    def Q_gen_upper_rule(model, g, p, t):
        if not gen_delivers(g, t):
            return model.Q_gen[g, p, t] == 0
        return model.Q_gen[g, p, t] <= par.gen_Qmax[g, p] * par.bus_phase[par.gen_bus[g], p] * model.u_gen[g]

    def Q_gen_lower_rule(model, g, p, t):
        if not gen_delivers(g, t):
            return pyo.Constraint.Skip
        return model.Q_gen[g, p, t] >= -par.gen_Qmax[g, p] * par.bus_phase[par.gen_bus[g], p] * model.u_gen[g]

    model.Constraint_GenLimit_P = pyo.Constraint(model.Set_gen, model.Set_phase, model.Set_ts,
                                                 rule=P_gen_limit_rule)
    model.Constraint_GenLimit_Q_upper = pyo.Constraint(model.Set_gen, model.Set_phase, model.Set_ts_build,
                                                       rule=Q_gen_upper_rule)
    model.Constraint_GenLimit_Q_lower = pyo.Constraint(model.Set_gen, model.Set_phase, model.Set_ts_build,
                                                       rule=Q_gen_lower_rule)

    return model
