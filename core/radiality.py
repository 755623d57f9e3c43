# This script enforces a radial (forest) structure of the energized network over the build phase,
# using branch orientations, a single parent per bus and a single-commodity virtual flow from a virtual root

import pyomo.environ as pyo


DIRECTIONS = ("fwd", "rev")


def add_radiality_constraints(model, par):
    """
    Every energized branch is oriented (fwd: from-bus is the parent, rev: to-bus is the parent). Each bus has at most
    one parent among its branches and the virtual root; the root bus always hangs off the virtual root.

    The virtual root sends one unit of virtual flow to every bus through energized branches only. A cycle, or a
    component with no virtual-root attachment, cannot meet its unit demands, so the energized graph is a forest
    with exactly one root per component. A root other than the substation bus or an installed resource bus has no
    supply, so the power balance keeps its component unserved.

    Requires model.e.
    """
    root = par.root_bus

    # ------ Variables ------
    model.Set_dir = pyo.Set(initialize=DIRECTIONS)
    model.beta = pyo.Var(model.Set_bch, model.Set_dir, model.Set_ts_build, within=pyo.Binary)  # orientation
    model.gamma = pyo.Var(model.Set_bus, model.Set_ts_build, within=pyo.Binary)  # parent is the virtual root
    model.f = pyo.Var(model.Set_bch, model.Set_ts_build, within=pyo.Reals)  # virtual branch flow
    model.f0 = pyo.Var(model.Set_bus, model.Set_ts_build, within=pyo.NonNegativeReals)  # virtual-root injection

    # ------ Constraints ------
    # 1) An energized branch has exactly one orientation, a de-energized one has none
    def orientation_rule(model, l, t):
        return model.beta[l, "fwd", t] + model.beta[l, "rev", t] == model.e[l, t]

    model.Constraint_Orientation = pyo.Constraint(model.Set_bch, model.Set_ts_build, rule=orientation_rule)

    # 2) At most one parent per bus
    def single_parent_rule(model, b, t):
        parents = (sum(model.beta[l, "fwd", t] for l in par.lines_into[b])
                   + sum(model.beta[l, "rev", t] for l in par.lines_out_of[b]))
        return parents + model.gamma[b, t] <= 1

    model.Constraint_SingleParent = pyo.Constraint(model.Set_bus, model.Set_ts_build, rule=single_parent_rule)

    # 3) The substation bus is always a root
    model.Constraint_RootBus = pyo.Constraint(model.Set_ts_build, rule=lambda model, t: model.gamma[root, t] == 1)

    # 4) Virtual flow only through energized branches and out of root attachments
    def virtual_flow_upper_rule(model, l, t):
        return model.f[l, t] <= par.M_flow * model.e[l, t]

    def virtual_flow_lower_rule(model, l, t):
        return model.f[l, t] >= -par.M_flow * model.e[l, t]

    model.Constraint_VirtualFlow_upper = pyo.Constraint(model.Set_bch, model.Set_ts_build,
                                                        rule=virtual_flow_upper_rule)
    model.Constraint_VirtualFlow_lower = pyo.Constraint(model.Set_bch, model.Set_ts_build,
                                                        rule=virtual_flow_lower_rule)

    def virtual_injection_rule(model, b, t):
        return model.f0[b, t] <= par.M_flow * model.gamma[b, t]

    model.Constraint_VirtualInjection = pyo.Constraint(model.Set_bus, model.Set_ts_build, rule=virtual_injection_rule)

    # 5) Virtual flow conservation with one unit of demand at each bus
    def virtual_balance_rule(model, b, t):
        f_in = sum(model.f[l, t] for l in par.lines_into[b])
        f_out = sum(model.f[l, t] for l in par.lines_out_of[b])
        return model.f0[b, t] + f_in - f_out == 1

    model.Constraint_VirtualBalance = pyo.Constraint(model.Set_bus, model.Set_ts_build, rule=virtual_balance_rule)

    return model
