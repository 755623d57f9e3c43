# This script contains the crew-routing constraints of the restoration model:
# one tour per crew over the depot and its eligible repair/build tasks, with big-M arrival-time propagation

import pyomo.environ as pyo

from core.resources import DEPOT


def add_routing_constraints(model, par):
    """
    Add arc / arrival-time variables and the routing constraints of every crew.

    Requires model.y (task decisions) and the routing sets (Set_node, Set_arc, Set_crew, Set_task).
    """
    # precomputed arc neighbourhoods of each (node, crew)
    arcs_out = {(n, c): [] for n in par.Set_node for c in par.Set_crew}
    arcs_in = {(n, c): [] for n in par.Set_node for c in par.Set_crew}
    for (i, j, c) in par.Set_arc:
        arcs_out[i, c].append(j)
        arcs_in[j, c].append(i)

    # ------ Variables ------
    model.x = pyo.Var(model.Set_arc, within=pyo.Binary)  # crew c travels from i to j
    model.arr = pyo.Var(model.Set_node, model.Set_crew, within=pyo.NonNegativeReals)  # arrival time (h)

    # ------ Constraints ------
    # 1) At most one departure from and one return to the depot per crew
    def depot_out_rule(model, c):
        if not arcs_out[DEPOT, c]:
            return pyo.Constraint.Skip
        return sum(model.x[DEPOT, j, c] for j in arcs_out[DEPOT, c]) <= 1

    model.Constraint_DepotOut = pyo.Constraint(model.Set_crew, rule=depot_out_rule)

    def depot_in_rule(model, c):
        if not arcs_in[DEPOT, c]:
            return pyo.Constraint.Skip
        return sum(model.x[i, DEPOT, c] for i in arcs_in[DEPOT, c]) <= 1

    model.Constraint_DepotIn = pyo.Constraint(model.Set_crew, rule=depot_in_rule)

    # 2) Tour conservation at each task node (in-degree = out-degree under the same crew)
    def tour_conservation_rule(model, k, c):
        if k not in par.crew_tasks[c]:
            return pyo.Constraint.Skip
        return (sum(model.x[i, k, c] for i in arcs_in[k, c])
                == sum(model.x[k, j, c] for j in arcs_out[k, c]))

    model.Constraint_TourConservation = pyo.Constraint(model.Set_task, model.Set_crew, rule=tour_conservation_rule)

    # 3) A task is visited (by exactly one crew) iff it is repaired / built
    def visit_rule(model, k):
        return sum(model.x[i, k, c] for c in par.Set_crew for i in arcs_in[k, c]) == model.y[k]

    model.Constraint_Visit = pyo.Constraint(model.Set_task, rule=visit_rule)

    # 4) Arrival-time propagation along used arcs (vacuous when the arc is unused)
    def arrival_propagation_rule(model, i, j, c):
        if j == DEPOT:
            return pyo.Constraint.Skip
        return (model.arr[j, c] >= model.arr[i, c] + par.service_time[i] + par.travel_time[i, j]
                - par.M_route * (1 - model.x[i, j, c]))

    model.Constraint_ArrivalPropagation = pyo.Constraint(model.Set_arc, rule=arrival_propagation_rule)

    # 5) Arrival time at an unvisited node is zero
    def arrival_upper_rule(model, k, c):
        return model.arr[k, c] <= par.M_route * sum(model.x[i, k, c] for i in arcs_in[k, c])

    model.Constraint_ArrivalUpper = pyo.Constraint(model.Set_task, model.Set_crew, rule=arrival_upper_rule)

    # 6) Every tour starts at time 0
    model.Constraint_DepotStart = pyo.Constraint(model.Set_crew, rule=lambda model, c: model.arr[DEPOT, c] == 0)

    # ------ Cost ------
    model.Cost_travel = pyo.Expression(expr=sum(par.cost_travel * par.travel_time[i, j] * model.x[i, j, c]
                                                for (i, j, c) in par.Set_arc))

    return model
