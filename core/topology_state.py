# This script links task decisions and crew completion times to per-timestep branch energization

import pyomo.environ as pyo


def add_topology_state_constraints(model, par):
    """
    - each selected task picks exactly one build timestep from which its branch is available
    - the pick cannot precede the completion time (arrival + service) of the visiting crew
    - a task's branch is energized from its pick onwards (turn-on only)
    - fixed-on and regulator branches are always energized; unrepairable and blocked ones never are
    - run-phase energization of every branch is frozen to its value at the last build timestep

    Requires model.y, model.e, model.x and model.arr.
    """
    arcs_in = {(k, c): [i for (i, j, cc) in par.Set_arc if j == k and cc == c]
               for k in par.Set_task for c in par.Set_crew}

    # ------ Variables ------
    model.z = pyo.Var(model.Set_task, model.Set_ts_build, within=pyo.Binary)  # availability pick

    # ------ Constraints ------
    # 1) One availability pick per selected task, none otherwise
    def availability_pick_rule(model, k):
        return sum(model.z[k, t] for t in model.Set_ts_build) == model.y[k]

    model.Constraint_AvailabilityPick = pyo.Constraint(model.Set_task, rule=availability_pick_rule)

    # 2) Availability time no earlier than the completion time under the visiting crew
    def completion_time_rule(model, k, c):
        if k not in par.crew_tasks[c]:
            return pyo.Constraint.Skip
        visited = sum(model.x[i, k, c] for i in arcs_in[k, c])
        return (sum(t * par.dt * model.z[k, t] for t in model.Set_ts_build)
                >= model.arr[k, c] + par.service_time[k] * visited)

    model.Constraint_CompletionTime = pyo.Constraint(model.Set_task, model.Set_crew, rule=completion_time_rule)

    # 3) Step-function turn-on of task branches within the build phase
    def task_status_rule(model, k, t):
        return model.e[k, t] == sum(model.z[k, tau] for tau in model.Set_ts_build if tau <= t)

    model.Constraint_TaskStatus = pyo.Constraint(model.Set_task, model.Set_ts_build, rule=task_status_rule)

    # 4) Branches with fixed status
    model.Constraint_AlwaysOn = pyo.Constraint(model.Set_bch_on, model.Set_ts_build,
                                               rule=lambda model, l, t: model.e[l, t] == 1)
    model.Constraint_AlwaysOff = pyo.Constraint(model.Set_bch_off, model.Set_ts_build,
                                                rule=lambda model, l, t: model.e[l, t] == 0)

    # 5) Topology freeze over the run phase
    def topology_freeze_rule(model, l, t):
        return model.e[l, t] == model.e[l, par.H]

    model.Constraint_TopologyFreeze = pyo.Constraint(model.Set_bch, model.Set_ts_run, rule=topology_freeze_rule)

    return model
