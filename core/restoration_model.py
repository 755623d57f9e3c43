# This script contains the restoration model class, which assembles crew routing, repair/build scheduling,
# portable resource siting, three-phase linearized power flow, radiality and fuel accounting into one MILP

import time

import pandas as pd
import pyomo.environ as pyo
from pyomo.opt import SolverFactory

from core.config import RestorationConfig
from core.fuel import add_fuel_constraints, fuel_consumption
from core.horizon import HorizonClass
from core.network import NetworkClass
from core.parameters import derive_parameters
from core.power_flow import add_power_flow_constraints
from core.radiality import add_radiality_constraints
from core.resources import DEPOT, ResourceClass
from core.routing import add_routing_constraints
from core.topology_state import add_topology_state_constraints


class RestorationClass():

    def __init__(self, obj=None, verbose=True):
        # Get default values from RestorationConfig
        if obj is None:
            obj = RestorationConfig()

        for pars in obj.__dict__.keys():
            setattr(self, pars, getattr(obj, pars))

        self.name = getattr(self, "name", "restoration_case")

        # Engines (each validates its own part of the data)
        self.net = NetworkClass(obj)
        self.hrz = HorizonClass(obj)
        self.res = ResourceClass(obj, net=self.net)

        # Immutable parameter snapshot, derived once before any model component exists
        self.par = derive_parameters(self.net, self.hrz, self.res, obj, verbose=verbose)

    def build_restoration_model(self, verbose=True):
        """
        Build the restoration MILP.

        Build-phase timesteps (1..H) carry full physics (active/reactive balance, voltages, KVL, radiality);
        run-phase timesteps (H+1..2H) carry active power only, inherit the frozen topology and are weighted by the
        day multiplier in the objective.
        """
        par = self.par

        if verbose:
            print("\n" + "=" * 60)
            print(f"Building Restoration Model ({self.name})...")
            print("=" * 60)

        model = pyo.ConcreteModel(name=self.name)

        # ------------------------------------------------------------------
        # 1. Sets
        # ------------------------------------------------------------------
        if verbose:
            print("Initializing Pyomo model and sets...")

        model.Set_bus = pyo.Set(initialize=par.Set_bus)
        model.Set_phase = pyo.Set(initialize=par.Set_phase)
        model.Set_bch = pyo.Set(initialize=par.Set_bch)
        model.Set_bch_on = pyo.Set(initialize=par.Set_bch_on)
        model.Set_bch_off = pyo.Set(initialize=par.Set_bch_off)
        model.Set_bch_reg = pyo.Set(initialize=par.Set_bch_reg)

        model.Set_task = pyo.Set(initialize=par.Set_task)
        model.Set_task_rep = pyo.Set(initialize=par.Set_task_rep)
        model.Set_task_new = pyo.Set(initialize=par.Set_task_new)

        model.Set_sub = pyo.Set(initialize=par.Set_sub)
        model.Set_gen = pyo.Set(initialize=par.Set_gen)

        model.Set_crew = pyo.Set(initialize=par.Set_crew)
        model.Set_node = pyo.Set(initialize=par.Set_node)
        model.Set_arc = pyo.Set(initialize=par.Set_arc, dimen=3)

        model.Set_ts = pyo.Set(initialize=par.Set_ts)
        model.Set_ts_build = pyo.Set(initialize=par.Set_ts_build)
        model.Set_ts_run = pyo.Set(initialize=par.Set_ts_run)

        # ------------------------------------------------------------------
        # 2. Parameters
        # ------------------------------------------------------------------
        if verbose:
            print("Setting up model parameters...")

        model.Pd = pyo.Param(model.Set_bus, model.Set_phase, model.Set_ts, initialize=dict(par.Pd))
        model.VoLL = pyo.Param(model.Set_bus, initialize=dict(par.voll))
        model.weight = pyo.Param(model.Set_ts, initialize=dict(par.weight))

        model.rep_cost = pyo.Param(model.Set_task_rep, initialize=dict(par.rep_cost))
        model.build_cost = pyo.Param(model.Set_task_new, initialize=dict(par.build_cost))
        model.sub_install_cost = pyo.Param(model.Set_sub, initialize=dict(par.sub_install_cost))
        model.gen_install_cost = pyo.Param(model.Set_gen, initialize=dict(par.gen_install_cost))

        # ------------------------------------------------------------------
        # 3. Shared decision variables
        # ------------------------------------------------------------------
        if verbose:
            print("Defining decision variables...")

        model.u_sub = pyo.Var(model.Set_sub, within=pyo.Binary)  # portable substation installed
        model.u_gen = pyo.Var(model.Set_gen, within=pyo.Binary)  # portable generator installed
        model.y = pyo.Var(model.Set_task, within=pyo.Binary)  # branch repaired / built
        model.e = pyo.Var(model.Set_bch, model.Set_ts, within=pyo.Binary)  # branch energized

        # ------------------------------------------------------------------
        # 4. Constraints
        # ------------------------------------------------------------------
        if verbose:
            print("Building constraints...")

        if verbose:
            print("  - Crew routing constraints...")
        add_routing_constraints(model, par)

        if verbose:
            print("  - Topology state constraints...")
        add_topology_state_constraints(model, par)

        if verbose:
            print("  - Power flow constraints...")
        add_power_flow_constraints(model, par)

        if verbose:
            print("  - Radiality constraints...")
        add_radiality_constraints(model, par)

        if verbose:
            print("  - Fuel constraints...")
        add_fuel_constraints(model, par)

        if verbose:
            print("  - Resource cap constraints...")

        if par.Set_sub:
            model.Constraint_MaxSubs = pyo.Constraint(
                expr=sum(model.u_sub[s] for s in model.Set_sub) <= par.max_subs)
        if par.Set_gen:
            model.Constraint_MaxGens = pyo.Constraint(
                expr=sum(model.u_gen[g] for g in model.Set_gen) <= par.max_gens)
        if par.Set_task_new:
            model.Constraint_MaxNewLines = pyo.Constraint(
                expr=sum(model.y[k] for k in model.Set_task_new) <= par.max_new_lines)

        # ------------------------------------------------------------------
        # 5. Objective
        # ------------------------------------------------------------------
        if verbose:
            print("Setting up objective function...")

        # 5.1) installation of portable resources
        model.Cost_install = pyo.Expression(
            expr=sum(model.sub_install_cost[s] * model.u_sub[s] for s in model.Set_sub)
                 + sum(model.gen_install_cost[g] * model.u_gen[g] for g in model.Set_gen))

        # 5.2) repair of damaged branches and construction of new ones
        model.Cost_repair = pyo.Expression(expr=sum(model.rep_cost[k] * model.y[k] for k in model.Set_task_rep))
        model.Cost_build = pyo.Expression(expr=sum(model.build_cost[k] * model.y[k] for k in model.Set_task_new))

        # 5.3) unserved energy (run-phase steps stand for D repeated days)
        def unserved_cost_expr(model):
            cost = 0
            for b in model.Set_bus:
                for t in model.Set_ts:
                    demand = sum(pyo.value(model.Pd[b, p, t]) for p in model.Set_phase)
                    if demand > 0:
                        cost += model.weight[t] * par.dt * model.VoLL[b] * demand * (1 - model.w[b, t])
            return cost

        model.Cost_unserved = pyo.Expression(rule=unserved_cost_expr)

        # 5.4) energy bought at the substation interconnection
        model.Cost_root_energy = pyo.Expression(
            expr=sum(model.weight[t] * par.dt * par.cost_root_energy * model.P_root[p, t]
                     for p in model.Set_phase for t in model.Set_ts))

        # (travel and fuel cost expressions are defined with their constraints)
        model.Objective = pyo.Objective(
            expr=model.Cost_install + model.Cost_repair + model.Cost_build + model.Cost_travel
                 + model.Cost_fuel + model.Cost_unserved + model.Cost_root_energy,
            sense=pyo.minimize)

        if verbose:
            print(f"\nModel building completed ({model.nvariables()} variables, "
                  f"{model.nconstraints()} constraints).")
            print("=" * 60)

        return model

    def solve_restoration_model(
            self,
            model,
            solver_name: str = None,
            mip_gap: float = None,
            time_limit: int = None,
            tee: bool = False,
            verbose: bool = True,
            **solver_options
    ):
        """
        Solve the restoration model and report the solver's verdict unchanged.

        Parameters
        ----------
        solver_name   : Pyomo solver name (default from config, 'appsi_highs')
        mip_gap       : Relative MIP gap
        time_limit    : Wall-clock limit in seconds
        verbose       : Print progress and the verdict
        solver_options: Extra options forwarded to the solver

        Returns a dict with 'outcome' in {'optimal', 'time_limited', 'infeasible', 'no_solution', 'error'},
        'objective', 'gap', 'status', 'termination' and 'runtime_s'.
        """
        solver_name = solver_name or self.data.solver.name
        mip_gap = self.data.solver.mip_gap if mip_gap is None else mip_gap
        time_limit = self.data.solver.time_limit if time_limit is None else time_limit

        if verbose:
            print(f"\nSolving model with {solver_name} (time limit: {time_limit}s)...")

        opt = SolverFactory(solver_name)

        # --- solver-specific options -------------------------------------------------
        if solver_name.lower() == "gurobi":
            default_opts = {"MIPGap": mip_gap, "TimeLimit": time_limit}
        elif solver_name.lower() in ("appsi_highs", "highs"):
            default_opts = {"mip_rel_gap": mip_gap, "time_limit": time_limit}
        elif solver_name.lower() == "cbc":
            default_opts = {"ratioGap": mip_gap, "seconds": time_limit}
        elif solver_name.lower() == "glpk":
            default_opts = {"mipgap": mip_gap, "tmlim": time_limit}
        else:
            default_opts = {}
            if verbose:
                print(f"Warning: Using solver '{solver_name}' with default options")

        default_opts.update(solver_options)
        for k, v in default_opts.items():
            opt.options[k] = v

        # --- solve -----------------------------------------------------------
        start = time.time()
        results = opt.solve(model, tee=tee, load_solutions=False)
        runtime = time.time() - start

        status = results.solver.status
        term_cond = results.solver.termination_condition
        has_solution = len(results.solution) > 0

        if has_solution:
            model.solutions.load_from(results)

        # --- classify the verdict ----------------------------------------------
        if term_cond == pyo.TerminationCondition.optimal and has_solution:
            if verbose:
                print("Optimal solution found.")
            outcome = "optimal"
            best_obj = pyo.value(model.Objective)
            gap = 0.0
        elif term_cond in (pyo.TerminationCondition.infeasible, pyo.TerminationCondition.infeasibleOrUnbounded):
            if verbose:
                print("Model is infeasible.")
            outcome, best_obj, gap = "infeasible", None, None
        elif has_solution:
            if verbose:
                print(f"Feasible solution found (termination: {term_cond}).")
            outcome = "time_limited"
            best_obj = pyo.value(model.Objective)
            bound = results.problem.lower_bound
            try:
                gap = abs(best_obj - float(bound)) / max(abs(best_obj), 1e-10)
            except (TypeError, ValueError):
                gap = None
        elif status in (pyo.SolverStatus.error, pyo.SolverStatus.aborted, pyo.SolverStatus.unknown) \
                and term_cond not in (pyo.TerminationCondition.maxTimeLimit,
                                      pyo.TerminationCondition.maxIterations):
            if verbose:
                print(f"Solver error (status: {status}, termination: {term_cond}).")
            outcome, best_obj, gap = "error", None, None
        else:
            if verbose:
                print("No feasible solution found.")
            outcome, best_obj, gap = "no_solution", None, None

        return {
            "outcome": outcome,
            "objective": best_obj,
            "gap": gap,
            "status": str(status),
            "termination": str(term_cond),
            "runtime_s": runtime,
        }

    def get_solution_tables(self, model):
        """
        Collect the solved decisions into pandas DataFrames:
        'line_status', 'tasks', 'routes', 'installs', 'served' and 'costs'.
        """
        par = self.par
        net = self.net.data.net

        def on(var):
            return int(round(pyo.value(var, exception=False) or 0))

        # 1) branch energization
        line_status = pd.DataFrame([
            {"branch": l, "from_bus": par.bch_from[l], "to_bus": par.bch_to[l], "type": net.bch_type[l - 1],
             "timestep": t, "phase": "build" if t <= par.H else "run", "energized": on(model.e[l, t])}
            for l in par.Set_bch for t in par.Set_ts
        ])

        # 2) tasks
        task_rows = []
        for k in par.Set_task:
            picked = [t for t in par.Set_ts_build if on(model.z[k, t])]
            crews = [c for c in par.Set_crew
                     if any(on(model.x[i, j, cc]) for (i, j, cc) in par.Set_arc if j == k and cc == c)]
            crew = crews[0] if crews else None
            arrival = pyo.value(model.arr[k, crew]) if crew is not None else None
            task_rows.append({
                "branch": k,
                "kind": "repair" if k in par.Set_task_rep else "build",
                "selected": on(model.y[k]),
                "available_ts": picked[0] if picked else None,
                "crew": crew,
                "arrival_h": arrival,
                "completion_h": arrival + par.service_time[k] if arrival is not None else None,
            })
        tasks = pd.DataFrame(task_rows, columns=["branch", "kind", "selected", "available_ts", "crew",
                                                 "arrival_h", "completion_h"])

        # 3) crew tours
        route_rows = []
        for c in par.Set_crew:
            succ = {i: j for (i, j, cc) in par.Set_arc if cc == c and on(model.x[i, j, c])}
            tour = [DEPOT]
            node = succ.get(DEPOT)
            while node is not None and node != DEPOT and node not in tour:
                tour.append(node)
                node = succ.get(node)
            if len(tour) > 1:
                tour.append(DEPOT)
            travel = sum(par.travel_time[i, j] for i, j in zip(tour[:-1], tour[1:]))
            route_rows.append({"crew": c, "route": " -> ".join(str(n) for n in tour), "travel_h": travel})
        routes = pd.DataFrame(route_rows, columns=["crew", "route", "travel_h"])

        # 4) portable resources
        install_rows = []
        for s in par.Set_sub:
            install_rows.append({"resource": "substation", "id": s, "bus": par.sub_bus[s],
                                 "installed": on(model.u_sub[s]), "fuel_allocated": None, "fuel_used": None})
        for g in par.Set_gen:
            install_rows.append({"resource": "generator", "id": g, "bus": par.gen_bus[g],
                                 "installed": on(model.u_gen[g]), "fuel_allocated": pyo.value(model.F[g]),
                                 "fuel_used": fuel_consumption(model, par, g)})
        installs = pd.DataFrame(install_rows, columns=["resource", "id", "bus", "installed",
                                                       "fuel_allocated", "fuel_used"])

        # 5) load service
        served = pd.DataFrame([
            {"bus": b, "timestep": t, "served": on(model.w[b, t]),
             "demand_kW": sum(par.Pd[b, p, t] for p in par.Set_phase)}
            for b in par.Set_bus for t in par.Set_ts
        ])

        # 6) cost breakdown
        costs = pd.DataFrame([
            {"component": name, "value": pyo.value(getattr(model, f"Cost_{name}"))}
            for name in ("install", "repair", "build", "travel", "fuel", "unserved", "root_energy")
        ])

        return {"line_status": line_status, "tasks": tasks, "routes": routes, "installs": installs,
                "served": served, "costs": costs}

    def check_radial_forest(self, model):
        """
        Check the solved build-phase topology: energized branches form a forest, every bus has at most one
        parent, and every served bus with demand is connected to the substation or to an installed resource.

        Returns a list of violation messages (empty when the topology is radial).
        """
        par = self.par
        issues = []

        def on(var):
            return int(round(pyo.value(var, exception=False) or 0))

        for t in par.Set_ts_build:
            energized = [l for l in par.Set_bch if on(model.e[l, t])]

            # - parents
            num_parents = {b: on(model.gamma[b, t]) for b in par.Set_bus}
            for l in energized:
                child = par.bch_to[l] if on(model.beta[l, "fwd", t]) else par.bch_from[l]
                num_parents[child] += 1
            for b, n in num_parents.items():
                if n > 1:
                    issues.append(f"t={t}: bus '{b}' has {n} parents")

            # - cycles (union-find over energized branches)
            parent = {b: b for b in par.Set_bus}

            def find(b):
                while parent[b] != b:
                    parent[b] = parent[parent[b]]
                    b = parent[b]
                return b

            for l in energized:
                ra, rb = find(par.bch_from[l]), find(par.bch_to[l])
                if ra == rb:
                    issues.append(f"t={t}: branch {l} closes a cycle")
                else:
                    parent[ra] = rb

            # - served buses must be reachable from an energized source
            sources = {find(par.root_bus)}
            for s in par.Set_sub:
                if on(model.u_sub[s]):
                    sources.add(find(par.sub_bus[s]))
            for g in par.Set_gen:
                if on(model.u_gen[g]):
                    sources.add(find(par.gen_bus[g]))
            for b in par.Set_bus:
                demand = sum(par.Pd[b, p, t] for p in par.Set_phase)
                if demand > 0 and on(model.w[b, t]) and find(b) not in sources:
                    issues.append(f"t={t}: bus '{b}' is served but not connected to any source")

        return issues
