# This script contains the catalog of candidate portable resources, repair/build tasks and crews

from core.config import ResourceConfig
from core.network import MalformedInputError


DEPOT = 0


class ResourceClass:
    def __init__(self, obj=None, net=None):

        # Get default values from config
        if obj is None:
            obj = ResourceConfig()

        for pars in obj.__dict__.keys():
            setattr(self, pars, getattr(obj, pars))

        self.net = net

        res = self.data.res
        crew = self.data.crew

        # 1) Candidate portable resources (1-based indices)
        self.Set_sub = list(range(1, len(res.sub_bus) + 1))
        self.Set_gen = list(range(1, len(res.gen_bus) + 1))

        # 2) Tasks: damaged-repairable branches and available candidate branches
        available = getattr(net.data.net, "bch_available", None) or [1] * len(net.Set_bch)
        self.Set_task_rep = list(net.lines_by_type["damaged"])
        self.Set_task_new = [l for l in net.lines_by_type["candidate"] if available[l - 1]]
        self.Set_task = sorted(self.Set_task_rep + self.Set_task_new)
        self.Set_bch_blocked = [l for l in net.lines_by_type["candidate"] if not available[l - 1]]

        # 3) Crews and routing nodes
        self.Set_crew = list(crew.crews)
        self.Set_node = [DEPOT] + self.Set_task

        self.validate()

        # eligible tasks of each crew
        if crew.eligibility is None:
            self.crew_tasks = {c: list(self.Set_task) for c in self.Set_crew}
        else:
            self.crew_tasks = {c: sorted(crew.eligibility.get(c, [])) for c in self.Set_crew}

        # eligible arcs (i, j, c) -- no self-arcs, only nodes the crew may visit
        self.Set_arc = []
        for c in self.Set_crew:
            nodes = [DEPOT] + self.crew_tasks[c]
            self.Set_arc += [(i, j, c) for i in nodes for j in nodes if i != j]

        self.travel_time = {(i, j): self._travel(i, j) for (i, j, c) in self.Set_arc}
        self.service_time = {k: float(res.service_time[k]) for k in self.Set_task}
        self.service_time[DEPOT] = 0.0

    def validate(self):
        """
        Reject resources, tasks or crews that reference data not present in the network.
        """
        res = self.data.res
        crew = self.data.crew
        buses = set(self.net.data.net.bus)

        for kind in ("sub", "gen"):
            n = len(getattr(res, f"{kind}_bus"))
            fields = [f"{kind}_Pmax", f"{kind}_Qmax", f"{kind}_install_cost", f"{kind}_avail_ts"]
            if kind == "gen":
                fields.append("gen_fuel_rate")
            for field in fields:
                if len(getattr(res, field)) != n:
                    raise MalformedInputError(f"'{field}' has {len(getattr(res, field))} entries "
                                              f"but there are {n} candidate {kind}s")
            for i, b in enumerate(getattr(res, f"{kind}_bus"), start=1):
                if b not in buses:
                    raise MalformedInputError(f"Candidate {kind} {i} is placed at undefined bus '{b}'")
                if b == self.net.data.net.root_bus:
                    raise MalformedInputError(f"Candidate {kind} {i} cannot be placed at the root bus")
                avail_ts = getattr(res, f"{kind}_avail_ts")[i - 1]
                if avail_ts < 1:
                    raise MalformedInputError(f"Candidate {kind} {i} has install-availability step {avail_ts} < 1")

        for k in res.service_time:
            if k not in self.Set_task:
                raise MalformedInputError(f"Service time given for branch {k} which is not a repair/build task")
        for k in self.Set_task:
            if k not in res.service_time:
                raise MalformedInputError(f"Task (branch {k}) has no service time")
            if res.service_time[k] < 0:
                raise MalformedInputError(f"Task (branch {k}) has a negative service time")

        if len(set(self.Set_crew)) != len(self.Set_crew):
            raise MalformedInputError(f"Duplicate crew ids: {self.Set_crew}")

        if crew.eligibility is not None:
            for c, tasks in crew.eligibility.items():
                if c not in self.Set_crew:
                    raise MalformedInputError(f"Eligibility given for unknown crew '{c}'")
                for k in tasks:
                    if k not in self.Set_task:
                        raise MalformedInputError(f"Crew '{c}' is eligible for branch {k} which is not a task")

        for (i, j), tt in crew.travel_time.items():
            if i not in self.Set_node or j not in self.Set_node:
                raise MalformedInputError(f"Travel time ({i}, {j}) references an unknown routing node")
            if tt < 0:
                raise MalformedInputError(f"Travel time ({i}, {j}) is negative")

    def _travel(self, i, j):
        """Travel time between two routing nodes (a single given direction is used for both ways)"""
        tt = self.data.crew.travel_time
        if (i, j) in tt:
            return float(tt[(i, j)])
        if (j, i) in tt:
            return float(tt[(j, i)])
        raise MalformedInputError(f"No travel time between routing nodes {i} and {j}")
