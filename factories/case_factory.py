from core.config import HorizonConfig, ResourceConfig, RestorationConfig
from core.restoration_model import RestorationClass
from factories.network_factory import make_network_config


def make_restoration_config(name: str) -> RestorationConfig:
    # build the right config objects
    hcon = HorizonConfig()
    rcon = ResourceConfig()

    if name == 'single_repair':
        """
        One damaged line between the substation and a single load bus, one crew, a 2-step build horizon
        """
        ncon = make_network_config('two_bus_single_damaged_line')

        # 1) Horizon
        hcon.data.hrz.num_build_ts = 2
        hcon.data.hrz.dt = 1.0
        hcon.data.hrz.num_extra_days = 1

        # 2) Tasks and crews (branch 1 is the only task)
        rcon.data.res.service_time = {1: 1.0}
        rcon.data.crew.crews = [1]
        rcon.data.crew.travel_time = {(0, 1): 0.5}

        cfg = RestorationConfig(ncon, hcon, rcon)
        cfg.data.cost.voll = 10.0
        cfg.data.cost.travel = 50.0
        cfg.data.cost.root_energy = 0.0

    elif name == 'pure_load_flow':
        """
        Undamaged feeder with no candidate resources: only a load flow feasibility check remains
        """
        ncon = make_network_config('four_bus_all_fixed')

        hcon.data.hrz.num_build_ts = 2
        hcon.data.hrz.dt = 1.0
        hcon.data.hrz.num_extra_days = 1

        rcon.data.crew.crews = [1]

        cfg = RestorationConfig(ncon, hcon, rcon)
        cfg.data.cost.root_energy = 0.0

    elif name == 'feeder_8_bus_restoration':
        """
        Damaged feeder with two repair tasks, one build task, two crews,
        one candidate portable substation and one candidate portable generator
        """
        ncon = make_network_config('feeder_8_bus_restoration')

        # 1) Horizon (6 build steps, the daily pattern replayed for 2 more days)
        hcon.data.hrz.num_build_ts = 6
        hcon.data.hrz.dt = 1.0
        hcon.data.hrz.num_extra_days = 2

        # 2) Candidate portable resources
        rcon.data.res.sub_bus = ["5"]
        rcon.data.res.sub_Pmax = [[300.0, 300.0, 300.0]]
        rcon.data.res.sub_Qmax = [[150.0, 150.0, 150.0]]
        rcon.data.res.sub_install_cost = [3000.0]
        rcon.data.res.sub_avail_ts = [3]

        rcon.data.res.gen_bus = ["7"]
        rcon.data.res.gen_Pmax = [[100.0, 100.0, 100.0]]
        rcon.data.res.gen_Qmax = [[50.0, 50.0, 50.0]]
        rcon.data.res.gen_install_cost = [800.0]
        rcon.data.res.gen_avail_ts = [2]
        rcon.data.res.gen_fuel_rate = [0.08]

        # 3) Tasks: branches 3 and 6 (repair), 9 (build)
        rcon.data.res.service_time = {3: 2.0, 6: 1.5, 9: 3.0}

        # 4) Crews
        rcon.data.crew.crews = [1, 2]
        rcon.data.crew.eligibility = {1: [3, 9], 2: [6, 9]}
        rcon.data.crew.travel_time = {
            (0, 3): 0.5, (0, 6): 1.0, (0, 9): 1.5,
            (3, 6): 1.0, (3, 9): 1.0, (6, 9): 0.5,
        }

        cfg = RestorationConfig(ncon, hcon, rcon)
        cfg.data.cost.voll = 15.0
        cfg.data.cost.travel = 50.0
        cfg.data.cost.fuel = 4.0
        cfg.data.cost.root_energy = 0.05

        cfg.data.pol.max_subs = 1
        cfg.data.pol.max_gens = 1
        cfg.data.pol.max_new_lines = 1
        cfg.data.pol.gen_min_run_hours = 4.0

    else:
        raise ValueError(f"Unknown restoration case preset '{name}'")

    cfg.name = name
    return cfg


def make_restoration_case(name: str, verbose: bool = False) -> RestorationClass:
    return RestorationClass(make_restoration_config(name), verbose=verbose)
