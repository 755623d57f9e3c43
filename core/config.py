# This script contains constants and default settings of the restoration model

# Create an simple object class as a placeholder (will be used later for storing data)
class Object(object):
    pass


# -------------------- Power Network Configurations --------------------

class NetConfig:
    # Define the parameters of the (damaged) three-phase distribution network
    def __init__(self):
        # create object for data storage
        self.data = Object()

        # data.net stores network model parameters
        self.data.net = Object()

        # 1) Base values
        self.data.net.base_kV = 4.16  # line-to-line voltage base
        self.data.net.base_kVA = 1000.0  # per-phase power base

        # 2) Bus data
        self.data.net.bus = ["150", "1", "2"]  # bus ids (strings)
        self.data.net.root_bus = "150"  # fixed substation interconnection
        self.data.net.root_rating = 5000.0  # max active/reactive transfer per phase at the root (kW / kvar)
        self.data.net.bus_phase = [[1, 1, 1], [1, 1, 1], [1, 1, 1]]  # phase availability mask at each bus
        self.data.net.Pd_base = [[0, 0, 0], [40, 40, 40], [20, 20, 20]]  # base active demand per phase (kW)
        self.data.net.Qd_base = [[0, 0, 0], [20, 20, 20], [10, 10, 10]]  # base reactive demand per phase (kvar)
        self.data.net.profile_shape = None  # hourly load-shape multipliers (None -> flat 1.0)

        # capacitor banks (kvar per phase), disabled by default
        self.data.net.Qcap = None
        self.data.net.enable_capacitors = False

        # 3) Branch data
        self.data.net.bch = [["150", "1"], ["1", "2"]]  # branch indicated by its from and to bus
        self.data.net.bch_length = [0.1, 0.1]  # miles
        self.data.net.bch_phase = [[1, 1, 1], [1, 1, 1]]  # phase presence mask of each branch
        self.data.net.bch_config = [1, 1]  # impedance configuration id
        self.data.net.bch_type = ["fixed", "damaged"]
        # - one of: 'fixed', 'switch', 'regulator', 'damaged', 'unrepairable', 'candidate'
        self.data.net.bch_Smax = [1000.0, 1000.0]  # per-phase flow rating (kW / kvar)
        self.data.net.bch_repair_cost = [0.0, 1000.0]  # only used for 'damaged' branches
        self.data.net.bch_build_cost = [0.0, 0.0]  # only used for 'candidate' branches
        self.data.net.bch_available = [1, 1]  # availability gate of candidate branches

        # 4) Impedance configurations (ohm per mile, 3x3)
        self.data.net.line_config = {
            1: {"R": [[0.4576, 0.1560, 0.1535],
                      [0.1560, 0.4666, 0.1580],
                      [0.1535, 0.1580, 0.4615]],
                "X": [[1.0780, 0.5017, 0.3849],
                      [0.5017, 1.0482, 0.4236],
                      [0.3849, 0.4236, 1.0651]]},
        }

        # 5) Voltage limits (magnitude, p.u.)
        self.data.net.V_min = 0.9
        self.data.net.V_max = 1.1
        self.data.net.V_root = 1.0
        self.data.net.regulator_ratio = [0.9, 1.1]  # allowed to/from voltage ratio of regulators


# -------------------- Time Horizon Configurations --------------------

class HorizonConfig:
    # Define the two-phase (build + run) horizon
    def __init__(self):
        self.data = Object()
        self.data.hrz = Object()

        self.data.hrz.num_build_ts = 24  # number of build-phase timesteps (H)
        self.data.hrz.dt = 1.0  # timestep length in hours
        self.data.hrz.num_extra_days = 3  # days approximated by replaying the run-phase pattern (D)


# -------------------- Portable Resources & Crews Configurations --------------------

class ResourceConfig:
    # Define candidate portable resources, repair/build tasks and crews
    def __init__(self):
        self.data = Object()

        # 1) Candidate portable resources
        self.data.res = Object()

        # - portable substations
        self.data.res.sub_bus = []  # candidate bus of each portable substation
        self.data.res.sub_Pmax = []  # per-phase active power rating (kW)
        self.data.res.sub_Qmax = []  # per-phase reactive power rating (kvar)
        self.data.res.sub_install_cost = []
        self.data.res.sub_avail_ts = []  # earliest timestep the substation can supply power

        # - portable generators
        self.data.res.gen_bus = []
        self.data.res.gen_Pmax = []
        self.data.res.gen_Qmax = []
        self.data.res.gen_install_cost = []
        self.data.res.gen_avail_ts = []
        self.data.res.gen_fuel_rate = []  # gallons per kWh

        # 2) Repair / build tasks (only 'damaged' and available 'candidate' branches)
        self.data.res.service_time = {}  # branch index -> service duration (h)

        # 3) Crews
        self.data.crew = Object()
        self.data.crew.crews = [1]
        self.data.crew.eligibility = None  # crew -> list of branch indices it can service (None -> all)
        self.data.crew.travel_time = {}  # (node, node) -> hours; node 0 is the depot


# -------------------- Restoration Model Configurations --------------------

class RestorationConfig:
    def __init__(self, ncon=None, hcon=None, rcon=None):
        self.data = Object()

        # network, horizon and resources
        self.data.net = (ncon or NetConfig()).data.net
        self.data.hrz = (hcon or HorizonConfig()).data.hrz
        rcon = rcon or ResourceConfig()
        self.data.res = rcon.data.res
        self.data.crew = rcon.data.crew

        # 1) Costs
        self.data.cost = Object()
        self.data.cost.voll = 10.0  # value of lost load per kWh
        self.data.cost.voll_bus = None  # optional per-bus override (bus id -> $/kWh)
        self.data.cost.travel = 50.0  # crew travel cost per hour
        self.data.cost.fuel = 4.0  # fuel price per gallon
        self.data.cost.root_energy = 0.0  # substation energy price per kWh

        # 2) Policy parameters
        self.data.pol = Object()
        self.data.pol.max_subs = 1
        self.data.pol.max_gens = 2
        self.data.pol.max_new_lines = 2
        self.data.pol.gen_min_run_hours = 6.0  # minimum on-site run duration sizing the fuel floor
        self.data.pol.gen_reserve_factor = 0.0  # share of generator rating held as reserve

        # 3) Big-M constants (None -> derived from data)
        self.data.bigm = Object()
        self.data.bigm.routing = None
        self.data.bigm.voltage = None
        self.data.bigm.virtual_flow = None

        # 4) Solver defaults
        self.data.solver = Object()
        self.data.solver.name = "appsi_highs"
        self.data.solver.mip_gap = 1e-4
        self.data.solver.time_limit = 600
