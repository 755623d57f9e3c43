# This script contains the two-phase time horizon of the restoration model

from core.config import HorizonConfig
from core.network import MalformedInputError


class HorizonClass:
    """
    Ordered timesteps split into a build phase (1..H, full physics) and a run phase (H+1..2H, active power only).
    The run phase replays the build-phase daily pattern and stands for 'num_extra_days' further days.
    """

    def __init__(self, obj=None):
        if obj is None:
            obj = HorizonConfig()

        for pars in obj.__dict__.keys():
            setattr(self, pars, getattr(obj, pars))

        hrz = self.data.hrz
        if int(hrz.num_build_ts) != hrz.num_build_ts or hrz.num_build_ts <= 0:
            raise MalformedInputError(f"Build horizon must be a positive integer, got {hrz.num_build_ts}")
        if hrz.dt <= 0:
            raise MalformedInputError(f"Timestep length must be positive, got {hrz.dt}")
        if hrz.num_extra_days < 0:
            raise MalformedInputError(f"Day multiplier must be non-negative, got {hrz.num_extra_days}")

        self.H = int(hrz.num_build_ts)
        self.dt = float(hrz.dt)
        self.D = float(hrz.num_extra_days)

        self.Set_ts_build = list(range(1, self.H + 1))
        self.Set_ts_run = list(range(self.H + 1, 2 * self.H + 1))
        self.Set_ts = self.Set_ts_build + self.Set_ts_run

    @property
    def last_build_ts(self):
        return self.H

    @property
    def horizon_hours(self):
        """Length of the build phase in hours"""
        return self.H * self.dt

    @property
    def total_energy_hours(self):
        """Hours of operation represented by the whole horizon (build day plus the replayed days)"""
        return self.H * self.dt * (1 + self.D)

    def is_build(self, t):
        return t <= self.H

    def hour_of(self, t):
        """Position of timestep t within the representative day"""
        return t if t <= self.H else t - self.H

    def weight(self, t):
        """Objective weight of timestep t (run-phase steps stand for D repeated days)"""
        return 1.0 if t <= self.H else self.D
