import pytest
from pyomo.opt import SolverFactory


SOLVER_NAME = "appsi_highs"


@pytest.fixture(scope="session")
def solver_name():
    if not SolverFactory(SOLVER_NAME).available(exception_flag=False):
        pytest.skip(f"solver '{SOLVER_NAME}' is not available (install highspy)")
    return SOLVER_NAME
