"""
strainedflame: one-dimensional strained premixed flame solver
"""
from importlib.metadata import version

__version__ = version("strainedflame")

from .core.base import (
    FlameComponent,
    ChemistryComponent,
    IntegratorComponent
)
from .core.errors import (
    FlameSolverError,
    ChemistryEvaluationError,
    IntegratorStepFailure,
    InitialConditionDivergence,
    GridDegeneracy,
    GridGenerationMismatch
)
from .core.grid import OneDimGrid, GridConfig
from .transport.chemistry import GasArray
from .solvers.integrator import DAESystem, DAEIntegrator, BandedBDFIntegrator
from .solvers.strained_flame import FlameConfig, StrainedFlameSystem
from .solvers.flame_solver import FlameSolver, PeriodicTrigger
