"""
Exceptions raised by strainedflame components.
"""


class FlameSolverError(Exception):
    """Base class for all solver errors."""


class ChemistryEvaluationError(FlameSolverError):
    """The chemistry provider rejected a state (non-physical or unconverged)."""


class IntegratorStepFailure(FlameSolverError):
    """The DAE integrator could not complete a step and recovery was exhausted."""


class InitialConditionDivergence(FlameSolverError):
    """No consistent initial condition was found within the retry budget."""


class GridDegeneracy(FlameSolverError):
    """A grid operation would produce too few points or non-monotonic coordinates."""


class GridGenerationMismatch(FlameSolverError):
    """Per-point arrays were sized for a grid that has since changed."""
