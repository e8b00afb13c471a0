from abc import ABC, abstractmethod
import logging
from typing import Optional

import numpy as np

from ..core.base import IntegratorComponent

logger = logging.getLogger(__name__)


class DAESystem(ABC):
    """
    Capability interface for a residual-form DAE system F(t, y, ydot) = 0
    that the integrator depends on.
    """

    @abstractmethod
    def f(self, t: float, y: np.ndarray, ydot: np.ndarray, res: np.ndarray) -> int:
        """
        Evaluate the residual into ``res``.

        Returns:
            0 on success, a positive value for a recoverable failure and a
            negative value for an unrecoverable one.
        """
        pass

    @abstractmethod
    def preconditionerSetup(self, t: float, y: np.ndarray, ydot: np.ndarray, c_j: float) -> int:
        """Build and factor an approximation of dF/dy + c_j*dF/dydot"""
        pass

    @abstractmethod
    def preconditionerSolve(self, rhs: np.ndarray) -> np.ndarray:
        """Solve with the factored matrix from the last preconditionerSetup()"""
        pass

    @abstractmethod
    def getInitialCondition(self, t: float, y: np.ndarray, ydot: np.ndarray,
                            algebraic: np.ndarray) -> int:
        """Make (y, ydot) consistent. Returns 0 on convergence."""
        pass


class DAEIntegrator(IntegratorComponent):
    """Base class for DAE integrators"""

    def __init__(self, N: int, config: Optional[dict] = None):
        super().__init__(config)
        self.N = N
        self.system: Optional[DAESystem] = None
        self.t0: float = 0.0
        self.tInt: float = 0.0  # Current time
        self.y = np.zeros(N)  # Current solution
        self.ydot = np.zeros(N)  # Current time derivative
        self.abstol = np.full(N, 1e-8)
        self.reltol = 1e-6
        self.algebraic = np.zeros(N, dtype=bool)
        self.maxStepSize = np.inf
        self.initialStepSize = 0.0

    def setDAE(self, system: DAESystem) -> None:
        self.system = system

    def setAlgebraic(self, algebraic: np.ndarray) -> None:
        """Mark components whose equations contain no time derivative"""
        self.algebraic = np.asarray(algebraic, dtype=bool).copy()

    def setMaxStepSize(self, h: float) -> None:
        self.maxStepSize = h

    def setInitialStepSize(self, h: float) -> None:
        self.initialStepSize = h

    @abstractmethod
    def getStepSize(self) -> float:
        """Size of the last successful step"""
        pass


class BandedBDFIntegrator(DAEIntegrator):
    """
    Variable step BDF integrator for index-1 DAEs. Takes a BDF1 step first
    and BDF2 steps afterwards, solving the corrector with a modified Newton
    iteration whose matrix comes from the system's banded preconditioner.
    """
    SUCCESS = 0
    RESIDUAL_FAILURE = -1
    CONVERGENCE_FAILURE = -2
    ERROR_TEST_FAILURE = -3
    SETUP_FAILURE = -4

    def __init__(self, N: int, config: Optional[dict] = None):
        super().__init__(N, config)
        self.maxNewtonIters = self._config.get('maxNewtonIters', 4)
        self.newtonTol = self._config.get('newtonTol', 0.33)
        self.maxFailures = self._config.get('maxFailures', 10)
        self.minStepSize = self._config.get('minStepSize', 1e-16)
        self.defaultInitialStep = self._config.get('defaultInitialStep', 1e-6)

        self.h = 0.0  # Step size to attempt next
        self.hLast = 0.0  # Last successful step size
        self.yPrev = None  # y_(n-1)
        self.hPrev = 0.0
        self.nSteps = 0
        self.nResEvals = 0
        self.nSetups = 0
        self.nFailures = 0

    def initialize(self) -> None:
        """Initialize the integrator from t0, y and ydot"""
        if self.system is None:
            raise RuntimeError("setDAE() must be called before initialize()")
        if len(self.y) != self.N or len(self.ydot) != self.N or len(self.abstol) != self.N:
            raise ValueError(f"Integrator vectors do not match problem size {self.N}")

        self.tInt = self.t0
        self.yPrev = None
        self.hPrev = 0.0
        self.nSteps = 0
        if self.initialStepSize > 0:
            self.h = self.initialStepSize
        else:
            self.h = self.defaultInitialStep
        self.h = min(self.h, self.maxStepSize)
        self._initialized = True

    def getStepSize(self) -> float:
        return self.hLast

    def _wrms(self, v: np.ndarray, y: np.ndarray, mask: Optional[np.ndarray] = None) -> float:
        w = v / (self.abstol + self.reltol * np.abs(y))
        if mask is not None:
            w = w[mask]
        if w.size == 0:
            return 0.0
        return float(np.sqrt(np.mean(w * w)))

    def integrateOneStep(self) -> int:
        """Take one internal step. Returns 0 on success."""
        if not self.is_initialized():
            raise RuntimeError("Integrator must be initialized before stepping")

        failures = 0
        differential = ~self.algebraic
        res = np.zeros(self.N)

        while True:
            h = self.h
            if self.yPrev is None:
                order = 1
                c_j = 1.0 / h
                beta = -self.y / h
                errConst = 0.5
            else:
                order = 2
                w = h / self.hPrev
                c_j = (1 + 2 * w) / ((1 + w) * h)
                beta = (-(1 + w) * self.y + w * w / (1 + w) * self.yPrev) / h
                errConst = 1.0 / 3.0

            tNew = self.tInt + h
            yPred = self.y + h * self.ydot
            yNew = yPred.copy()

            self.nSetups += 1
            flag = self.system.preconditionerSetup(tNew, yNew, c_j * yNew + beta, c_j)
            if flag < 0:
                return self.SETUP_FAILURE

            converged = False
            # A recoverable setup failure is retried with a smaller step
            nIters = self.maxNewtonIters if flag == 0 else 0
            for _ in range(nIters):
                self.nResEvals += 1
                flag = self.system.f(tNew, yNew, c_j * yNew + beta, res)
                if flag < 0:
                    return self.RESIDUAL_FAILURE
                if flag > 0:
                    break
                delta = self.system.preconditionerSolve(res)
                yNew -= delta
                if self._wrms(delta, yNew) <= self.newtonTol:
                    converged = True
                    break

            if not converged:
                failures += 1
                self.nFailures += 1
                logger.debug("Newton iteration failed at t = %g, h = %g", tNew, h)
                self.h = 0.25 * h
                if failures > self.maxFailures or self.h < self.minStepSize:
                    return self.CONVERGENCE_FAILURE
                continue

            err = self._wrms(errConst * (yNew - yPred), yNew, differential)
            if err > 1.0:
                failures += 1
                self.nFailures += 1
                logger.debug("Error test failed at t = %g, h = %g, err = %g", tNew, h, err)
                self.h = h * max(0.2, 0.9 * err ** (-1.0 / (order + 1)))
                if failures > self.maxFailures or self.h < self.minStepSize:
                    return self.ERROR_TEST_FAILURE
                continue

            # Accept the step
            self.yPrev = self.y
            self.hPrev = h
            self.y = yNew
            self.ydot = c_j * yNew + beta
            self.tInt = tNew
            self.hLast = h
            self.nSteps += 1

            growth = 2.0 if err == 0.0 else min(2.0, max(0.2, 0.9 * err ** (-1.0 / (order + 1))))
            self.h = min(h * growth, self.maxStepSize)
            return self.SUCCESS

    def printStats(self, elapsed: float = 0.0) -> None:
        logger.info("Integrator stats: steps = %d, residual evaluations = %d, "
                    "setups = %d, failures = %d, time = %.3f s",
                    self.nSteps, self.nResEvals, self.nSetups, self.nFailures, elapsed)
