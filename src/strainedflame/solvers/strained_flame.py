"""
Residual-form DAE system for a one-dimensional strained premixed flame.

The unknowns at each grid point are ordered ``[rhov, U, T, Y_0 .. Y_{K-1}]``
where ``rhov`` is the mass flux normal to the flame, ``U`` the tangential
velocity normalized by its unburned value, ``T`` the temperature and ``Y``
the species mass fractions.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
from scipy import constants, sparse
from scipy.integrate import trapezoid
from scipy.sparse.linalg import splu

from ..core.base import ChemistryComponent
from ..core.errors import ChemistryEvaluationError, GridGenerationMismatch
from ..core.grid import GridConfig, OneDimGrid
from ..utils.output import loadProfile
from .integrator import DAESystem

logger = logging.getLogger(__name__)

GAS_CONSTANT = 1000.0 * constants.R  # [J/kmol/K]


@dataclass
class FlameConfig:
    """Configuration for the strained flame solver"""
    mechanism: str = 'gri30.yaml'
    phase: Optional[str] = None
    pressure: float = 101325.0  # [Pa]
    reactants: str = 'CH4:1, O2:2, N2:7.52'  # mole fractions
    fuel: Optional[str] = None  # mole fractions; replaces reactants when set
    oxidizer: str = 'O2:1, N2:3.76'  # mole fractions
    equivalenceRatio: float = 1.0
    Tu: float = 300.0  # unburned temperature [K]
    Tb: Optional[float] = None  # burned temperature [K], equilibrium if None

    # Initial grid and profiles
    xLeft: float = 0.0  # [m]
    xRight: float = 0.01  # [m]
    nPoints: int = 50
    xStag: Optional[float] = None  # stagnation point [m], right boundary if None
    slopeWidth: float = 0.001  # width of the initial flame front [m]
    smoothCount: int = 4

    # Strain rate ramp
    strainRateInitial: float = 100.0  # [1/s]
    strainRateFinal: float = 100.0  # [1/s]
    strainRateT0: float = 0.0  # [s]
    strainRateDt: float = 0.0  # [s]

    # Flame position control
    flameRadiusControl: bool = False
    xFlameInitial: float = 0.005  # [m]
    xFlameFinal: Optional[float] = None  # [m]
    xFlameT0: float = 0.0  # [s]
    xFlameDt: float = 0.0  # [s]
    flameControlGain: float = 1.0  # proportional gain [-]
    flameControlIntegralGain: float = 0.0  # integral gain [1/s]
    flameControlMaxVelocity: float = 1.0  # bound on the change per update [m/s]

    # Times
    tStart: float = 0.0  # [s]
    tEnd: float = 0.01  # [s]
    maxTimestep: float = 1e-3  # [s]

    # Integrator tolerances
    relTol: float = 1e-6
    continuityAbsTol: float = 1e-8
    momentumAbsTol: float = 1e-7
    energyAbsTol: float = 1e-7
    speciesAbsTol: float = 1e-10

    # Consistent initial condition
    icRetryCount: int = 5
    icMaxIterations: int = 20
    icTolerance: float = 1e-10

    # Periodic actions (time interval [s], step interval)
    outputTimeInterval: float = 1e-4
    outputStepInterval: int = 10
    profileTimeInterval: float = 1e-3
    profileStepInterval: int = 50
    regridTimeInterval: float = 1e-4
    regridStepInterval: int = 10
    rFlameUpdateTimeInterval: float = 1e-4
    rFlameUpdateStepInterval: int = 10
    terminationTimeInterval: float = 1e-4
    terminationStepInterval: int = 10
    integratorRestartInterval: int = 200
    maxConsecutiveFailures: int = 3

    # Termination
    terminateForSteadyQdot: bool = False
    terminationPeriod: float = 0.002  # [s]
    terminationTolerance: float = 1e-4  # relative
    terminationAbsTol: float = 0.04  # [W/m^2]
    terminationMaxTime: float = np.inf  # [s]

    # Files
    restartFile: Optional[str] = None
    outputDir: str = 'output'
    outputProfiles: bool = False

    # Smallest mass flux magnitude used for grid damping [kg/m^2/s]
    rhovFloor: float = 1e-10

    grid: GridConfig = field(default_factory=GridConfig)


class StrainedFlameSystem(DAESystem):
    """
    Conservation equations for continuity, tangential momentum, energy and
    species on the current grid, plus strain rate forcing and flame position
    control.
    """
    kContinuity = 0
    kMomentum = 1
    kEnergy = 2
    kSpecies = 3

    def __init__(self, config: FlameConfig, gas: ChemistryComponent,
                 grid: Optional[OneDimGrid] = None):
        self.config = config
        self.gas = gas
        self.grid = grid if grid is not None else OneDimGrid(config.grid)

        self.nSpec = gas.nSpec
        self.nVars = 3 + self.nSpec
        self.jacBW = 2 * self.nVars - 1
        self.W = gas.molecularWeights

        # Boundary values
        self.Tu = config.Tu
        if config.fuel is not None:
            Yu = gas.reactantMassFractions(config.fuel, config.oxidizer, config.equivalenceRatio)
        else:
            Yu = gas.massFractions(config.reactants)
        Yu = np.asarray(Yu, dtype=float)
        self.Yu = Yu / Yu.sum()
        self.Uleft = 1.0
        self.rhou = self._idealGasDensity(self.Tu, self.Yu)

        # Strain rate ramp
        self.strainRateInitial = config.strainRateInitial
        self.strainRateFinal = config.strainRateFinal
        self.strainRateT0 = config.strainRateT0
        self.strainRateDt = config.strainRateDt

        self.tStart = config.tStart
        self.tEnd = config.tEnd
        self.tNow = config.tStart

        # Flame position tracking
        self.rVcenterInitial = 0.0
        self.rVcenterPrev = 0.0
        self.rVcenterNext = 0.0
        self.tFlamePrev = config.tStart
        self.tFlameNext = config.tStart
        self.tFlameLast = None
        self.flamePosIntegralError = 0.0
        self.xFlameTarget = config.xFlameInitial

        self.nPoints = 0
        self.N = 0
        self.gridGeneration = None
        self.algebraic = None
        self._lu = None

    def _idealGasDensity(self, T: float, Y: np.ndarray) -> float:
        Wmx = 1.0 / np.sum(Y / self.W)
        return self.gas.pressure * Wmx / (GAS_CONSTANT * T)

    def setup(self):
        """Size every per-point array for the current grid"""
        n = self.grid.nPoints
        K = self.nSpec
        self.nPoints = n
        self.N = self.nVars * n
        self.jacBW = 2 * self.nVars - 1

        def sized(name, shape):
            current = getattr(self, name, None)
            if current is not None and current.shape == shape:
                return current
            return np.zeros(shape)

        # State variables
        self.rhov = sized('rhov', (n,))
        self.U = sized('U', (n,))
        self.T = sized('T', (n,))
        self.Y = sized('Y', (K, n))

        # Time derivatives
        self.drhovdt = sized('drhovdt', (n,))
        self.dUdt = sized('dUdt', (n,))
        self.dTdt = sized('dTdt', (n,))
        self.dYdt = sized('dYdt', (K, n))

        # Spatial derivatives
        self.dUdx = np.zeros(n)
        self.dTdx = np.zeros(n)
        self.dYdx = np.zeros((K, n))

        # Auxiliary properties
        self.rho = np.zeros(n)
        self.drhodt = np.zeros(n)
        self.mu = np.zeros(n)
        self.lambda_ = np.zeros(n)
        self.cp = np.zeros(n)
        self.Wmx = np.zeros(n)
        self.Dkm = np.zeros((K, n))
        self.rhoD = np.zeros((K, n))
        self.wDot = np.zeros((K, n))
        self.hk = np.zeros((K, n))
        self.qDot = sized('qDot', (n,))

        # Residuals
        self.resContinuity = np.zeros(n)
        self.resMomentum = np.zeros(n)
        self.resEnergy = np.zeros(n)
        self.resSpecies = np.zeros((K, n))

        # T, U, Y and qDot are used for adaptation; rhov is carried along
        self.grid.nAdapt = self.nSpec + 3
        self.gas.resize(n)
        self.updateAlgebraicComponents()
        self._lu = None
        self.gridGeneration = self.grid.generation

    def _checkGeneration(self):
        if self.gridGeneration != self.grid.generation:
            raise GridGenerationMismatch(
                f"Flame arrays belong to grid generation {self.gridGeneration}, "
                f"grid is at generation {self.grid.generation}; call setup() first")

    def _checkSize(self, v: np.ndarray):
        if len(v) != self.N:
            raise GridGenerationMismatch(f"Vector of length {len(v)} does not match problem size {self.N}")

    # Conversions between the flat unknown vector and the structured arrays

    def unrollY(self, y: np.ndarray):
        self._checkSize(y)
        v = np.asarray(y, dtype=float).reshape(self.nPoints, self.nVars)
        self.rhov = v[:, self.kContinuity].copy()
        self.U = v[:, self.kMomentum].copy()
        self.T = v[:, self.kEnergy].copy()
        self.Y = v[:, self.kSpecies:].T.copy()

    def unrollYdot(self, ydot: np.ndarray):
        self._checkSize(ydot)
        v = np.asarray(ydot, dtype=float).reshape(self.nPoints, self.nVars)
        self.drhovdt = v[:, self.kContinuity].copy()
        self.dUdt = v[:, self.kMomentum].copy()
        self.dTdt = v[:, self.kEnergy].copy()
        self.dYdt = v[:, self.kSpecies:].T.copy()

    def _roll(self, out: np.ndarray, a, b, c, d):
        self._checkSize(out)
        v = np.empty((self.nPoints, self.nVars))
        v[:, self.kContinuity] = a
        v[:, self.kMomentum] = b
        v[:, self.kEnergy] = c
        v[:, self.kSpecies:] = d.T
        out[:] = v.ravel()

    def rollY(self, y: np.ndarray):
        self._roll(y, self.rhov, self.U, self.T, self.Y)

    def rollYdot(self, ydot: np.ndarray):
        self._roll(ydot, self.drhovdt, self.dUdt, self.dTdt, self.dYdt)

    def rollResiduals(self, res: np.ndarray):
        self._roll(res, self.resContinuity, self.resMomentum, self.resEnergy, self.resSpecies)

    def rollVectorVector(self, y: np.ndarray, qDot: np.ndarray) -> List[np.ndarray]:
        """Split a flat vector into per-variable arrays ordered [T, U, Y_0..Y_{K-1}, qDot, rhov]"""
        self._checkSize(y)
        v = np.asarray(y, dtype=float).reshape(self.nPoints, self.nVars)
        return ([v[:, self.kEnergy].copy(), v[:, self.kMomentum].copy()]
                + [v[:, self.kSpecies + k].copy() for k in range(self.nSpec)]
                + [np.array(qDot, dtype=float), v[:, self.kContinuity].copy()])

    def unrollVectorVector(self, v: List[np.ndarray]):
        self.T = np.array(v[0], dtype=float)
        self.U = np.array(v[1], dtype=float)
        self.Y = np.array(v[2:2 + self.nSpec], dtype=float)
        self.qDot = np.array(v[2 + self.nSpec], dtype=float)
        self.rhov = np.array(v[3 + self.nSpec], dtype=float)

    def unrollVectorVectorDot(self, v: List[np.ndarray]):
        self.dTdt = np.array(v[0], dtype=float)
        self.dUdt = np.array(v[1], dtype=float)
        self.dYdt = np.array(v[2:2 + self.nSpec], dtype=float)
        self.drhovdt = np.array(v[3 + self.nSpec], dtype=float)

    def updateAlgebraicComponents(self):
        """Continuity and both boundary points are algebraic"""
        alg = np.zeros((self.nPoints, self.nVars), dtype=bool)
        alg[:, self.kContinuity] = True
        if self.nPoints:
            alg[0, :] = True
            alg[-1, :] = True
        self.algebraic = alg.ravel()

    def updateProperties(self):
        """Refresh density, transport properties and reaction rates from the chemistry provider"""
        self.gas.setState(self.Y, self.T)
        self.rho = self.gas.getDensity()
        self.mu = self.gas.getViscosity()
        self.lambda_ = self.gas.getThermalConductivity()
        self.cp = self.gas.getSpecificHeatCapacity()
        self.Dkm = self.gas.getDiffusionCoefficients()
        self.wDot = self.gas.getReactionRates()
        self.hk = self.gas.getEnthalpies()

        self.rhoD = self.rho * self.Dkm
        self.Wmx = 1.0 / np.sum(self.Y / self.W[:, np.newaxis], axis=0)
        self.qDot = -np.sum(self.wDot * self.hk, axis=0)

    # Strain rate and flame position forcing

    @staticmethod
    def _ramp(t: float, v0: float, v1: float, t0: float, dt: float) -> float:
        if t <= t0:
            return v0
        elif t >= t0 + dt:
            return v1
        else:
            return v0 + (v1 - v0) * (t - t0) / dt

    def strainRate(self, t: float) -> float:
        """Linear ramp from strainRateInitial to strainRateFinal over [T0, T0+Dt]"""
        return self._ramp(t, self.strainRateInitial, self.strainRateFinal,
                          self.strainRateT0, self.strainRateDt)

    def dStrainRateDt(self, t: float) -> float:
        if t <= self.strainRateT0 or t >= self.strainRateT0 + self.strainRateDt:
            return 0.0
        return (self.strainRateFinal - self.strainRateInitial) / self.strainRateDt

    def targetFlamePosition(self, t: float) -> float:
        cfg = self.config
        xFinal = cfg.xFlameFinal if cfg.xFlameFinal is not None else cfg.xFlameInitial
        return self._ramp(t, cfg.xFlameInitial, xFinal, cfg.xFlameT0, cfg.xFlameDt)

    def initFlamePositionControl(self, t: float):
        """Start flame position tracking from the current left boundary mass flux"""
        self.rVcenterInitial = float(self.rhov[0])
        self.rVcenterPrev = self.rVcenterNext = self.rVcenterInitial
        self.tFlamePrev = t
        self.tFlameNext = t + self.config.rFlameUpdateTimeInterval
        self.tFlameLast = None
        self.flamePosIntegralError = 0.0
        self.xFlameTarget = self.targetFlamePosition(t)

    def rVcenter(self, t: float) -> float:
        """Mass flux at the left boundary, interpolated between control updates"""
        if t >= self.tFlameNext or self.tFlameNext <= self.tFlamePrev:
            return self.rVcenterNext
        if t <= self.tFlamePrev:
            return self.rVcenterPrev
        s = (t - self.tFlamePrev) / (self.tFlameNext - self.tFlamePrev)
        return self.rVcenterPrev + s * (self.rVcenterNext - self.rVcenterPrev)

    def update_rVcenter(self, t: float):
        """
        Move the left boundary mass flux so that the flame drifts toward its
        target position. The grid is not modified.
        """
        cfg = self.config
        if not cfg.flameRadiusControl:
            return

        xActual = self.getFlamePosition()
        xTarget = self.xFlameTarget = self.targetFlamePosition(t)
        error = xTarget - xActual
        if self.tFlameLast is not None:
            self.flamePosIntegralError += error * (t - self.tFlameLast)
        self.tFlameLast = t

        rVnow = self.rVcenter(t)
        scale = self.rhou * self.strainRate(t)
        rVtarget = self.rVcenterInitial + scale * (cfg.flameControlGain * error +
                                                   cfg.flameControlIntegralGain * self.flamePosIntegralError)
        maxChange = self.rhou * cfg.flameControlMaxVelocity
        rVnext = rVnow + float(np.clip(rVtarget - rVnow, -maxChange, maxChange))

        self.rVcenterPrev = rVnow
        self.rVcenterNext = rVnext
        self.tFlamePrev = t
        self.tFlameNext = t + cfg.rFlameUpdateTimeInterval
        logger.debug("Flame position: actual = %g, target = %g, rVcenter: %g -> %g",
                     xActual, xTarget, rVnow, rVnext)

    # Residuals

    def _ddx(self, phi: np.ndarray) -> np.ndarray:
        """Centered first derivative at interior points"""
        g = self.grid
        out = np.zeros_like(phi)
        out[..., 1:-1] = (g.cfp[1:-1] * phi[..., 2:] + g.cf[1:-1] * phi[..., 1:-1]
                          + g.cfm[1:-1] * phi[..., :-2])
        return out

    def _diffusionTerm(self, D: np.ndarray, phi: np.ndarray) -> np.ndarray:
        """d/dx(D dphi/dx) at interior points using face-averaged coefficients"""
        g = self.grid
        out = np.zeros_like(phi)
        flux = 0.5 * (D[..., 1:] + D[..., :-1]) * np.diff(phi, axis=-1) / g.hh
        out[..., 1:-1] = (flux[..., 1:] - flux[..., :-1]) / g.dlj[1:-1]
        return out

    def _computeResiduals(self, t: float):
        jj = self.nPoints - 1
        hh = self.grid.hh
        a = self.strainRate(t)
        dadt = self.dStrainRateDt(t)
        rho = self.rho

        self.drhodt = -rho * (self.dTdt / self.T +
                              self.Wmx * np.sum(self.dYdt / self.W[:, np.newaxis], axis=0))
        self.dUdx = self._ddx(self.U)
        self.dTdx = self._ddx(self.T)
        self.dYdx = self._ddx(self.Y)

        # Left boundary: fixed values
        self.resContinuity[0] = self.rhov[0] - self.rVcenter(t)
        self.resMomentum[0] = self.U[0] - self.Uleft
        self.resEnergy[0] = self.T[0] - self.Tu
        self.resSpecies[:, 0] = self.Y[:, 0] - self.Yu

        # Continuity
        rhoU = rho * self.U
        self.resContinuity[1:] = (np.diff(self.rhov) / hh
                                  + 0.5 * (self.drhodt[1:] + self.drhodt[:-1])
                                  + a * 0.5 * (rhoU[1:] + rhoU[:-1]))

        # Interior points
        i = slice(1, jj)
        self.resMomentum[i] = (rho[i] * self.dUdt[i] + self.rhov[i] * self.dUdx[i]
                               - self._diffusionTerm(self.mu, self.U)[i]
                               + a * (rho[i] * self.U[i] ** 2 - self.rhou))
        if a != 0:
            self.resMomentum[i] += dadt / a * (rho[i] * self.U[i] - self.rhou)

        self.resEnergy[i] = (rho[i] * self.cp[i] * self.dTdt[i]
                             + self.rhov[i] * self.cp[i] * self.dTdx[i]
                             - self._diffusionTerm(self.lambda_, self.T)[i]
                             - self.qDot[i])

        self.resSpecies[:, i] = (rho[i] * self.dYdt[:, i] + self.rhov[i] * self.dYdx[:, i]
                                 - self._diffusionTerm(self.rhoD, self.Y)[:, i]
                                 - self.wDot[:, i])

        # Right boundary: zero gradient
        self.resMomentum[jj] = self.U[jj] - self.U[jj-1]
        self.resEnergy[jj] = self.T[jj] - self.T[jj-1]
        self.resSpecies[:, jj] = self.Y[:, jj] - self.Y[:, jj-1]

    def f(self, t: float, y: np.ndarray, ydot: np.ndarray, res: np.ndarray) -> int:
        self._checkGeneration()
        self.unrollY(y)
        self.unrollYdot(ydot)
        try:
            self.updateProperties()
        except ChemistryEvaluationError as err:
            logger.warning("Residual evaluation failed at t = %g: %s", t, err)
            return -1

        self._computeResiduals(t)
        self.rollResiduals(res)
        return 0

    # Jacobian

    def preconditionerSetup(self, t: float, y: np.ndarray, ydot: np.ndarray, c_j: float) -> int:
        """
        Finite difference approximation of dF/dy + c_j*dF/dydot. Columns
        more than 2*jacBW apart do not share rows, so they are perturbed
        together.
        """
        self._checkGeneration()
        N = self.N
        bw = self.jacBW
        width = 2 * bw + 1

        res0 = np.zeros(N)
        flag = self.f(t, y, ydot, res0)
        if flag != 0:
            return flag

        delta = np.sqrt(np.finfo(float).eps) * np.maximum(np.abs(y), 1e-4)
        res1 = np.zeros(N)
        rows, cols, vals = [], [], []
        for group in range(min(width, N)):
            columns = np.arange(group, N, width)
            yp = np.array(y, dtype=float)
            ydp = np.array(ydot, dtype=float)
            yp[columns] += delta[columns]
            ydp[columns] += c_j * delta[columns]
            flag = self.f(t, yp, ydp, res1)
            if flag != 0:
                return flag
            for i in columns:
                lo = max(0, i - bw)
                hi = min(N, i + bw + 1)
                rows.append(np.arange(lo, hi))
                cols.append(np.full(hi - lo, i))
                vals.append((res1[lo:hi] - res0[lo:hi]) / delta[i])

        # Leave the system state at the unperturbed point
        self.f(t, y, ydot, res0)

        jac = sparse.csc_matrix((np.concatenate(vals), (np.concatenate(rows), np.concatenate(cols))),
                                shape=(N, N))
        try:
            self._lu = splu(jac)
        except RuntimeError as err:
            logger.warning("Jacobian factorization failed at t = %g: %s", t, err)
            self._lu = None
            return 1
        return 0

    def preconditionerSolve(self, rhs: np.ndarray) -> np.ndarray:
        if self._lu is None:
            raise RuntimeError("preconditionerSetup() must succeed before preconditionerSolve()")
        return self._lu.solve(np.asarray(rhs, dtype=float))

    # Initial conditions

    def _applyBoundaryValues(self, t: float):
        self.rhov[0] = self.rVcenter(t)
        self.U[0] = self.Uleft
        self.T[0] = self.Tu
        self.Y[:, 0] = self.Yu
        self.U[-1] = self.U[-2]
        self.T[-1] = self.T[-2]
        self.Y[:, -1] = self.Y[:, -2]

    def getInitialCondition(self, t: float, y: np.ndarray, ydot: np.ndarray,
                            algebraic: np.ndarray) -> int:
        """
        Make the state consistent with the algebraic constraints and compute
        the matching time derivatives. Returns 0 on convergence.
        """
        self._checkGeneration()
        self.unrollY(y)

        # Mass fractions must be non-negative and sum to one
        self.Y = np.maximum(self.Y, 0.0)
        self.Y /= np.sum(self.Y, axis=0)
        self._applyBoundaryValues(t)

        self.updateAlgebraicComponents()
        algebraic[:] = self.algebraic

        try:
            self.updateProperties()
        except ChemistryEvaluationError as err:
            logger.warning("Initial condition failed at t = %g: %s", t, err)
            return -1

        jj = self.nPoints - 1
        i = slice(1, jj)
        hh = self.grid.hh
        a = self.strainRate(t)
        rhoU = self.rho * self.U
        flag = 1
        nIterations = 0
        for _ in range(self.config.icMaxIterations):
            nIterations += 1
            rhovOld = self.rhov.copy()

            # Differential rows are linear in their own time derivative
            self.drhovdt = np.zeros(self.nPoints)
            self.dUdt = np.zeros(self.nPoints)
            self.dTdt = np.zeros(self.nPoints)
            self.dYdt = np.zeros((self.nSpec, self.nPoints))
            self._computeResiduals(t)
            self.dUdt[i] = -self.resMomentum[i] / self.rho[i]
            self.dTdt[i] = -self.resEnergy[i] / (self.rho[i] * self.cp[i])
            self.dYdt[:, i] = -self.resSpecies[:, i] / self.rho[i]
            if jj > 1:
                self.dUdt[jj] = self.dUdt[jj-1]
                self.dTdt[jj] = self.dTdt[jj-1]
                self.dYdt[:, jj] = self.dYdt[:, jj-1]

            # Continuity, integrated from the left boundary
            self.drhodt = -self.rho * (self.dTdt / self.T +
                                       self.Wmx * np.sum(self.dYdt / self.W[:, np.newaxis], axis=0))
            increments = hh * (0.5 * (self.drhodt[1:] + self.drhodt[:-1])
                               + a * 0.5 * (rhoU[1:] + rhoU[:-1]))
            self.rhov[0] = self.rVcenter(t)
            self.rhov[1:] = self.rhov[0] - np.cumsum(increments)

            scale = max(np.max(np.abs(self.rhov)), self.config.rhovFloor)
            change = np.max(np.abs(self.rhov - rhovOld)) / scale
            if change < self.config.icTolerance:
                flag = 0
                break

        logger.debug("Initial condition: %d iterations, converged = %s", nIterations, flag == 0)
        self.rollY(y)
        self.rollYdot(ydot)
        return flag

    def generateInitialProfiles(self):
        """Unburned and burned plateaus joined by a smoothed ramp at xFlameInitial"""
        cfg = self.config
        x = np.linspace(cfg.xLeft, cfg.xRight, cfg.nPoints)
        self.grid.setCoordinates(x)
        self.setup()

        Tb, Yb = self.gas.equilibrium(self.Tu, self.Yu)
        if cfg.Tb is not None:
            Tb = cfg.Tb
        Yb = np.asarray(Yb, dtype=float)

        xStart = cfg.xFlameInitial - 0.5 * cfg.slopeWidth
        ramp = np.clip((x - xStart) / cfg.slopeWidth, 0.0, 1.0)
        self.T = self.Tu + (Tb - self.Tu) * ramp
        self.Y = self.Yu[:, np.newaxis] + (Yb - self.Yu)[:, np.newaxis] * ramp

        for _ in range(cfg.smoothCount):
            self.T = self._smooth_profile(self.T)
            self.Y = self._smooth_profile(self.Y)
        self.Y = np.maximum(self.Y, 0.0)
        self.Y /= np.sum(self.Y, axis=0)

        self.updateProperties()
        self.U = np.sqrt(self.rhou / self.rho)
        self.U[0] = self.Uleft

        # Integrate continuity outward from the stagnation point
        a = self.strainRate(self.tStart)
        xStag = cfg.xStag if cfg.xStag is not None else cfg.xRight
        jStag = int(np.argmin(np.abs(x - xStag)))
        hh = self.grid.hh
        rhoU = self.rho * self.U
        self.rhov = np.zeros(self.nPoints)
        for j in range(jStag + 1, self.nPoints):
            self.rhov[j] = self.rhov[j-1] - a * 0.5 * (rhoU[j] + rhoU[j-1]) * hh[j-1]
        for j in range(jStag - 1, -1, -1):
            self.rhov[j] = self.rhov[j+1] + a * 0.5 * (rhoU[j] + rhoU[j+1]) * hh[j]

        self.initFlamePositionControl(self.tStart)
        logger.info("Generated initial profiles: %d points, Tb = %.1f K", self.nPoints, Tb)

    def loadInitialProfiles(self, filename: str):
        """Restore the grid and state from a profile snapshot"""
        data = loadProfile(filename)
        Y = np.asarray(data['Y'], dtype=float)
        if Y.shape[0] != self.nSpec:
            raise ValueError(f"Restart file {filename} has {Y.shape[0]} species, mechanism has {self.nSpec}")

        self.grid.setCoordinates(data['x'])
        self.setup()
        self.rhov = np.asarray(data['rhov'], dtype=float)
        self.U = np.asarray(data['U'], dtype=float)
        self.T = np.asarray(data['T'], dtype=float)
        self.Y = Y
        if 't' in data:
            self.tStart = self.tNow = float(data['t'])
        self.updateProperties()
        self.initFlamePositionControl(self.tStart)
        logger.info("Loaded initial profiles from %s: %d points", filename, self.nPoints)

    def _smooth_profile(self, y: np.ndarray) -> np.ndarray:
        """Apply smoothing to profile"""
        y_smooth = y.copy()
        y_smooth[..., 1:-1] = 0.25 * y[..., :-2] + 0.5 * y[..., 1:-1] + 0.25 * y[..., 2:]
        return y_smooth

    # Grid damping and derived outputs

    def computeDampVal(self) -> np.ndarray:
        """Diffusive length scale at each point"""
        num = np.minimum(self.mu, self.lambda_ / self.cp)
        rhoD = np.where(self.rhoD > 0, self.rhoD, np.inf)
        num = np.minimum(num, np.min(rhoD, axis=0))
        return num / np.maximum(np.abs(self.rhov), self.config.rhovFloor)

    def getHeatReleaseRate(self) -> float:
        """Integrated heat release rate [W/m^2]"""
        return float(trapezoid(self.qDot, self.grid.x))

    def getConsumptionSpeed(self) -> float:
        """Consumption speed based on the integrated heat release [m/s]"""
        Tb = self.T[self.grid.jb]
        Tu = self.T[self.grid.ju]
        den = self.rhou * (Tb - Tu)
        if den == 0:
            return 0.0
        return float(trapezoid(self.qDot / self.cp, self.grid.x) / den)

    def getFlamePosition(self) -> float:
        """Heat release weighted flame location [m]"""
        x = self.grid.x
        q = trapezoid(self.qDot, x)
        if q != 0:
            return float(trapezoid(self.qDot * x, x) / q)
        dTdx = np.gradient(self.T, x)
        return float(x[np.argmax(np.abs(dTdx))])
