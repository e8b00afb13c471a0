"""
Time integration driver for the strained flame: periodic output, grid
adaptation, flame position control and termination.
"""
import logging
import time
from typing import Optional

import numpy as np

from ..core.base import ChemistryComponent
from ..core.errors import (
    ChemistryEvaluationError,
    GridDegeneracy,
    InitialConditionDivergence,
    IntegratorStepFailure,
)
from ..core.grid import OneDimGrid
from ..transport.chemistry import GasArray
from ..utils.output import ProfileWriter
from .integrator import BandedBDFIntegrator
from .strained_flame import FlameConfig, StrainedFlameSystem

logger = logging.getLogger(__name__)


class PeriodicTrigger:
    """Fires once the time passes the scheduled time or enough steps were taken"""

    def __init__(self, timeInterval: float, stepInterval: int):
        self.timeInterval = timeInterval
        self.stepInterval = stepInterval
        self.tNext = 0.0
        self.n = 0

    def reset(self, t: float):
        self.tNext = t + self.timeInterval
        self.n = 0

    def tick(self):
        self.n += 1

    def due(self, t: float) -> bool:
        return t > self.tNext or self.n >= self.stepInterval


class FlameSolver:
    """Integrates a strained flame from its initial profiles to tEnd or steady state"""

    def __init__(self, config: FlameConfig, gas: Optional[ChemistryComponent] = None):
        self.config = config
        if gas is None:
            gas = GasArray(config.mechanism, config.pressure, config.phase)
        self.gas = gas
        self.grid = OneDimGrid(config.grid)
        self.system = StrainedFlameSystem(config, self.gas, self.grid)
        self.writer = ProfileWriter(config.outputDir)

        # Time series
        self.timeVector = []
        self.timestepVector = []
        self.heatReleaseRate = []
        self.consumptionSpeed = []
        self.flamePosition = []

        self.tStart = config.tStart
        self.tNow = config.tStart
        self.integratorTimestep = 0.0
        self.nConsecutiveFailures = 0
        self._initialized = False

    def initialize(self):
        """Build the initial grid and profiles"""
        if self.config.restartFile:
            self.system.loadInitialProfiles(self.config.restartFile)
            self.tStart = self.tNow = self.system.tStart
        else:
            self.system.generateInitialProfiles()
        self._initialized = True

    def _abstol(self) -> np.ndarray:
        cfg = self.config
        slot = np.empty(self.system.nVars)
        slot[StrainedFlameSystem.kContinuity] = cfg.continuityAbsTol
        slot[StrainedFlameSystem.kMomentum] = cfg.momentumAbsTol
        slot[StrainedFlameSystem.kEnergy] = cfg.energyAbsTol
        slot[StrainedFlameSystem.kSpecies:] = cfg.speciesAbsTol
        return np.tile(slot, self.system.nPoints)

    def _renormalize(self):
        """Replace the mass fractions with the normalized ones from the chemistry provider"""
        self.gas.setState(self.system.Y, self.system.T)
        self.system.Y = self.gas.getMassFractions()

    def _sync(self, solver: BandedBDFIntegrator):
        """Bring the system arrays up to date with the integrator state"""
        self.system.unrollY(solver.y)
        self.system.unrollYdot(solver.ydot)
        self.system.updateProperties()

    def _writeErrorSnapshot(self):
        self.writer.writeStateFile(self.system, label='errorOutput', error=True)

    def _consistentInitialCondition(self, t: float, y: np.ndarray, ydot: np.ndarray):
        system = self.system
        cfg = self.config
        for attempt in range(1, cfg.icRetryCount + 1):
            system.unrollY(y)
            try:
                self._renormalize()
            except ChemistryEvaluationError:
                self._writeErrorSnapshot()
                raise
            system.rollY(y)
            flag = system.getInitialCondition(t, y, ydot, system.algebraic)
            if flag == 0:
                return
            logger.info("Consistent initial condition not found at t = %g (attempt %d)", t, attempt)

        system.unrollY(y)
        self._writeErrorSnapshot()
        raise InitialConditionDivergence(
            f"No consistent initial condition at t = {t} after {cfg.icRetryCount} attempts")

    def _regrid(self) -> bool:
        """Adapt the grid to the current solution. Returns True if it changed."""
        system = self.system
        self.grid.setDamping(system.computeDampVal())

        y = np.zeros(system.N)
        ydot = np.zeros(system.N)
        system.rollY(y)
        system.rollYdot(ydot)
        current = system.rollVectorVector(y, system.qDot)
        currentDot = system.rollVectorVector(ydot, np.zeros(system.nPoints))

        changed = False
        for operation in (self.grid.regrid, self.grid.adapt):
            try:
                changed |= operation(current, currentDot)
            except GridDegeneracy as err:
                logger.warning("Grid adaptation rejected at t = %g: %s", self.tNow, err)

        if changed:
            logger.info("Grid size: %d points.", self.grid.nPoints)
            system.setup()
            system.unrollVectorVector(current)
            system.unrollVectorVectorDot(currentDot)
            self._renormalize()
        return changed

    def _recordTimeSeries(self, t: float, dt: float):
        self.timeVector.append(t)
        self.timestepVector.append(dt)
        self.heatReleaseRate.append(self.system.getHeatReleaseRate())
        self.consumptionSpeed.append(self.system.getConsumptionSpeed())
        self.flamePosition.append(self.system.getFlamePosition())
        logger.info("t = %8.6f  dt = %9.3e  Q = %9.4e  Sc = %8.5f  xFlame = %8.6f",
                    t, dt, self.heatReleaseRate[-1], self.consumptionSpeed[-1],
                    self.flamePosition[-1])

    def run(self):
        """Integrate until tEnd or until the termination condition is met"""
        if not self._initialized:
            self.initialize()

        cfg = self.config
        system = self.system
        runStart = time.perf_counter()

        t = self.tStart
        self.tNow = system.tNow = t
        self.grid.updateValues()
        system.updateProperties()
        system.initFlamePositionControl(t)
        if cfg.outputProfiles:
            self.writer.writeStateFile(system)

        outputTrigger = PeriodicTrigger(cfg.outputTimeInterval, cfg.outputStepInterval)
        profileTrigger = PeriodicTrigger(cfg.profileTimeInterval, cfg.profileStepInterval)
        flamePosTrigger = PeriodicTrigger(cfg.rFlameUpdateTimeInterval, cfg.rFlameUpdateStepInterval)
        regridTrigger = PeriodicTrigger(cfg.regridTimeInterval, cfg.regridStepInterval)
        terminationTrigger = PeriodicTrigger(cfg.terminationTimeInterval, cfg.terminationStepInterval)
        triggers = (outputTrigger, profileTrigger, flamePosTrigger, regridTrigger, terminationTrigger)
        for trigger in triggers:
            trigger.reset(t)

        nIntegrate = 0
        terminated = False
        while t < cfg.tEnd and not terminated:
            system.setup()
            solver = BandedBDFIntegrator(system.N)
            solver.reltol = cfg.relTol
            solver.abstol = self._abstol()

            y = np.zeros(system.N)
            ydot = np.zeros(system.N)
            system.rollY(y)

            system.update_rVcenter(t)
            flamePosTrigger.reset(t)
            self._consistentInitialCondition(t, y, ydot)

            solver.t0 = t
            solver.y = y
            solver.ydot = ydot
            solver.setDAE(system)
            solver.setAlgebraic(system.algebraic)
            solver.setMaxStepSize(cfg.maxTimestep)
            if self.integratorTimestep > 0:
                solver.setInitialStepSize(self.integratorTimestep)
            solver.initialize()
            segmentStart = time.perf_counter()

            while t < cfg.tEnd:
                flag = solver.integrateOneStep()
                if flag != 0:
                    # Properties are not refreshed; they may be what failed
                    system.unrollY(solver.y)
                    system.unrollYdot(solver.ydot)
                    self._writeErrorSnapshot()
                    logger.warning("Integrator failed at time t = %g (dt = %g), flag = %d",
                                   t, self.integratorTimestep, flag)
                    self.integratorTimestep = 0.0
                    self.nConsecutiveFailures += 1
                    if self.nConsecutiveFailures > cfg.maxConsecutiveFailures:
                        raise IntegratorStepFailure(
                            f"Integrator failed {self.nConsecutiveFailures} times in a row at t = {t}")
                    break

                self.nConsecutiveFailures = 0
                dt = self.integratorTimestep = solver.getStepSize()
                t = solver.tInt
                self.tNow = system.tNow = t
                nIntegrate += 1
                for trigger in triggers:
                    trigger.tick()

                restart = nIntegrate > cfg.integratorRestartInterval
                if any(trigger.due(t) for trigger in triggers) or restart or t >= cfg.tEnd:
                    self._sync(solver)

                if outputTrigger.due(t):
                    self._recordTimeSeries(t, dt)
                    outputTrigger.reset(t)

                if profileTrigger.due(t):
                    if cfg.outputProfiles:
                        self.writer.writeStateFile(system)
                    profileTrigger.reset(t)

                if flamePosTrigger.due(t):
                    system.update_rVcenter(t)
                    flamePosTrigger.reset(t)

                if terminationTrigger.due(t):
                    terminationTrigger.reset(t)
                    if self.checkTerminationCondition():
                        logger.info("Steady-state heat release rate reached at t = %g", t)
                        terminated = True
                        break

                if regridTrigger.due(t):
                    regridTrigger.reset(t)
                    if self._regrid():
                        nIntegrate = 0
                        break

                if restart:
                    logger.debug("Restarting integrator at t = %g", t)
                    nIntegrate = 0
                    self._renormalize()
                    break

            solver.printStats(time.perf_counter() - segmentStart)

        if cfg.outputProfiles:
            self.writer.writeStateFile(system)
        self.saveTimeSeries()
        logger.info("Runtime: %.3f seconds.", time.perf_counter() - runStart)
        return terminated

    def checkTerminationCondition(self) -> bool:
        """
        True when the heat release rate over the trailing terminationPeriod is
        steady to within the relative or absolute tolerance, or when the run
        exceeds terminationMaxTime.
        """
        cfg = self.config
        if not cfg.terminateForSteadyQdot:
            return False

        tv = np.asarray(self.timeVector)
        earlier = np.nonzero(tv < self.tNow - cfg.terminationPeriod)[0]
        if len(earlier) == 0:
            logger.debug("Continuing integration: t = %g is within the first termination period", self.tNow)
            return False

        j1 = earlier[-1]
        q = np.asarray(self.heatReleaseRate[j1:])
        qMean = np.mean(q)
        hrrError = np.mean(np.abs(q - qMean))

        if qMean != 0 and hrrError / abs(qMean) < cfg.terminationTolerance:
            logger.info("Terminating integration: heat release deviation = %g%%", 100 * hrrError / abs(qMean))
            return True
        elif hrrError < cfg.terminationAbsTol:
            logger.info("Terminating integration: heat release deviation = %g W/m^2", hrrError)
            return True
        elif self.tNow - self.tStart > cfg.terminationMaxTime:
            logger.info("Terminating integration: maximum integration time exceeded")
            return True

        logger.debug("Continuing integration: heat release deviation = %g%%",
                     100 * hrrError / abs(qMean) if qMean != 0 else np.inf)
        return False

    def saveTimeSeries(self):
        self.writer.writeTimeSeries({
            't': self.timeVector,
            'dt': self.timestepVector,
            'Q': self.heatReleaseRate,
            'Sc': self.consumptionSpeed,
            'xFlame': self.flamePosition,
        })
