"""
Tests for the flame solver control loop
"""
import pytest
import numpy as np
from strainedflame.core.errors import (
    ChemistryEvaluationError,
    InitialConditionDivergence,
    IntegratorStepFailure,
)
from strainedflame.core.grid import GridConfig
from strainedflame.solvers.flame_solver import FlameSolver, PeriodicTrigger
from strainedflame.solvers.integrator import BandedBDFIntegrator
from strainedflame.utils.output import loadProfile


@pytest.fixture
def solver(inert_gas, inert_config):
    inert_config.tEnd = 1e-3
    inert_config.maxTimestep = 1e-4
    inert_config.regridTimeInterval = 1.0
    inert_config.regridStepInterval = 10000
    return FlameSolver(inert_config, inert_gas)


def test_periodic_trigger():
    trigger = PeriodicTrigger(timeInterval=1.0, stepInterval=3)
    trigger.reset(0.0)
    assert not trigger.due(0.5)
    trigger.tick()
    trigger.tick()
    assert not trigger.due(0.5)
    trigger.tick()
    assert trigger.due(0.5)

    trigger.reset(0.5)
    assert not trigger.due(1.5)
    assert trigger.due(1.6)


def test_time_series_are_per_instance(inert_gas, inert_config):
    first = FlameSolver(inert_config, inert_gas)
    second = FlameSolver(inert_config, inert_gas)
    first.timeVector.append(1.0)
    assert second.timeVector == []


def set_history(solver, t, q):
    solver.timeVector = list(t)
    solver.heatReleaseRate = list(q)
    solver.tNow = t[-1]


def test_termination_disabled(solver):
    set_history(solver, np.linspace(0, 0.01, 101), np.ones(101))
    assert not solver.checkTerminationCondition()


def test_termination_steady_heat_release(solver):
    solver.config.terminateForSteadyQdot = True
    solver.config.terminationPeriod = 0.002
    set_history(solver, np.linspace(0, 0.01, 101), np.full(101, 5e5))
    assert solver.checkTerminationCondition()
    assert solver.checkTerminationCondition()


def test_termination_unsteady_heat_release(solver):
    solver.config.terminateForSteadyQdot = True
    solver.config.terminationPeriod = 0.002
    solver.config.terminationMaxTime = 1.0
    t = np.linspace(0, 0.01, 101)
    q = 5e5 * (1 + 0.1 * np.sin(2000 * t))
    set_history(solver, t, q)
    assert not solver.checkTerminationCondition()
    assert not solver.checkTerminationCondition()

    # Exceeding the maximum integration time terminates regardless
    solver.config.terminationMaxTime = 0.005
    assert solver.checkTerminationCondition()


def test_termination_needs_full_window(solver):
    solver.config.terminateForSteadyQdot = True
    solver.config.terminationPeriod = 0.02
    set_history(solver, np.linspace(0, 0.01, 101), np.full(101, 5e5))
    assert not solver.checkTerminationCondition()


def test_termination_absolute_tolerance(solver):
    solver.config.terminateForSteadyQdot = True
    solver.config.terminationPeriod = 0.002
    t = np.linspace(0, 0.01, 101)
    set_history(solver, t, 0.01 * np.sin(2000 * t))
    assert solver.checkTerminationCondition()


def test_run_uniform_flame(solver, tmp_path):
    solver.run()

    assert solver.tNow >= solver.config.tEnd
    assert len(solver.timeVector) > 0
    assert len(solver.timeVector) == len(solver.heatReleaseRate) == len(solver.flamePosition)
    np.testing.assert_allclose(solver.system.T, solver.config.Tu, rtol=1e-8)
    np.testing.assert_allclose(np.sum(solver.system.Y, axis=0), 1.0)

    series = np.load(tmp_path / 'out.npz')
    np.testing.assert_array_equal(series['t'], solver.timeVector)


def test_run_writes_profiles(solver, tmp_path):
    solver.config.outputProfiles = True
    solver.run()
    assert (tmp_path / 'prof000000.npz').exists()
    final = sorted(tmp_path.glob('prof*.npz'))[-1]
    data = loadProfile(final)
    assert not data['error']
    np.testing.assert_array_equal(data['x'], solver.grid.x)


def test_initial_condition_divergence(solver, tmp_path):
    solver.config.icMaxIterations = 0
    with pytest.raises(InitialConditionDivergence):
        solver.run()
    data = loadProfile(tmp_path / 'errorOutput.npz')
    assert data['error']


def test_regrid_keeps_arrays_consistent(inert_gas, inert_config):
    inert_config.Tb = 1500.0
    inert_config.xRight = 0.004
    inert_config.nPoints = 17
    inert_config.xFlameInitial = 0.002
    inert_config.grid = GridConfig(gridMax=1e-4)
    solver = FlameSolver(inert_config, inert_gas)
    solver.initialize()
    system = solver.system
    system.updateProperties()
    generation = solver.grid.generation

    assert solver._regrid()

    assert solver.grid.generation > generation
    assert system.gridGeneration == solver.grid.generation
    assert system.N == system.nVars * solver.grid.nPoints
    assert len(system.T) == solver.grid.nPoints
    assert np.all(np.diff(solver.grid.x) > 0)
    np.testing.assert_allclose(np.sum(system.Y, axis=0), 1.0)

    y = np.zeros(system.N)
    ydot = np.zeros(system.N)
    system.rollY(y)
    assert system.getInitialCondition(0.0, y, ydot, system.algebraic) == 0
    res = np.zeros(system.N)
    assert system.f(0.0, y, ydot, res) == 0


def test_run_with_regrid(inert_gas, inert_config):
    inert_config.Tb = 1500.0
    inert_config.tEnd = 5e-4
    inert_config.maxTimestep = 5e-5
    inert_config.regridStepInterval = 5
    inert_config.grid = GridConfig(gridMax=2e-4)
    solver = FlameSolver(inert_config, inert_gas)
    solver.run()

    assert solver.tNow >= inert_config.tEnd
    assert solver.system.N == solver.system.nVars * solver.grid.nPoints
    assert np.all(np.diff(solver.grid.x) > 0)
    # No chemistry: temperatures stay within the initial bounds
    assert np.all(solver.system.T >= inert_config.Tu - 1.0)
    assert np.all(solver.system.T <= 1500.0 + 1.0)


def test_transient_chemistry_failure_recovers(flaky_gas, inert_config, tmp_path):
    inert_config.tEnd = 5e-4
    inert_config.maxTimestep = 5e-5
    inert_config.regridStepInterval = 10000
    solver = FlameSolver(inert_config, flaky_gas)
    solver.initialize()
    # Past the initial condition, inside the first integrator steps
    flaky_gas.failAfter(30)

    solver.run()

    data = loadProfile(tmp_path / 'errorOutput.npz')
    assert data['error']
    assert solver.tNow >= inert_config.tEnd
    assert solver.nConsecutiveFailures == 0
    np.testing.assert_allclose(np.sum(solver.system.Y, axis=0), 1.0)


def test_persistent_chemistry_failure_writes_snapshot(flaky_gas, inert_config, tmp_path):
    inert_config.tEnd = 5e-4
    inert_config.maxTimestep = 5e-5
    solver = FlameSolver(inert_config, flaky_gas)
    solver.initialize()
    flaky_gas.failAfter(30, count=np.inf)

    with pytest.raises(ChemistryEvaluationError):
        solver.run()

    data = loadProfile(tmp_path / 'errorOutput.npz')
    assert data['error']
    np.testing.assert_array_equal(data['x'], solver.grid.x)


def test_repeated_step_failures_raise(solver, monkeypatch, tmp_path):
    solver.config.maxConsecutiveFailures = 2
    monkeypatch.setattr(BandedBDFIntegrator, 'integrateOneStep',
                        lambda self: BandedBDFIntegrator.CONVERGENCE_FAILURE)

    with pytest.raises(IntegratorStepFailure):
        solver.run()

    assert solver.nConsecutiveFailures == 3
    assert solver.tNow == solver.config.tStart
    assert loadProfile(tmp_path / 'errorOutput.npz')['error']


def test_integrator_restart_interval(solver, monkeypatch):
    solver.config.integratorRestartInterval = 2
    segments = []
    initialize = BandedBDFIntegrator.initialize

    def counting_initialize(self):
        segments.append(self)
        initialize(self)

    monkeypatch.setattr(BandedBDFIntegrator, 'initialize', counting_initialize)
    solver.run()

    assert solver.tNow >= solver.config.tEnd
    assert len(segments) > 2
    np.testing.assert_allclose(np.sum(solver.system.Y, axis=0), 1.0, rtol=1e-12)
