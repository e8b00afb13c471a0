"""
Tests for the DAE integrator
"""
import pytest
import numpy as np
from strainedflame.solvers.integrator import DAESystem, DAEIntegrator, BandedBDFIntegrator


class DecaySystem(DAESystem):
    """Test system with known analytical solution: y0' = -k*y0, y1 = 2*y0"""

    def __init__(self, k=2.0):
        self.k = k
        self.lhs = None
        self.fail = False

    def f(self, t, y, ydot, res):
        if self.fail:
            return -1
        res[0] = ydot[0] + self.k * y[0]
        res[1] = y[1] - 2.0 * y[0]
        return 0

    def preconditionerSetup(self, t, y, ydot, c_j):
        self.lhs = np.array([[c_j + self.k, 0.0],
                             [-2.0, 1.0]])
        return 0

    def preconditionerSolve(self, rhs):
        return np.linalg.solve(self.lhs, rhs)

    def getInitialCondition(self, t, y, ydot, algebraic):
        y[1] = 2.0 * y[0]
        ydot[0] = -self.k * y[0]
        ydot[1] = 2.0 * ydot[0]
        algebraic[:] = [False, True]
        return 0


def make_integrator(system, y0=1.0):
    integrator = BandedBDFIntegrator(2)
    y = np.array([y0, 0.0])
    ydot = np.zeros(2)
    algebraic = np.zeros(2, dtype=bool)
    system.getInitialCondition(0.0, y, ydot, algebraic)
    integrator.t0 = 0.0
    integrator.y = y
    integrator.ydot = ydot
    integrator.abstol = np.full(2, 1e-10)
    integrator.reltol = 1e-6
    integrator.setDAE(system)
    integrator.setAlgebraic(algebraic)
    integrator.setMaxStepSize(0.05)
    integrator.initialize()
    return integrator


def test_decay_integration():
    """Integrate the decay problem and compare with the exact solution"""
    system = DecaySystem()
    integrator = make_integrator(system)

    tf = 1.0
    while integrator.tInt < tf:
        assert integrator.integrateOneStep() == 0

    y_exact = np.exp(-2.0 * integrator.tInt)
    np.testing.assert_allclose(integrator.y[0], y_exact, rtol=1e-3)
    # Algebraic constraint holds at every step
    np.testing.assert_allclose(integrator.y[1], 2.0 * integrator.y[0], rtol=1e-10)
    np.testing.assert_allclose(integrator.ydot[0], -2.0 * integrator.y[0], rtol=1e-2)
    assert integrator.getStepSize() <= 0.05


def test_initialization():
    """Test integrator initialization"""
    system = DecaySystem()
    integrator = BandedBDFIntegrator(2)
    integrator.t0 = 0.5
    integrator.setDAE(system)
    integrator.setInitialStepSize(1e-3)

    assert not integrator.is_initialized()
    integrator.initialize()

    assert integrator.tInt == 0.5
    assert integrator.h == 1e-3
    assert integrator.is_initialized()


def test_initialize_requires_system():
    integrator = BandedBDFIntegrator(2)
    with pytest.raises(RuntimeError):
        integrator.initialize()


def test_step_requires_initialize():
    integrator = BandedBDFIntegrator(2)
    integrator.setDAE(DecaySystem())
    with pytest.raises(RuntimeError):
        integrator.integrateOneStep()


def test_size_mismatch():
    integrator = BandedBDFIntegrator(3)
    integrator.setDAE(DecaySystem())
    integrator.y = np.zeros(2)
    with pytest.raises(ValueError):
        integrator.initialize()


def test_residual_failure_keeps_state():
    system = DecaySystem()
    integrator = make_integrator(system)
    assert integrator.integrateOneStep() == 0
    y = integrator.y.copy()
    t = integrator.tInt

    system.fail = True
    assert integrator.integrateOneStep() == BandedBDFIntegrator.RESIDUAL_FAILURE
    np.testing.assert_array_equal(integrator.y, y)
    assert integrator.tInt == t


def test_integrator_is_abstract():
    with pytest.raises(TypeError):
        DAEIntegrator(2)
    with pytest.raises(TypeError):
        DAESystem()
