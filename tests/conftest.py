"""
PyTest configuration and fixtures
"""
import pytest
import numpy as np

from strainedflame.core.base import ChemistryComponent
from strainedflame.core.errors import ChemistryEvaluationError
from strainedflame.core.grid import GridConfig
from strainedflame.solvers.strained_flame import GAS_CONSTANT, FlameConfig


class InertGas(ChemistryComponent):
    """Two-species ideal gas with constant transport properties and no reactions"""

    def __init__(self, W=(28.0, 32.0), pressure=101325.0, mu=1.8e-5,
                 conductivity=0.026, cp=1100.0, D=2e-5):
        super().__init__({})
        self.W = np.array(W, dtype=float)
        self._pressure = pressure
        self.mu = mu
        self.conductivity = conductivity
        self.cpValue = cp
        self.D = D
        self.names = ['A', 'B'][:len(self.W)]
        self.resize(0)
        self.initialize()

    @property
    def nSpec(self):
        return len(self.W)

    @property
    def molecularWeights(self):
        return self.W.copy()

    @property
    def pressure(self):
        return self._pressure

    def resize(self, n):
        self.nPoints = n
        self.T = np.zeros(n)
        self.Y = np.zeros((self.nSpec, n))

    def setState(self, Y, T):
        Y = np.asarray(Y, dtype=float)
        T = np.asarray(T, dtype=float)
        if T.shape != (self.nPoints,) or Y.shape != (self.nSpec, self.nPoints):
            raise ValueError("State does not match cache size")
        if not np.all(np.isfinite(T)) or np.any(T <= 0):
            raise ChemistryEvaluationError("Non-physical temperature")
        self.T = T.copy()
        self.Y = Y.copy()

    def getDensity(self):
        Wmx = 1.0 / np.sum(self.Y / self.W[:, np.newaxis], axis=0)
        return self._pressure * Wmx / (GAS_CONSTANT * self.T)

    def getViscosity(self):
        return np.full(self.nPoints, self.mu)

    def getThermalConductivity(self):
        return np.full(self.nPoints, self.conductivity)

    def getDiffusionCoefficients(self):
        return np.full((self.nSpec, self.nPoints), self.D)

    def getSpecificHeatCapacity(self):
        return np.full(self.nPoints, self.cpValue)

    def getReactionRates(self):
        return np.zeros((self.nSpec, self.nPoints))

    def getEnthalpies(self):
        return np.tile(self.cpValue * (self.T - 298.15), (self.nSpec, 1))

    def getMassFractions(self):
        return self.Y / np.sum(self.Y, axis=0)

    def _moleFractions(self, composition):
        X = np.zeros(self.nSpec)
        for item in composition.split(','):
            name, value = item.split(':')
            X[self.names.index(name.strip())] = float(value)
        return X / X.sum()

    def massFractions(self, composition):
        Y = self._moleFractions(composition) * self.W
        return Y / Y.sum()

    def reactantMassFractions(self, fuel, oxidizer, equivalenceRatio):
        # One mole of oxidizer per mole of fuel at stoichiometric conditions
        X = equivalenceRatio * self._moleFractions(fuel) + self._moleFractions(oxidizer)
        Y = X * self.W
        return Y / Y.sum()

    def equilibrium(self, T, Y):
        return T, np.array(Y, dtype=float)


class FlakyGas(InertGas):
    """Inert gas whose state updates fail once they reach a given call number"""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.calls = 0
        self.failFrom = None
        self.failCount = 0

    def failAfter(self, n, count=1):
        """Fail ``count`` consecutive setState calls starting ``n`` calls from now"""
        self.failFrom = self.calls + n
        self.failCount = count

    def setState(self, Y, T):
        self.calls += 1
        if self.failFrom is not None and self.failFrom <= self.calls < self.failFrom + self.failCount:
            raise ChemistryEvaluationError(f"Injected failure at call {self.calls}")
        super().setState(Y, T)


@pytest.fixture
def flaky_gas():
    """Return an inert gas that can be told to fail."""
    return FlakyGas()


@pytest.fixture
def inert_gas():
    """Return a constant-property inert gas."""
    return InertGas()


@pytest.fixture
def inert_config(tmp_path):
    """Return a small flame configuration for the inert gas."""
    return FlameConfig(
        reactants='A:1, B:1',
        Tu=300.0,
        xLeft=0.0,
        xRight=0.002,
        nPoints=9,
        xFlameInitial=0.001,
        slopeWidth=0.0004,
        strainRateInitial=100.0,
        strainRateFinal=100.0,
        outputDir=str(tmp_path),
        grid=GridConfig(gridMax=1.0),
    )


@pytest.fixture
def simple_solution():
    """Return a simple Cantera Solution for testing."""
    import cantera as ct
    return ct.Solution('gri30.yaml')
