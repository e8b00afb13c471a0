"""
Chemistry property cache backed by Cantera.
"""
import logging
from typing import Optional, Tuple

import cantera as ct
import numpy as np

from ..core.base import ChemistryComponent
from ..core.errors import ChemistryEvaluationError

logger = logging.getLogger(__name__)


class GasArray(ChemistryComponent):
    """
    Per-grid-point snapshot of thermodynamic, transport and kinetic
    properties. All properties are evaluated in setState() and held until
    the next call, so getters never touch Cantera.
    """
    def __init__(self, mechanism: str, pressure: float = ct.one_atm,
                 phase: Optional[str] = None, transport_model: Optional[str] = None):
        super().__init__({'mechanism': mechanism, 'pressure': pressure})
        if phase is None:
            self.gas = ct.Solution(mechanism)
        else:
            self.gas = ct.Solution(mechanism, phase)
        if transport_model is not None:
            self.gas.transport_model = transport_model

        self._pressure = pressure
        self.W = self.gas.molecular_weights
        self.nPoints = 0
        self._hasState = False
        self.resize(0)
        self.initialize()

    @property
    def nSpec(self) -> int:
        return self.gas.n_species

    @property
    def molecularWeights(self) -> np.ndarray:
        return self.W.copy()

    @property
    def pressure(self) -> float:
        return self._pressure

    @property
    def speciesNames(self):
        return self.gas.species_names

    def resize(self, n: int) -> None:
        """Resize the cache for a grid with n points"""
        self.nPoints = n
        K = self.nSpec
        self.T = np.zeros(n)
        self.Y = np.zeros((K, n))
        self.rho = np.zeros(n)
        self.mu = np.zeros(n)
        self.lambda_ = np.zeros(n)
        self.cp = np.zeros(n)
        self.Dkm = np.zeros((K, n))
        self.wDot = np.zeros((K, n))
        self.hk = np.zeros((K, n))
        self._hasState = False

    def setState(self, Y: np.ndarray, T: np.ndarray) -> None:
        """Set state at every point and evaluate all properties"""
        Y = np.asarray(Y, dtype=float)
        T = np.asarray(T, dtype=float)
        if T.shape != (self.nPoints,) or Y.shape != (self.nSpec, self.nPoints):
            raise ValueError(f"State arrays T{T.shape}, Y{Y.shape} do not match "
                             f"cache size ({self.nSpec}, {self.nPoints})")

        bad = ~np.isfinite(T) | (T <= 0)
        if np.any(bad):
            j = int(np.argmax(bad))
            raise ChemistryEvaluationError(f"Non-physical temperature T = {T[j]} at point j = {j}")
        if not np.all(np.isfinite(Y)):
            raise ChemistryEvaluationError("Non-finite mass fractions")

        for j in range(self.nPoints):
            try:
                self.gas.TPY = T[j], self._pressure, Y[:, j]
                self.T[j] = self.gas.T
                self.Y[:, j] = self.gas.Y
                self.rho[j] = self.gas.density
                self.mu[j] = self.gas.viscosity
                self.lambda_[j] = self.gas.thermal_conductivity
                self.cp[j] = self.gas.cp_mass
                self.Dkm[:, j] = self.gas.mix_diff_coeffs
                self.wDot[:, j] = self.gas.net_production_rates * self.W
                self.hk[:, j] = self.gas.partial_molar_enthalpies / self.W
            except ct.CanteraError as err:
                raise ChemistryEvaluationError(
                    f"Cantera failed at point j = {j}, T = {T[j]}: {err}") from err
        self._hasState = True

    def _require_state(self):
        if not self._hasState:
            raise ValueError("setState() must be called before reading properties")

    def getDensity(self) -> np.ndarray:
        self._require_state()
        return self.rho.copy()

    def getViscosity(self) -> np.ndarray:
        self._require_state()
        return self.mu.copy()

    def getThermalConductivity(self) -> np.ndarray:
        self._require_state()
        return self.lambda_.copy()

    def getDiffusionCoefficients(self) -> np.ndarray:
        self._require_state()
        return self.Dkm.copy()

    def getSpecificHeatCapacity(self) -> np.ndarray:
        self._require_state()
        return self.cp.copy()

    def getReactionRates(self) -> np.ndarray:
        self._require_state()
        return self.wDot.copy()

    def getEnthalpies(self) -> np.ndarray:
        self._require_state()
        return self.hk.copy()

    def getMassFractions(self) -> np.ndarray:
        self._require_state()
        return self.Y.copy()

    def massFractions(self, composition: str) -> np.ndarray:
        self.gas.TPX = 300.0, self._pressure, composition
        return self.gas.Y.copy()

    def reactantMassFractions(self, fuel: str, oxidizer: str, equivalenceRatio: float) -> np.ndarray:
        try:
            self.gas.TP = 300.0, self._pressure
            self.gas.set_equivalence_ratio(equivalenceRatio, fuel, oxidizer)
        except ct.CanteraError as err:
            raise ChemistryEvaluationError(f"Invalid reactant mixture: {err}") from err
        return self.gas.Y.copy()

    def equilibrium(self, T: float, Y: np.ndarray) -> Tuple[float, np.ndarray]:
        try:
            self.gas.TPY = T, self._pressure, Y
            self.gas.equilibrate('HP')
        except ct.CanteraError as err:
            raise ChemistryEvaluationError(f"Equilibrium calculation failed: {err}") from err
        logger.debug("Adiabatic flame temperature: %.1f K", self.gas.T)
        return self.gas.T, self.gas.Y.copy()
