"""
Base classes and interfaces for strainedflame components.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

import numpy as np


class FlameComponent(ABC):
    """
    Base class for all strainedflame components providing common functionality
    and enforcing interface requirements.
    """
    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self._config = config or {}
        self._initialized = False

    @abstractmethod
    def initialize(self) -> None:
        """Initialize the component with current configuration."""
        self._initialized = True

    def is_initialized(self) -> bool:
        """Check if component has been initialized."""
        return self._initialized


class ChemistryComponent(FlameComponent):
    """
    Chemistry provider seen by the flame system.

    All per-point arrays are indexed consistently with the current grid.
    Species arrays have shape (nSpec, nPoints). Getters are pure functions
    of the most recent call to setState().
    """

    @property
    @abstractmethod
    def nSpec(self) -> int:
        """Number of species"""

    @property
    @abstractmethod
    def molecularWeights(self) -> np.ndarray:
        """Species molecular weights [kg/kmol]"""

    @property
    @abstractmethod
    def pressure(self) -> float:
        """Thermodynamic pressure [Pa]"""

    @abstractmethod
    def resize(self, n: int) -> None:
        """Set the number of grid points. Must precede any other call after a grid change."""

    @abstractmethod
    def setState(self, Y: np.ndarray, T: np.ndarray) -> None:
        """Set composition and temperature at every grid point."""

    @abstractmethod
    def getDensity(self) -> np.ndarray:
        """Density [kg/m^3]"""

    @abstractmethod
    def getViscosity(self) -> np.ndarray:
        """Dynamic viscosity [Pa*s]"""

    @abstractmethod
    def getThermalConductivity(self) -> np.ndarray:
        """Thermal conductivity [W/m/K]"""

    @abstractmethod
    def getDiffusionCoefficients(self) -> np.ndarray:
        """Mixture-averaged diffusion coefficients [m^2/s]"""

    @abstractmethod
    def getSpecificHeatCapacity(self) -> np.ndarray:
        """Mass specific heat capacity [J/kg/K]"""

    @abstractmethod
    def getReactionRates(self) -> np.ndarray:
        """Net species mass production rates [kg/m^3/s]"""

    @abstractmethod
    def getEnthalpies(self) -> np.ndarray:
        """Species specific enthalpies [J/kg]"""

    @abstractmethod
    def getMassFractions(self) -> np.ndarray:
        """Normalized mass fractions of the current state"""

    @abstractmethod
    def massFractions(self, composition: str) -> np.ndarray:
        """Mass fractions of a mole-fraction composition string like 'CH4:1, O2:2'"""

    @abstractmethod
    def reactantMassFractions(self, fuel: str, oxidizer: str, equivalenceRatio: float) -> np.ndarray:
        """Mass fractions of a fuel and oxidizer mixed at the given equivalence ratio"""

    @abstractmethod
    def equilibrium(self, T: float, Y: np.ndarray) -> Tuple[float, np.ndarray]:
        """Adiabatic, isobaric equilibrium temperature and mass fractions"""

    def initialize(self) -> None:
        self._initialized = True


class IntegratorComponent(FlameComponent):
    """Base class for integrator components."""
    @abstractmethod
    def integrateOneStep(self) -> int:
        """Advance solution by one internal step. Returns 0 on success."""
        pass
