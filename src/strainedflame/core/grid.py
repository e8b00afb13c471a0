"""
One-dimensional adaptive grid for strained flame calculations.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

import numpy as np
from scipy.interpolate import PchipInterpolator

from .errors import GridDegeneracy

logger = logging.getLogger(__name__)


@dataclass
class GridConfig:
    """Configuration for grid adaptation"""
    # Grid control
    vtol: float = 0.12  # Value tolerance (gradient)
    dvtol: float = 0.2  # Derivative tolerance (curvature)
    rmTol: float = 0.6  # Point removal tolerance
    absvtol: float = 1e-8  # Absolute value tolerance

    # Grid bounds
    gridMin: float = 5e-7  # Minimum spacing
    gridMax: float = 2e-4  # Maximum spacing
    dampConst: float = 7.0  # Damping constant
    uniformityTol: float = 2.5  # Grid uniformity tolerance
    minPoints: int = 3  # Fewest points a grid operation may leave
    dampFloor: Optional[float] = None  # Smallest damping value (defaults to gridMin)

    # Boundary control
    boundaryTol: float = 5e-5  # Boundary extension tolerance
    boundaryTolRm: float = 1e-5  # Boundary point removal tolerance
    addPointCount: int = 3  # Points to add at boundaries

    # Geometry
    fixedBurnedVal: bool = False  # Burned boundary is zero-gradient
    unburnedLeft: bool = True  # Unburned mixture on left
    fixedLeftLoc: bool = False  # Fix leftmost point


@dataclass
class _Candidate:
    """Grid and solution arrays being modified before they are committed"""
    x: np.ndarray
    dampVal: np.ndarray
    y: List[np.ndarray]
    ydot: List[np.ndarray]

    @property
    def jj(self) -> int:
        return len(self.x) - 1

    def insert(self, index: int, xNew: float, dampNew: float,
               yNew: List[float], ydotNew: List[float]):
        self.x = np.insert(self.x, index, xNew)
        self.dampVal = np.insert(self.dampVal, index, dampNew)
        self.y = [np.insert(v, index, vNew) for v, vNew in zip(self.y, yNew)]
        self.ydot = [np.insert(v, index, vNew) for v, vNew in zip(self.ydot, ydotNew)]

    def delete(self, index: int):
        self.x = np.delete(self.x, index)
        self.dampVal = np.delete(self.dampVal, index)
        self.y = [np.delete(v, index) for v in self.y]
        self.ydot = [np.delete(v, index) for v in self.ydot]


class OneDimGrid:
    """
    One-dimensional adaptive grid.

    The grid owns the point coordinates and per-point damping values. Every
    committed change of the mesh increments ``generation`` so that arrays
    sized for an earlier mesh can be detected.
    """
    def __init__(self, config: Optional[GridConfig] = None):
        self.generation = 0

        # Grid points
        self.x = None  # Grid point locations
        self.nPoints = 0
        self.jj = 0  # nPoints - 1

        # Grid metrics
        self.hh = None  # Grid spacing
        self.cfm = None  # Left coefficients
        self.cf = None  # Center coefficients
        self.cfp = None  # Right coefficients
        self.dlj = None  # Local grid spacing
        self.dampVal = None  # Damping values

        # Number of leading solution components used for adaptation
        self.nAdapt = 0

        # Physical indices
        self.ju = 0  # Unburned point index
        self.jb = 0  # Burned point index

        # Position of the momentum component in the solution list
        self.kMomentum = 1

        self.setOptions(config or GridConfig())

    def setOptions(self, options: GridConfig):
        """Set grid options from configuration"""
        # Adaptation parameters
        self.vtol = options.vtol
        self.dvtol = options.dvtol
        self.absvtol = options.absvtol
        self.rmTol = options.rmTol
        self.uniformityTol = options.uniformityTol
        self.gridMin = options.gridMin
        self.gridMax = options.gridMax
        self.dampConst = options.dampConst
        self.minPoints = max(options.minPoints, 2)
        self.dampFloor = options.dampFloor if options.dampFloor is not None else options.gridMin

        # Configuration flags
        self.fixedBurnedVal = options.fixedBurnedVal
        self.unburnedLeft = options.unburnedLeft
        self.fixedLeftLoc = options.fixedLeftLoc

        # Boundary parameters
        self.boundaryTol = options.boundaryTol
        self.boundaryTolRm = options.boundaryTolRm
        self.addPointCount = options.addPointCount

    @property
    def xLeft(self) -> float:
        return float(self.x[0])

    @property
    def xRight(self) -> float:
        return float(self.x[-1])

    def setSize(self, new_nPoints: int):
        """Set grid size"""
        self.nPoints = new_nPoints
        self.jj = new_nPoints - 1

    def setCoordinates(self, x: np.ndarray, dampVal: Optional[np.ndarray] = None):
        """Replace the grid points, starting a new generation"""
        x = np.asarray(x, dtype=float)
        if dampVal is None:
            dampVal = np.full(len(x), np.inf)
        self._validate(x, np.asarray(dampVal, dtype=float), [], [])
        self.x = x.copy()
        self.dampVal = np.asarray(dampVal, dtype=float).copy()
        self.setSize(len(self.x))
        self.updateValues()
        self.updateBoundaryIndices()
        self.generation += 1

    def setDamping(self, dampVal: np.ndarray):
        """Set per-point damping values, replacing degenerate entries by the floor value"""
        dampVal = np.asarray(dampVal, dtype=float)
        if len(dampVal) != self.nPoints:
            raise ValueError(f"Damping array has {len(dampVal)} entries for {self.nPoints} grid points")
        dampVal = np.where(np.isnan(dampVal), self.dampFloor, dampVal)
        self.dampVal = np.maximum(dampVal, self.dampFloor)

    def updateValues(self):
        """Update grid metrics"""
        self.hh = np.diff(self.x)
        self.cfm = np.zeros(self.jj + 1)
        self.cf = np.zeros(self.jj + 1)
        self.cfp = np.zeros(self.jj + 1)
        self.dlj = np.zeros(self.jj + 1)

        # Centered first derivative coefficients on a non-uniform grid
        hm = self.hh[:-1]
        hp = self.hh[1:]
        self.cfp[1:self.jj] = hm / (hp * (hp + hm))
        self.cf[1:self.jj] = (hp - hm) / (hp * hm)
        self.cfm[1:self.jj] = -hp / (hm * (hp + hm))
        self.dlj[1:self.jj] = 0.5 * (self.x[2:] - self.x[:-2])

    def updateBoundaryIndices(self):
        """Update indices for burned/unburned regions"""
        if self.unburnedLeft:
            self.ju = 0
            self.jb = self.jj
        else:
            self.jb = 0
            self.ju = self.jj

    def adapt(self, y: List[np.ndarray], ydot: List[np.ndarray]) -> bool:
        """
        Insert and remove interior points based on the resolution of the
        first ``nAdapt`` components of ``y``.

        ``y`` and ``ydot`` are replaced in place by arrays on the new grid.
        Returns True if the grid changed.
        """
        self._checkInputs(y, ydot)
        c = _Candidate(self.x.copy(), self.dampVal.copy(),
                       [np.array(v, dtype=float) for v in y],
                       [np.array(v, dtype=float) for v in ydot])
        insertionIndices = []
        removalIndices = []

        # Point insertion
        j = 0
        while j < c.jj:
            hh = np.diff(c.x)
            jj = c.jj
            insert = False

            for k in range(self.nAdapt):
                v = c.y[k]
                vRange = np.max(v) - np.min(v)
                if vRange < self.absvtol:
                    continue

                # Value resolution
                if abs(v[j+1] - v[j]) > self.vtol * vRange:
                    logger.debug("Adapt: v resolution wants grid point at j = %d, k = %d, "
                                 "|v(j+1) - v(j)| = %g, vRange = %g", j, k, abs(v[j+1] - v[j]), vRange)
                    insert = True

                # Derivative resolution
                if j != 0 and j != jj - 1:
                    dv = self._derivative(c.x, v)
                    dvRange = np.max(dv[1:jj]) - np.min(dv[1:jj])
                    if abs(dv[j+1] - dv[j]) > self.dvtol * dvRange:
                        logger.debug("Adapt: dv resolution wants grid point at j = %d, k = %d, "
                                     "|dv(j+1) - dv(j)| = %g, dvRange = %g",
                                     j, k, abs(dv[j+1] - dv[j]), dvRange)
                        insert = True

            # Damping criterion
            if hh[j] > self.dampConst * c.dampVal[j]:
                logger.debug("Adapt: damping wants grid point at j = %d, hh = %g, dampVal = %g",
                             j, hh[j], c.dampVal[j])
                insert = True

            # Maximum grid size
            if hh[j] > self.gridMax:
                logger.debug("Adapt: max grid size wants grid point at j = %d, hh = %g", j, hh[j])
                insert = True

            # Grid uniformity
            if j != 0 and hh[j] / hh[j-1] > self.uniformityTol:
                logger.debug("Adapt: left uniformity wants grid point at j = %d, hh = %g, hh(j-1) = %g",
                             j, hh[j], hh[j-1])
                insert = True

            if j != jj - 1 and hh[j] / hh[j+1] > self.uniformityTol:
                logger.debug("Adapt: right uniformity wants grid point at j = %d, hh = %g, hh(j+1) = %g",
                             j, hh[j], hh[j+1])
                insert = True

            # Minimum grid size
            if insert and hh[j] < 2 * self.gridMin:
                logger.debug("Adapt: grid point addition canceled by minimum grid size j = %d, hh = %g",
                             j, hh[j])
                insert = False

            if insert:
                insertionIndices.append(j)
                self._insertMidpoint(c, j)
                j += 2
            else:
                j += 1

        # Point removal
        j = 1
        while j < c.jj:
            hh = np.diff(c.x)
            jj = c.jj
            remove = True

            for k in range(self.nAdapt):
                v = c.y[k]
                vRange = np.max(v) - np.min(v)
                if vRange < self.absvtol:
                    continue

                # Value resolution
                if abs(v[j+1] - v[j-1]) > self.rmTol * self.vtol * vRange:
                    remove = False
                    break

                # Derivative resolution
                if j != 1 and j != jj - 1:
                    dv = self._derivative(c.x, v)
                    dvRange = np.max(dv[1:jj]) - np.min(dv[1:jj])
                    if abs(dv[j+1] - dv[j-1]) > self.rmTol * self.dvtol * dvRange:
                        remove = False
                        break

            # Damping criterion
            if np.isfinite(c.dampVal[j]) and hh[j] + hh[j-1] >= self.rmTol * self.dampConst * c.dampVal[j]:
                remove = False

            # Maximum grid size
            if hh[j] + hh[j-1] > self.gridMax:
                remove = False

            # Grid uniformity
            if j >= 2 and hh[j] + hh[j-1] > self.uniformityTol * hh[j-2]:
                remove = False

            if j <= jj - 2 and hh[j] + hh[j-1] > self.uniformityTol * hh[j+1]:
                remove = False

            if c.jj < self.minPoints:
                remove = False

            if remove:
                logger.debug("Adapt: removing grid point j = %d, x = %g", j, c.x[j])
                removalIndices.append(j)
                c.delete(j)
            else:
                j += 1

        changed = bool(insertionIndices or removalIndices)
        if changed:
            logger.debug("Adapt: inserted points at %s", insertionIndices)
            logger.debug("Adapt: removed points at %s", removalIndices)
            self._commit(c, y, ydot)
        return changed

    def regrid(self, y: List[np.ndarray], ydot: List[np.ndarray]) -> bool:
        """
        Move the domain boundaries: extend the domain where the solution is
        not flat at a boundary and contract it where it is.

        ``y`` and ``ydot`` are replaced in place by arrays on the new grid.
        Returns True if the grid changed.
        """
        self._checkInputs(y, ydot)
        c = _Candidate(self.x.copy(), self.dampVal.copy(),
                       [np.array(v, dtype=float) for v in y],
                       [np.array(v, dtype=float) for v in ydot])

        rightAddition = self.addRight(c)
        leftAddition = self.addLeft(c)

        rightRemovalCount = 0
        leftRemovalCount = 0

        if not rightAddition:
            while self.removeRight(c):
                rightRemovalCount += 1

        if not leftAddition:
            while self.removeLeft(c):
                leftRemovalCount += 1

        if rightRemovalCount:
            logger.debug("Regrid: removed %d points from the right boundary", rightRemovalCount)
        if leftRemovalCount:
            logger.debug("Regrid: removed %d points from the left boundary", leftRemovalCount)

        changed = rightAddition or leftAddition or rightRemovalCount > 0 or leftRemovalCount > 0
        if changed:
            self._commit(c, y, ydot)
        return changed

    def addRight(self, c: _Candidate) -> bool:
        """Add points to the right boundary if the solution is not flat there"""
        jj = c.jj
        djMom = 1
        djOther = 2 if (self.jb == self.jj and not self.fixedBurnedVal) else 1

        pointAdded = False
        for k in range(self.nAdapt):
            dj = djMom if k == self.kMomentum else djOther
            yMax = np.max(np.abs(c.y[k]))
            if yMax > self.absvtol and abs(c.y[k][jj] - c.y[k][jj-dj]) / yMax > self.boundaryTol:
                pointAdded = True
                break

        if pointAdded:
            logger.debug("Regrid: adding points to right boundary")
            for _ in range(self.addPointCount):
                dx = np.power(self.uniformityTol, 1.0 / (1 + self.addPointCount)) * (c.x[-1] - c.x[-2])
                c.insert(len(c.x), c.x[-1] + dx, c.dampVal[-1],
                         [v[-1] for v in c.y], [v[-1] for v in c.ydot])
        return pointAdded

    def addLeft(self, c: _Candidate) -> bool:
        """Add points to the left boundary if the solution is not flat there"""
        if self.fixedLeftLoc:
            return False

        djMom = 1
        djOther = 2 if (self.jb == 0 and not self.fixedBurnedVal) else 1

        pointAdded = False
        for k in range(self.nAdapt):
            dj = djMom if k == self.kMomentum else djOther
            yMax = np.max(np.abs(c.y[k]))
            if yMax > self.absvtol and abs(c.y[k][dj] - c.y[k][0]) / yMax > self.boundaryTol:
                pointAdded = True
                break

        if pointAdded:
            logger.debug("Regrid: adding points to left boundary")
            for _ in range(self.addPointCount):
                xLeft = c.x[0] - np.sqrt(self.uniformityTol) * (c.x[1] - c.x[0])
                c.insert(0, xLeft, c.dampVal[0], [v[0] for v in c.y], [v[0] for v in c.ydot])
        return pointAdded

    def removeRight(self, c: _Candidate) -> bool:
        """Remove the rightmost point if the solution is flat near the right boundary"""
        jj = c.jj
        djMom = 2
        djOther = 3 if (self.jb == self.jj and not self.fixedBurnedVal) else 2
        if jj - djOther < 0 or jj < self.minPoints:
            return False

        for k in range(self.nAdapt):
            dj = djMom if k == self.kMomentum else djOther
            yMax = np.max(np.abs(c.y[k]))
            if yMax > self.absvtol and abs(c.y[k][jj] - c.y[k][jj-dj]) / yMax > self.boundaryTolRm:
                return False

        c.delete(jj)
        return True

    def removeLeft(self, c: _Candidate) -> bool:
        """Remove the leftmost point if the solution is flat near the left boundary"""
        if self.fixedLeftLoc:
            return False

        jj = c.jj
        djMom = 2
        djOther = 3 if (self.jb == 0 and not self.fixedBurnedVal) else 2
        if djOther > jj or jj < self.minPoints:
            return False

        for k in range(self.nAdapt):
            dj = djMom if k == self.kMomentum else djOther
            yMax = np.max(np.abs(c.y[k]))
            if yMax > self.absvtol and abs(c.y[k][dj] - c.y[k][0]) / yMax > self.boundaryTolRm:
                return False

        c.delete(0)
        return True

    def _insertMidpoint(self, c: _Candidate, j: int):
        """Insert a point halfway between j and j+1"""
        xNew = 0.5 * (c.x[j] + c.x[j+1])
        dampNew = min(c.dampVal[j], c.dampVal[j+1])
        yNew = [self._interpolate(c.x, v, xNew) for v in c.y]
        ydotNew = [self._interpolate(c.x, v, xNew) for v in c.ydot]
        c.insert(j + 1, xNew, dampNew, yNew, ydotNew)

    def _derivative(self, x: np.ndarray, v: np.ndarray) -> np.ndarray:
        """Centered first derivative at interior points (zero at the ends)"""
        dv = np.zeros(len(x))
        hh = np.diff(x)
        hm = hh[:-1]
        hp = hh[1:]
        dv[1:-1] = (hm / (hp * (hp + hm)) * v[2:]
                    + (hp - hm) / (hp * hm) * v[1:-1]
                    - hp / (hm * (hp + hm)) * v[:-2])
        return dv

    def _interpolate(self, x: np.ndarray, y: np.ndarray, xNew: float) -> float:
        """Shape-preserving interpolation; the result lies between the bracketing values"""
        return float(PchipInterpolator(x, y)(xNew))

    def _checkInputs(self, y: List[np.ndarray], ydot: List[np.ndarray]):
        assert self.nAdapt <= len(y), "Adaptation variables exceed solution size"
        if len(y) != len(ydot):
            raise ValueError(f"Solution has {len(y)} components but derivative has {len(ydot)}")
        for v in list(y) + list(ydot):
            if len(v) != self.nPoints:
                raise ValueError(f"Solution component has {len(v)} points, grid has {self.nPoints}")

    def _validate(self, x: np.ndarray, dampVal: np.ndarray,
                  y: List[np.ndarray], ydot: List[np.ndarray]):
        if len(x) < self.minPoints:
            raise GridDegeneracy(f"Grid would have {len(x)} points (minimum {self.minPoints})")
        if not np.all(np.diff(x) > 0):
            raise GridDegeneracy("Grid coordinates are not strictly increasing")
        if len(dampVal) != len(x) or any(len(v) != len(x) for v in list(y) + list(ydot)):
            raise GridDegeneracy("Grid and solution arrays have mismatched lengths")

    def _commit(self, c: _Candidate, y: List[np.ndarray], ydot: List[np.ndarray]):
        self._validate(c.x, c.dampVal, c.y, c.ydot)
        y[:] = c.y
        ydot[:] = c.ydot
        self.x = c.x
        self.dampVal = c.dampVal
        self.setSize(len(self.x))
        self.updateValues()
        self.updateBoundaryIndices()
        self.generation += 1
