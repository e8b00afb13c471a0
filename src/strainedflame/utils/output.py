"""
Profile snapshots and time series files.
"""
import logging
from pathlib import Path
from typing import Dict, Optional

import numpy as np

logger = logging.getLogger(__name__)


def loadProfile(filename) -> Dict[str, np.ndarray]:
    """Load a profile snapshot written by ProfileWriter"""
    with np.load(filename) as data:
        return {key: data[key] for key in data.files}


class ProfileWriter:
    """Writes numbered profile snapshots and the integrated time series"""

    def __init__(self, outputDir='output'):
        self.outputDir = Path(outputDir)
        self.outputFileNumber = 0

    def _path(self, name: str) -> Path:
        self.outputDir.mkdir(parents=True, exist_ok=True)
        return self.outputDir / name

    def writeStateFile(self, system, label: Optional[str] = None, error: bool = False) -> Path:
        """
        Save the grid and state of the flame system.

        Args:
            system: StrainedFlameSystem whose arrays match its grid
            label: File name without extension. Numbered prof000000,
                prof000001, ... when not given.
            error: Marks a snapshot written before aborting
        """
        if label is None:
            label = f"prof{self.outputFileNumber:06d}"
            self.outputFileNumber += 1
        path = self._path(f"{label}.npz")

        np.savez(path,
                 t=system.tNow,
                 x=system.grid.x,
                 rhov=system.rhov,
                 U=system.U,
                 T=system.T,
                 Y=system.Y,
                 qDot=system.qDot,
                 strainRate=system.strainRate(system.tNow),
                 error=error)
        if error:
            logger.warning("Wrote error snapshot %s at t = %g", path, system.tNow)
        else:
            logger.info("Wrote profile %s at t = %g", path, system.tNow)
        return path

    def writeTimeSeries(self, series: Dict[str, list], filename: str = 'out.npz') -> Path:
        """Save integral quantities collected during the run"""
        path = self._path(filename)
        np.savez(path, **{key: np.array(value) for key, value in series.items()})
        logger.info("Wrote time series %s", path)
        return path
