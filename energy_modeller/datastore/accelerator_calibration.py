"""
Accelerator calibration files

Each accelerator model has a ``<accelerator name>.csv`` file: a header row
naming the measured metrics, then one row per observation with the
accelerator's power in the last column.
"""

import csv
import logging
from pathlib import Path
from typing import List, Optional, Union

from ..types import AcceleratorCalibrationPoint, Host

logger = logging.getLogger(__name__)


class AcceleratorCalibrationLoader:

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def path_for(self, accelerator_name: str) -> Path:
        return self.directory / f"{accelerator_name}.csv"

    def load(self, accelerator_name: str) -> List[AcceleratorCalibrationPoint]:
        """
        Read the calibration file for an accelerator model.

        Rows that are short or not numeric are skipped with a warning.
        A missing file gives an empty list.
        """
        path = self.path_for(accelerator_name)
        if not path.is_file():
            logger.debug(f"No calibration file for accelerator {accelerator_name} at {path}")
            return []

        points = []
        with path.open(newline="") as handle:
            reader = csv.reader(handle)
            header = next(reader, None)
            if not header or len(header) < 2:
                logger.warning(f"Calibration file {path} has no usable header")
                return []
            names = [name.strip() for name in header[:-1]]
            for line_number, row in enumerate(reader, start=2):
                if not row:
                    continue
                if len(row) != len(header):
                    logger.warning(f"Skipping row {line_number} of {path}: expected {len(header)} columns")
                    continue
                try:
                    values = [float(value) for value in row]
                except ValueError:
                    logger.warning(f"Skipping non numeric row {line_number} of {path}")
                    continue
                points.append(AcceleratorCalibrationPoint(
                    identifier=accelerator_name,
                    parameters=dict(zip(names, values[:-1])),
                    power=values[-1],
                ))
        logger.info(f"Loaded {len(points)} calibration points for accelerator {accelerator_name}")
        return points

    def calibrate(self, host: Host) -> bool:
        """Load calibration data for any uncalibrated accelerator of ``host``."""
        changed = False
        for accelerator in host.accelerators:
            if accelerator.is_calibrated:
                continue
            points = self.load(accelerator.name)
            if points:
                accelerator.calibration_data = points
                changed = True
        return changed


def create_accelerator_loader(directory: Optional[str]) -> Optional[AcceleratorCalibrationLoader]:
    if not directory:
        return None
    return AcceleratorCalibrationLoader(directory)
