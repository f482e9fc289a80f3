"""
Base abstract interface for anomaly detection passes.

Every pass inherits from DetectionMethod and implements detect(), which scans
an aggregated series and returns one Finding per flagged point.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from ..models import AnomalyType, DetectionConfig, Severity, TimeSeriesPoint


@dataclass
class Finding:
    """A point flagged by one detection pass"""

    point: TimeSeriesPoint
    anomaly_type: AnomalyType
    severity: Severity
    expected_value: float
    deviation_percentage: float | None  # absolute; None when the baseline is zero
    detection_pass: str


class DetectionMethod(ABC):
    """Abstract base class for all detection passes

    A pass is stateless: all thresholds come from the DetectionConfig handed
    to detect(), so one instance can serve every tenant.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Name of the detection pass"""
        pass

    @abstractmethod
    def min_points(self, config: DetectionConfig) -> int:
        """Shortest series this pass will examine"""
        pass

    @abstractmethod
    def detect(self, series: list[TimeSeriesPoint], config: DetectionConfig) -> list[Finding]:
        """Scan a series ordered by timestamp ascending

        Args:
            series: Aggregated points, oldest first
            config: Thresholds for this run

        Returns:
            Findings in series order; empty when the series is too short
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"
