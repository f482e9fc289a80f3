"""
Global outlier pass.

Computes the population mean and standard deviation over the whole window and
flags points outside mean +/- stddev_threshold * stddev. Spikes are flagged
above the upper bound; drops below the lower bound only while that bound is
positive, since a negative lower bound is meaningless for non-negative counts.
"""

import numpy as np
import structlog

from ..models import AnomalyRecord, AnomalyType, DetectionConfig, TimeSeriesPoint
from .base import DetectionMethod, Finding

logger = structlog.get_logger(__name__)


class OutlierMethod(DetectionMethod):
    """Population Z-score style bounds over the full series"""

    @property
    def name(self) -> str:
        return "outlier"

    def min_points(self, config: DetectionConfig) -> int:
        return config.min_data_points

    def detect(self, series: list[TimeSeriesPoint], config: DetectionConfig) -> list[Finding]:
        if len(series) < self.min_points(config):
            return []

        values = np.array([point.value for point in series], dtype=float)
        mean = float(values.mean())
        stddev = float(values.std())  # ddof=0

        # A flat series has no outliers
        if stddev == 0:
            return []

        upper_bound = mean + config.stddev_threshold * stddev
        lower_bound = mean - config.stddev_threshold * stddev

        findings = []
        for point in series:
            if point.value > upper_bound:
                anomaly_type = AnomalyType.SPIKE
                deviation = (point.value - mean) / mean * 100 if mean != 0 else None
            elif point.value < lower_bound and lower_bound > 0:
                anomaly_type = AnomalyType.DROP
                deviation = (mean - point.value) / mean * 100
            else:
                continue

            findings.append(
                Finding(
                    point=point,
                    anomaly_type=anomaly_type,
                    severity=AnomalyRecord.calculate_severity(deviation, config.sensitivity_level),
                    expected_value=mean,
                    deviation_percentage=abs(deviation) if deviation is not None else None,
                    detection_pass=self.name,
                )
            )

        logger.debug(
            "Outlier pass complete",
            points=len(series),
            mean=round(mean, 3),
            stddev=round(stddev, 3),
            upper_bound=round(upper_bound, 3),
            lower_bound=round(lower_bound, 3),
            findings=len(findings),
        )
        return findings
