"""
Local trend-break pass.

Compares each point with the average of the two points before it and flags
changes larger than 50 / sensitivity_level percent.
"""

import structlog

from ..models import AnomalyRecord, AnomalyType, DetectionConfig, TimeSeriesPoint
from .base import DetectionMethod, Finding

logger = structlog.get_logger(__name__)

WINDOW = 2
BASE_CHANGE_THRESHOLD = 50.0


class TrendMethod(DetectionMethod):
    """Short-window percentage change against a 2-point moving average"""

    @property
    def name(self) -> str:
        return "trend"

    def min_points(self, config: DetectionConfig) -> int:
        return config.min_data_points + WINDOW

    def detect(self, series: list[TimeSeriesPoint], config: DetectionConfig) -> list[Finding]:
        if len(series) < self.min_points(config):
            return []

        threshold = BASE_CHANGE_THRESHOLD / config.sensitivity_level
        findings = []

        for i in range(WINDOW, len(series)):
            point = series[i]
            avg_prev = sum(p.value for p in series[i - WINDOW : i]) / WINDOW

            if avg_prev == 0:
                continue

            change = (point.value - avg_prev) / avg_prev * 100
            if abs(change) <= threshold:
                continue

            findings.append(
                Finding(
                    point=point,
                    anomaly_type=AnomalyType.SPIKE if change > 0 else AnomalyType.DROP,
                    severity=AnomalyRecord.calculate_severity(abs(change), config.sensitivity_level),
                    expected_value=avg_prev,
                    deviation_percentage=abs(change),
                    detection_pass=self.name,
                )
            )

        logger.debug(
            "Trend pass complete",
            points=len(series),
            threshold=round(threshold, 3),
            findings=len(findings),
        )
        return findings
