"""
Anomaly detection passes registry and factory.
"""

from .base import DetectionMethod, Finding
from .outlier import OutlierMethod
from .trend import TrendMethod

# Registry of available passes, in the order their findings are merged
METHOD_REGISTRY: dict[str, type[DetectionMethod]] = {
    "outlier": OutlierMethod,
    "trend": TrendMethod,
}


def get_method(method_name: str) -> DetectionMethod:
    """Factory to create a detection pass

    Args:
        method_name: Name of the pass (e.g., 'outlier')

    Returns:
        Instance of the detection pass

    Raises:
        ValueError: If method_name is not registered
    """
    if method_name not in METHOD_REGISTRY:
        available = ", ".join(METHOD_REGISTRY.keys())
        raise ValueError(f"Unknown method '{method_name}'. Available methods: {available}")

    return METHOD_REGISTRY[method_name]()


def list_methods() -> list[str]:
    """List all available detection passes"""
    return list(METHOD_REGISTRY.keys())


__all__ = [
    "DetectionMethod",
    "Finding",
    "METHOD_REGISTRY",
    "OutlierMethod",
    "TrendMethod",
    "get_method",
    "list_methods",
]
