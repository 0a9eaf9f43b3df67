"""Detector registry.

The active detector list is an ordered selection from this registry. The
order is the evaluation order, which the scorer uses to break ties.
"""

import logging
from typing import Dict, List, Optional, Type

from ..config import ConfigValidationError, InstrumentConfig, PatternConfig
from .base import PatternDetector
from .mean_reversion import (
    BandMeanReversionDetector,
    FalseBreakoutFadeDetector,
    RangeBoxDetector,
)
from .trend_following import (
    EngulfingDetector,
    ExternalBreakoutDetector,
    LiquiditySweepDetector,
    MACrossAnomalyDetector,
    PinBarDetector,
    SRBounceDetector,
    VolatilityBreakoutDetector,
)


logger = logging.getLogger(__name__)


DETECTOR_REGISTRY: Dict[str, Type[PatternDetector]] = {
    cls.name: cls
    for cls in (
        LiquiditySweepDetector,
        EngulfingDetector,
        PinBarDetector,
        MACrossAnomalyDetector,
        SRBounceDetector,
        VolatilityBreakoutDetector,
        BandMeanReversionDetector,
        RangeBoxDetector,
        FalseBreakoutFadeDetector,
        ExternalBreakoutDetector,
    )
}


def build_detectors(
    config: Optional[PatternConfig] = None,
    instrument: Optional[InstrumentConfig] = None,
) -> List[PatternDetector]:
    """Instantiate the enabled detectors in configured order.

    Raises:
        ConfigValidationError: If a name is not registered.
    """
    config = config or PatternConfig()
    unknown = [name for name in config.enabled_detectors if name not in DETECTOR_REGISTRY]
    if unknown:
        raise ConfigValidationError(f"Unknown pattern detectors: {', '.join(unknown)}")

    detectors = [DETECTOR_REGISTRY[name](config, instrument) for name in config.enabled_detectors]
    logger.info(f"Active detectors: {', '.join(d.name for d in detectors)}")
    return detectors
