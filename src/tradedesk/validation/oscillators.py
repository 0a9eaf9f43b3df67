"""Reversal-oscillator extreme test shared by the quality evaluator and the
validator's override exceptions."""

from typing import Optional

from ..config import OscillatorConfig
from ..market import TimeframeData
from ..models import Direction


class OscillatorExtremes:
    """RSI extreme on the last closed bar, optionally corroborated.

    A long extreme is an oversold RSI, a short extreme an overbought one.
    With `min_confirmations` > 0 that many of Stochastic, CCI and MFI must
    agree as well; missing series never count as agreement.
    """

    def __init__(self, config: Optional[OscillatorConfig] = None, index: int = 1):
        self.config = config or OscillatorConfig()
        self.index = index

    def is_extreme(self, data: TimeframeData, direction: Direction) -> bool:
        rsi = data.value("rsi", self.index)
        if rsi is None:
            return False

        cfg = self.config
        if direction is Direction.LONG:
            rsi_extreme = rsi <= cfg.rsi_oversold
        else:
            rsi_extreme = rsi >= cfg.rsi_overbought
        if not rsi_extreme:
            return False

        if cfg.min_confirmations <= 0:
            return True
        return self.confirmations(data, direction) >= cfg.min_confirmations

    def confirmations(self, data: TimeframeData, direction: Direction) -> int:
        """Count Stochastic / CCI / MFI readings agreeing with the extreme."""
        cfg = self.config
        stoch = data.value("stoch_main", self.index)
        cci = data.value("cci", self.index)
        mfi = data.value("mfi", self.index)
        long = direction is Direction.LONG

        count = 0
        if stoch is not None:
            count += stoch <= cfg.stoch_oversold if long else stoch >= cfg.stoch_overbought
        if cci is not None:
            count += cci <= -cfg.cci_extreme if long else cci >= cfg.cci_extreme
        if mfi is not None:
            count += mfi <= cfg.mfi_oversold if long else mfi >= cfg.mfi_overbought
        return int(count)
