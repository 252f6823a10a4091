from enum import Enum


class AbsorptionTier(str, Enum):
    FAST = "fast"
    MEDIUM = "medium"
    SLOW = "slow"


class AbsorptionSource(str, Enum):
    MODELED = "modeled"
    OBSERVED = "observed"


class GlucoseUnit(str, Enum):
    MGDL = "mg/dL"
    MMOLL = "mmol/L"
