from .carbs import CarbEntry, CarbValue, GlucoseEffect, GlucoseEffectVelocity
from .enums import AbsorptionSource, AbsorptionTier, GlucoseUnit
from .settings import AbsorptionConfig, ScheduleItemConfig, TherapySettings
