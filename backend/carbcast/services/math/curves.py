
class CarbCurves:
    """
    Carbohydrate absorption shapes over a fixed absorption time.

    `*_absorption` returns the rate (fraction of the meal per minute) and
    `*_absorbed` the cumulative fraction, which is 0 at t=0 and 1 from
    t=duration onwards.
    """

    @staticmethod
    def linear_absorption(t_min: float, duration_min: float) -> float:
        if t_min <= 0 or t_min >= duration_min: return 0.0
        return 1.0 / duration_min

    @staticmethod
    def linear_absorbed(t_min: float, duration_min: float) -> float:
        if t_min <= 0: return 0.0
        if t_min >= duration_min: return 1.0
        return t_min / duration_min

    @staticmethod
    def variable_absorption(t_min: float, duration_min: float, peak_min: float = 60) -> float:
        if t_min <= 0 or t_min >= duration_min: return 0.0
        peak_min = min(max(peak_min, 0.0), duration_min)
        h = 2.0 / duration_min
        if t_min < peak_min:
             return h * (t_min / peak_min)
        if peak_min >= duration_min:
             return 0.0
        return h * ((duration_min - t_min) / (duration_min - peak_min))

    @staticmethod
    def variable_absorbed(t_min: float, duration_min: float, peak_min: float = 60) -> float:
        if t_min <= 0: return 0.0
        if t_min >= duration_min: return 1.0
        peak_min = min(max(peak_min, 0.0), duration_min)
        h = 2.0 / duration_min
        if t_min < peak_min:
            return 0.5 * t_min * h * (t_min / peak_min)
        # Area of the falling edge still ahead
        rem_base = duration_min - t_min
        rem_height = h * (rem_base / (duration_min - peak_min))
        return min(1.0, max(0.0, 1.0 - 0.5 * rem_base * rem_height))

    @staticmethod
    def parabolic_absorption(t_min: float, duration_min: float) -> float:
        if t_min <= 0 or t_min >= duration_min: return 0.0
        if t_min < duration_min / 2:
            return 4.0 * t_min / duration_min ** 2
        return 4.0 / duration_min * (1.0 - t_min / duration_min)

    @staticmethod
    def parabolic_absorbed(t_min: float, duration_min: float) -> float:
        if t_min <= 0: return 0.0
        if t_min >= duration_min: return 1.0
        if t_min < duration_min / 2:
            return 2.0 / duration_min ** 2 * t_min ** 2
        return min(1.0, -1.0 + 4.0 / duration_min * (t_min - t_min ** 2 / (2.0 * duration_min)))

    @staticmethod
    def get_absorbed(t_min: float, duration_min: float, model_type: str) -> float:
        if duration_min <= 0:
            return 1.0 if t_min > 0 else 0.0
        m = model_type.lower()
        if m == 'triangle':
            return CarbCurves.variable_absorbed(t_min, duration_min, peak_min=duration_min / 2)
        elif m == 'parabolic':
            return CarbCurves.parabolic_absorbed(t_min, duration_min)
        return CarbCurves.linear_absorbed(t_min, duration_min)

    @staticmethod
    def get_rate(t_min: float, duration_min: float, model_type: str) -> float:
        if duration_min <= 0:
            return 0.0
        m = model_type.lower()
        if m == 'triangle':
            return CarbCurves.variable_absorption(t_min, duration_min, peak_min=duration_min / 2)
        elif m == 'parabolic':
            return CarbCurves.parabolic_absorption(t_min, duration_min)
        return CarbCurves.linear_absorption(t_min, duration_min)
