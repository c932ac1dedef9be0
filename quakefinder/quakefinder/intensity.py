import numpy as np


class IntensityTable:
    """Distance-attenuation relation between amplitude ratio and magnitude.

    Uses the Hutton & Boore (1987) local-magnitude form with the station's
    signal-to-noise amplitude ratio in place of a Wood-Anderson amplitude:
    ``M = log10(ratio) + a * log10(r) + b * r + c``.
    """

    def __init__(self, a: float = 1.11, b: float = 0.00189, c: float = -1.6):
        self.a = a
        self.b = b
        self.c = c

    def magnitude(self, geodetic_distance_km: float, ratio: float) -> float:
        r = max(float(geodetic_distance_km), 1.0)
        ratio = max(float(ratio), 1e-6)
        return float(np.log10(ratio) + self.a * np.log10(r) + self.b * r + self.c)
