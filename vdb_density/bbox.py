import math


class AABB:
    """
    Axis-aligned bounding box accumulated from a stream of points.

    The box starts inverted, with min at +inf and max at -inf, so that the
    first call to `extend` sets both corners. It can only grow.

    Attributes:
    min (list of float): The smallest x, y and z seen so far.
    max (list of float): The largest x, y and z seen so far.
    """

    def __init__(self):
        self.min = [math.inf, math.inf, math.inf]
        self.max = [-math.inf, -math.inf, -math.inf]

    def extend(self, point):
        """
        Widen the box so that it contains `point`.

        Parameters:
        point (sequence of 3 numbers): The x, y, z position to include.
        """
        for axis in range(3):
            value = float(point[axis])
            self.min[axis] = min(self.min[axis], value)
            self.max[axis] = max(self.max[axis], value)

    @property
    def is_empty(self):
        return self.min[0] > self.max[0]

    def __repr__(self):
        return f"AABB(min={tuple(self.min)}, max={tuple(self.max)})"
