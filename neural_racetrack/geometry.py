"""
2D geometry used by the sensors and the checkpoint logic.

Points are plain (x, y) tuples. Everything here is pure scalar math to
avoid numpy overhead for small ops inside the tick loop.
"""

import math
from typing import NamedTuple


class Segment(NamedTuple):
    """Immutable line segment between two points."""
    a: tuple
    b: tuple

    def midpoint(self):
        return ((self.a[0] + self.b[0]) * 0.5, (self.a[1] + self.b[1]) * 0.5)

    def length(self):
        return math.hypot(self.b[0] - self.a[0], self.b[1] - self.a[1])


def distance(p, q):
    return math.hypot(q[0] - p[0], q[1] - p[1])


def from_angle(angle, length=1.0):
    return (math.cos(angle) * length, math.sin(angle) * length)


def limit(vx, vy, max_mag):
    """Scale (vx, vy) down so its magnitude does not exceed max_mag."""
    mag_sq = vx * vx + vy * vy
    if mag_sq > max_mag * max_mag:
        scale = max_mag / math.sqrt(mag_sq)
        return vx * scale, vy * scale
    return vx, vy


def remap(value, start1, stop1, start2, stop2):
    """Linearly map value from [start1, stop1] onto [start2, stop2]."""
    return start2 + (stop2 - start2) * ((value - start1) / (stop1 - start1))


def distance_point_to_segment(p, a, b):
    """Perpendicular distance from p to the infinite line through a and b.

    Not clamped to the segment: checkpoint capture uses this as a cheap
    "have we reached the line" test, while collisions use intersect_segments.
    """
    den = math.hypot(b[0] - a[0], b[1] - a[1])
    if den == 0.0:
        return distance(p, a)
    num = abs((b[1] - a[1]) * p[0] - (b[0] - a[0]) * p[1] + b[0] * a[1] - b[1] * a[0])
    return num / den


def intersect_segments(origin, direction, length, wall_a, wall_b):
    """Return the point where a ray of the given length crosses a wall, or None.

    Both parametric coordinates must lie strictly inside (0, 1), so a ray never
    registers a hit exactly at its own origin or exactly at its full length.
    Parallel lines have no intersection.
    """
    x1, y1 = wall_a
    x2, y2 = wall_b
    x3, y3 = origin
    x4 = x3 + direction[0] * length
    y4 = y3 + direction[1] * length

    den = (x1 - x2) * (y3 - y4) - (y1 - y2) * (x3 - x4)
    if den == 0:
        return None

    t = ((x1 - x3) * (y3 - y4) - (y1 - y3) * (x3 - x4)) / den
    u = -((x1 - x2) * (y1 - y3) - (y1 - y2) * (x1 - x3)) / den
    if 0 < t < 1 and 0 < u < 1:
        return (x1 + t * (x2 - x1), y1 + t * (y2 - y1))
    return None


def point_on_line(p, a, b, tolerance):
    """True when p lies on segment a-b, within tolerance.

    The sum of the distances from p to both endpoints equals the segment
    length only for points on the segment.
    """
    d1 = distance(p, a)
    d2 = distance(p, b)
    line_len = distance(a, b)
    return line_len - tolerance <= d1 + d2 <= line_len + tolerance


def closest_obstacle_on_ray(origin, direction, length, obstacles, tolerance):
    """Nearest obstacle (to origin) lying on the ray, or None."""
    end = (origin[0] + direction[0] * length, origin[1] + direction[1] * length)
    closest = None
    record = math.inf
    for obstacle in obstacles:
        if point_on_line(obstacle.pos, origin, end, tolerance):
            d = distance(origin, obstacle.pos)
            if d < record:
                record = d
                closest = obstacle
    return closest
