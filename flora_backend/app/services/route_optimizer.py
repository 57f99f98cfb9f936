"""
Delivery route optimization.

Builds a visiting order for a courier's stops with a nearest-neighbor
construction, then refines it with 2-opt local search. The route is an open
path that starts at the courier's position; there is no return leg.
"""

from dataclasses import dataclass, field
from typing import Hashable, List, Sequence

from flora_backend.app.services.geo import haversine_distance

# Refinement limits
TWO_OPT_MAX_STOPS = 30
TWO_OPT_MAX_PASSES = 100
TWO_OPT_MIN_GAIN_KM = 0.001


@dataclass(frozen=True)
class RoutePoint:
    """A stop to visit."""
    id: Hashable
    lat: float
    lon: float


@dataclass
class RouteComputation:
    """Visiting order (stop ids) and the open-path length in km."""
    order: List[Hashable] = field(default_factory=list)
    total_distance_km: float = 0.0


def path_length(start_lat: float, start_lon: float, points: Sequence[RoutePoint]) -> float:
    """Sum of consecutive legs from the start through ``points`` in order."""
    total = 0.0
    cur_lat, cur_lon = start_lat, start_lon
    for point in points:
        total += haversine_distance(cur_lat, cur_lon, point.lat, point.lon)
        cur_lat, cur_lon = point.lat, point.lon
    return total


def nearest_neighbor_route(
    start_lat: float,
    start_lon: float,
    stops: Sequence[RoutePoint],
) -> List[RoutePoint]:
    """
    Greedy construction: always move to the closest unvisited stop.

    Ties go to the stop that appears first in ``stops``, so the result is
    deterministic for a given input order.
    """
    remaining = list(stops)
    route: List[RoutePoint] = []
    cur_lat, cur_lon = start_lat, start_lon

    while remaining:
        best_idx = 0
        best_dist = float("inf")
        for idx, point in enumerate(remaining):
            dist = haversine_distance(cur_lat, cur_lon, point.lat, point.lon)
            if dist < best_dist:
                best_dist = dist
                best_idx = idx
        nearest = remaining.pop(best_idx)
        route.append(nearest)
        cur_lat, cur_lon = nearest.lat, nearest.lon

    return route


def two_opt_improve(
    start_lat: float,
    start_lon: float,
    route: Sequence[RoutePoint],
    max_passes: int = TWO_OPT_MAX_PASSES,
    min_gain_km: float = TWO_OPT_MIN_GAIN_KM,
) -> List[RoutePoint]:
    """
    Refine an open path with 2-opt segment reversals.

    The start position is node 0 and never moves. For edges (i, i+1) and
    (j, j+1) the segment i+1..j is reversed when that shortens the path by
    more than ``min_gain_km``. When j is the last node there is no (j, j+1)
    edge, which lets the tail of the path be reversed as well.
    """
    start = RoutePoint(id=None, lat=start_lat, lon=start_lon)
    path = [start] + list(route)
    last = len(path) - 1

    def dist(a: RoutePoint, b: RoutePoint) -> float:
        return haversine_distance(a.lat, a.lon, b.lat, b.lon)

    passes = 0
    improved = True
    while improved and passes < max_passes:
        improved = False
        passes += 1
        for i in range(last - 1):
            for j in range(i + 2, last + 1):
                a, b, c = path[i], path[i + 1], path[j]
                current = dist(a, b)
                candidate = dist(a, c)
                if j < last:
                    d = path[j + 1]
                    current += dist(c, d)
                    candidate += dist(b, d)
                if candidate < current - min_gain_km:
                    path[i + 1:j + 1] = reversed(path[i + 1:j + 1])
                    improved = True

    return path[1:]


def compute_route(
    start_lat: float,
    start_lon: float,
    stops: Sequence[RoutePoint],
    max_two_opt_stops: int = TWO_OPT_MAX_STOPS,
    max_passes: int = TWO_OPT_MAX_PASSES,
    min_gain_km: float = TWO_OPT_MIN_GAIN_KM,
) -> RouteComputation:
    """
    Compute a visiting order for ``stops`` starting at (start_lat, start_lon).

    2-opt refinement only runs for up to ``max_two_opt_stops`` stops; larger
    inputs get the nearest-neighbor order as is.
    """
    if not stops:
        return RouteComputation(order=[], total_distance_km=0.0)

    route = nearest_neighbor_route(start_lat, start_lon, stops)
    if len(stops) <= max_two_opt_stops:
        route = two_opt_improve(start_lat, start_lon, route, max_passes, min_gain_km)

    return RouteComputation(
        order=[point.id for point in route],
        total_distance_km=path_length(start_lat, start_lon, route),
    )
