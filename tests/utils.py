from itertools import combinations

from pixelwall.services.allocation_engine import overlaps


def overlapping_pairs(rects) -> list:
    return [(a, b) for a, b in combinations(rects, 2) if overlaps(a, b)]
