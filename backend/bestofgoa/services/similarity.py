from __future__ import annotations


SAME_AREA_THRESHOLD = 0.8
SAME_AREA_NAME_THRESHOLD = 0.8
SAME_AREA_AREA_THRESHOLD = 0.6
OTHER_AREA_NAME_THRESHOLD = 0.9


def levenshtein_distance(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            if ca == cb:
                current.append(previous[j - 1])
            else:
                current.append(min(previous[j - 1], current[j - 1], previous[j]) + 1)
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """1.0 for identical strings, 0.0 for nothing in common. Case-insensitive."""
    a, b = (a or "").lower(), (b or "").lower()
    longer = max(len(a), len(b))
    if longer == 0:
        return 1.0
    return (longer - levenshtein_distance(a, b)) / longer


def is_probable_duplicate(name: str, area: str, other_name: str, other_area: str) -> bool:
    """
    Fuzzy duplicate rule.

    In the same area both name and area must be close. Across areas only a
    near-identical name counts, so separate outlets of a chain are allowed.
    """
    name_similarity = similarity(name, other_name)
    area_similarity = similarity(area, other_area)
    if area_similarity > SAME_AREA_THRESHOLD:
        return name_similarity > SAME_AREA_NAME_THRESHOLD and area_similarity > SAME_AREA_AREA_THRESHOLD
    return name_similarity > OTHER_AREA_NAME_THRESHOLD
