"""Fuzzy comparison of a guess against the concealed answer."""

MATCH_THRESHOLD = 85.0


def _normalize(text: str) -> str:
    return (text or '').strip().lower()


def levenshtein(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            if ca == cb:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(previous[j], current[j - 1], previous[j - 1]))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Percentage similarity of two strings after lowercasing and trimming."""
    s1, s2 = _normalize(a), _normalize(b)
    if s1 == s2:
        return 100.0
    max_len = max(len(s1), len(s2))
    if max_len == 0:
        return 100.0
    distance = levenshtein(s1, s2)
    return (max_len - distance) / max_len * 100.0


def is_match(candidate: str, secret: str) -> bool:
    return similarity(candidate, secret) >= MATCH_THRESHOLD
