"""Line-level differencing between two revisions of one file.

Only the lines of the *new* revision matter to the reviewer: they are the
lines a finding may be anchored to. The result is therefore a list of
inclusive 1-based ranges in new-file numbering, never a full edit script.

Cost is bounded in two steps. A common prefix and suffix are trimmed in
linear time, so a one-line edit in a 10,000-line file only diffs one line.
The remaining middle is aligned with an exact LCS table when it is small
enough (n * m below _LCS_CELL_LIMIT) and with a greedy monotone matcher
otherwise. The greedy matcher can report more changed lines than a true LCS
would, never fewer; that over-reporting is accepted for very large rewrites.
"""

from __future__ import annotations

from collections import defaultdict, deque

from adolens_core.models import ChangedRange

# 4M cells of Python ints is roughly the largest table that still builds in
# a couple of seconds; larger middles switch to the greedy matcher.
_LCS_CELL_LIMIT = 4_000_000


def split_lines(text: str) -> list[str]:
    """Split on ``\\n`` only. An empty text has no lines at all.

    A final newline terminates the last line rather than starting a new one,
    so gaining or losing it never shows up as a changed line.
    """
    if not text:
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return lines


def compute_changed_ranges(old_text: str | None, new_text: str) -> list[ChangedRange] | None:
    """Return changed ranges of ``new_text`` relative to ``old_text``.

    ``None`` is returned when there is no base revision (``old_text is None``)
    and means "treat every line as changed". An empty list means the new text
    has no changed lines, which covers identical texts and an empty new text.
    """
    if old_text is None:
        return None

    old = split_lines(old_text)
    new = split_lines(new_text)

    prefix = 0
    limit = min(len(old), len(new))
    while prefix < limit and old[prefix] == new[prefix]:
        prefix += 1

    suffix = 0
    while suffix < limit - prefix and old[len(old) - 1 - suffix] == new[len(new) - 1 - suffix]:
        suffix += 1

    old_mid = old[prefix : len(old) - suffix]
    new_mid = new[prefix : len(new) - suffix]
    if not new_mid:
        return []

    if len(old_mid) * len(new_mid) < _LCS_CELL_LIMIT:
        matched = _lcs_matched_new_indices(old_mid, new_mid)
    else:
        matched = _greedy_matched_new_indices(old_mid, new_mid)

    return _coalesce([i for i in range(len(new_mid)) if i not in matched], offset=prefix)


def _lcs_matched_new_indices(old: list[str], new: list[str]) -> set[int]:
    """Indices of ``new`` that take part in one longest common subsequence.

    Ties during the back-trace (equal scores above and to the left) advance
    the old-sequence pointer. With repeated identical lines this decides
    which copy of a line is reported as changed; it never changes how many.
    """
    n, m = len(old), len(new)
    table = [[0] * (m + 1) for _ in range(n + 1)]
    for i in range(1, n + 1):
        row, prev = table[i], table[i - 1]
        old_line = old[i - 1]
        for j in range(1, m + 1):
            if old_line == new[j - 1]:
                row[j] = prev[j - 1] + 1
            else:
                row[j] = prev[j] if prev[j] >= row[j - 1] else row[j - 1]

    matched: set[int] = set()
    i, j = n, m
    while i > 0 and j > 0:
        if old[i - 1] == new[j - 1]:
            matched.add(j - 1)
            i -= 1
            j -= 1
        elif table[i - 1][j] >= table[i][j - 1]:
            i -= 1
        else:
            j -= 1
    return matched


def _greedy_matched_new_indices(old: list[str], new: list[str]) -> set[int]:
    """Single-pass monotone matcher for middles too large for the LCS table.

    Each new line consumes the earliest unused occurrence of the same text in
    ``old`` that lies after the last consumed position, so matches never
    cross. Positions at or before the last match can never be used again and
    are discarded as they are seen, which keeps the whole pass linear.
    """
    positions: dict[str, deque[int]] = defaultdict(deque)
    for idx, line in enumerate(old):
        positions[line].append(idx)

    matched: set[int] = set()
    last = -1
    for j, line in enumerate(new):
        candidates = positions.get(line)
        if not candidates:
            continue
        while candidates and candidates[0] <= last:
            candidates.popleft()
        if candidates:
            last = candidates.popleft()
            matched.add(j)
    return matched


def _coalesce(changed: list[int], offset: int) -> list[ChangedRange]:
    """Merge sorted 0-based middle indices into 1-based full-file ranges."""
    ranges: list[ChangedRange] = []
    start = prev = None
    for idx in changed:
        if start is None:
            start = prev = idx
        elif idx == prev + 1:
            prev = idx
        else:
            ranges.append(ChangedRange(start + offset + 1, prev + offset + 1))
            start = prev = idx
    if start is not None:
        ranges.append(ChangedRange(start + offset + 1, prev + offset + 1))
    return ranges
