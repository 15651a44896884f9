"""
Drone Trace
Append-only record of the decisions a drone sent and where it was when it
sent them. Used for post-run inspection and answered on TraceQuery.
"""

from dataclasses import dataclass, asdict
from typing import Dict, Iterator, List, Sequence, Tuple


@dataclass(frozen=True)
class TraceEntry:
    """One decision: the cycle number, the cell it was taken from, the move code."""
    step: int
    x: int
    y: int
    decision: int

    @property
    def location(self) -> Tuple[int, int]:
        return (self.x, self.y)


class Trace:
    """
    Ordered, growable sequence of TraceEntry. Entries are immutable and
    never replaced; ``sub_trace`` returns an independent copy of a window.
    """

    def __init__(self, entries: Sequence[TraceEntry] = ()):
        self._entries: List[TraceEntry] = list(entries)

    def append(self, x: int, y: int, decision: int) -> TraceEntry:
        entry = TraceEntry(step=len(self._entries), x=int(x), y=int(y), decision=int(decision))
        self._entries.append(entry)
        return entry

    def sub_trace(self, start: int, end: int) -> 'Trace':
        """Copy of entries start..end (both inclusive)."""
        if end < start:
            raise ValueError(f"Trace window end ({end}) is lower than start ({start})")
        if start < 0 or end >= len(self._entries):
            raise IndexError(f"Trace window [{start}, {end}] outside 0..{len(self._entries) - 1}")
        return Trace(self._entries[start:end + 1])

    def location(self, i: int) -> Tuple[int, int]:
        return self._entries[i].location

    def locations(self) -> List[Tuple[int, int]]:
        return [entry.location for entry in self._entries]

    def decisions(self) -> List[int]:
        return [entry.decision for entry in self._entries]

    def to_list(self) -> List[Dict[str, int]]:
        return [asdict(entry) for entry in self._entries]

    @staticmethod
    def from_list(items: Sequence[Dict[str, int]]) -> 'Trace':
        return Trace([TraceEntry(int(i['step']), int(i['x']), int(i['y']), int(i['decision']))
                      for i in items])

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, i: int) -> TraceEntry:
        return self._entries[i]

    def __iter__(self) -> Iterator[TraceEntry]:
        return iter(list(self._entries))

    def __repr__(self) -> str:
        return f"Trace({len(self._entries)} entries)"
