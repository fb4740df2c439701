from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple


_SHARP_NAMES = ("C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B")


def note_name(midi: int) -> str:
    """MIDI number -> scientific pitch name with sharps (C4 = 60, C-1 = 0)."""
    m = int(midi)
    return f"{_SHARP_NAMES[m % 12]}{m // 12 - 1}"


def note_name_to_midi(name: str) -> int | None:
    """Parse a note name like 'C4', 'G#3' or 'Bb2' -> MIDI number. None if invalid."""
    if not isinstance(name, str) or len(name) < 2:
        return None
    name = name.strip()
    letter = name[0].upper()
    if letter not in "CDEFGAB":
        return None
    i = 1
    accidental = 0
    if i < len(name) and name[i] in ("#", "b"):
        accidental = 1 if name[i] == "#" else -1
        i += 1
    try:
        octave = int(name[i:])
    except ValueError:
        return None
    semitones = {"C": 0, "D": 2, "E": 4, "F": 5, "G": 7, "A": 9, "B": 11}[letter]
    midi = 12 * (octave + 1) + semitones + accidental
    return midi if 0 <= midi <= 127 else None


@dataclass(frozen=True)
class NoteRecord:
    midi_number: int
    note_name: str
    velocity: int


def _check_7bit(what: str, v: int) -> int:
    if not isinstance(v, int) or isinstance(v, bool) or not (0 <= v <= 127):
        raise ValueError(f"{what} must be an integer 0..127, got {v!r}")
    return v


class ActiveNoteRegistry:
    """Notes currently sounding locally, keyed by MIDI number.

    Presence in the map is the whole per-note state: absent = idle,
    present = sounding. At most one record per note.
    """

    def __init__(self) -> None:
        self._notes: Dict[int, NoteRecord] = {}

    def attack(self, note: int, velocity: int) -> Tuple[bool, NoteRecord]:
        """Register a note. A note that is already held is rejected and its
        existing record returned, so a retriggered key never double-attacks."""
        _check_7bit("note", note)
        _check_7bit("velocity", velocity)
        existing = self._notes.get(note)
        if existing is not None:
            return False, existing
        rec = NoteRecord(midi_number=note, note_name=note_name(note), velocity=velocity)
        self._notes[note] = rec
        return True, rec

    def release(self, note: int) -> Optional[NoteRecord]:
        # Stray or duplicate releases are a no-op
        return self._notes.pop(note, None)

    def clear(self) -> List[NoteRecord]:
        removed = [self._notes[n] for n in sorted(self._notes)]
        self._notes.clear()
        return removed

    def get(self, note: int) -> Optional[NoteRecord]:
        return self._notes.get(note)

    def snapshot(self) -> List[int]:
        return sorted(self._notes)

    def __contains__(self, note: object) -> bool:
        return note in self._notes

    def __len__(self) -> int:
        return len(self._notes)
