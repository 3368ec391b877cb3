"""
Mouse button debouncing for board input.

Turns raw press/release events into reveal, chord and flag actions:

- left release on a cell reveals it
- both buttons down together is a chord, fired when either is released
- a right press flags, unless the left button is held or a chord is in progress
- after a chord, releasing the remaining button does nothing
- releasing a button that is not held, e.g. after reset(), does nothing
"""

from typing import Optional

LEFT = 'left'
RIGHT = 'right'

REVEAL = 'reveal'
CHORD = 'chord'
FLAG = 'flag'


class PointerTracker:
    def __init__(self):
        self.left_down = False
        self.right_down = False
        self.was_chording = False

    def press(self, button: str) -> Optional[str]:
        """Register a button press. Returns FLAG or None."""
        if not self.left_down and not self.right_down:
            self.was_chording = False

        if button == LEFT:
            self.left_down = True
        elif button == RIGHT:
            self.right_down = True

        if self.left_down and self.right_down:
            self.was_chording = True
            return None
        if button == RIGHT:
            return FLAG
        return None

    def release(self, button: str) -> Optional[str]:
        """Register a button release. Returns REVEAL, CHORD or None."""
        held = self.left_down if button == LEFT else self.right_down
        if not held:
            return None
        chording = self.left_down and self.right_down

        if button == LEFT:
            self.left_down = False
        elif button == RIGHT:
            self.right_down = False

        if chording:
            return CHORD
        if button == LEFT and not self.was_chording:
            return REVEAL
        return None

    def reset(self):
        """Forget button state, e.g. when the pointer leaves the board."""
        self.left_down = False
        self.right_down = False
        self.was_chording = False
