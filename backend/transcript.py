from dataclasses import dataclass
from typing import Iterable, Optional


@dataclass(frozen=True)
class Fragment:
    text: str
    is_final: bool
    # Recognizer result slot; fragments are ordered by it, and a final one is never replaced
    index: Optional[int] = None


def accumulate(fragments: Iterable[Fragment]) -> str:
    """Space-join the final fragments in the given order. Interim fragments never count."""
    return " ".join(f.text.strip() for f in fragments if f.is_final and f.text.strip())


class TranscriptAccumulator:
    """Fragment history for one recording.

    Indexed fragments are kept per slot and read back in slot order, so results
    that arrive out of order still join correctly. Unindexed fragments follow in
    arrival order. The answer text is recomputed from the full history on every
    update. Once closed (capture stopped) later fragments are dropped, so the
    text handed to scoring is exactly what had arrived at the stop boundary.
    """

    def __init__(self) -> None:
        self._slots: dict[int, Fragment] = {}
        self._stream: list[Fragment] = []
        self._closed = False
        self.dropped = 0

    def _ordered(self) -> list[Fragment]:
        return [self._slots[i] for i in sorted(self._slots)] + self._stream

    @property
    def text(self) -> str:
        return accumulate(self._ordered())

    @property
    def interim(self) -> str:
        """Provisional speech not yet finalized, for display only."""
        pending = [self._slots[i].text.strip() for i in sorted(self._slots) if not self._slots[i].is_final]
        for f in self._stream:
            if f.is_final:
                continue
            pending.append(f.text.strip())
        return " ".join(t for t in pending if t)

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, fragment: Fragment) -> str:
        if self._closed:
            self.dropped += 1
            return self.text

        if fragment.index is not None:
            current = self._slots.get(fragment.index)
            if current is None or not current.is_final:
                self._slots[fragment.index] = fragment
        elif self._stream and not self._stream[-1].is_final:
            # An interim fragment is superseded by whatever arrives next
            self._stream[-1] = fragment
        else:
            self._stream.append(fragment)
        return self.text

    def close(self) -> str:
        self._closed = True
        return self.text

    def reset(self) -> None:
        self._slots = {}
        self._stream = []
        self._closed = False
        self.dropped = 0
