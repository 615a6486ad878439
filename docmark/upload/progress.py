import random


class SimulatedProgress:
    """Synthetic progress value for transfers that report none.

    Each ``advance()`` adds a random increment, never passing ``ceiling``.
    Only the real transfer outcome moves the value beyond it.
    """

    def __init__(
        self,
        max_increment: float = 30.0,
        ceiling: float = 90.0,
        rng: random.Random | None = None,
    ) -> None:
        self._max_increment = max_increment
        self._ceiling = ceiling
        self._rng = rng or random.Random()
        self._value = 0.0

    @property
    def value(self) -> float:
        return self._value

    @property
    def at_ceiling(self) -> bool:
        return self._value >= self._ceiling

    def advance(self) -> float:
        if not self.at_ceiling:
            step = self._rng.uniform(0.0, self._max_increment)
            self._value = min(self._ceiling, self._value + step)
        return self._value

    def set(self, value: float) -> None:
        self._value = max(0.0, min(100.0, value))
