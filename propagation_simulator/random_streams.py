from typing import Dict

MASK = 0xFFFFFFFF


class SeededRandom:
    """Seeded mulberry32 generator with one independent stream per named context.

    Every context starts from the same seed, so drawing more values in one context
    (e.g. more node positions) never shifts the values of another (e.g. block colors).
    """

    def __init__(self, seed: int = 1):
        self.seed: int = seed
        self.states: Dict[str, int] = {}

    def random(self, context: str, maximum: float = 1.0) -> float:
        """Returns a number in [0, maximum) from the stream named `context`."""
        if not context:
            raise ValueError("A random context is required")
        state = (self.states.get(context, self.seed & MASK) + 0x6D2B79F5) & MASK
        self.states[context] = state
        t = ((state ^ (state >> 15)) * (1 | state)) & MASK
        t = ((t + (((t ^ (t >> 7)) * (61 | t)) & MASK)) & MASK) ^ t
        return maximum * (((t ^ (t >> 14)) & MASK) / 2 ** 32)

    def choice(self, context: str, items: list):
        return items[int(self.random(context, len(items)))]

    def random_color(self) -> str:
        """Six hex digits from the color stream, used as block content ids."""
        return "#" + "".join(format(int(self.random("color", 16)), "x") for _ in range(6))
