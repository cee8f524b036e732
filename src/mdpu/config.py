"""Machine dimensions and run configuration."""

from dataclasses import dataclass

from .core import Machine, create_machine
from .engine import DEFAULT_MAX_INSTRUCTION_COUNT


class DimensionError(ValueError):
    """Raised when a dimension string cannot be turned into a positive size."""
    pass


def parse_dimensions(text: str) -> int:
    """
    Multiply the ``x``-delimited integer tokens of a dimension string.

    Example:
        "4x4" -> 16, "2x3x2" -> 12, "8" -> 8
    """
    total = 1
    for token in text.lower().split("x"):
        token = token.strip()
        if not token:
            raise DimensionError(f"Empty dimension in {text!r}")
        try:
            total *= int(token)
        except ValueError:
            raise DimensionError(f"Invalid dimension {token!r} in {text!r}") from None
    if total < 1:
        raise DimensionError(f"Dimensions {text!r} must multiply to a positive size, got {total}")
    return total


@dataclass(frozen=True)
class MachineConfig:
    """Sizes of a machine plus the instruction ceiling for runs on it."""
    num_registers: int
    memory_size: int
    max_instruction_count: int = DEFAULT_MAX_INSTRUCTION_COUNT

    def __post_init__(self):
        for name in ("num_registers", "memory_size", "max_instruction_count"):
            value = getattr(self, name)
            if value < 1:
                raise ValueError(f"{name} must be positive, got {value}")

    @classmethod
    def from_dimensions(cls, registers: str, memory: str,
                        max_instruction_count: int = DEFAULT_MAX_INSTRUCTION_COUNT) -> 'MachineConfig':
        return cls(
            num_registers=parse_dimensions(registers),
            memory_size=parse_dimensions(memory),
            max_instruction_count=max_instruction_count,
        )

    def create_machine(self) -> Machine:
        return create_machine(self.num_registers, self.memory_size)
