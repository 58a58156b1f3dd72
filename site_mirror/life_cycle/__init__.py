from .default_life_cycle import default_life_cycle
from .types import Continue, Discard, LifeCycle, Outcome, Replace

__all__ = [
    "Continue",
    "Discard",
    "LifeCycle",
    "Outcome",
    "Replace",
    "default_life_cycle",
]
