"""Controller state and the actuation debounce gate."""

from dataclasses import dataclass, replace
from typing import Union

Number = Union[int, float]


@dataclass(frozen=True)
class ControllerState:
    """State carried between control loop ticks.

    Attributes:
        last_actuated_temperature: Temperature at the last command actually sent
        last_actuated_duty_cycle: Duty cycle of the last command actually sent
        current_duty_cycle: Most recently computed desired duty cycle
    """
    last_actuated_temperature: float = 0.0
    last_actuated_duty_cycle: int = 0
    current_duty_cycle: int = 0

    def computed(self, duty_cycle: int) -> "ControllerState":
        """State after evaluating the curve without actuating."""
        return replace(self, current_duty_cycle=duty_cycle)

    def actuated(self, temperature: float, duty_cycle: int) -> "ControllerState":
        """State after a duty cycle has been sent to the fans."""
        return ControllerState(
            last_actuated_temperature=temperature,
            last_actuated_duty_cycle=duty_cycle,
            current_duty_cycle=duty_cycle,
        )


def should_actuate(new_temperature: Number, new_duty_cycle: Number,
                   state: ControllerState, threshold: Number) -> bool:
    """Decide whether a new duty cycle should be sent to the hardware.

    Keyed on the temperature delta since the last actuation only.
    ``new_duty_cycle`` does not take part in the decision.

    Args:
        new_temperature: Temperature sampled this tick
        new_duty_cycle: Duty cycle evaluated this tick
        state: Current controller state
        threshold: Temperature change (°C) that must be exceeded

    Returns:
        True if the temperature moved strictly more than threshold
    """
    return abs(new_temperature - state.last_actuated_temperature) > threshold
