"""Collaborator interfaces used by the control loop."""


class TemperatureSource:
    """Base class for temperature sources."""

    def sample(self) -> float:
        """Get the aggregated temperature for this tick.

        Returns:
            Temperature in Celsius

        Raises:
            SamplingError: If no usable reading is available
        """
        raise NotImplementedError


class Actuator:
    """Base class for fan command sinks."""

    def set_duty_cycle(self, bank: int, duty_cycle: int) -> None:
        """Send a duty cycle to one fan bank.

        Raises:
            ActuationError: If the bank rejects or fails the command
        """
        raise NotImplementedError

    def enable_manual_control(self) -> None:
        """Take fan control away from the firmware before the first tick."""
        pass

    def restore_automatic_control(self) -> None:
        """Hand fan control back to the firmware."""
        pass


class TelemetryEmitter:
    """Base class for duty cycle publishers."""

    def publish(self, duty_cycle: int) -> None:
        """Publish the evaluated duty cycle.

        Raises:
            TelemetryError: If the value cannot be published
        """
        raise NotImplementedError
