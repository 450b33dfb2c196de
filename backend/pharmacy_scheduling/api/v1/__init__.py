from pharmacy_scheduling.api.v1 import appointments, staff, time_off

__all__ = [
    "appointments",
    "staff",
    "time_off",
]
