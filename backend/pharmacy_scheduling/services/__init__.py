from pharmacy_scheduling.services.appointments import (
    AppointmentNotFoundError,
    AppointmentRejectedError,
    SeriesNotFoundError,
    cancel_series,
    create_appointment,
    create_recurring_series,
    delete_appointment,
    get_appointment,
    get_series,
    list_appointments,
    reschedule_appointment,
    update_appointment_status,
    update_series_pattern,
)
from pharmacy_scheduling.services.calendar import (
    CalendarConcurrencyError,
    CalendarStore,
    StaffNotFoundError,
)
from pharmacy_scheduling.services.lifecycle import InvalidTransitionError
from pharmacy_scheduling.services.notifications import NotificationChannel, SchedulingNotice
from pharmacy_scheduling.services.slots import find_next_available, generate_slots, resolve_duration
from pharmacy_scheduling.services.staff import get_schedule, list_schedules, upsert_schedule
from pharmacy_scheduling.services.time_off import (
    TimeOffNotFoundError,
    TimeOffRejectedError,
    approve_time_off,
    get_time_off_impact,
    list_time_off,
    reject_time_off,
    request_time_off,
)
from pharmacy_scheduling.services.validation import validate_booking
