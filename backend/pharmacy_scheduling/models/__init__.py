from pharmacy_scheduling.models.appointment import Appointment, AppointmentStatusHistory
from pharmacy_scheduling.models.audit import AuditEvent
from pharmacy_scheduling.models.staff import StaffCalendar, StaffSchedule
from pharmacy_scheduling.models.time_off import TimeOffRequest
