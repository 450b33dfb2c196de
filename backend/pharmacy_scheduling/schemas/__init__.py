from pharmacy_scheduling.schemas.appointment import (
    AppointmentCreate,
    AppointmentOutcome,
    AppointmentRead,
    AppointmentRescheduleRequest,
    AppointmentStatusChange,
    AppointmentStatusRead,
    AppointmentSummary,
    CancelStatusChange,
    CompleteStatusChange,
    RecurrencePattern,
    RescheduleStatusChange,
    SeriesCancelRequest,
    SeriesCancelResult,
    SeriesPatternUpdate,
    SimpleStatusChange,
)
from pharmacy_scheduling.schemas.common import Pagination, RejectionDetail
from pharmacy_scheduling.schemas.series import OccurrenceResult, RecurringSeriesRead, SeriesRead
from pharmacy_scheduling.schemas.slots import (
    AvailableSlotsRead,
    NextAvailableRead,
    SlotRead,
    SlotSummary,
    SlotValidationRead,
    SlotValidationRequest,
    StaffSlotSummary,
)
from pharmacy_scheduling.schemas.staff import StaffScheduleRead, StaffScheduleUpdate
from pharmacy_scheduling.schemas.time_off import (
    ImpactRecord,
    TimeOffCreate,
    TimeOffDecisionRead,
    TimeOffRead,
    TimeOffRejectRequest,
)
