from .db import (
    Base,
    get_engine,
    get_session,
    create_all,
    dispose_engine,
)  # noqa: F401
from .reminders import (
    create_record,
    update_status,
    claim_records,
    schedule_prescheduled,
    schedule_before_appointment,
    reschedule_prescheduled,
    get_record,
    records_for_appointment,
)  # noqa: F401
