"""ORM models exposed for metadata discovery."""
from apex.db.models.calendar import CalendarIntegration, DailyCalendarMetrics
from apex.db.models.daily_task import DailyTask
from apex.db.models.module_enrollment import ModuleEnrollment
from apex.db.models.mvd_state import MVDHistory, MVDState
from apex.db.models.nudge import Nudge
from apex.db.models.protocol import ModuleProtocolMap, Protocol
from apex.db.models.protocol_enrollment import ProtocolEnrollment
from apex.db.models.protocol_log import ProtocolLog
from apex.db.models.user import User

__all__ = [
    "CalendarIntegration",
    "DailyCalendarMetrics",
    "DailyTask",
    "ModuleEnrollment",
    "ModuleProtocolMap",
    "MVDHistory",
    "MVDState",
    "Nudge",
    "Protocol",
    "ProtocolEnrollment",
    "ProtocolLog",
    "User",
]
