from .client import CareClient, Helper, BillingRecord
from .document_schedule import DocumentSchedule, GoalPeriod, MonitoringSchedule, DocumentValidation

__all__ = [
    "CareClient", "Helper", "BillingRecord",
    "DocumentSchedule", "GoalPeriod", "MonitoringSchedule", "DocumentValidation"
]
