"""
스키마 패키지 __init__.py
"""
from .document_schedule import *

__all__ = [
    # Literal types
    "DocType", "DOC_TYPES", "ScheduleStatus", "ScheduleActionType",
    "GoalType", "MonitoringType", "MonitoringStatus", "MonitoringActionType",
    "CheckStatus", "Severity", "ClientValidationStatus",

    # Entity schemas
    "CareClientSchema", "HelperSchema", "BillingRecordSchema",
    "DocumentScheduleSchema", "GoalPeriodInput", "GoalPeriodSchema", "GoalSetUpdate",
    "MonitoringScheduleSchema", "EmergencyMonitoringRequest",

    # Engine outputs
    "ScheduleAction", "ScheduleConfigurationIssue", "ScheduleCheckResult", "StatusSyncReport",
    "MonitoringAction", "MonitoringCheckResult",
    "ValidationCheck", "ValidationResult", "ClientValidationSummary",
    "GeneratedDocument", "ExecutionResult", "BulkExecutionResult",
]
