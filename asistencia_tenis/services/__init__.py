from .catalog_service import CatalogService
from .class_registrar import ClassRegistrar, generate_class_id
from .record_builder import BuildOptions, build_attendance_record, build_group_attendance_records
from .reposition_service import GroupRepositionForm, GroupRepositionService, RepositionService
from .session import AttendanceSession, PipelineListener, SessionState
from .submission_pipeline import SubmissionOutcome, SubmissionPipeline, SyncResult

__all__ = [
    "AttendanceSession",
    "BuildOptions",
    "CatalogService",
    "ClassRegistrar",
    "GroupRepositionForm",
    "GroupRepositionService",
    "PipelineListener",
    "RepositionService",
    "SessionState",
    "SubmissionOutcome",
    "SubmissionPipeline",
    "SyncResult",
    "build_attendance_record",
    "build_group_attendance_records",
    "generate_class_id",
]
