"""
Pipeline de envío de asistencia con respaldo sin conexión.

Estados de una sesión:
    Idle -> Validating -> (Rejected | Building)
    Building -> (Rejected | Submitting)
    Submitting -> (OnlineSaved | OfflineQueued | Failed)
    OnlineSaved | OfflineQueued -> Cleared

El borrador se borra solo cuando los datos quedaron guardados en el backend o
de forma durable en la cola pendiente. Si la cola no puede escribirse, el
borrador se conserva y el resultado es Failed.
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence

from ..errors import (
    ConflictError,
    DataIntegrityError,
    GatewayError,
    StorageError,
    ValidationError,
)
from ..models import (
    AttendanceRecord,
    AttendanceStatus,
    ClassRecord,
    ClassStatus,
    ClassType,
    Mark,
    PendingKind,
)
from ..storage.draft_store import DraftStore
from ..storage.pending_queue import PendingQueue
from .class_registrar import ClassRegistrar
from .record_builder import BuildError, BuildOptions, build_group_attendance_records, ensure_class_linkage
from .session import AttendanceSession, PipelineListener, SessionState

logger = logging.getLogger(__name__)

OFFLINE_MESSAGE = "Datos guardados localmente. Se sincronizarán cuando haya conexión."
DATA_LOSS_MESSAGE = (
    "No se pudo guardar ni en el servidor ni localmente. "
    "Los datos pueden perderse: anótelos y vuelva a intentarlo."
)


@dataclass
class SubmissionOutcome:
    state: SessionState
    message: str = ""
    saved_count: int = 0
    queued_count: int = 0
    class_id: Optional[str] = None
    errors: List[BuildError] = field(default_factory=list)
    warning: Optional[str] = None
    conflict_status: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.state in (SessionState.CLEARED, SessionState.ONLINE_SAVED, SessionState.OFFLINE_QUEUED)

    @property
    def offline(self) -> bool:
        return self.queued_count > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "state": self.state.value,
            "message": self.message,
            "savedCount": self.saved_count,
            "queuedCount": self.queued_count,
            "classId": self.class_id,
            "warning": self.warning,
            "errors": [{"index": e.index, "studentId": e.student_id, "error": e.error} for e in self.errors],
        }


@dataclass
class SyncResult:
    synced: int = 0
    remaining: int = 0
    error: Optional[str] = None
    skipped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"synced": self.synced, "remaining": self.remaining, "error": self.error, "skipped": self.skipped}


class SubmissionPipeline:
    def __init__(
        self,
        client,
        catalog,
        registrar: ClassRegistrar,
        drafts: DraftStore,
        pending: PendingQueue,
        listener: Optional[PipelineListener] = None,
        default_user: str = "usuario",
    ):
        self.client = client
        self.catalog = catalog
        self.registrar = registrar
        self.drafts = drafts
        self.pending = pending
        self.listener = listener
        self.default_user = default_user
        self._sync_lock = threading.Lock()

    # ===== Estados =====

    def _transition(self, session: Optional[AttendanceSession], state: SessionState,
                    detail: Optional[Dict[str, Any]] = None) -> None:
        if session is not None:
            session.state = state
        logger.debug(f"Estado del envío: {state.value}")
        if self.listener is not None:
            try:
                self.listener.on_state_change(state, session, detail)
            except Exception as e:
                logger.error(f"Error en listener del pipeline: {e}", exc_info=True)

    def _reject(self, session: AttendanceSession, message: str, **kwargs) -> SubmissionOutcome:
        logger.warning(f"Envío rechazado ({session.grupo_codigo} {session.fecha}): {message}")
        outcome = SubmissionOutcome(state=SessionState.REJECTED, message=message, **kwargs)
        self._transition(session, SessionState.REJECTED, outcome.to_dict())
        return outcome

    # ===== Recuperación =====

    def recover_draft(self, enviado_por: Optional[str] = None) -> Optional[AttendanceSession]:
        draft = self.drafts.recover()
        if draft is None:
            return None
        logger.info(f"Borrador recuperado: {draft.grupo_codigo} {draft.fecha} ({len(draft.attendance_data)} marcas)")
        return AttendanceSession.from_draft(draft, enviado_por=enviado_por or self.default_user,
                                            draft_store=self.drafts)

    # ===== Envíos =====

    def submit_attendance(self, session: AttendanceSession) -> SubmissionOutcome:
        """Valida, crea la clase (Realizada) y guarda la asistencia del grupo."""
        if not session.marks:
            self._transition(session, SessionState.VALIDATING)
            return self._reject(session, "No hay asistencia registrada para guardar")
        return self._submit(
            session,
            class_status=ClassStatus.REALIZADA,
            marks=session.marks,
            tipo_clase=ClassType.REGULAR,
            kind=PendingKind.ATTENDANCE,
        )

    def submit_cancellation(self, session: AttendanceSession, motivo: str,
                            descripcion: str = "") -> SubmissionOutcome:
        """Crea la clase como Cancelada y un registro Cancelada por cada estudiante del grupo."""
        self._transition(session, SessionState.VALIDATING)
        motivo = (motivo or "").strip()
        if not motivo:
            return self._reject(session, "El motivo de cancelación es requerido")
        try:
            students = self.catalog.get_students_by_group(session.grupo_codigo)
        except (GatewayError, ValidationError) as e:
            return self._reject(session, f"No se pudieron obtener los estudiantes del grupo: {e}")

        marks = {
            s["id"]: Mark(status=AttendanceStatus.CANCELADA, justification=motivo, description=descripcion or "")
            for s in students
        }
        return self._submit(
            session,
            class_status=ClassStatus.CANCELADA,
            marks=marks,
            tipo_clase=ClassType.CANCELADA,
            kind=PendingKind.CANCELLATION,
            motivo=motivo,
        )

    def _submit(
        self,
        session: AttendanceSession,
        class_status: ClassStatus,
        marks: Dict[str, Mark],
        tipo_clase: ClassType,
        kind: PendingKind,
        motivo: Optional[str] = None,
    ) -> SubmissionOutcome:
        self._transition(session, SessionState.VALIDATING)
        validation = self.registrar.validate_class_report(session.fecha, session.grupo_codigo)

        reuse_class = False
        if not validation.valid:
            if not validation.conflict:
                return self._reject(session, validation.error or "Datos inválidos")
            if session.class_created and session.class_id and session.class_id == validation.class_id:
                # La clase se creó en un intento anterior que no llegó a guardar la asistencia
                logger.info(f"Reutilizando clase ya creada {session.class_id}")
                reuse_class = True
            else:
                existing = validation.existing_class or {}
                status = existing.get("estado") or existing.get("Estado") or "desconocido"
                return self._reject(
                    session,
                    f'La clase {session.grupo_codigo} del {session.fecha} ya fue reportada como "{status}"',
                    class_id=validation.class_id,
                    conflict_status=status,
                )

        class_id = session.class_id if reuse_class else validation.class_id

        self._transition(session, SessionState.BUILDING)
        build = build_group_attendance_records(
            marks,
            BuildOptions(
                fecha=session.fecha,
                grupo_codigo=session.grupo_codigo,
                id_clase=class_id or "",
                tipo_clase=tipo_clase,
                enviado_por=session.enviado_por or self.default_user,
            ),
        )
        if build.errors:
            return self._reject(session, f"{len(build.errors)} registros inválidos; no se envió nada",
                                errors=build.errors, class_id=class_id)
        try:
            ensure_class_linkage(build.records)
        except DataIntegrityError as e:
            return self._reject(session, str(e), class_id=class_id)

        self._transition(session, SessionState.SUBMITTING)
        records = build.records
        if not reuse_class:
            group = self.catalog.get_group_by_code(session.grupo_codigo)
            prepared = self.registrar.prepare_class_record(
                session.fecha,
                session.grupo_codigo,
                group.get("hora", ""),
                class_status,
                motivo_cancelacion=motivo,
                asistente_id=session.asistente_id,
                creado_por=session.enviado_por,
            )
            try:
                created = self.registrar.create_class(
                    session.fecha,
                    session.grupo_codigo,
                    class_status,
                    motivo_cancelacion=motivo,
                    asistente_id=session.asistente_id,
                    creado_por=session.enviado_por,
                )
            except ConflictError as e:
                return self._reject(session, str(e), class_id=e.class_id, conflict_status=e.existing_status)
            except GatewayError as e:
                logger.warning(f"No se pudo crear la clase en línea: {e}")
                return self._fallback(session, kind, records, class_record=prepared,
                                      warning=validation.warning)

            if created.id != class_id:
                records = [replace(r, id_clase=created.id) for r in records]
                class_id = created.id
            session.class_id = class_id
            session.class_created = True
            try:
                session.save_draft()
            except StorageError as e:
                logger.warning(f"No se pudo actualizar el borrador con el ID de clase: {e}")

        return self.save_records(session, records, kind, class_id=class_id, warning=validation.warning)

    def save_records(
        self,
        session: Optional[AttendanceSession],
        records: Sequence[AttendanceRecord],
        kind: PendingKind = PendingKind.ATTENDANCE,
        class_id: Optional[str] = None,
        warning: Optional[str] = None,
    ) -> SubmissionOutcome:
        """Guarda registros ya construidos: en línea, o en la cola si el backend no responde."""
        records = list(records)
        if not records:
            return self._finish(session, SubmissionOutcome(
                state=SessionState.ONLINE_SAVED,
                message="Clase registrada sin registros de asistencia",
                class_id=class_id,
                warning=warning,
            ))
        try:
            ensure_class_linkage(records)
        except DataIntegrityError as e:
            if session is not None:
                return self._reject(session, str(e), class_id=class_id)
            raise

        if session is not None and session.state != SessionState.SUBMITTING:
            self._transition(session, SessionState.SUBMITTING)
        try:
            result = self.client.save_attendance([r.to_backend() for r in records])
        except GatewayError as e:
            logger.warning(f"No se pudo guardar la asistencia en línea: {e}")
            return self._fallback(session, kind, records, class_id=class_id, warning=warning)

        saved = int(result.get("count") or len(records))
        return self._finish(session, SubmissionOutcome(
            state=SessionState.ONLINE_SAVED,
            message=f"Asistencia guardada: {saved} registros",
            saved_count=saved,
            class_id=class_id,
            warning=warning,
        ))

    def _fallback(
        self,
        session: Optional[AttendanceSession],
        kind: PendingKind,
        records: Sequence[AttendanceRecord],
        class_record: Optional[ClassRecord] = None,
        class_id: Optional[str] = None,
        warning: Optional[str] = None,
    ) -> SubmissionOutcome:
        items = []
        if class_record is not None:
            items.append((PendingKind.CLASS_CREATION, class_record.to_dict()))
            class_id = class_id or class_record.id
        items.extend((kind, r.to_backend()) for r in records)
        try:
            self.pending.enqueue_many(items)
        except StorageError as e:
            logger.critical(f"Fallo el respaldo local; {len(records)} registros sin guardar: {e}")
            outcome = SubmissionOutcome(state=SessionState.FAILED, message=DATA_LOSS_MESSAGE,
                                        class_id=class_id, warning=warning)
            self._transition(session, SessionState.FAILED, outcome.to_dict())
            return outcome

        return self._finish(session, SubmissionOutcome(
            state=SessionState.OFFLINE_QUEUED,
            message=OFFLINE_MESSAGE,
            queued_count=len(records),
            class_id=class_id,
            warning=warning,
        ))

    def _finish(self, session: Optional[AttendanceSession], outcome: SubmissionOutcome) -> SubmissionOutcome:
        self._transition(session, outcome.state, outcome.to_dict())
        if session is not None:
            try:
                self.drafts.clear()
            except StorageError as e:
                # Los datos ya están a salvo; un borrador viejo se purga por TTL
                logger.warning(f"No se pudo borrar el borrador: {e}")
            self._transition(session, SessionState.CLEARED, outcome.to_dict())
            logger.info(f"Envío finalizado ({outcome.state.value}): {outcome.message}")
        return outcome

    # ===== Sincronización =====

    def sync_pending(self) -> SyncResult:
        """Reenvía la cola: primero clases, luego reposiciones grupales, luego asistencia en un lote.

        Cada entrada se quita solo después de que el backend confirma. Si el
        lote de asistencia falla, queda completo en la cola.
        """
        if not self._sync_lock.acquire(blocking=False):
            logger.info("Sincronización ya en curso; se omite")
            return SyncResult(remaining=self.pending.count(), skipped=True)
        try:
            return self._sync()
        finally:
            self._sync_lock.release()

    def _sync(self) -> SyncResult:
        entries = self.pending.list()
        if not entries:
            return SyncResult()
        logger.info(f"Sincronizando {len(entries)} envíos pendientes")
        synced = 0
        # ID local -> ID asignado por el backend
        class_ids: Dict[str, str] = {}
        try:
            for entry in [e for e in entries if e.kind == PendingKind.CLASS_CREATION]:
                record = ClassRecord.from_dict(entry.payload)
                class_ids[record.id] = self._sync_class_creation(record)
                self.pending.complete_class_creation(entry.pending_id, record.id, class_ids[record.id])
                synced += 1

            for entry in [e for e in entries if e.kind == PendingKind.GROUP_REPOSITION]:
                self.client.save_group_reposition(
                    entry.payload.get("repositionRecord") or {},
                    entry.payload.get("attendanceRecords") or [],
                )
                self.pending.remove([entry.pending_id])
                synced += 1

            batch = [e for e in entries if e.kind in (PendingKind.ATTENDANCE, PendingKind.CANCELLATION)]
            if batch:
                rows = []
                for e in batch:
                    row = dict(e.payload)
                    row["ID_Clase"] = class_ids.get(row.get("ID_Clase"), row.get("ID_Clase"))
                    rows.append(row)
                self.client.save_attendance(rows)
                self.pending.remove([e.pending_id for e in batch])
                synced += len(batch)
        except (GatewayError, ValidationError, ValueError) as e:
            remaining = self.pending.count()
            logger.warning(f"Sincronización interrumpida ({remaining} pendientes): {e}")
            return SyncResult(synced=synced, remaining=remaining, error=str(e))

        remaining = self.pending.count()
        logger.info(f"Sincronización completa: {synced} enviados, {remaining} pendientes")
        return SyncResult(synced=synced, remaining=remaining)

    def _sync_class_creation(self, record: ClassRecord) -> str:
        """Crea la clase encolada; si ya existe se da por hecha. Retorna el ID real."""
        result = self.client.check_class_exists(record.fecha, record.grupo_codigo, record.hora_grupo)
        if result.get("exists"):
            existing_id = str(result.get("classId") or (result.get("classData") or {}).get("id") or record.id)
            logger.info(f"La clase {existing_id} ya existe en el backend; se da por sincronizada")
            return existing_id
        return self.registrar.submit_class_record(record).id
