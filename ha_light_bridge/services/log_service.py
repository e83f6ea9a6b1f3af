import json
import queue
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

from ha_light_bridge.core import settings
from ha_light_bridge.models.schemas import OperationLogItem


DETAIL_MAX_CHARS = 4000
_IDLE_WAIT_SEC = 0.25
_BATCH_MAX = 200

_rows: queue.Queue[OperationLogItem] = queue.Queue(maxsize=settings.HA_LOG_QUEUE_MAX)
_writer: threading.Thread | None = None
_stopping = threading.Event()
_writer_lock = threading.Lock()
_dropped = 0


def _log_files() -> list[Path]:
    """Current file first, then backups from newest to oldest."""
    path = settings.HA_LOG_PATH
    return [path, *(path.with_name(f"{path.name}.{n}") for n in range(1, settings.HA_LOG_BACKUP_COUNT + 1))]


def _bounded_detail(detail: Any) -> dict[str, Any]:
    raw = json.dumps(detail if isinstance(detail, dict) else {"value": detail}, ensure_ascii=False, default=str)
    if len(raw) > DETAIL_MAX_CHARS:
        return {"_truncated": True, "_size": len(raw), "preview": raw[:DETAIL_MAX_CHARS]}
    return json.loads(raw)


def _rotate(files: list[Path]) -> None:
    # Shifting onto the last slot drops the oldest backup.
    for newer, older in reversed(list(zip(files, files[1:]))):
        if newer.exists():
            newer.replace(older)


def _append(rows: list[OperationLogItem]) -> None:
    text = "".join(row.model_dump_json() + "\n" for row in rows)
    with settings.log_lock:
        files = _log_files()
        files[0].parent.mkdir(parents=True, exist_ok=True)
        if files[0].exists() and files[0].stat().st_size >= settings.HA_LOG_MAX_BYTES:
            _rotate(files)
        with files[0].open("a", encoding="utf-8") as f:
            f.write(text)


def _write_pending() -> int:
    try:
        rows = [_rows.get(timeout=_IDLE_WAIT_SEC)]
    except queue.Empty:
        return 0
    while len(rows) < _BATCH_MAX and not _rows.empty():
        rows.append(_rows.get_nowait())

    try:
        _append(rows)
    finally:
        for _ in rows:
            _rows.task_done()
    return len(rows)


def _run_writer() -> None:
    while not (_stopping.is_set() and _rows.empty()):
        try:
            _write_pending()
        except OSError:
            # Rows in a failed batch are lost; the bridge keeps serving.
            time.sleep(0.05)


def start_log_worker() -> None:
    global _writer
    with _writer_lock:
        if _writer is not None and _writer.is_alive():
            return
        _stopping.clear()
        _writer = threading.Thread(target=_run_writer, name="ha-light-bridge-log-writer", daemon=True)
        _writer.start()


def stop_log_worker(timeout_sec: float = 2.0) -> None:
    global _writer
    with _writer_lock:
        writer = _writer
        if writer is None:
            return
        _stopping.set()
    writer.join(timeout=timeout_sec)
    with _writer_lock:
        if _writer is writer:
            _writer = None


def flush_logs(timeout_sec: float = 0.3) -> None:
    deadline = time.monotonic() + timeout_sec
    while _rows.unfinished_tasks and time.monotonic() < deadline:
        time.sleep(0.01)


def log_operation(
    *,
    event_type: str,
    action: str,
    source: str = "system",
    level: str = "info",
    method: str | None = None,
    path: str | None = None,
    status_code: int | None = None,
    duration_ms: float | None = None,
    trace_id: str | None = None,
    success: bool | None = None,
    detail: Any = None,
) -> OperationLogItem:
    global _dropped
    item = OperationLogItem(
        event_id=uuid4().hex,
        created_at=datetime.now().isoformat(timespec="milliseconds"),
        event_type=event_type,
        source=source,
        action=action,
        level=level,
        method=method,
        path=path,
        status_code=status_code,
        duration_ms=duration_ms,
        trace_id=trace_id,
        success=success,
        detail=_bounded_detail(detail or {}),
    )
    start_log_worker()
    try:
        _rows.put_nowait(item)
    except queue.Full:
        with _writer_lock:
            _dropped += 1
    return item


def log_warning(*, event_type: str, action: str, message: str, **detail: Any) -> OperationLogItem:
    return log_operation(
        event_type=event_type,
        action=action,
        level="warning",
        success=False,
        detail={"message": message, **detail},
    )


def log_ha_request(
    *,
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    context: str,
    trace_id: str | None = None,
    detail: dict[str, Any] | None = None,
) -> OperationLogItem:
    """Record one round trip to the hub; ``status_code`` 0 means it never got a response."""
    failed = status_code == 0 or status_code >= 400
    return log_operation(
        event_type="ha_request",
        action="ha.request",
        level="warning" if failed else "info",
        method=method,
        path=path,
        status_code=status_code,
        duration_ms=duration_ms,
        trace_id=trace_id,
        success=not failed,
        detail={"context": context, **(detail or {})},
    )


def list_recent_logs(
    *,
    limit: int = 200,
    event_type: str | None = None,
    level: str | None = None,
    source: str | None = None,
) -> list[OperationLogItem]:
    limit = max(1, min(limit, 1000))
    flush_logs(timeout_sec=0.35)

    wanted = {"event_type": event_type, "level": level, "source": source}
    result: list[OperationLogItem] = []
    with settings.log_lock:
        for file_path in _log_files():
            if not file_path.exists():
                continue
            for line in reversed(file_path.read_text(encoding="utf-8").splitlines()):
                if not line.strip():
                    continue
                try:
                    item = OperationLogItem.model_validate_json(line)
                except ValueError:
                    continue
                if any(value and getattr(item, key) != value for key, value in wanted.items()):
                    continue
                result.append(item)
                if len(result) >= limit:
                    return result
    return result


def get_log_storage_meta() -> dict[str, Any]:
    path = settings.HA_LOG_PATH
    with settings.log_lock:
        size = path.stat().st_size if path.exists() else 0
    with _writer_lock:
        dropped = _dropped
        alive = _writer is not None and _writer.is_alive()
    return {
        "storage": "file",
        "log_path": str(path),
        "current_size_bytes": size,
        "max_bytes": settings.HA_LOG_MAX_BYTES,
        "backup_count": settings.HA_LOG_BACKUP_COUNT,
        "queue_max": settings.HA_LOG_QUEUE_MAX,
        "queue_size": _rows.qsize(),
        "dropped_count": dropped,
        "worker_alive": alive,
    }
