"""Loguru sink для записи WARNING+ логов в Supabase."""

from supabase import Client

LOG_TABLE = "task_logs"


def create_supabase_sink(db: Client):
    """Фабрика: вернуть sink-функцию, привязанную к db-клиенту."""

    def sink(message) -> None:
        record = message.record
        extra = record["extra"]
        try:
            db.table(LOG_TABLE).insert({
                "level": record["level"].name,
                "module": record["name"],
                "message": str(record["message"]),
                "task_id": extra.get("task_id"),
            }).execute()
        except Exception:
            pass  # Ошибка логирования не должна ронять приложение

    return sink
