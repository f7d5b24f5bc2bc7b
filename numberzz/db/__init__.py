from numberzz.db.database import async_session_factory, drop_db, engine, init_db

__all__ = [
    "async_session_factory",
    "drop_db",
    "engine",
    "init_db",
]
