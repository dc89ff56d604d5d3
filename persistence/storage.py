from typing import Optional

from persistence.db import make_session_factory
from persistence.models import StorageItemModel


class LocalStorage:
    """
    Durable key/value storage for client-side state.
    Survives process restarts; every write is committed immediately.
    """

    def __init__(self, url: Optional[str] = None, session_factory=None):
        if session_factory is None:
            session_factory = make_session_factory(url) if url else make_session_factory()
        self._session_factory = session_factory

    def get_item(self, key: str) -> Optional[str]:
        with self._session_factory() as db:
            row = db.get(StorageItemModel, key)
            return row.value if row else None

    def set_item(self, key: str, value: str):
        with self._session_factory() as db:
            row = db.get(StorageItemModel, key)
            if row:
                row.value = value
            else:
                db.add(StorageItemModel(key=key, value=value))
            db.commit()

    def remove_item(self, key: str):
        with self._session_factory() as db:
            row = db.get(StorageItemModel, key)
            if row:
                db.delete(row)
                db.commit()

    def clear(self):
        with self._session_factory() as db:
            db.query(StorageItemModel).delete()
            db.commit()

    def keys(self):
        with self._session_factory() as db:
            return [row.key for row in db.query(StorageItemModel).order_by(StorageItemModel.key)]
