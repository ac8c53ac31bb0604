"""
In-process document locks.

The JSON documents are rewritten wholesale, so two writers racing on the same
document would lose an update. A load-modify-save cycle on one document is
serialized through ``document_lock``. Cross-process races are caught by the
store's version check instead.
"""
import functools
import threading
import weakref
from contextlib import contextmanager
from typing import Iterator


_registry_guard = threading.Lock()
# entries disappear once no caller holds the lock
_locks: "weakref.WeakValueDictionary[str, threading.RLock]" = weakref.WeakValueDictionary()


def _lock_for(key: str) -> threading.RLock:
    with _registry_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = threading.RLock()
            _locks[key] = lock
        return lock


@contextmanager
def document_lock(key: str) -> Iterator[None]:
    """
    Acquire the single-writer lock of a document.

    Usage:
        with document_lock(store.lock_key):
            # load, modify and save the document
            pass
    """
    lock = _lock_for(key)
    with lock:
        yield


def serialized_writes(repo_attr: str):
    """
    Run the decorated method under the write lock of ``self.<repo_attr>``.

    Stack it above ``retry_with_backoff`` so retries happen with the lock held.
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(self, *args, **kwargs):
            with getattr(self, repo_attr).write_lock():
                return func(self, *args, **kwargs)
        return wrapper
    return decorator
