# (c) 2009-2024 Martin Wendt and contributors; see WsgiDAV https://github.com/mar10/wsgidav
# Original PyFileServer (c) 2005 Ho Chun Wei.
# Licensed under the MIT license:
# http://www.opensource.org/licenses/mit-license.php
"""
ReadWriteLock

A lock that allows many concurrent readers or one writer.

Both sides are reentrant for the owning thread. A thread that holds the write
lock may also acquire the read lock. Upgrading a read lock to a write lock is
not supported and raises ``RuntimeError``, since two upgrading readers would
deadlock.

Pending writers take precedence over new readers (threads that already hold
a read lock may still re-acquire it).

Usage::

    lock = ReadWriteLock()
    lock.acquire_read()
    try:
        ...
    finally:
        lock.release()
"""
from threading import Condition, Lock, current_thread
from time import time

__docformat__ = "reStructuredText"


class ReadWriteLock:
    def __init__(self):
        self.__condition = Condition(Lock())
        # Thread that currently holds the write lock, and its recursion count
        self.__writer = None
        self.__writer_count = 0
        # Number of threads waiting for the write lock
        self.__pending_writers = 0
        # Map of reading threads to their recursion count
        self.__readers = {}

    def __repr__(self):
        return "ReadWriteLock(writer={}, readers={}, pending_writers={})".format(
            self.__writer, len(self.__readers), self.__pending_writers
        )

    def acquire_read(self, timeout=None):
        """Acquire a read lock for the current thread.

        Returns False if `timeout` (seconds) expired, True otherwise.
        """
        if timeout is not None:
            endtime = time() + timeout
        me = current_thread()
        with self.__condition:
            if self.__writer is me:
                # Writers may read
                self.__readers[me] = self.__readers.get(me, 0) + 1
                return True
            while True:
                if self.__writer is None and (
                    me in self.__readers or not self.__pending_writers
                ):
                    self.__readers[me] = self.__readers.get(me, 0) + 1
                    return True
                if timeout is None:
                    self.__condition.wait()
                else:
                    remaining = endtime - time()
                    if remaining <= 0:
                        return False
                    self.__condition.wait(remaining)

    def acquire_write(self, timeout=None):
        """Acquire a write lock for the current thread.

        Returns False if `timeout` (seconds) expired, True otherwise.
        """
        if timeout is not None:
            endtime = time() + timeout
        me = current_thread()
        with self.__condition:
            if self.__writer is me:
                self.__writer_count += 1
                return True
            if me in self.__readers:
                raise RuntimeError("Cannot upgrade a read lock to a write lock")
            self.__pending_writers += 1
            try:
                while True:
                    if self.__writer is None and not self.__readers:
                        self.__writer = me
                        self.__writer_count = 1
                        return True
                    if timeout is None:
                        self.__condition.wait()
                    else:
                        remaining = endtime - time()
                        if remaining <= 0:
                            return False
                        self.__condition.wait(remaining)
            finally:
                self.__pending_writers -= 1

    def release(self):
        """Release the most recently acquired lock of the current thread.

        Read locks taken while holding the write lock are released first.
        """
        me = current_thread()
        with self.__condition:
            if me in self.__readers:
                self.__readers[me] -= 1
                if not self.__readers[me]:
                    del self.__readers[me]
                    self.__condition.notify_all()
            elif self.__writer is me:
                self.__writer_count -= 1
                if not self.__writer_count:
                    self.__writer = None
                    self.__condition.notify_all()
            else:
                raise RuntimeError("Trying to release an unheld lock")

    def is_locked_by_me(self):
        me = current_thread()
        with self.__condition:
            return self.__writer is me or me in self.__readers
