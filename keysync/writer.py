# SPDX-License-Identifier: GPL-3.0-or-later

"""Persistence of the aggregated keys into the authorized_keys file.

sshd refuses authorized_keys files, and directories containing them, that
are writable by group or others: the file is kept in mode 0600 and its
directory in mode 0700.
"""

import contextlib
import logging
import os
import pwd
import tempfile

from keysync.errors import SetupError, WriteError

DIR_MODE = 0o700
FILE_MODE = 0o600


class AuthorizedKeysWriter:
    """Replaces the whole content of an authorized_keys file.

    By default the file is truncated and rewritten in place, so a concurrent
    reader can observe an empty or partially written file. With `atomic` set,
    the content is written to a temporary file in the same directory which is
    then renamed over the destination.
    """

    def __init__(self, path, atomic=False, owner=None):
        self.path = os.path.abspath(path)
        self.directory = os.path.dirname(self.path)
        self.atomic = atomic
        self.owner = owner
        self._uid = None
        self._file = None
        self._ready = False

    def __enter__(self):
        self.setup()
        return self

    def __exit__(self, *exc):
        self.close()

    def setup(self):
        """Creates the destination directory and file with restrictive
        permissions. Must be called once before `write`.
        """
        try:
            os.makedirs(self.directory, mode=DIR_MODE, exist_ok=True)
            os.chmod(self.directory, DIR_MODE)
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT, FILE_MODE)
            self._file = os.fdopen(fd, 'wb')
            os.chmod(self.path, FILE_MODE)
            if self.owner is not None:
                self._uid = pwd.getpwnam(self.owner).pw_uid
                os.chown(self.directory, self._uid, -1)
                os.chown(self.path, self._uid, -1)
        except (OSError, LookupError) as e:
            self.close()
            raise SetupError(
                f"cannot set up {self.path}: {type(e).__name__}: {e}") from e
        if self.atomic:
            # Each write replaces the file, there is no handle to keep.
            self._file.close()
            self._file = None
        self._ready = True
        logging.info('writing authorized keys to %s (%s)', self.path,
                     'atomic' if self.atomic else 'in place')

    def write(self, text):
        """Replaces the content of the destination file with `text`."""
        if not self._ready:
            raise WriteError(f"{self.path} is not open, call setup() first")
        data = text.encode('utf-8')
        try:
            if self.atomic:
                self._replace(data)
            else:
                self._rewrite(data)
        except OSError as e:
            raise WriteError(
                f"cannot write {self.path}: {type(e).__name__}: {e}") from e
        logging.debug('wrote %d bytes to %s', len(data), self.path)

    def _rewrite(self, data):
        self._file.seek(0)
        self._file.truncate(0)
        self._file.write(data)
        self._file.flush()
        os.fsync(self._file.fileno())

    def _replace(self, data):
        fd, tmp_path = tempfile.mkstemp(dir=self.directory,
                                        prefix='.authorized_keys.')
        try:
            with os.fdopen(fd, 'wb') as tmp:
                os.fchmod(tmp.fileno(), FILE_MODE)
                tmp.write(data)
                tmp.flush()
                os.fsync(tmp.fileno())
            if self._uid is not None:
                os.chown(tmp_path, self._uid, -1)
            os.replace(tmp_path, self.path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp_path)
            raise

    def close(self):
        self._ready = False
        if self._file is not None:
            self._file.close()
            self._file = None
