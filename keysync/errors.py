# SPDX-License-Identifier: GPL-3.0-or-later


class KeySyncError(Exception):
    """Base class for all exceptions here."""

    pass


class SetupError(KeySyncError):
    """Raised when the destination file or its directory cannot be prepared.

    This is fatal: the service cannot run without a writable, correctly
    permissioned destination.
    """

    pass


class FetchError(KeySyncError):
    """Raised when the keys of one identity cannot be retrieved."""

    def __init__(self, identity, url, reason):
        self.identity = identity
        self.url = url
        self.reason = reason
        super(FetchError, self).__init__(identity, url, reason)

    def __str__(self):
        if self.identity is None:
            return str(self.reason)
        return f"cannot fetch keys of {self.identity} ({self.url}): {self.reason}"


class FetchTimeoutError(FetchError):
    """Raised when a fetch, or the whole fetch phase of a cycle, timed out."""

    pass


class WriteError(KeySyncError):
    """Raised when the destination file cannot be rewritten."""

    pass
