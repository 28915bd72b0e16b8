import threading

#--------------------------------------------------------------------------------
# classes
#--------------------------------------------------------------------------------

class DynamoDBLockRegistry(object):
    ''' A small thread safe map used by the client to track the locks
    it is holding and the session monitor watchers it is running. It
    belongs to a single client and lives exactly as long as it does.
    Every operation is atomic, iteration works on a snapshot::

        registry = DynamoDBLockRegistry()
        registry.put(lock.key, lock)
        for name, lock in registry.snapshot().items():
            pass
    '''

    def __init__(self):
        self._entries = {}
        self._mutex   = threading.Lock()

    def get(self, name, default=None):
        with self._mutex:
            return self._entries.get(name, default)

    def put(self, name, value):
        ''' Add or replace the entry for the supplied name.

        :returns: The entry that was replaced or None
        '''
        with self._mutex:
            previous = self._entries.get(name)
            self._entries[name] = value
            return previous

    def put_if_absent(self, name, value):
        ''' Add the entry unless one already exists for the name.

        :returns: True if the entry was added, False otherwise
        '''
        with self._mutex:
            if name in self._entries:
                return False
            self._entries[name] = value
            return True

    def pop(self, name, default=None):
        with self._mutex:
            return self._entries.pop(name, default)

    def discard(self, name, value):
        ''' Remove the entry for the name only if it is still the
        supplied value, so a stale owner cannot remove its successor.

        :returns: True if the entry was removed, False otherwise
        '''
        with self._mutex:
            if self._entries.get(name) is value:
                del self._entries[name]
                return True
            return False

    def snapshot(self):
        with self._mutex:
            return dict(self._entries)

    def drain(self):
        ''' Remove and return every entry. '''
        with self._mutex:
            entries, self._entries = self._entries, {}
            return entries

    def values(self):
        return list(self.snapshot().values())

    def __contains__(self, name):
        with self._mutex:
            return name in self._entries

    def __len__(self):
        with self._mutex:
            return len(self._entries)
