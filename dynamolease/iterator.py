#--------------------------------------------------------------------------------
# logging
#--------------------------------------------------------------------------------

import logging
_logger = logging.getLogger(__name__)

#--------------------------------------------------------------------------------
# classes
#--------------------------------------------------------------------------------

class DynamoDBLockIterator(object):
    ''' A lazy, forward only iterator over every lock record in the
    table. Pages are only fetched from the store when the current one
    has been consumed, so each step may block on the network::

        for lock in client.get_all_locks():
            print(lock.name, lock.owner, lock.is_released)

    The records are not tied to the locks this client is holding, they
    include locks owned by others as well as released ones.
    '''

    def __init__(self, **kwargs):
        ''' Initialize a new instance of the DynamoDBLockIterator class

        :param store: The store to scan
        :param factory: The function converting a record to a lock
        :param consistent: True to perform strongly consistent scans
        '''
        self.store      = kwargs.get('store')
        self.factory    = kwargs.get('factory')
        self.consistent = kwargs.get('consistent', False)
        self.reset()

    def reset(self):
        ''' Start again with a fresh scan from the beginning of the
        table. A scan cannot be resumed once reset.
        '''
        self._page       = []
        self._index      = 0
        self._next_key   = None
        self._has_loaded = False

    def _has_another_page(self):
        return (not self._has_loaded) or (self._next_key is not None)

    def _load_next_page(self):
        records, self._next_key = self.store.scan(self._next_key, consistent=self.consistent)
        self._has_loaded = True
        self._page  = [self.factory(record) for record in records]
        self._index = 0
        _logger.debug("loaded a page of %d locks, more to come: %s", len(self._page), self._next_key is not None)

    def __iter__(self):
        return self

    def __next__(self):
        while self._index == len(self._page) and self._has_another_page():
            self._load_next_page()
        if self._index >= len(self._page):
            raise StopIteration
        lock = self._page[self._index]
        self._index += 1
        return lock
