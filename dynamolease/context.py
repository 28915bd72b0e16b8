#--------------------------------------------------------------------------------
# logging
#--------------------------------------------------------------------------------

import logging
_logger = logging.getLogger(__name__)

#--------------------------------------------------------------------------------
# classes
#--------------------------------------------------------------------------------

class DynamoDBLockContext(object):
    ''' A context manager to help using locks in a `with` statement.

    .. code-block:: python

        from dynamolease import locker

        with locker(client=client, name="lock-to-get", payload=b"state") as handle:
            pass # perform locked activity here, the lock is handle.lock
        # upon leaving the lock will be released
    '''

    def __init__(self, **kwargs):
        ''' Initialize a new instance of the DynamoDBLockContext

        All the remaining params are passed on to the acquire
        operation of the client.

        :param client: The client to acquire the lock with
        :param name: The name of the lock to acquire
        :param range_key: The sort key of the lock to acquire
        :param delete: True to delete the lock on release (default the lock policy)
        '''
        self.client    = kwargs.pop('client')
        self.name      = kwargs.pop('name')
        self.range_key = kwargs.pop('range_key', None)
        self.delete    = kwargs.pop('delete', None)
        self.params    = kwargs
        self.lock      = None

    def __enter__(self):
        ''' On enter of the context manager, this will acquire
        the specified lock.  When the lock has been acquired,
        this will return.
        '''
        self.lock = self.client.acquire_lock(self.name, self.range_key, **self.params)
        return self

    def __exit__(self, ex_type, value, traceback):
        ''' On exit of the context manager, this will release
        the currently being held lock. When this operation is
        finished, this will return.
        '''
        if not self.client.release_lock(self.lock, delete=self.delete):
            _logger.warning("lock %s was lost before leaving the context", self.lock.unique_identifier)
        self.lock = None
