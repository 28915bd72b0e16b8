'''
The exceptions raised by the lock client. Everything derives from
`DynamoDBLockError` so callers can catch the whole family at once::

    from dynamolease.errors import DynamoDBLockError, LockNotGranted

    try:
        lock = client.acquire_lock("my.lock.name")
    except LockNotGranted:
        pass # somebody else is holding it
'''

#--------------------------------------------------------------------------------
# classes
#--------------------------------------------------------------------------------

class DynamoDBLockError(Exception):
    ''' The base class for every error raised by this package.
    '''


class ConfigurationError(DynamoDBLockError, ValueError):
    ''' Raised synchronously for invalid option combinations.
    These are never retried.
    '''


class SessionMonitorRangeError(ConfigurationError):
    ''' Raised when a session monitor's safe time is not strictly
    between the heartbeat period and the lease duration.
    '''


class LockNotGranted(DynamoDBLockError):
    ''' Raised when a lock could not be acquired within the
    allowed wait budget.
    '''


class LockCurrentlyUnavailable(LockNotGranted):
    ''' Raised when the lock is held by someone else and the caller
    asked not to perform a blocking wait for it.
    '''


class OwnershipLost(DynamoDBLockError):
    ''' Raised when a heartbeat finds that this client no longer
    owns the lock it was trying to renew.
    '''


class SessionMonitorNotSet(DynamoDBLockError):
    ''' Raised when querying the danger zone of a lock that was
    acquired without a session monitor.
    '''


class StoreError(DynamoDBLockError):
    ''' A generic failure reported by the underlying store.
    '''


class ConditionFailed(StoreError):
    ''' The conditional write was rejected because its condition
    did not hold; someone else changed the record first.
    '''


class TransientStoreError(StoreError):
    ''' A connectivity or availability failure that may succeed
    if retried.
    '''


class ThroughputExceeded(TransientStoreError):
    ''' The table's provisioned throughput was exceeded.
    '''


class ServiceUnavailable(TransientStoreError):
    ''' The store answered that it is currently unavailable.
    '''


class TableMissing(StoreError):
    ''' The lock table does not exist (or is not usable).
    '''
