'''
The DynamoDBLock represents a single instance of a lock along with the
relevant information needed track its state. A lock returned from a
successful acquire is owned by the client that acquired it, which
renews it in place: every heartbeat rotates the record version number
and moves the renewal timestamp forward. Once released or stolen the
instance is inert and can only be used to look at.
'''
import threading

from .errors import DynamoDBLockError, LockNotGranted, SessionMonitorNotSet
from .policy import to_millis, monotonic_millis

#--------------------------------------------------------------------------------
# classes
#--------------------------------------------------------------------------------

class DynamoDBLock(object):

    def __init__(self, **kwargs):
        ''' Initialize a new instance of the DynamoDBLock class

        :param name: The partition key of the lock
        :param range_key: The sort key of the lock ('' when unused)
        :param owner: The owner that is holding the lock
        :param payload: The bytes stored along with the lock
        :param duration: The lease duration in milliseconds
        :param version: The record version number last written or read
        :param timestamp: The local time the lock was last renewed or read
        :param is_released: True if the record is marked as released
        :param delete_on_release: True to delete the record on release
        :param session_monitor: The session monitor attached to the lock
        :param attributes: Additional record attributes passed through
        :param client: The client the lock was retrieved with
        :param clock: The millisecond clock to measure the lease with
        '''
        self.name              = kwargs.get('name')
        self.range_key         = kwargs.get('range_key', None) or ''
        self.owner             = kwargs.get('owner')
        self.payload           = kwargs.get('payload', None)
        self.duration          = kwargs.get('duration')
        self.version           = kwargs.get('version', None)
        self.timestamp         = kwargs.get('timestamp')
        self.is_released       = kwargs.get('is_released', False)
        self.delete_on_release = kwargs.get('delete_on_release', True)
        self.session_monitor   = kwargs.get('session_monitor', None)
        self.attributes        = dict(kwargs.get('attributes', None) or {})
        self.client            = kwargs.get('client', None)
        self.clock             = kwargs.get('clock', None) or monotonic_millis
        self._guard            = threading.Lock()

        if not self.name:  raise ValueError("cannot create a lock without a name")
        if not self.owner: raise ValueError("cannot create a lock without an owner")

    @property
    def unique_identifier(self):
        return "%s%s" % (self.name, self.range_key)

    @property
    def key(self):
        ''' The identity of the lock within a client, kept as a pair so
        that different name and sort key splits never collide.
        '''
        return (self.name, self.range_key)

    # ------------------------------------------------------------
    # lease methods
    # ------------------------------------------------------------

    def is_expired(self):
        ''' A lock is expired once its lease duration has passed
        since it was last renewed. Released locks are always expired.

        :returns: True if the lock is expired, False otherwise
        '''
        if self.is_released:
            return True
        with self._guard:
            return self.clock() - self.timestamp >= self.duration

    def update_version(self, version, timestamp, duration=None):
        ''' Record a successful write of the lock.

        :param version: The new record version number
        :param timestamp: The local time the write was started
        :param duration: The lease duration that was written
        '''
        with self._guard:
            self.version   = version
            self.timestamp = timestamp
            if duration is not None: self.duration = duration

    def update_timestamp(self, timestamp):
        with self._guard:
            self.timestamp = timestamp

    # ------------------------------------------------------------
    # session monitor methods
    # ------------------------------------------------------------

    def has_session_monitor(self):
        return self.session_monitor is not None

    def millis_until_danger_zone(self):
        ''' The time left before this lock enters the danger zone of
        its session monitor.

        :returns: The milliseconds left, zero or negative once inside
        '''
        if not self.session_monitor:
            raise SessionMonitorNotSet("no session monitor is set for lock %s" % self.unique_identifier)
        if self.is_released:
            raise DynamoDBLockError("lock %s is already released" % self.unique_identifier)
        with self._guard:
            timestamp, duration = self.timestamp, self.duration
        return self.session_monitor.millis_until_danger_zone(timestamp, duration, self.clock())

    def about_to_expire(self):
        return self.millis_until_danger_zone() <= 0

    # ------------------------------------------------------------
    # client methods
    # ------------------------------------------------------------

    def send_heartbeat(self, **params):
        ''' Renew the lease of this lock through its client. '''
        return self._require_client().send_heartbeat(self, **params)

    def ensure(self, lease_duration):
        ''' Make sure that at least the supplied lease duration is
        left on this lock, sending a heartbeat if it is not.

        :param lease_duration: The lease to ensure (timedelta or milliseconds)
        '''
        if self.is_released:
            raise LockNotGranted("lock %s is released" % self.unique_identifier)

        lease_duration = to_millis(lease_duration)
        with self._guard:
            remaining = self.duration - (self.clock() - self.timestamp)
        if remaining <= lease_duration:
            self._require_client().send_heartbeat(self, lease_duration=lease_duration)

    def close(self):
        ''' Release this lock through its client. '''
        return self._require_client().release_lock(self)

    release = close

    def _require_client(self):
        if self.client is None:
            raise DynamoDBLockError("lock %s is not attached to a client" % self.unique_identifier)
        return self.client

    # ------------------------------------------------------------
    # magic methods
    # ------------------------------------------------------------

    def __eq__(self, other):
        if not isinstance(other, DynamoDBLock):
            return NotImplemented
        return ((self.name, self.range_key, self.owner)
            == (other.name, other.range_key, other.owner))

    def __ne__(self, other):
        result = self.__eq__(other)
        return result if result is NotImplemented else not result

    def __hash__(self):
        return hash((self.name, self.range_key, self.owner))

    def __str__(self):
        return ("DynamoDBLock(name=%s, range_key=%s, owner=%s, version=%s, duration=%s, "
                "timestamp=%s, is_released=%s, delete_on_release=%s)" % (
            self.name, self.range_key, self.owner, self.version, self.duration,
            self.timestamp, self.is_released, self.delete_on_release))

    __repr__ = __str__
