import time
import uuid
import socket
import json
from datetime import timedelta

from .errors import ConfigurationError, SessionMonitorRangeError

#--------------------------------------------------------------------------------
# logging
#--------------------------------------------------------------------------------

import logging
_logger = logging.getLogger(__name__)

#--------------------------------------------------------------------------------
# helpers
#--------------------------------------------------------------------------------

def to_millis(duration):
    ''' Convert a timedelta (or an already converted number of
    milliseconds) to an integer number of milliseconds.

    :param duration: The timedelta or milliseconds to convert
    :returns: The duration in milliseconds
    '''
    if isinstance(duration, timedelta):
        return int(duration.total_seconds() * 1000)
    return int(duration)


def monotonic_millis():
    ''' The local monotonic clock in milliseconds. It is only
    meaningful for measuring elapsed time within this process.
    '''
    return int(time.monotonic() * 1000)

#--------------------------------------------------------------------------------
# classes
#--------------------------------------------------------------------------------

class DynamoDBLockPolicy(object):
    '''
    Along with the timing policy, this class also includes the policy
    for getting a new version, new timestamp, new owner identifer,
    and checking if a lock name is valid. All of these can be
    overridden to customize the use case for the system::

        import os
        import uuid
        from dynamolease import DynamoDBLockPolicy

        class MyPolicy(DynamoDBLockPolicy):

            def is_name_valid(self, name):
                return name.startswith("application.")

            def get_new_owner(self):
                return "%s:%d" % (os.getenv('HOST'), os.getpid())

            def get_new_version(self):
                return uuid.uuid1().hex
    '''

    def __init__(self, **kwargs):
        ''' Initailize a new instance of the DynamoDBLockPolicy class

        :param lease_duration: How long a lock is granted for without a heartbeat
        :param heartbeat_period: The time between heartbeat rounds of the worker
        :param acquire_buffer: The base amount of time to wait trying to get a lock
        :param refresh_period: The time to wait between retries to the server
        :param delete_lock: True to delete locks on release, false otherwise
        :param hold_lock_on_service_unavailable: Keep a lock when the store is unavailable
        :param create_heartbeat_worker: True to heartbeat locks in a background thread
        :param acquire_released_locks_consistently: Require the version of a released
            lock to be unchanged when taking it over
        '''
        lease_duration   = kwargs.get('lease_duration', timedelta(seconds=20))
        heartbeat_period = kwargs.get('heartbeat_period', timedelta(seconds=5))
        acquire_buffer   = kwargs.get('acquire_buffer', timedelta(seconds=1))
        refresh_period   = kwargs.get('refresh_period', timedelta(seconds=1))
        self.delete_lock = kwargs.get('delete_lock', True)
        self.hold_lock_on_service_unavailable = kwargs.get('hold_lock_on_service_unavailable', False)
        self.create_heartbeat_worker = kwargs.get('create_heartbeat_worker', True)
        self.acquire_released_locks_consistently = kwargs.get('acquire_released_locks_consistently', False)

        self.lease_duration   = to_millis(lease_duration)
        self.heartbeat_period = to_millis(heartbeat_period)
        self.acquire_buffer   = to_millis(acquire_buffer)
        self.refresh_period   = to_millis(refresh_period)

    def validate(self):
        ''' Check that the timing values make sense together. The
        heartbeat must run at least twice per lease, otherwise a slow
        round of heartbeats could let locks expire under us.

        :raises ConfigurationError: If the combination is invalid
        '''
        if self.lease_duration <= 0:
            raise ConfigurationError("lease duration must be positive")
        if self.heartbeat_period <= 0:
            raise ConfigurationError("heartbeat period must be positive")
        if self.create_heartbeat_worker and self.lease_duration < 2 * self.heartbeat_period:
            raise ConfigurationError(
                "heartbeat period (%d ms) must be no more than half the lease duration (%d ms)"
                % (self.heartbeat_period, self.lease_duration))

    def validate_session_monitor(self, monitor):
        ''' Check that a session monitor can be attached to a lock
        governed by this policy.

        :param monitor: The session monitor to validate
        :raises SessionMonitorRangeError: If the safe time is out of range
        '''
        if monitor.safe_time <= self.heartbeat_period:
            raise SessionMonitorRangeError(
                "safe time without heartbeat (%d ms) must be greater than the heartbeat period (%d ms)"
                % (monitor.safe_time, self.heartbeat_period))
        if monitor.safe_time >= self.lease_duration:
            raise SessionMonitorRangeError(
                "safe time without heartbeat (%d ms) must be less than the lease duration (%d ms)"
                % (monitor.safe_time, self.lease_duration))

    def is_name_valid(self, name):
        ''' Helper method to check if the supplied name is valid
        to use as a key or not.

        :param name: The name to check for validity
        :returns: True if a valid name, False otherwise
        '''
        return bool(name)

    def get_new_owner(self):
        ''' Helper method to retrieve a new owner name that is
        not only unique to the server, but unique to the application
        on this server.

        :returns: A new owner name to operate with
        '''
        return "%s.%s" % (socket.gethostname(), uuid.uuid4())

    def get_new_version(self):
        ''' Helper method to retrieve a new record version number
        for a lock. The value is opaque and only ever compared for
        equality.

        :returns: A new version number
        '''
        return str(uuid.uuid4())

    def get_new_timestamp(self):
        ''' Helper method to retrieve the current local monotonic
        time in milliseconds.

        :returns: The current time in milliseconds
        '''
        return monotonic_millis()

    # ------------------------------------------------------------
    # magic methods
    # ------------------------------------------------------------

    def __str__(self):
        return json.dumps(self.__dict__)

    __repr__ = __str__
