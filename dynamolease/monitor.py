import threading

from .policy import to_millis

#--------------------------------------------------------------------------------
# logging
#--------------------------------------------------------------------------------

import logging
_logger = logging.getLogger(__name__)

#--------------------------------------------------------------------------------
# classes
#--------------------------------------------------------------------------------

class DynamoDBLockSessionMonitor(object):
    ''' Describes when a held lock is considered to be in the "danger
    zone": the final stretch of its lease, of length `safe_time`,
    during which the lease will run out unless a heartbeat lands.
    When a callback is supplied, it is run once when a lock enters
    the danger zone::

        from datetime import timedelta
        from dynamolease import DynamoDBLockSessionMonitor

        def on_danger(lock):
            print("lock %s is about to expire" % lock.name)

        monitor = DynamoDBLockSessionMonitor(timedelta(seconds=10), on_danger)
        lock = client.acquire_lock("my.lock.name", session_monitor=monitor)
    '''

    def __init__(self, safe_time, callback=None):
        ''' Initialize a new instance of the DynamoDBLockSessionMonitor

        :param safe_time: The length of the danger zone (timedelta or milliseconds)
        :param callback: The function to call with the lock on entering it
        '''
        self.safe_time = to_millis(safe_time)
        self.callback  = callback

    def has_callback(self):
        return self.callback is not None

    def millis_until_danger_zone(self, timestamp, duration, now):
        ''' The time left before a lease enters the danger zone.

        :param timestamp: The local time the lease was last renewed
        :param duration: The lease duration in milliseconds
        :param now: The current local time in milliseconds
        :returns: The milliseconds left, zero or negative once inside
        '''
        return (timestamp + duration - self.safe_time) - now

    def is_entering_danger_zone(self, timestamp, duration, now):
        return self.millis_until_danger_zone(timestamp, duration, now) <= 0

    def run_callback(self, lock, executor=None):
        ''' Run the callback away from the calling thread so that it
        can never hold up heartbeats or the caller.

        :param lock: The lock that entered the danger zone
        :param executor: The executor to submit to (default a new thread)
        '''
        if not self.callback:
            return None
        if executor is not None:
            return executor.submit(self._invoke, lock)
        thread = threading.Thread(target=self._invoke, args=(lock,), daemon=True)
        thread.start()
        return thread

    def _invoke(self, lock):
        try:
            self.callback(lock)
        except Exception:
            _logger.exception("session monitor callback failed for %s", lock.unique_identifier)

    def __repr__(self):
        return "DynamoDBLockSessionMonitor(safe_time=%d, callback=%r)" % (self.safe_time, self.callback)


class DynamoDBLockWatcher(threading.Thread):
    ''' The thread that waits for a single monitored lock to enter the
    danger zone. The threshold is recomputed from the lock's current
    renewal time every time the watcher wakes up, so heartbeats keep
    pushing it out. The callback fires at most once, and never after
    the watcher has been stopped.

    .. code-block:: python

        # Note, this is actually all internal to the client,
        # do not do this.
        watcher = DynamoDBLockWatcher(lock=lock, watchers=client.watchers)
        watcher.start()
        watcher.stop(timeout=10) # seconds
    '''

    def __init__(self, **kwargs):
        ''' Initializes a new instance of the DynamoDBLockWatcher class

        :param lock: The monitored lock to watch
        :param watchers: The registry this watcher removes itself from
        :param executor: The executor to run the callback with
        :param clock: The millisecond clock to measure with
        :param daemon: True to daemonize the thread, False otherwise (default True)
        '''
        lock = kwargs.get('lock')
        super(DynamoDBLockWatcher, self).__init__(name="dynamolease-watcher-%s" % lock.unique_identifier)

        self.daemon   = kwargs.get('daemon', True)
        self.lock     = lock
        self.watchers = kwargs.get('watchers')
        self.executor = kwargs.get('executor', None)
        self.clock    = kwargs.get('clock', lock.clock)
        self.fired    = False
        self._guard   = threading.Lock()
        self._is_stopped = threading.Event()

    def stop(self, timeout=None):
        ''' Cancel the watcher and join on its completion for the
        specified timeout. Once this returns, the callback will not be
        fired by this watcher.

        :param timeout: The amount of time to wait for the shutdown
        '''
        with self._guard:
            self._is_stopped.set()
        if self.is_alive() and threading.current_thread() is not self:
            self.join(timeout)

    def run(self):
        ''' Sleep until the lock reaches the danger zone, then remove
        this watcher from the registry and fire the callback.
        '''
        monitor = self.lock.session_monitor
        while not self._is_stopped.is_set():
            remaining = monitor.millis_until_danger_zone(self.lock.timestamp, self.lock.duration, self.clock())
            if remaining > 0:
                self._is_stopped.wait(remaining / 1000.0)
                continue

            with self._guard:
                if self._is_stopped.is_set():
                    return
                self.watchers.discard(self.lock.key, self)
                self.fired = True
                _logger.info("lock %s entered the danger zone", self.lock.unique_identifier)
                monitor.run_callback(self.lock, self.executor)
            return
