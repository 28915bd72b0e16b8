from threading import Thread, Event

#--------------------------------------------------------------------------------
# logging
#--------------------------------------------------------------------------------

import logging
_logger = logging.getLogger(__name__)

#--------------------------------------------------------------------------------
# classes
#--------------------------------------------------------------------------------

class DynamoDBLockWorker(Thread):
    ''' The worker that runs to periodically update lock leases as long
    as the system is alive. This prevents long running processes from
    losing their locks by possibly fast clients.

    .. code-block:: python

        from dynamolease import DynamoDBLockWorker
        from dynamolease import DynamoDBLockClient

        # Note, this is actually all internal to the client,
        # do not do this.
        client = DynamoDBLockClient(policy=DynamoDBLockPolicy(create_heartbeat_worker=False))
        worker = DynamoDBLockWorker(client=client)
        worker.start()
        worker.stop(timeout=10) # seconds
    '''

    def __init__(self, **kwargs):
        ''' Initializes a new instance of the DynamoDBLockWorker class

        :param daemon: True to daemonize the thread, False otherwise (default True)
        :param client: The client to perform management with
        :param policy: The policy to operate the worker with (default the client policy)
        :param locks: The registry of locks to manage (default the client locks)
        :param period: The length of each cycle in seconds (default the heartbeat period)
        '''
        super(DynamoDBLockWorker, self).__init__(name="dynamolease-heartbeat")

        self.daemon = kwargs.get('daemon', True)
        self.client = kwargs.get('client')
        self.policy = kwargs.get('policy', self.client.policy)
        self.locks  = kwargs.get('locks', self.client.locks)
        self.period = kwargs.get('period', self.policy.heartbeat_period / 1000.0)
        self._is_stopped = Event()

    @property
    def is_stopped(self):
        return self._is_stopped.is_set()

    def stop(self, timeout=None):
        ''' Stop the underlying worker thread and join on its
        completion for the specified timeout.

        :param timeout: The amount of time to wait for the shutdown
        '''
        self._is_stopped.set()
        if self.is_alive(): self.join(timeout)

    def run(self):
        ''' The worker thread used to update the lock leases
        for the currently handled locks. A failure for one lock
        never stops the others from being renewed.
        '''
        _logger.info("heartbeat worker started for owner %s", self.client.owner)
        while not self._is_stopped.is_set():
            locks = self.locks.snapshot()
            _logger.debug("starting next round of worker: %d locks", len(locks))
            start = self.policy.get_new_timestamp()
            for name, lock in locks.items():
                if self._is_stopped.is_set(): break
                result = self.client._renew_lock(lock)
                if result.is_ok:
                    continue
                if result.is_retryable:
                    _logger.warning("heartbeat failed for %s, retrying next round: %s", name, result.error)
                else:
                    _logger.info("stopped heartbeating %s: %s", name, result.error)
            elapsed = (self.policy.get_new_timestamp() - start) / 1000.0
            self._is_stopped.wait(max(self.period - elapsed, 0))
        _logger.info("heartbeat worker stopped for owner %s", self.client.owner)
