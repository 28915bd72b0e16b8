from concurrent.futures import ThreadPoolExecutor
from threading import Event, RLock

from .errors import ConfigurationError, LockNotGranted, LockCurrentlyUnavailable
from .errors import OwnershipLost, StoreError, ConditionFailed, TransientStoreError
from .errors import ServiceUnavailable, TableMissing
from .expression import DynamoDBLockCondition, DynamoDBLockUpdate
from .iterator import DynamoDBLockIterator
from .lock     import DynamoDBLock
from .monitor  import DynamoDBLockWatcher
from .policy   import DynamoDBLockPolicy, to_millis
from .registry import DynamoDBLockRegistry
from .result   import DynamoDBLockResult
from .schema   import DynamoDBLockSchema
from .store    import DynamoDBLockStore
from .worker   import DynamoDBLockWorker

#--------------------------------------------------------------------------------
# logging
#--------------------------------------------------------------------------------

import logging
_logger = logging.getLogger(__name__)

#--------------------------------------------------------------------------------
# helpers
#--------------------------------------------------------------------------------

def _caused_by(error, cause):
    error.__cause__ = cause
    return error

#--------------------------------------------------------------------------------
# classes
#--------------------------------------------------------------------------------

class DynamoDBLockClient(object):
    ''' Provides leased locks on top of the conditional writes of a
    DynamoDB table. Locks held by the client are renewed by a
    background heartbeat worker until they are released::

        from datetime import timedelta
        from dynamolease import DynamoDBLockClient, DynamoDBLockPolicy

        policy = DynamoDBLockPolicy(lease_duration=timedelta(seconds=20))
        with DynamoDBLockClient(policy=policy) as client:
            lock = client.acquire_lock("my.lock.name", payload=b"state")
            try:
                pass # perform locked activity here
            finally:
                client.release_lock(lock)
    '''

    def __init__(self, **kwargs):
        ''' Initialize a new instance of the DynamoDBLockClient class

        :param policy: The timing policy for taking and timing out locks
        :param schema: The schema of the database table to work with
        :param store: The conditional write store to keep the locks in
        :param owner: The owner of the locks created by this client
        :param worker: The underlying heartbeat worker to work with
        :param callback_executor: The executor running session monitor callbacks
        :param startup: False to not start the heartbeat worker yet (default True)
        '''
        self.policy = kwargs.get('policy', None) or DynamoDBLockPolicy()
        self.policy.validate()

        store       = kwargs.get('store', None)
        self.schema = kwargs.get('schema', None) or getattr(store, 'schema', None) or DynamoDBLockSchema()
        self.store  = store or DynamoDBLockStore(schema=self.schema)
        self.owner  = kwargs.get('owner', None) or self.policy.get_new_owner()

        self.locks    = DynamoDBLockRegistry()
        self.watchers = DynamoDBLockRegistry()
        self._sync    = RLock()
        self._is_shutdown = Event()

        self.callback_executor = kwargs.get('callback_executor', None)
        self._owns_executor    = self.callback_executor is None
        if self._owns_executor:
            self.callback_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix='dynamolease-callback')

        self.worker = kwargs.get('worker', None)
        if self.worker is None and self.policy.create_heartbeat_worker:
            self.worker = DynamoDBLockWorker(client=self)

        if kwargs.get('startup', True):
            self.startup()

    # ------------------------------------------------------------
    # worker methods
    # ------------------------------------------------------------

    def startup(self):
        ''' Start the heartbeat thread and perform any lock
        initialization.
        '''
        if self.worker is not None and self.worker.ident is None:
            self.worker.start()

    def shutdown(self):
        ''' Close all of the existing lock handles that we have
        outstanding leases to, and then stop the heartbeat thread.
        The locks are released first so that none of them is left
        to expire on its own.
        '''
        if self._is_shutdown.is_set():
            return
        self._is_shutdown.set()

        if not self.release_all_locks(best_effort=True):
            _logger.warning("some locks were taken over by others before they were released")

        if self.worker is not None:
            self.worker.stop(timeout=self.policy.heartbeat_period / 1000.0 * 2)
        for watcher in self.watchers.drain().values():
            watcher.stop()
        if self._owns_executor:
            self.callback_executor.shutdown(wait=False)
        _logger.info("lock client for owner %s shut down", self.owner)

    def __enter__(self):
        return self

    def __exit__(self, ex_type, value, traceback):
        self.shutdown()

    # ------------------------------------------------------------
    # table methods
    # ------------------------------------------------------------

    def lock_table_exists(self):
        ''' Check whether the lock table exists and is usable.

        :returns: True if the table exists, False otherwise
        '''
        return self.store.exists()

    def assert_lock_table_exists(self):
        ''' Make sure that the lock table exists. This is suitable as
        a check during application initialization.

        :raises TableMissing: If the table does not exist
        '''
        try:
            exists = self.store.exists()
        except StoreError as ex:
            raise TableMissing("lock table %s does not exist" % self.schema.table_name) from ex
        if not exists:
            raise TableMissing("lock table %s does not exist" % self.schema.table_name)

    def create_lock_table(self):
        ''' Create the lock table with the configured schema. This takes
        a while to provision, so it should be done in advance.

        :returns: The description of the new table
        '''
        return self.store.create()

    # ------------------------------------------------------------
    # lock retrieval methods
    # ------------------------------------------------------------

    def get_lock(self, name, range_key=None, delete_on_release=None):
        ''' Retrieve the lock by the supplied name strictly to view
        its data, but not to perform any updates.

        If this client is holding the lock, the held lock is returned
        and can be released as usual. Otherwise the record version
        number is cleared so that heartbeating or releasing the lock
        fails instead of clobbering a lock this client does not hold.

        :param name: The lock name to retrieve
        :param range_key: The sort key of the lock
        :returns: The lock at the supplied name or None
        '''
        range_key    = self._check_range_key(range_key)
        current_lock = self.locks.get(self._identifier(name, range_key))
        if current_lock is not None:
            return current_lock

        current_lock = self.get_lock_from_store(name, range_key, delete_on_release)
        if current_lock is not None:
            current_lock.version = None
        return current_lock

    def get_lock_from_store(self, name, range_key=None, delete_on_release=None):
        ''' Read the lock record from the store as is. The lock is
        returned even if it is released, do not use this to acquire
        locks.

        :param name: The lock name to retrieve
        :param range_key: The sort key of the lock
        :returns: The lock record, or None if there is none
        '''
        range_key = self._check_range_key(range_key)
        result = self._retrieve_entry(name, range_key, delete_on_release)
        if not result.is_ok:
            raise result.error
        return result.lock

    def does_lock_exist(self, name, range_key=None):
        ''' Check if a lock with the given name exists on the
        backend database and is not released.

        :param name: The name of the lock to check for existance
        :returns: True if the lock exists, False otherwise
        '''
        lock = self.get_lock(name, range_key)
        return bool(lock) and not lock.is_released

    def get_all_locks(self, delete_on_release=None, consistent=False):
        ''' Lazily list every lock record in the table, including
        released ones and ones held by other clients.

        :param delete_on_release: The release policy of the returned locks
        :param consistent: True to perform strongly consistent scans
        :returns: An iterator over the locks
        '''
        def factory(record):
            return self._create_lock(record, delete_on_release)
        return DynamoDBLockIterator(store=self.store, factory=factory, consistent=consistent)

    # ------------------------------------------------------------
    # locking manipulation methods
    # ------------------------------------------------------------

    def acquire_lock(self, name, range_key=None, **params):
        ''' Attempt to acquire the lock, polling the store every refresh
        period until it is granted or the wait budget runs out.

        If the lock is held by someone else, we watch it and wait for at
        least its full lease duration without seeing its version change
        before we take it over as abandoned. That lease duration is added
        to the wait budget the first time we see the lock held.

        :param name: The name of the lock to acquire
        :param range_key: The sort key of the lock
        :param payload: The bytes to store with the lock
        :param replace_payload: False to keep the payload already stored (default True)
        :param delete_on_release: True to delete the record on release
        :param acquire_only_if_exists: Only acquire a lock whose record already exists
        :param skip_blocking_wait: Fail at once if someone else holds the lock
        :param additional_wait: How long to wait on top of the acquire buffer
        :param refresh_period: How long to wait between reads of the lock
        :param session_monitor: The session monitor to attach to the lock
        :param update_existing_record: Update the record in place instead of replacing it
        :param acquire_released_consistently: Require a released lock to be unchanged
        :param attributes: Additional attributes to store with the lock
        :returns: The acquired lock
        :raises LockNotGranted: If the lock could not be acquired in time
        '''
        if not self.policy.is_name_valid(name):
            raise ConfigurationError("invalid lock name: %r" % (name,))
        range_key = self._check_range_key(range_key)

        payload           = params.get('payload', None)
        replace_payload   = params.get('replace_payload', True)
        delete_on_release = params.get('delete_on_release', self.policy.delete_lock)
        only_if_exists    = params.get('acquire_only_if_exists', False)
        skip_blocking     = params.get('skip_blocking_wait', False)
        update_existing   = params.get('update_existing_record', False)
        consistent        = params.get('acquire_released_consistently', self.policy.acquire_released_locks_consistently)
        session_monitor   = params.get('session_monitor', None)
        attributes        = dict(params.get('attributes', None) or {})

        self.schema.validate_attributes(attributes)
        if session_monitor is not None:
            self.policy.validate_session_monitor(session_monitor)

        initial_time  = self.policy.get_new_timestamp()    # the time we started trying to acquire
        lock_timeout  = self.policy.acquire_buffer + to_millis(params.get('additional_wait', 0))
        refresh_time  = to_millis(params.get('refresh_period', self.policy.refresh_period))
        watching_lock = None                               # the lock we are waiting on to expire
        waited_lease  = False                              # if its lease was added to our timeout

        while True:
            if self._is_shutdown.is_set():
                raise LockNotGranted("lock client for owner %s is shut down" % self.owner)

            _logger.debug("checking the store for lock %s%s", name, range_key)
            result = self._retrieve_entry(name, range_key, delete_on_release)

            if result.is_ok:
                current_lock = result.lock

                if replace_payload or current_lock is None:
                    new_payload = payload
                else:
                    new_payload = current_lock.payload
                if new_payload is None:
                    new_payload = payload

                new_lock = DynamoDBLock(
                    client=self,
                    clock=self.policy.get_new_timestamp,
                    name=name,
                    range_key=range_key,
                    owner=self.owner,
                    payload=new_payload,
                    duration=self.policy.lease_duration,
                    version=self.policy.get_new_version(),
                    timestamp=initial_time,
                    delete_on_release=delete_on_release,
                    session_monitor=session_monitor,
                    attributes=attributes)

                # ------------------------------------------------------------
                # Case 1:
                # ------------------------------------------------------------
                # The caller only wants locks that already exist, and there
                # is none yet. Someone may still create it, so we retry.
                # ------------------------------------------------------------
                if only_if_exists and current_lock is None:
                    result = DynamoDBLockResult.retry(LockNotGranted("lock %s does not exist" % new_lock.unique_identifier))

                # ------------------------------------------------------------
                # Case 2:
                # ------------------------------------------------------------
                # Someone else is holding the lock and the caller does not
                # want to wait for it, so we give up right away.
                # ------------------------------------------------------------
                elif skip_blocking and current_lock is not None and not current_lock.is_expired():
                    result = DynamoDBLockResult.fatal(LockCurrentlyUnavailable(
                        "lock %s is being held by %s" % (current_lock.unique_identifier, current_lock.owner)))

                # ------------------------------------------------------------
                # Case 3:
                # ------------------------------------------------------------
                # There is no existing lock in the database, so we can simply
                # grab the lock if no one beats us to creating it.
                # ------------------------------------------------------------
                elif current_lock is None:
                    result = self._create_entry(new_lock, update_existing)

                # ------------------------------------------------------------
                # Case 4:
                # ------------------------------------------------------------
                # There is an existing lock in the database, however, it has
                # already been released and exists because a previous user
                # chose not to delete it. We can simply take it over.
                # ------------------------------------------------------------
                elif current_lock.is_released:
                    result = self._takeover_entry(current_lock, new_lock, update_existing,
                        released=True, consistent=consistent)

                # ------------------------------------------------------------
                # Case 5:
                # ------------------------------------------------------------
                # If we are currently not watching a lock, but someone has
                # the lock that we want, we start watching it and extend our
                # timeout by its lease, but only ever once.
                # ------------------------------------------------------------
                elif watching_lock is None:
                    watching_lock = current_lock
                    if not waited_lease:
                        waited_lease = True
                        lock_timeout += current_lock.duration
                    result = DynamoDBLockResult.retry(LockNotGranted(
                        "lock %s is being held by %s" % (current_lock.unique_identifier, current_lock.owner)))

                # ------------------------------------------------------------
                # Case 6:
                # ------------------------------------------------------------
                # If the lock we are watching has not changed since we first
                # saw it and its lease has run out locally, the owner has
                # stopped heartbeating and we can take control of the lock.
                # ------------------------------------------------------------
                elif watching_lock.version == current_lock.version:
                    if watching_lock.is_expired():
                        _logger.info("taking over expired lock %s from %s", current_lock.unique_identifier, current_lock.owner)
                        result = self._takeover_entry(current_lock, new_lock, update_existing)
                    else:
                        result = DynamoDBLockResult.retry(LockNotGranted(
                            "lock %s has not expired yet" % current_lock.unique_identifier))

                # ------------------------------------------------------------
                # Case 7:
                # ------------------------------------------------------------
                # The owner renewed the lock in the interim, so we are forced
                # to watch the new version. We do not extend our timeout again
                # as we might otherwise wait forever.
                # ------------------------------------------------------------
                else:
                    watching_lock = current_lock
                    result = DynamoDBLockResult.retry(LockNotGranted(
                        "lock %s was renewed by %s" % (current_lock.unique_identifier, current_lock.owner)))

            # ------------------------------------------------------------
            # Cleanup:
            # ------------------------------------------------------------
            # If we were able to get the lock, we start tracking it. If
            # we are not allowed to retry, we fail. Otherwise we sleep
            # until the next refresh period, unless we already waited for
            # longer than we were allowed to.
            # ------------------------------------------------------------
            if result.is_ok:
                return self._register(result.lock)
            if result.is_fatal:
                if isinstance(result.error, StoreError) and not isinstance(result.error, TableMissing):
                    raise _caused_by(LockNotGranted("didn't acquire lock %s%s because of a store failure"
                        % (name, range_key)), result.error)
                raise result.error

            waited_time = self.policy.get_new_timestamp() - initial_time
            if waited_time > lock_timeout:
                _logger.debug("waited %d ms for lock %s, more than the %d ms allowed", waited_time, name, lock_timeout)
                raise _caused_by(LockNotGranted("didn't acquire lock %s after waiting %d ms"
                    % (name + range_key, waited_time)), result.error)

            _logger.debug("waiting %d ms to acquire lock %s, total wait %d ms", refresh_time, name, waited_time)
            if self._is_shutdown.wait(refresh_time / 1000.0):
                raise LockNotGranted("lock client for owner %s is shut down" % self.owner)

    def try_acquire_lock(self, name, range_key=None, **params):
        ''' Attempt to acquire the lock, returning None instead of
        raising when it is not granted.

        All the supplied params that are applicable are passed on
        to the underlying operation.

        :param name: The name of the lock to acquire
        :returns: The lock on success, None on failure
        '''
        try:
            return self.acquire_lock(name, range_key, **params)
        except LockNotGranted as ex:
            _logger.debug("lock %s was not granted: %s", name, ex)
            return None

    def send_heartbeat(self, lock, **params):
        ''' Renew the lease of a lock this client is holding. With the
        heartbeat worker running this is done periodically for every
        held lock, otherwise the caller has to do it.

        :param lock: The lock to renew
        :param payload: New bytes to store with the lock
        :param delete_payload: True to remove the stored bytes
        :param lease_duration: The lease to grant from now (default the policy lease)
        :returns: The renewed lock
        :raises OwnershipLost: If someone else now owns the lock
        '''
        result = self._renew_lock(lock, **params)
        if not result.is_ok:
            raise result.error
        return result.lock

    def release_lock(self, lock, delete=None, best_effort=False, payload=None):
        ''' Release the supplied lock if this client still holds it.

        If the delete flag is not set, it will default to the release
        policy the lock was acquired with.

        :param lock: The lock to attempt to release
        :param delete: True to also delete locks, False to mark them released
        :param best_effort: True to ignore store errors once we stopped tracking the lock
        :param payload: The final bytes to store with a lock marked as released
        :returns: True if the lock was released, False otherwise
        '''
        if lock.owner != self.owner or lock.version is None:
            _logger.debug("failed releasing lock not held by this client:\n%s", str(lock))
            return False

        delete = delete if (delete is not None) else lock.delete_on_release
        name   = lock.unique_identifier
        key    = lock.key

        with self._sync:
            # ------------------------------------------------------------
            # We always stop heartbeating the lock, whatever happens to
            # the write below, since the caller wants to let it go.
            # ------------------------------------------------------------
            current_lock = self.locks.get(key)
            if current_lock is lock or (current_lock is not None and current_lock.version == lock.version):
                self.locks.pop(key)

            condition = self._held_condition(lock)
            try:
                if delete:
                    self.store.delete(self.schema.to_key(lock.name, lock.range_key), condition)
                else:
                    updates = { self.schema.is_released: self.schema.RELEASED_VALUE }
                    if payload is not None: updates[self.schema.payload] = bytes(payload)
                    self.store.update(self.schema.to_key(lock.name, lock.range_key),
                        DynamoDBLockUpdate(set=updates), condition)
                is_released = True
            except ConditionFailed:
                _logger.debug("someone else acquired lock %s before it was released", name)
                is_released = False
            except StoreError:
                if not best_effort:
                    raise
                _logger.warning("ignoring store failure while releasing lock %s", name, exc_info=True)
                is_released = True

            lock.is_released = True
            if is_released and not delete and payload is not None:
                lock.payload = payload
            self._stop_watcher(key)

        if is_released:
            _logger.info("released lock %s", name)
        return is_released

    def release_all_locks(self, delete=None, best_effort=False, **params):
        ''' Release all the currently held locks by this instance of
        the lock client.

        All the supplied params that are applicable are passed on to the
        underlying operation.

        :param delete: True to also delete locks, False to mark them released
        :param best_effort: True to ignore store errors
        :returns: True if all locks were released, False otherwise
        '''
        with self._sync:
            locks    = self.locks.values()
            released = [self.release_lock(lock, delete, best_effort, **params) for lock in locks]
        return all(released) # so we don't short circuit any evaluation

    # ------------------------------------------------------------
    # private lock methods
    # ------------------------------------------------------------

    def _identifier(self, name, range_key=None):
        return (name, range_key or '')

    def _check_range_key(self, range_key):
        ''' Make sure a sort key is supplied exactly when the table has one.
        '''
        if range_key and not self.schema.range_key:
            raise ConfigurationError("cannot use a sort key on a table without one")
        if self.schema.range_key and not range_key:
            raise ConfigurationError("a sort key is required on this table")
        return range_key or ''

    def _register(self, lock):
        ''' Start tracking (and heartbeating) a lock we just acquired,
        along with the watcher of its session monitor.
        '''
        self.locks.put(lock.key, lock)
        self._start_watcher(lock, replace=True)
        _logger.info("acquired lock %s", lock.unique_identifier)
        return lock

    def _start_watcher(self, lock, replace=False):
        monitor = lock.session_monitor
        if monitor is None or not monitor.has_callback():
            return None

        key = lock.key
        if replace:
            previous = self.watchers.pop(key)
            if previous is not None: previous.stop()

        watcher = DynamoDBLockWatcher(lock=lock, watchers=self.watchers,
            executor=self.callback_executor, clock=self.policy.get_new_timestamp)
        if self.watchers.put_if_absent(key, watcher):
            watcher.start()
            return watcher
        return None

    def _stop_watcher(self, key):
        watcher = self.watchers.pop(key)
        if watcher is not None:
            watcher.stop()

    def _renew_lock(self, lock, payload=None, delete_payload=False, lease_duration=None):
        ''' Touch the lock and update its version to renew the lease
        we are currently holding on the lock (if we can).

        :param lock: The lock to attempt to touch
        :returns: The result of the renewal
        '''
        if delete_payload and payload is not None:
            raise ConfigurationError("a payload cannot be supplied when deleting the payload")
        duration = to_millis(lease_duration) if lease_duration else self.policy.lease_duration
        name     = lock.unique_identifier
        key      = lock.key

        if (lock.version is None or lock.is_released
         or lock.owner != self.owner or lock.is_expired()):
            self.locks.discard(key, lock)
            return DynamoDBLockResult.fatal(OwnershipLost("cannot send heartbeat for lock %s, it is not held" % name))

        with self._sync:
            # the lock could have been released while we were waiting
            if lock.is_released:
                return DynamoDBLockResult.fatal(OwnershipLost("lock %s was released" % name))

            version = self.policy.get_new_version()
            updates = {
                self.schema.duration: str(duration),
                self.schema.version:  version,
            }
            removes = []
            if delete_payload:
                removes.append(self.schema.payload)
            elif payload is not None:
                updates[self.schema.payload] = bytes(payload)

            timestamp = self.policy.get_new_timestamp()
            try:
                self.store.update(self.schema.to_key(lock.name, lock.range_key),
                    DynamoDBLockUpdate(set=updates, remove=removes), self._held_condition(lock))
            except ConditionFailed as ex:
                _logger.debug("someone else acquired lock %s, so we stop heartbeating it", name)
                self.locks.discard(key, lock)
                return DynamoDBLockResult.fatal(_caused_by(
                    OwnershipLost("lock %s was acquired by someone else" % name), ex))
            except ServiceUnavailable as ex:
                if not self.policy.hold_lock_on_service_unavailable:
                    return DynamoDBLockResult.retry(ex)
                # Other clients cannot take the lock over while the store
                # is unavailable either, so we act as if the write landed.
                _logger.info("store unavailable, holding on to lock %s", name)
                lock.update_timestamp(self.policy.get_new_timestamp())
                return DynamoDBLockResult.ok(lock)
            except StoreError as ex:
                return DynamoDBLockResult.retry(ex)

            lock.update_version(version, timestamp, duration)
            if delete_payload:
                lock.payload = None
            elif payload is not None:
                lock.payload = payload

        _logger.debug("success touching lock:\n%s", str(lock))
        if self.locks.get(key) is lock:
            self._start_watcher(lock)
        return DynamoDBLockResult.ok(lock)

    # ------------------------------------------------------------
    # raw store methods
    # ------------------------------------------------------------

    def _key_names(self):
        names = [self.schema.partition_key]
        if self.schema.range_key: names.append(self.schema.range_key)
        return names

    def _held_condition(self, lock):
        ''' The record must still exist and still be ours, at the
        version we last wrote or read.
        '''
        return DynamoDBLockCondition(exists=self._key_names(), equals={
            self.schema.owner:   lock.owner,
            self.schema.version: lock.version,
        })

    def _create_lock(self, record, delete_on_release=None):
        params = self.schema.to_dict(record)
        params.update({
            'client': self,
            'clock': self.policy.get_new_timestamp,
            'timestamp': self.policy.get_new_timestamp(),
            'delete_on_release': self.policy.delete_lock if delete_on_release is None else delete_on_release,
        })
        return DynamoDBLock(**params)

    def _to_record(self, lock):
        record = dict(lock.attributes)
        record.update(self.schema.to_schema({
            'name':      lock.name,
            'range_key': lock.range_key,
            'owner':     lock.owner,
            'duration':  lock.duration,
            'version':   lock.version,
            'payload':   lock.payload,
        }))
        return record

    def _retrieve_entry(self, name, range_key=None, delete_on_release=None):
        ''' Given the name of a lock, attempt to retrieve the lock
        with a consistent read. The lock's timestamp is taken after
        the read succeeds, so we never think it expires early.

        :param name: The name of the lock to retrieve
        :returns: The result holding the lock, or None if there is none
        '''
        try:
            record = self.store.get(self.schema.to_key(name, range_key))
        except TableMissing as ex:
            return DynamoDBLockResult.fatal(ex)
        except TransientStoreError as ex:
            _logger.warning("failed to retrieve lock %s%s: %s", name, range_key or '', ex)
            return DynamoDBLockResult.retry(ex)
        except StoreError as ex:
            return DynamoDBLockResult.fatal(ex)
        if not record:
            return DynamoDBLockResult.ok(None)
        return DynamoDBLockResult.ok(self._create_lock(record, delete_on_release))

    def _write_entry(self, lock, write):
        ''' Perform the conditional write that grants us the lock. We
        start counting the lease before the write, so we err on the
        side of thinking the lock expires sooner than it does.
        '''
        timestamp = self.policy.get_new_timestamp()
        try:
            write()
        except ConditionFailed as ex:
            _logger.debug("someone else acquired lock %s first", lock.unique_identifier)
            return DynamoDBLockResult.retry(ex)
        except TableMissing as ex:
            return DynamoDBLockResult.fatal(ex)
        except TransientStoreError as ex:
            _logger.warning("failed to write lock %s: %s", lock.unique_identifier, ex)
            return DynamoDBLockResult.retry(ex)
        except StoreError as ex:
            return DynamoDBLockResult.fatal(ex)
        lock.update_version(lock.version, timestamp)
        return DynamoDBLockResult.ok(lock)

    def _create_entry(self, lock, update_existing=False):
        ''' Attempt to create the record of a lock nobody holds. We
        have to make sure that no one beat us in creating an entry
        at this specified key, otherwise we should fail.
        '''
        condition = DynamoDBLockCondition(not_exists=self._key_names())
        return self._write_entry(lock, lambda: self._write_record(lock, condition, update_existing))

    def _takeover_entry(self, current_lock, lock, update_existing=False, released=False, consistent=False):
        ''' Attempt to overwrite the record of a released or expired
        lock. An expired lock must still be at the version we watched
        expire. A released lock must still be released, and at the
        version we read if the caller asked for consistency.
        '''
        equals = {}
        if released:
            equals[self.schema.is_released] = self.schema.RELEASED_VALUE
        if consistent or not released:
            equals[self.schema.version] = current_lock.version

        condition = DynamoDBLockCondition(exists=self._key_names(), equals=equals)
        removes   = [self.schema.is_released] if released else []
        return self._write_entry(lock, lambda: self._write_record(lock, condition, update_existing, removes))

    def _write_record(self, lock, condition, update_existing, removes=None):
        record = self._to_record(lock)
        if not update_existing:
            self.store.put(record, condition)
            return

        key = self.schema.to_key(lock.name, lock.range_key)
        for name in key:
            record.pop(name, None)
        self.store.update(key, DynamoDBLockUpdate(set=record, remove=removes), condition)
