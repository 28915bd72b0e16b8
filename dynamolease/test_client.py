#!/usr/bin/env python
import threading
import time
import unittest
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import mock

from dynamolease.client import DynamoDBLockClient
from dynamolease.errors import ConfigurationError, SessionMonitorRangeError
from dynamolease.errors import LockNotGranted, LockCurrentlyUnavailable, OwnershipLost
from dynamolease.errors import StoreError, TransientStoreError, ServiceUnavailable, TableMissing
from dynamolease.memory import MemoryLockStore
from dynamolease.monitor import DynamoDBLockSessionMonitor
from dynamolease.policy import DynamoDBLockPolicy, monotonic_millis
from dynamolease.schema import DynamoDBLockSchema


def create_policy(**kwargs):
    params = {
        'create_heartbeat_worker': False,
        'refresh_period': timedelta(milliseconds=20),
    }
    params.update(kwargs)
    return DynamoDBLockPolicy(**params)


class DynamoDBLockClientTest(unittest.TestCase):

    def setUp(self):
        self.store = MemoryLockStore()

    def create_client(self, **kwargs):
        store  = kwargs.pop('store', self.store)
        client = DynamoDBLockClient(store=store, policy=create_policy(**kwargs))
        self.addCleanup(client.shutdown)
        return client

    def record(self, name='foo', range_key=''):
        return self.store.items.get((name, range_key))

    # ------------------------------------------------------------
    # construction
    # ------------------------------------------------------------

    def test_heartbeat_must_be_half_the_lease(self):
        policy = DynamoDBLockPolicy(
            lease_duration=timedelta(milliseconds=5000),
            heartbeat_period=timedelta(milliseconds=5000))
        self.assertRaises(ConfigurationError, DynamoDBLockClient, store=self.store, policy=policy)

    def test_client_uses_store_schema(self):
        schema = DynamoDBLockSchema(table_name='other')
        client = self.create_client(store=MemoryLockStore(schema=schema))
        self.assertIs(client.schema, schema)

    # ------------------------------------------------------------
    # acquisition
    # ------------------------------------------------------------

    def test_acquire_new_lock(self):
        client = self.create_client()
        lock   = client.acquire_lock('foo')

        self.assertEqual(lock.owner, client.owner)
        self.assertEqual(len(client.locks), 1)
        self.assertIs(client.locks.get(('foo', '')), lock)
        self.assertEqual(self.record()['ownerName'], client.owner)
        self.assertEqual(self.record()['recordVersionNumber'], lock.version)
        self.assertEqual(self.record()['leaseDuration'], '20000')
        self.assertTrue(client.does_lock_exist('foo'))

    def test_acquire_invalid_name(self):
        client = self.create_client()
        self.assertRaises(ConfigurationError, client.acquire_lock, '')

    def test_acquire_range_key_without_sort_key(self):
        client = self.create_client()
        self.assertRaises(ConfigurationError, client.acquire_lock, 'foo', 'bar')

    def test_acquire_with_range_keys(self):
        store  = MemoryLockStore(schema=DynamoDBLockSchema(range_key='sortKey'))
        client = self.create_client(store=store)
        first  = client.acquire_lock('foo', 'a')
        second = client.acquire_lock('foo', 'b')

        self.assertNotEqual(first.unique_identifier, second.unique_identifier)
        self.assertEqual(len(client.locks), 2)
        self.assertEqual(store.items[('foo', 'b')]['sortKey'], 'b')

    def test_sort_key_required_on_range_table(self):
        store  = MemoryLockStore(schema=DynamoDBLockSchema(range_key='sortKey'))
        client = self.create_client(store=store)

        self.assertRaises(ConfigurationError, client.acquire_lock, 'foo')
        self.assertRaises(ConfigurationError, client.get_lock, 'foo')
        self.assertRaises(ConfigurationError, client.get_lock_from_store, 'foo')
        self.assertRaises(ConfigurationError, client.does_lock_exist, 'foo')
        self.assertEqual(store.items, {})

    def test_registry_keeps_name_and_range_key_apart(self):
        store  = MemoryLockStore(schema=DynamoDBLockSchema(range_key='sortKey'))
        client = self.create_client(store=store)
        first  = client.acquire_lock('foo', 'bar')
        second = client.acquire_lock('foob', 'ar')

        self.assertEqual(first.unique_identifier, second.unique_identifier)
        self.assertEqual(len(client.locks), 2)
        self.assertIs(client.get_lock('foo', 'bar'), first)
        self.assertIs(client.get_lock('foob', 'ar'), second)

        self.assertTrue(client.release_lock(first))
        self.assertNotIn(('foo', 'bar'), client.locks)
        self.assertIs(client.locks.get(('foob', 'ar')), second)

    def test_skip_blocking_wait(self):
        holder = self.create_client()
        waiter = self.create_client()
        holder.acquire_lock('foo')

        start = monotonic_millis()
        self.assertRaises(LockCurrentlyUnavailable, waiter.acquire_lock, 'foo',
            skip_blocking_wait=True, additional_wait=timedelta(seconds=60))
        self.assertLess(monotonic_millis() - start, 1000)

    def test_acquire_only_if_exists(self):
        client = self.create_client(acquire_buffer=timedelta(milliseconds=50))
        self.assertRaises(LockNotGranted, client.acquire_lock, 'foo', acquire_only_if_exists=True)
        self.assertIsNone(client.try_acquire_lock('foo', acquire_only_if_exists=True))
        self.assertIsNone(self.record())

    def test_expired_lock_takeover(self):
        holder = self.create_client(
            lease_duration=timedelta(milliseconds=200),
            heartbeat_period=timedelta(milliseconds=50))
        waiter = self.create_client()
        held   = holder.acquire_lock('foo')

        start = monotonic_millis()
        taken = waiter.acquire_lock('foo', additional_wait=timedelta(milliseconds=500))

        self.assertGreaterEqual(monotonic_millis() - start, 200)
        self.assertNotEqual(taken.version, held.version)
        self.assertEqual(self.record()['ownerName'], waiter.owner)
        self.assertEqual(self.record()['recordVersionNumber'], taken.version)

    def test_renewed_lock_is_not_taken_over(self):
        holder = DynamoDBLockClient(store=self.store, policy=DynamoDBLockPolicy(
            lease_duration=timedelta(milliseconds=300),
            heartbeat_period=timedelta(milliseconds=50)))
        self.addCleanup(holder.shutdown)
        waiter = self.create_client(acquire_buffer=timedelta(milliseconds=50))
        holder.acquire_lock('foo')

        self.assertRaises(LockNotGranted, waiter.acquire_lock, 'foo')
        self.assertEqual(self.record()['ownerName'], holder.owner)

    def test_released_lock_takeover(self):
        first  = self.create_client()
        second = self.create_client()
        held   = first.acquire_lock('foo', delete_on_release=False)
        self.assertTrue(first.release_lock(held))
        self.assertEqual(self.record()['isReleased'], '1')

        start = monotonic_millis()
        taken = second.acquire_lock('foo', acquire_released_consistently=True)

        self.assertLess(monotonic_millis() - start, 1000)
        self.assertNotEqual(taken.version, held.version)
        self.assertNotIn('isReleased', self.record())
        self.assertEqual(self.record()['ownerName'], second.owner)

    def test_keep_existing_payload(self):
        first  = self.create_client()
        second = self.create_client()
        first.release_lock(first.acquire_lock('foo', payload=b'old', delete_on_release=False))

        lock = second.acquire_lock('foo', payload=b'new', replace_payload=False)
        self.assertEqual(lock.payload, b'old')
        self.assertEqual(self.record()['data'], b'old')

    def test_update_existing_record(self):
        first  = self.create_client()
        second = self.create_client()
        first.release_lock(first.acquire_lock('foo', delete_on_release=False, attributes={ 'team': 'storage' }))

        lock = second.acquire_lock('foo', update_existing_record=True)
        self.assertEqual(self.record()['team'], 'storage')
        self.assertEqual(self.record()['recordVersionNumber'], lock.version)
        self.assertNotIn('isReleased', self.record())

    def test_additional_attributes(self):
        client = self.create_client()
        self.assertRaises(ConfigurationError, client.acquire_lock, 'foo', attributes={ 'ownerName': 'me' })

        client.acquire_lock('foo', attributes={ 'team': 'storage' })
        self.assertEqual(self.record()['team'], 'storage')
        viewer = self.create_client()
        self.assertEqual(viewer.get_lock('foo').attributes, { 'team': 'storage' })

    def test_at_most_one_holder(self):
        clients = [self.create_client() for _ in range(5)]

        def acquire(client):
            return client.try_acquire_lock('foo', skip_blocking_wait=True)

        with ThreadPoolExecutor(max_workers=5) as executor:
            locks = list(executor.map(acquire, clients))
        held = [lock for lock in locks if lock is not None]
        self.assertEqual(len(held), 1)
        self.assertEqual(self.record()['ownerName'], held[0].owner)

    def test_acquire_on_missing_table(self):
        client = self.create_client(store=MemoryLockStore(table_exists=False))
        self.assertRaises(TableMissing, client.acquire_lock, 'foo')

    def test_acquire_fails_fast_on_store_error(self):
        client = self.create_client()
        error  = StoreError("validation failed")

        start = monotonic_millis()
        with mock.patch.object(self.store, 'put', side_effect=error):
            with self.assertRaises(LockNotGranted) as context:
                client.acquire_lock('foo', additional_wait=timedelta(seconds=60))
        self.assertLess(monotonic_millis() - start, 1000)
        self.assertIs(context.exception.__cause__, error)
        self.assertEqual(len(client.locks), 0)

    def test_acquire_retries_transient_store_error(self):
        client = self.create_client()
        put    = self.store.put
        calls  = []

        def flaky_put(item, condition=None):
            calls.append(item)
            if len(calls) == 1:
                raise TransientStoreError("throttled")
            return put(item, condition)

        with mock.patch.object(self.store, 'put', side_effect=flaky_put):
            lock = client.acquire_lock('foo')
        self.assertEqual(len(calls), 2)
        self.assertEqual(self.record()['recordVersionNumber'], lock.version)

    # ------------------------------------------------------------
    # heartbeats
    # ------------------------------------------------------------

    def test_send_heartbeat(self):
        client    = self.create_client()
        lock      = client.acquire_lock('foo')
        version   = lock.version
        timestamp = lock.timestamp

        self.assertIs(client.send_heartbeat(lock), lock)
        self.assertNotEqual(lock.version, version)
        self.assertGreaterEqual(lock.timestamp, timestamp)
        self.assertEqual(self.record()['recordVersionNumber'], lock.version)

    def test_send_heartbeat_with_lease_and_payload(self):
        client = self.create_client()
        lock   = client.acquire_lock('foo', payload=b'first')

        lock.send_heartbeat(payload=b'second', lease_duration=timedelta(seconds=40))
        self.assertEqual(self.record()['data'], b'second')
        self.assertEqual(self.record()['leaseDuration'], '40000')
        self.assertEqual(lock.duration, 40000)

        lock.send_heartbeat(delete_payload=True)
        self.assertNotIn('data', self.record())
        self.assertIsNone(lock.payload)

    def test_send_heartbeat_invalid_options(self):
        client = self.create_client()
        lock   = client.acquire_lock('foo')
        self.assertRaises(ConfigurationError, client.send_heartbeat, lock, payload=b'x', delete_payload=True)

    def test_send_heartbeat_after_ownership_lost(self):
        client = self.create_client()
        lock   = client.acquire_lock('foo')
        self.store.items[('foo', '')]['recordVersionNumber'] = 'stolen'

        self.assertRaises(OwnershipLost, client.send_heartbeat, lock)
        self.assertNotIn(('foo', ''), client.locks)

    def test_send_heartbeat_store_failure(self):
        client = self.create_client()
        lock   = client.acquire_lock('foo')
        with mock.patch.object(self.store, 'update', side_effect=TransientStoreError("timeout")):
            self.assertRaises(TransientStoreError, client.send_heartbeat, lock)
        self.assertIn(('foo', ''), client.locks)

    def test_hold_lock_on_service_unavailable(self):
        client  = self.create_client(hold_lock_on_service_unavailable=True)
        lock    = client.acquire_lock('foo')
        version = lock.version
        with mock.patch.object(self.store, 'update', side_effect=ServiceUnavailable("down")):
            self.assertIs(client.send_heartbeat(lock), lock)
        self.assertEqual(lock.version, version)
        self.assertIn(('foo', ''), client.locks)

    def test_heartbeat_worker_renews_locks(self):
        client = DynamoDBLockClient(store=self.store, policy=DynamoDBLockPolicy(
            lease_duration=timedelta(milliseconds=300),
            heartbeat_period=timedelta(milliseconds=50)))
        self.addCleanup(client.shutdown)
        lock    = client.acquire_lock('foo')
        version = lock.version

        time.sleep(0.5)
        self.assertNotEqual(lock.version, version)
        self.assertFalse(lock.is_expired())
        self.assertEqual(self.record()['recordVersionNumber'], lock.version)

    def test_heartbeats_postpone_danger_zone(self):
        client = DynamoDBLockClient(store=self.store, policy=DynamoDBLockPolicy(
            lease_duration=timedelta(milliseconds=300),
            heartbeat_period=timedelta(milliseconds=50)))
        self.addCleanup(client.shutdown)
        callback = mock.Mock()
        monitor  = DynamoDBLockSessionMonitor(timedelta(milliseconds=100), callback)
        lock     = client.acquire_lock('foo', session_monitor=monitor)

        time.sleep(1.0)
        self.assertFalse(callback.called)
        self.assertFalse(lock.is_expired())
        self.assertIn(('foo', ''), client.locks)

    # ------------------------------------------------------------
    # session monitors
    # ------------------------------------------------------------

    def test_session_monitor_out_of_range(self):
        client  = self.create_client()
        monitor = DynamoDBLockSessionMonitor(timedelta(seconds=1))
        self.assertRaises(SessionMonitorRangeError, client.acquire_lock, 'foo', session_monitor=monitor)

    def test_session_monitor_fires_once(self):
        client = self.create_client(
            lease_duration=timedelta(milliseconds=300),
            heartbeat_period=timedelta(milliseconds=50))
        fired, calls = threading.Event(), []

        def callback(lock):
            calls.append(monotonic_millis())
            fired.set()

        monitor = DynamoDBLockSessionMonitor(timedelta(milliseconds=100), callback)
        lock    = client.acquire_lock('foo', session_monitor=monitor)

        self.assertTrue(fired.wait(5))
        time.sleep(0.1)
        self.assertEqual(len(calls), 1)
        self.assertGreaterEqual(calls[0] - lock.timestamp, 200)
        self.assertTrue(lock.about_to_expire())
        self.assertIn(('foo', ''), client.locks)

    def test_release_cancels_session_monitor(self):
        client = self.create_client(
            lease_duration=timedelta(milliseconds=300),
            heartbeat_period=timedelta(milliseconds=50))
        callback = mock.Mock()
        monitor  = DynamoDBLockSessionMonitor(timedelta(milliseconds=100), callback)
        lock     = client.acquire_lock('foo', session_monitor=monitor)

        self.assertTrue(client.release_lock(lock))
        self.assertEqual(len(client.watchers), 0)
        time.sleep(0.4)
        self.assertFalse(callback.called)

    # ------------------------------------------------------------
    # release
    # ------------------------------------------------------------

    def test_release_deletes_lock(self):
        client = self.create_client()
        lock   = client.acquire_lock('foo')

        self.assertTrue(client.release_lock(lock))
        self.assertIsNone(self.record())
        self.assertEqual(len(client.locks), 0)
        self.assertTrue(lock.is_released)
        self.assertFalse(client.release_lock(lock))

    def test_release_marks_released(self):
        client = self.create_client()
        lock   = client.acquire_lock('foo')

        self.assertTrue(client.release_lock(lock, delete=False, payload=b'final'))
        self.assertEqual(self.record()['isReleased'], '1')
        self.assertEqual(self.record()['data'], b'final')
        self.assertFalse(client.does_lock_exist('foo'))

    def test_release_lock_not_owned(self):
        holder = self.create_client()
        other  = self.create_client()
        lock   = holder.acquire_lock('foo')
        record = dict(self.record())

        self.assertFalse(other.release_lock(lock))
        self.assertEqual(self.record(), record)
        self.assertIn(('foo', ''), holder.locks)

    def test_release_after_takeover(self):
        client = self.create_client()
        lock   = client.acquire_lock('foo')
        self.store.items[('foo', '')]['recordVersionNumber'] = 'stolen'

        self.assertFalse(client.release_lock(lock))
        self.assertIsNotNone(self.record())
        self.assertEqual(len(client.locks), 0)

    def test_release_best_effort(self):
        client = self.create_client()
        lock   = client.acquire_lock('foo')
        with mock.patch.object(self.store, 'delete', side_effect=TransientStoreError("timeout")):
            self.assertTrue(client.release_lock(lock, best_effort=True))
        self.assertEqual(len(client.locks), 0)

    def test_release_store_failure(self):
        client = self.create_client()
        lock   = client.acquire_lock('foo')
        with mock.patch.object(self.store, 'delete', side_effect=TransientStoreError("timeout")):
            self.assertRaises(TransientStoreError, client.release_lock, lock)
        self.assertEqual(len(client.locks), 0)

    def test_released_lock_lookup(self):
        holder = self.create_client()
        holder.release_lock(holder.acquire_lock('foo'), delete=False)

        viewer = self.create_client()
        lock   = viewer.get_lock('foo')
        self.assertTrue(lock.is_released)
        self.assertIsNone(lock.version)
        self.assertFalse(viewer.release_lock(lock))
        self.assertRaises(OwnershipLost, viewer.send_heartbeat, lock)

    def test_release_all_locks(self):
        client = self.create_client()
        client.acquire_lock('foo')
        client.acquire_lock('bar')

        self.assertTrue(client.release_all_locks())
        self.assertEqual(self.store.items, {})
        self.assertEqual(len(client.locks), 0)

    # ------------------------------------------------------------
    # lookups
    # ------------------------------------------------------------

    def test_get_lock(self):
        holder = self.create_client()
        viewer = self.create_client()
        held   = holder.acquire_lock('foo', payload=b'\x00\x01payload')

        self.assertIs(holder.get_lock('foo'), held)
        lock = viewer.get_lock('foo')
        self.assertEqual(lock.owner, holder.owner)
        self.assertEqual(lock.payload, b'\x00\x01payload')
        self.assertIsNone(lock.version)
        self.assertEqual(viewer.get_lock_from_store('foo').version, held.version)
        self.assertIsNone(viewer.get_lock('bar'))
        self.assertFalse(viewer.does_lock_exist('bar'))

    def test_get_all_locks(self):
        client = self.create_client()
        client.acquire_lock('foo', payload=b'first')
        client.release_lock(client.acquire_lock('bar', payload=b'second'), delete=False)

        locks = dict((lock.name, lock) for lock in client.get_all_locks())
        self.assertEqual(sorted(locks), ['bar', 'foo'])
        self.assertEqual(locks['foo'].payload, b'first')
        self.assertEqual(locks['bar'].payload, b'second')
        self.assertTrue(locks['bar'].is_released)

    # ------------------------------------------------------------
    # table and lifecycle
    # ------------------------------------------------------------

    def test_lock_table(self):
        client = self.create_client(store=MemoryLockStore(table_exists=False))
        self.assertFalse(client.lock_table_exists())
        self.assertRaises(TableMissing, client.assert_lock_table_exists)
        client.create_lock_table()
        self.assertTrue(client.lock_table_exists())
        client.assert_lock_table_exists()

    def test_shutdown_releases_locks(self):
        client = self.create_client()
        client.acquire_lock('foo')
        client.acquire_lock('bar')

        client.shutdown()
        self.assertEqual(self.store.items, {})
        self.assertEqual(len(client.locks), 0)
        self.assertRaises(LockNotGranted, client.acquire_lock, 'foo')

    def test_client_context(self):
        with DynamoDBLockClient(store=self.store, policy=create_policy()) as client:
            client.acquire_lock('foo')
            self.assertIsNotNone(self.record())
        self.assertIsNone(self.record())

#---------------------------------------------------------------------------#
# main
#---------------------------------------------------------------------------#
if __name__ == "__main__":
    unittest.main()
