#!/usr/bin/env python
import unittest
import mock

from dynamolease.errors import DynamoDBLockError, LockNotGranted, SessionMonitorNotSet
from dynamolease.lock import DynamoDBLock
from dynamolease.monitor import DynamoDBLockSessionMonitor


class FakeClock(object):

    def __init__(self, now=0):
        self.now = now

    def __call__(self):
        return self.now


class DynamoDBLockTest(unittest.TestCase):

    def setUp(self):
        self.clock  = FakeClock(1000)
        self.params = {
            'name':      'my.lock.name',
            'owner':     'host.company.org.123e4567-e89b-12d3-a456-426655440000',
            'timestamp': 1000,
            'duration':  5000,
            'version':   '123e4567-e89b-12d3-a456-426655440000',
            'payload':   None,
            'clock':     self.clock,
        }

    def test_lock_init(self):
        lock = DynamoDBLock(**self.params)
        self.assertIsNotNone(lock)
        self.assertEqual(lock.range_key, '')
        self.assertEqual(lock.unique_identifier, 'my.lock.name')
        self.assertFalse(lock.is_released)

    def test_lock_init_requires_name_and_owner(self):
        self.params['name'] = None
        self.assertRaises(ValueError, DynamoDBLock, **self.params)
        self.params.update(name='my.lock.name', owner='')
        self.assertRaises(ValueError, DynamoDBLock, **self.params)

    def test_lock_unique_identifier_with_range_key(self):
        lock = DynamoDBLock(range_key='shard-1', **self.params)
        self.assertEqual(lock.unique_identifier, 'my.lock.nameshard-1')

    def test_lock_key_keeps_name_and_range_key_apart(self):
        first  = DynamoDBLock(range_key='ar', **dict(self.params, name='foob'))
        second = DynamoDBLock(range_key='bar', **dict(self.params, name='foo'))
        self.assertEqual(first.unique_identifier, second.unique_identifier)
        self.assertNotEqual(first.key, second.key)
        self.assertEqual(second.key, ('foo', 'bar'))

    def test_lock_equality(self):
        old_lock = DynamoDBLock(**self.params)
        new_lock = DynamoDBLock(**dict(self.params, owner='another.company.org.123e4567-e89b-12d3-a456-426655440000'))

        self.assertNotEqual(old_lock, new_lock)
        self.assertEqual(old_lock, DynamoDBLock(**dict(self.params, version='other')))

    def test_lock_expiry(self):
        lock = DynamoDBLock(**self.params)
        self.clock.now = 5999
        self.assertFalse(lock.is_expired())
        self.clock.now = 6000
        self.assertTrue(lock.is_expired())

    def test_released_lock_is_expired(self):
        lock = DynamoDBLock(is_released=True, **self.params)
        self.assertTrue(lock.is_expired())

    def test_update_version(self):
        lock = DynamoDBLock(**self.params)
        lock.update_version('new-version', 3000, 7000)
        self.assertEqual(lock.version, 'new-version')
        self.assertEqual(lock.timestamp, 3000)
        self.assertEqual(lock.duration, 7000)

        lock.update_version('newer-version', 4000)
        self.assertEqual(lock.duration, 7000)

    def test_danger_zone(self):
        monitor = DynamoDBLockSessionMonitor(2000)
        lock = DynamoDBLock(session_monitor=monitor, **self.params)
        self.clock.now = 3000
        self.assertEqual(lock.millis_until_danger_zone(), 1000)
        self.assertFalse(lock.about_to_expire())
        self.clock.now = 4000
        self.assertTrue(lock.about_to_expire())

    def test_danger_zone_without_monitor(self):
        lock = DynamoDBLock(**self.params)
        self.assertFalse(lock.has_session_monitor())
        self.assertRaises(SessionMonitorNotSet, lock.about_to_expire)

    def test_danger_zone_of_released_lock(self):
        monitor = DynamoDBLockSessionMonitor(2000)
        lock = DynamoDBLock(session_monitor=monitor, is_released=True, **self.params)
        self.assertRaises(DynamoDBLockError, lock.millis_until_danger_zone)

    def test_ensure_with_enough_lease_left(self):
        client = mock.Mock()
        lock = DynamoDBLock(client=client, **self.params)
        lock.ensure(2000)
        self.assertFalse(client.send_heartbeat.called)

    def test_ensure_sends_heartbeat(self):
        client = mock.Mock()
        lock = DynamoDBLock(client=client, **self.params)
        self.clock.now = 4000
        lock.ensure(6000)
        client.send_heartbeat.assert_called_once_with(lock, lease_duration=6000)

    def test_ensure_released_lock(self):
        lock = DynamoDBLock(client=mock.Mock(), is_released=True, **self.params)
        self.assertRaises(LockNotGranted, lock.ensure, 1000)

    def test_close_releases_through_client(self):
        client = mock.Mock()
        client.release_lock.return_value = True
        lock = DynamoDBLock(client=client, **self.params)
        self.assertTrue(lock.close())
        client.release_lock.assert_called_once_with(lock)

    def test_close_without_client(self):
        lock = DynamoDBLock(**self.params)
        self.assertRaises(DynamoDBLockError, lock.close)

#---------------------------------------------------------------------------#
# main
#---------------------------------------------------------------------------#
if __name__ == "__main__":
    unittest.main()
