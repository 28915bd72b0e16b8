#!/usr/bin/env python
import unittest

from boto3.dynamodb.types import Binary

from dynamolease.errors import ConfigurationError
from dynamolease.schema import DynamoDBLockSchema


class DynamoDBLockSchemaTest(unittest.TestCase):

    def test_schema_defaults(self):
        schema = DynamoDBLockSchema()
        self.assertEqual(schema.partition_key, 'key')
        self.assertEqual(schema.owner, 'ownerName')
        self.assertEqual(schema.duration, 'leaseDuration')
        self.assertEqual(schema.version, 'recordVersionNumber')
        self.assertEqual(schema.is_released, 'isReleased')
        self.assertEqual(schema.payload, 'data')
        self.assertIsNone(schema.range_key)

    def test_schema_requires_partition_key(self):
        self.assertRaises(ConfigurationError, DynamoDBLockSchema, partition_key='')

    def test_to_key(self):
        self.assertEqual(DynamoDBLockSchema().to_key('foo', 'bar'), { 'key': 'foo' })
        schema = DynamoDBLockSchema(range_key='sortKey')
        self.assertEqual(schema.to_key('foo', 'bar'), { 'key': 'foo', 'sortKey': 'bar' })
        self.assertEqual(schema.to_key('foo'), { 'key': 'foo', 'sortKey': '' })

    def test_to_schema(self):
        schema = DynamoDBLockSchema(range_key='sortKey')
        record = schema.to_schema({
            'name': 'foo', 'range_key': 'bar', 'owner': 'me',
            'duration': 20000, 'version': 'v1', 'payload': b'\x00data',
        })
        self.assertEqual(record, {
            'key': 'foo', 'sortKey': 'bar', 'ownerName': 'me',
            'leaseDuration': '20000', 'recordVersionNumber': 'v1', 'data': b'\x00data',
        })

    def test_to_schema_released(self):
        record = DynamoDBLockSchema().to_schema({ 'name': 'foo', 'is_released': True, 'payload': None })
        self.assertEqual(record, { 'key': 'foo', 'isReleased': '1' })

    def test_to_dict(self):
        schema = DynamoDBLockSchema()
        params = schema.to_dict({
            'key': 'foo', 'ownerName': 'me', 'leaseDuration': '20000',
            'recordVersionNumber': 'v1', 'isReleased': '1',
            'data': Binary(b'payload'), 'team': 'storage',
        })
        self.assertEqual(params['name'], 'foo')
        self.assertEqual(params['duration'], 20000)
        self.assertEqual(params['payload'], b'payload')
        self.assertTrue(params['is_released'])
        self.assertIsNone(params['range_key'])
        self.assertEqual(params['attributes'], { 'team': 'storage' })

    def test_validate_attributes(self):
        schema = DynamoDBLockSchema(range_key='sortKey')
        schema.validate_attributes({ 'team': 'storage' })
        self.assertRaises(ConfigurationError, schema.validate_attributes, { 'ownerName': 'me' })
        self.assertRaises(ConfigurationError, schema.validate_attributes, { 'sortKey': 'x' })

#---------------------------------------------------------------------------#
# main
#---------------------------------------------------------------------------#
if __name__ == "__main__":
    unittest.main()
