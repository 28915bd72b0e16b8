import boto3
from botocore.exceptions import ClientError, BotoCoreError, HTTPClientError
from botocore.exceptions import ConnectionError as BotoConnectionError

from .errors import StoreError, ConditionFailed, TransientStoreError
from .errors import ThroughputExceeded, ServiceUnavailable, TableMissing
from .schema import DynamoDBLockSchema

#--------------------------------------------------------------------------------
# logging
#--------------------------------------------------------------------------------

import logging
_logger = logging.getLogger(__name__)

#--------------------------------------------------------------------------------
# error translation
#--------------------------------------------------------------------------------

_THROUGHPUT_CODES = set([
    'ProvisionedThroughputExceededException',
    'ThrottlingException',
    'RequestLimitExceeded',
])

_TRANSIENT_CODES = set([
    'InternalServerError',
    'InternalFailure',
])

_AVAILABLE_STATUSES = set(['ACTIVE', 'UPDATING'])


def translate_error(error):
    ''' Convert a botocore error into the matching store error.

    :param error: The botocore error that was raised
    :returns: The store error to raise in its place
    '''
    if isinstance(error, ClientError):
        details = error.response.get('Error', {})
        code    = details.get('Code', '')
        status  = error.response.get('ResponseMetadata', {}).get('HTTPStatusCode')
        message = details.get('Message', str(error))

        if code == 'ConditionalCheckFailedException':
            return ConditionFailed(message)
        if code in _THROUGHPUT_CODES:
            return ThroughputExceeded(message)
        if code == 'ResourceNotFoundException':
            return TableMissing(message)
        if status == 503 or code == 'ServiceUnavailable':
            return ServiceUnavailable(message)
        if code in _TRANSIENT_CODES or (status and status >= 500):
            return TransientStoreError(message)
        return StoreError(message)

    if isinstance(error, (BotoConnectionError, HTTPClientError)):
        return TransientStoreError(str(error))
    return StoreError(str(error))

#--------------------------------------------------------------------------------
# classes
#--------------------------------------------------------------------------------

class DynamoDBLockStore(object):
    ''' The conditional write store backed by a DynamoDB table. Every
    call is translated to a single boto3 table operation, and every
    botocore failure is translated to one of the store errors::

        import boto3
        from dynamolease import DynamoDBLockStore, DynamoDBLockSchema

        schema = DynamoDBLockSchema(table_name="locks")
        store  = DynamoDBLockStore(schema=schema, resource=boto3.resource("dynamodb"))
    '''

    def __init__(self, **kwargs):
        ''' Initialize a new instance of the DynamoDBLockStore class

        :param schema: The schema of the database table to work with
        :param resource: The boto3 dynamodb service resource to use
        :param table: The boto3 table to use (default built from the resource)
        '''
        self.schema   = kwargs.get('schema', None) or DynamoDBLockSchema()
        self.table    = kwargs.get('table', None)
        self.resource = kwargs.get('resource', None)
        if self.table is None:
            self.resource = self.resource or boto3.resource('dynamodb')
            self.table    = self.resource.Table(self.schema.table_name)

    # ------------------------------------------------------------
    # item methods
    # ------------------------------------------------------------

    def get(self, key):
        ''' Read a record with a strongly consistent read.

        :param key: The primary key of the record
        :returns: The record if it exists, None otherwise
        '''
        response = self._call(self.table.get_item, Key=key, ConsistentRead=True)
        return response.get('Item') or None

    def put(self, item, condition=None):
        ''' Write a whole record if the condition holds.

        :param item: The record to write
        :param condition: The condition the existing record must meet
        '''
        params = { 'Item': item }
        self._add_condition(params, condition)
        self._call(self.table.put_item, **params)

    def update(self, key, update, condition=None):
        ''' Update the attributes of a record if the condition holds.

        :param key: The primary key of the record
        :param update: The attribute changes to apply
        :param condition: The condition the existing record must meet
        '''
        expression, names, values = update.to_expression()
        params = { 'Key': key, 'UpdateExpression': expression }
        if names:  params['ExpressionAttributeNames'] = names
        if values: params['ExpressionAttributeValues'] = values
        self._add_condition(params, condition)
        self._call(self.table.update_item, **params)

    def delete(self, key, condition=None):
        ''' Delete a record if the condition holds.

        :param key: The primary key of the record
        :param condition: The condition the existing record must meet
        '''
        params = { 'Key': key }
        self._add_condition(params, condition)
        self._call(self.table.delete_item, **params)

    def scan(self, start_key=None, consistent=False):
        ''' Read a single page of every record in the table.

        :param start_key: The key to resume the scan from
        :param consistent: True to perform a strongly consistent scan
        :returns: (records, the key of the next page or None)
        '''
        params = { 'ConsistentRead': consistent }
        if start_key: params['ExclusiveStartKey'] = start_key
        response = self._call(self.table.scan, **params)
        return response.get('Items', []), response.get('LastEvaluatedKey') or None

    # ------------------------------------------------------------
    # table methods
    # ------------------------------------------------------------

    def exists(self):
        ''' Check if the lock table exists and is usable. We use the
        `describe` method call to verify if the table exists or not.

        :returns: True if the table exists, False otherwise
        '''
        try:
            description = self.table.meta.client.describe_table(TableName=self.schema.table_name)
        except ClientError as ex:
            if isinstance(translate_error(ex), TableMissing):
                return False
            raise translate_error(ex) from ex
        except BotoCoreError as ex:
            raise translate_error(ex) from ex
        _logger.debug("current table description:\n%s", description)
        return description['Table']['TableStatus'] in _AVAILABLE_STATUSES

    def create(self):
        ''' Create the underlying dynamodb table for writing locks
        to. This takes a while to provision, so it should be done
        in advance of using the client.

        :returns: The description of the table being created
        '''
        keys = [ { 'AttributeName': self.schema.partition_key, 'KeyType': 'HASH' } ]
        attributes = [ { 'AttributeName': self.schema.partition_key, 'AttributeType': 'S' } ]
        if self.schema.range_key:
            keys.append({ 'AttributeName': self.schema.range_key, 'KeyType': 'RANGE' })
            attributes.append({ 'AttributeName': self.schema.range_key, 'AttributeType': 'S' })

        params = {
            'TableName': self.schema.table_name,
            'KeySchema': keys,
            'AttributeDefinitions': attributes,
            'BillingMode': self.schema.billing_mode,
        }
        if self.schema.billing_mode == 'PROVISIONED':
            params['ProvisionedThroughput'] = {
                'ReadCapacityUnits':  self.schema.read_capacity,
                'WriteCapacityUnits': self.schema.write_capacity,
            }

        _logger.info("creating lock table %s", self.schema.table_name)
        response = self._call(self.table.meta.client.create_table, **params)
        return response['TableDescription']

    # ------------------------------------------------------------
    # private methods
    # ------------------------------------------------------------

    def _add_condition(self, params, condition):
        expression = condition.to_expression() if condition else None
        if expression is not None:
            params['ConditionExpression'] = expression

    def _call(self, method, **params):
        try:
            return method(**params)
        except (ClientError, BotoCoreError) as ex:
            raise translate_error(ex) from ex
