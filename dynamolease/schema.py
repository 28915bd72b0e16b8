import json

from .errors import ConfigurationError

#--------------------------------------------------------------------------------
# logging
#--------------------------------------------------------------------------------

import logging
_logger = logging.getLogger(__name__)

#--------------------------------------------------------------------------------
# classes
#--------------------------------------------------------------------------------

class DynamoDBLockSchema(object):
    ''' A collection of the schema names for the underlying
    locks table. This can be overridden by simply supplying
    new names in the constructor::

        from dynamolease import DynamoDBLockSchema

        schema = DynamoDBLockSchema(partition_key="lock_key", range_key="sort_key")

    The default attribute names match the layout used by the other
    DynamoDB lock clients, so a table can be shared with them.
    '''

    RELEASED_VALUE = '1'

    def __init__(self, **kwargs):
        ''' Initializes a new instance of the DynamoDBLockSchema class

        :param partition_key: The database schema name for the lock name
        :param range_key: The database schema name for the sort key (None if unused)
        :param duration: The database schema name for this field
        :param is_released: The database schema name for this field
        :param owner: The database schema name for this field
        :param version: The database schema name for this field
        :param payload: The database schema name for this field
        :param table_name: The name of the database locks table
        :param read_capacity: The expected read capacity for the table
        :param write_capacity: The expected write capacity for the table
        :param billing_mode: PROVISIONED or PAY_PER_REQUEST for new tables
        '''
        self.partition_key  = kwargs.get('partition_key', 'key')
        self.range_key      = kwargs.get('range_key',     None)
        self.duration       = kwargs.get('duration',      'leaseDuration')
        self.is_released    = kwargs.get('is_released',   'isReleased')
        self.owner          = kwargs.get('owner',         'ownerName')
        self.version        = kwargs.get('version',       'recordVersionNumber')
        self.payload        = kwargs.get('payload',       'data')
        self.table_name     = kwargs.get('table_name',    'lockTable')
        self.read_capacity  = kwargs.get('read_capacity', 1)
        self.write_capacity = kwargs.get('write_capacity', 1)
        self.billing_mode   = kwargs.get('billing_mode',  'PROVISIONED')

        if not self.partition_key:
            raise ConfigurationError("the partition key name cannot be empty")

    @property
    def reserved_names(self):
        ''' The attribute names the lock client owns on each record.
        Callers may not supply additional attributes with these names.
        '''
        names = set([self.partition_key, self.duration, self.is_released,
            self.owner, self.version, self.payload])
        if self.range_key: names.add(self.range_key)
        return names

    def validate_attributes(self, attributes):
        ''' Make sure that none of the supplied additional attributes
        collide with the names the lock client manages.

        :param attributes: The additional attributes to check
        :raises ConfigurationError: If a reserved name is used
        '''
        clashes = sorted(self.reserved_names.intersection(attributes or {}))
        if clashes:
            raise ConfigurationError("additional attributes cannot use reserved names: %s" % ", ".join(clashes))

    # ------------------------------------------------------------
    # schema operations
    # ------------------------------------------------------------
    # These methods convert to and from the underlying table
    # schema
    # ------------------------------------------------------------

    def to_key(self, name, range_key=None):
        ''' Build the primary key of the record for a lock.

        :param name: The partition key value of the lock
        :param range_key: The sort key value of the lock
        :returns: The key of the record
        '''
        key = { self.partition_key: name }
        if self.range_key: key[self.range_key] = range_key or ''
        return key

    def to_schema(self, params):
        ''' Given a dict of lock fields, convert them to the
        underlying schema, and remove paramaters that are not used.
        A released flag is only ever written as present, the
        absence of the attribute means the lock is held.

        :param params: The lock fields to convert
        :returns: The converted record attributes
        '''
        schema = {}
        if 'name'      in params: schema[self.partition_key] = params['name']
        if 'range_key' in params and self.range_key:
            schema[self.range_key] = params['range_key'] or ''
        if 'duration'  in params: schema[self.duration] = str(params['duration'])
        if 'owner'     in params: schema[self.owner]    = params['owner']
        if 'version'   in params: schema[self.version]  = params['version']
        if params.get('payload') is not None:
            schema[self.payload] = bytes(params['payload'])
        if params.get('is_released'):
            schema[self.is_released] = self.RELEASED_VALUE
        return schema

    def to_dict(self, schema):
        ''' Given a lock record, convert it to a dict of the lock
        field names. Anything that is not one of the managed
        attributes is passed back untouched as `attributes`.

        :param schema: The record to convert to a dict
        :returns: The converted dict with lock field names
        '''
        record  = dict(schema)
        payload = record.pop(self.payload, None)
        if payload is not None:
            payload = bytes(getattr(payload, 'value', payload))
        duration = record.pop(self.duration, None)

        params = {
            'name'        : record.pop(self.partition_key, None),
            'range_key'   : record.pop(self.range_key, None) if self.range_key else None,
            'owner'       : record.pop(self.owner, None),
            'version'     : record.pop(self.version, None),
            'duration'    : int(duration) if duration is not None else None,
            'is_released' : record.pop(self.is_released, None) is not None,
            'payload'     : payload,
        }
        params['attributes'] = record
        return params

    def __str__(self):
        return json.dumps(self.__dict__)

    __repr__ = __str__
