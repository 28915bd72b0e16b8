'''
An in-memory stand in for the DynamoDB lock table. It honours the same
conditions and raises the same errors as the real store, which makes
it suitable for tests and for running several clients within a single
process::

    from dynamolease import DynamoDBLockClient, MemoryLockStore

    store  = MemoryLockStore()
    first  = DynamoDBLockClient(store=store)
    second = DynamoDBLockClient(store=store)
'''
import copy
import threading

from .errors import ConditionFailed, TableMissing
from .schema import DynamoDBLockSchema

#--------------------------------------------------------------------------------
# logging
#--------------------------------------------------------------------------------

import logging
_logger = logging.getLogger(__name__)

#--------------------------------------------------------------------------------
# classes
#--------------------------------------------------------------------------------

class MemoryLockStore(object):

    def __init__(self, **kwargs):
        ''' Initialize a new instance of the MemoryLockStore class

        :param schema: The schema of the table to emulate
        :param page_size: The number of records returned per scan page
        :param table_exists: False to start without a table (default True)
        '''
        self.schema    = kwargs.get('schema', None) or DynamoDBLockSchema()
        self.page_size = kwargs.get('page_size', 100)
        self.items     = {}
        self._exists   = kwargs.get('table_exists', True)
        self._mutex    = threading.Lock()

    # ------------------------------------------------------------
    # item methods
    # ------------------------------------------------------------

    def get(self, key):
        with self._mutex:
            self._assert_exists()
            item = self.items.get(self._identity(key))
            return copy.deepcopy(item) if item is not None else None

    def put(self, item, condition=None):
        with self._mutex:
            self._assert_exists()
            identity = self._identity(item)
            self._check(self.items.get(identity), condition)
            self.items[identity] = copy.deepcopy(item)

    def update(self, key, update, condition=None):
        with self._mutex:
            self._assert_exists()
            identity = self._identity(key)
            current  = self.items.get(identity)
            self._check(current, condition)
            updated = update.apply(current)
            updated.update(key)
            self.items[identity] = copy.deepcopy(updated)

    def delete(self, key, condition=None):
        with self._mutex:
            self._assert_exists()
            identity = self._identity(key)
            self._check(self.items.get(identity), condition)
            self.items.pop(identity, None)

    def scan(self, start_key=None, consistent=False):
        with self._mutex:
            self._assert_exists()
            identities = sorted(self.items)
            if start_key:
                after = self._identity(start_key)
                identities = [identity for identity in identities if identity > after]

            page = identities[:self.page_size]
            records = [copy.deepcopy(self.items[identity]) for identity in page]
            if len(identities) > len(page):
                return records, self._key_of(self.items[page[-1]])
            return records, None

    # ------------------------------------------------------------
    # table methods
    # ------------------------------------------------------------

    def exists(self):
        return self._exists

    def create(self):
        self._exists = True
        return { 'TableName': self.schema.table_name, 'TableStatus': 'ACTIVE' }

    # ------------------------------------------------------------
    # private methods
    # ------------------------------------------------------------

    def _assert_exists(self):
        if not self._exists:
            raise TableMissing("table %s does not exist" % self.schema.table_name)

    def _check(self, current, condition):
        if condition is not None and not condition.evaluate(current):
            _logger.debug("condition %r failed against %r", condition, current)
            raise ConditionFailed("the conditional request failed")

    def _key_of(self, item):
        key = { self.schema.partition_key: item[self.schema.partition_key] }
        if self.schema.range_key:
            key[self.schema.range_key] = item.get(self.schema.range_key, '')
        return key

    def _identity(self, item):
        name = item[self.schema.partition_key]
        if self.schema.range_key:
            return (name, item.get(self.schema.range_key, ''))
        return (name, '')
