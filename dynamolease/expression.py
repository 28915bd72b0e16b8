'''
Store neutral descriptions of the conditional predicates and the
attribute updates the lock client issues. The boto3 store turns them
into DynamoDB expressions, the memory store evaluates them directly::

    condition = DynamoDBLockCondition(exists=['key'], equals={'recordVersionNumber': rvn})
    update    = DynamoDBLockUpdate(set={'recordVersionNumber': new_rvn}, remove=['data'])
'''
from functools import reduce

from boto3.dynamodb.conditions import Attr

#--------------------------------------------------------------------------------
# classes
#--------------------------------------------------------------------------------

class DynamoDBLockCondition(object):
    ''' A conjunction of attribute existence and equality checks
    that must hold against the stored record for a write to succeed.
    '''

    def __init__(self, exists=None, not_exists=None, equals=None):
        ''' Initialize a new instance of the DynamoDBLockCondition

        :param exists: The attribute names that must be present
        :param not_exists: The attribute names that must be absent
        :param equals: A dict of attribute names to their expected values
        '''
        self.exists     = list(exists or [])
        self.not_exists = list(not_exists or [])
        self.equals     = dict(equals or {})

    def evaluate(self, item):
        ''' Check the condition against a record.

        :param item: The current record, or None if there is none
        :returns: True if the condition holds, False otherwise
        '''
        item = item or {}
        return (all(name in item for name in self.exists)
            and all(name not in item for name in self.not_exists)
            and all(name in item and item[name] == value for name, value in self.equals.items()))

    def to_expression(self):
        ''' Convert the condition to a boto3 condition expression.

        :returns: The boto3 condition, or None for an empty condition
        '''
        parts  = [Attr(name).exists() for name in self.exists]
        parts += [Attr(name).not_exists() for name in self.not_exists]
        parts += [Attr(name).eq(value) for name, value in sorted(self.equals.items())]
        if not parts:
            return None
        return reduce(lambda left, right: left & right, parts)

    def __repr__(self):
        return "DynamoDBLockCondition(exists=%r, not_exists=%r, equals=%r)" % (
            self.exists, self.not_exists, self.equals)


class DynamoDBLockUpdate(object):
    ''' A set of attributes to write and a list of attributes to
    remove from an existing record.
    '''

    # boto3 uses #n0 and :v0 for the placeholders it generates for
    # the condition expression, these must not overlap with them.
    NAME_PREFIX  = '#u'
    VALUE_PREFIX = ':u'

    def __init__(self, set=None, remove=None):
        ''' Initialize a new instance of the DynamoDBLockUpdate

        :param set: A dict of attribute names to their new values
        :param remove: The attribute names to remove
        '''
        self.set    = dict(set or {})
        self.remove = [name for name in (remove or []) if name not in self.set]

    def apply(self, item):
        ''' Apply the update to a copy of a record.

        :param item: The record to update
        :returns: The updated copy of the record
        '''
        updated = dict(item or {})
        updated.update(self.set)
        for name in self.remove:
            updated.pop(name, None)
        return updated

    def to_expression(self):
        ''' Convert the update to a DynamoDB update expression.

        :returns: (expression, attribute names, attribute values)
        '''
        names, values, sets, removes = {}, {}, [], []
        index = 0
        for name, value in sorted(self.set.items()):
            names['%s%d' % (self.NAME_PREFIX, index)] = name
            values['%s%d' % (self.VALUE_PREFIX, index)] = value
            sets.append('%s%d = %s%d' % (self.NAME_PREFIX, index, self.VALUE_PREFIX, index))
            index += 1
        for name in self.remove:
            names['%s%d' % (self.NAME_PREFIX, index)] = name
            removes.append('%s%d' % (self.NAME_PREFIX, index))
            index += 1

        clauses = []
        if sets:    clauses.append('SET ' + ', '.join(sets))
        if removes: clauses.append('REMOVE ' + ', '.join(removes))
        return ' '.join(clauses), names, values

    def __repr__(self):
        return "DynamoDBLockUpdate(set=%r, remove=%r)" % (sorted(self.set), self.remove)
