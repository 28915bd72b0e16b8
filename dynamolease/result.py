'''
The DynamoDBLockResult is what the internal acquisition and heartbeat
steps hand back to their loops. Rather than using exceptions for control
flow, each step reports whether it succeeded, whether the loop may try
again, or whether it must stop and surface the attached error.
'''
from collections import namedtuple

#--------------------------------------------------------------------------------
# classes
#--------------------------------------------------------------------------------

class DynamoDBLockResult(namedtuple('DynamoDBLockResult', ['status', 'lock', 'error'])):

    OK    = 'ok'
    RETRY = 'retry'
    FATAL = 'fatal'

    __slots__ = ()

    @classmethod
    def ok(cls, lock=None):
        return cls(cls.OK, lock, None)

    @classmethod
    def retry(cls, error):
        return cls(cls.RETRY, None, error)

    @classmethod
    def fatal(cls, error):
        return cls(cls.FATAL, None, error)

    @property
    def is_ok(self):
        return self.status == self.OK

    @property
    def is_retryable(self):
        return self.status == self.RETRY

    @property
    def is_fatal(self):
        return self.status == self.FATAL
