from .errors  import DynamoDBLockError, ConfigurationError, SessionMonitorRangeError
from .errors  import LockNotGranted, LockCurrentlyUnavailable, OwnershipLost, SessionMonitorNotSet
from .errors  import StoreError, ConditionFailed, TransientStoreError
from .errors  import ThroughputExceeded, ServiceUnavailable, TableMissing
from .result  import DynamoDBLockResult
from .lock    import DynamoDBLock
from .policy  import DynamoDBLockPolicy
from .schema  import DynamoDBLockSchema
from .monitor import DynamoDBLockSessionMonitor
from .store   import DynamoDBLockStore
from .memory  import MemoryLockStore
from .worker  import DynamoDBLockWorker
from .client  import DynamoDBLockClient
from .context import DynamoDBLockContext
from .context import DynamoDBLockContext as locker
