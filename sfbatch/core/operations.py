"""Operation types shared by the REST, composite and bulk clients"""

from enum import Enum


class Operation(Enum):
    INSERT = "insert"
    UPDATE = "update"
    UPSERT = "upsert"
    DELETE = "delete"
    HARD_DELETE = "hardDelete"
    QUERY = "query"

    @property
    def is_delete(self) -> bool:
        return self in (Operation.DELETE, Operation.HARD_DELETE)


# Batch size caps per API family
MAX_COLLECTION_BATCH_SIZE = 200
MAX_COMPOSITE_BATCH_SIZE = 200

# Sub-requests the live /composite endpoint accepts in one call
COMPOSITE_SUBREQUEST_LIMIT = 25
MAX_BULK_BATCH_SIZE = 10000

ID_FIELD = "Id"
