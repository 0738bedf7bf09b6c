from .object_store import (
    BinaryObjectStore,
    StoredBinaryObject,
    StoredObjectRef,
    close_all,
    open_store,
)
from .references import ReferenceResolver, is_store_reference, make_reference, parse_reference

__all__ = [
    "BinaryObjectStore",
    "ReferenceResolver",
    "StoredBinaryObject",
    "StoredObjectRef",
    "close_all",
    "is_store_reference",
    "make_reference",
    "open_store",
    "parse_reference",
]
