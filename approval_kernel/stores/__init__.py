"""Request and rule store implementations."""

from approval_kernel.stores.memory import InMemoryRequestStore, InMemoryRuleStore
from approval_kernel.stores.sql import SqlRequestStore, SqlRuleStore

__all__ = [
    "InMemoryRequestStore",
    "InMemoryRuleStore",
    "SqlRequestStore",
    "SqlRuleStore",
]
