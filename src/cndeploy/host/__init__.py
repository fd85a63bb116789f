from .ops import CommandResult, FileStat, HostOps, QueryResult
from .facts import HostFacts, gather_facts

__all__ = ["CommandResult", "FileStat", "HostOps", "QueryResult", "HostFacts", "gather_facts"]
