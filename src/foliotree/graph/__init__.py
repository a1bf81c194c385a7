"""Graph module - Content tree data structures and operations.

Exports:
- NodeType: Enum of node types
- ContentNode: One row of the tree
- TreeNode: A row with its resolved children
- NodeIndex: In-memory adjacency over a node snapshot
- PathResolver: Full slug paths and depths
- InvariantGuard: Mutation validation
- OrderingEngine / Direction: Sibling order and reorder
- ContentTreeService: The operations exposed to callers
- ErrorCode / ErrorKind / TreeError / Result / StoreError: Error taxonomy
- MutationEntry / MutationLog: Audit trail of writes

Note: build a service from configuration with graph.factory.build_service()
"""

from foliotree.graph.ContentNode import ContentNode, NodeType, TreeNode
from foliotree.graph.errors import ErrorCode, ErrorKind, Result, StoreError, TreeError
from foliotree.graph.guard import InvariantGuard, ValidatedCreate
from foliotree.graph.index import NodeIndex
from foliotree.graph.mutations import MutationEntry, MutationLog
from foliotree.graph.ordering import Direction, OrderingEngine
from foliotree.graph.paths import PathResolver
from foliotree.graph.service import ContentTreeService, TreeListing

__all__ = [
    "NodeType",
    "ContentNode",
    "TreeNode",
    "NodeIndex",
    "PathResolver",
    "InvariantGuard",
    "ValidatedCreate",
    "OrderingEngine",
    "Direction",
    "ContentTreeService",
    "TreeListing",
    "ErrorCode",
    "ErrorKind",
    "TreeError",
    "Result",
    "StoreError",
    "MutationEntry",
    "MutationLog",
]
