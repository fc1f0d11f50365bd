from typing import Iterable, List


class WorkflowRepairError(Exception):
    """Base class for errors that abort a workflow repair"""


class InvalidWorkflowInput(WorkflowRepairError, ValueError):
    """Raised when the payload is not a workflow object at all"""


class AllocationExhausted(WorkflowRepairError):
    """No free identifier could be found within the attempt ceiling"""

    def __init__(self, prefix: str, attempts: int):
        self.prefix = prefix
        self.attempts = attempts
        super().__init__(f"Failed to generate unique ID for prefix '{prefix}' after {attempts} attempts")


class DuplicateIdentifierError(WorkflowRepairError):
    """Duplicate node or edge ids survived the deduplication pass"""

    def __init__(self, node_ids: Iterable[str] = (), edge_ids: Iterable[str] = ()):
        self.node_ids: List[str] = list(node_ids)
        self.edge_ids: List[str] = list(edge_ids)
        super().__init__(
            f"Duplicate IDs detected: {len(self.node_ids)} duplicate node IDs, "
            f"{len(self.edge_ids)} duplicate edge IDs"
        )
