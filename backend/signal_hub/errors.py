"""
Hub Error Taxonomy

None of these are fatal to the hub process:
- ProtocolViolation: an inbound message is discarded, the connection stays open
- CollaboratorFailure: notification / persistence / route provider failed
- DeliveryFailure: a single observer could not be written to
- LifecycleError: an accept/reject command did not match a pending case
"""


class ProtocolViolation(ValueError):
    """Malformed or incomplete inbound message"""


class CollaboratorFailure(RuntimeError):
    """External collaborator (SMS, persistence, routing) failed"""

    def __init__(self, collaborator: str, message: str):
        super().__init__(f"{collaborator}: {message}")
        self.collaborator = collaborator


class DeliveryFailure(ConnectionError):
    """Send to one observer failed"""

    def __init__(self, connection_id: str, message: str = "channel not writable"):
        super().__init__(f"{connection_id}: {message}")
        self.connection_id = connection_id


class LifecycleError(ValueError):
    """Requested lifecycle transition is not allowed"""
