"""Migration queue interface definitions.

The migration queue is the transport every stage of the engine talks
through. Producers send typed messages with an optional delivery delay;
the engine's checkers ask how much fan-out work is still outstanding and
how much has been dead-lettered; a cancel request purges pending work.
Consumers receive, delete (acknowledge) and release (negatively
acknowledge) messages.

Delivery is at-least-once. A released message is redelivered until its
receive count reaches the queue's limit, after which it is moved to the
dead-letter destination, whose depth is the run's failure count.

Queues are addressed by id; the engine uses the domain type of a run as
its queue id, so each domain drains independently.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from legacysync.messages import MigrationContext, MigrationMessageType


@dataclass(frozen=True)
class ReceivedMessage:
    """
    A message handed to a consumer.

    Attributes:
        queue_id: Queue the message was received from
        message_id: Identifier assigned on send
        receipt: Handle used to delete or release this delivery
        body: Encoded MigrationMessage JSON
        receive_count: Deliveries so far, including this one
    """

    queue_id: str
    message_id: str
    receipt: str
    body: str
    receive_count: int


class MigrationQueue(ABC):
    """
    Abstract queue gateway for migration messages.

    Fan-out messages (divide, page, entity, mapping retry) count towards
    ``is_probably_non_empty`` and are removed by ``purge_all``. Control
    messages (status and cancellation checks) are neither counted nor purged.
    """

    @abstractmethod
    async def send_message(
        self,
        message_type: MigrationMessageType,
        context: MigrationContext,
        delay_seconds: float = 0,
    ) -> str:
        """
        Send a message to the queue for the context's domain.

        Args:
            message_type: Stage the message drives
            context: Run lineage and stage payload
            delay_seconds: Hold the message back for this long before it
                becomes visible to consumers

        Returns:
            The message id
        """
        pass

    @abstractmethod
    async def is_probably_non_empty(self, queue_id: str) -> bool:
        """
        Check whether fan-out messages are still pending or in flight.

        Depth is approximate for distributed backends, so callers should
        confirm an "empty" answer several times before relying on it.
        """
        pass

    @abstractmethod
    async def count_failed(self, queue_id: str) -> int:
        """Return the depth of the queue's dead-letter destination."""
        pass

    @abstractmethod
    async def purge_all(self, queue_id: str) -> int:
        """
        Remove all pending fan-out messages, including delayed ones.

        Messages currently being handled are left to finish.

        Returns:
            Number of messages purged (best effort)
        """
        pass

    @abstractmethod
    async def receive_messages(self, queue_id: str, max_messages: int = 10) -> list[ReceivedMessage]:
        """
        Receive up to max_messages visible messages.

        Received messages stay invisible to other consumers until they are
        deleted, released or their visibility timeout expires.
        """
        pass

    @abstractmethod
    async def delete_message(self, queue_id: str, receipt: str) -> None:
        """Acknowledge a successfully handled message."""
        pass

    @abstractmethod
    async def release_message(self, queue_id: str, receipt: str) -> bool:
        """
        Negatively acknowledge a message whose handling failed.

        Returns:
            True if the message was moved to the dead-letter destination,
            False if it will be redelivered
        """
        pass


__all__ = [
    "MigrationQueue",
    "ReceivedMessage",
]
