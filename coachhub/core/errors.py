class CoachHubError(Exception):
    """Base class for errors surfaced to the end user."""


class NoCoachAvailable(CoachHubError):
    """No coach (or other non-client contact) exists to receive a client's message."""

    def __init__(self, tenant_id: str, sender_id: str):
        self.tenant_id = tenant_id
        self.sender_id = sender_id
        super().__init__(f"No coach found for tenant {tenant_id}")


class ReportFailed(CoachHubError):
    """A moderation report could not be stored. The user may retry."""

    def __init__(self, message_id: str, reason: str = ""):
        self.message_id = message_id
        super().__init__(f"Failed to report message {message_id}: {reason}")


class InvalidRecipient(CoachHubError, ValueError):
    """The requested receiver can't be messaged by this sender."""

    def __init__(self, receiver_id: str, reason: str):
        self.receiver_id = receiver_id
        super().__init__(f"Cannot send to {receiver_id}: {reason}")
