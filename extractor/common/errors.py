"""Exception types raised by the extractor."""


class ExtractorError(Exception):
    """Base class for errors that should stop a run."""
    pass


class ConfigError(ExtractorError):
    """Required configuration is missing or invalid."""
    pass


class ChatworkAPIError(ExtractorError):
    """Chatwork returned a non-success response."""

    def __init__(self, status_code: int, message: str = ""):
        self.status_code = status_code
        super().__init__(f"Chatwork API Error: {status_code} {message}".strip())


class SubmissionError(ExtractorError):
    """Submitting a classification batch failed as a whole."""
    pass


class BatchTimeoutError(ExtractorError):
    """A batch job exceeded the configured hard wait limit."""

    def __init__(self, batch_id: str, elapsed: float):
        self.batch_id = batch_id
        self.elapsed = elapsed
        super().__init__(f"Batch {batch_id} still running after {elapsed:.0f}s")


class SpeakerMapMissingError(ExtractorError):
    """Attribution was requested for a room without a speaker map."""

    def __init__(self, room_id: str):
        self.room_id = room_id
        super().__init__(
            f"No speaker map for room {room_id}; re-fetch the room before rendering"
        )
