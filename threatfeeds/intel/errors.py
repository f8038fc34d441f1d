"""Feed pipeline exceptions."""


class FeedError(Exception):
    """Base class for custom feed errors."""


class FeedNotFoundError(FeedError):
    """Raised when a feed id does not exist in the registry."""

    def __init__(self, feed_id: str) -> None:
        super().__init__(f"Feed not found: {feed_id}")
        self.feed_id = feed_id


class FeedFetchError(FeedError):
    """Transport failure: network error, timeout or non-2xx response."""


class FeedParseError(FeedError):
    """Payload could not be decoded for the feed's declared type."""
