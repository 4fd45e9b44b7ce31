"""Error types shared by the upstream readers and the HTTP layer."""


class IndexerError(Exception):
    """Upstream request failed (after retries where they apply)."""

    code = "upstream_unavailable"

    def __init__(self, message, status=None, body=None, url=None):
        super().__init__(message)
        self.status = status
        self.body = body
        self.url = url


class IndexerNotFoundError(IndexerError):
    """The indexer answered 404: the box or resource does not exist."""


class WeekNotPublishedError(Exception):
    """A week's challenge or draw-state boxes have not been published yet."""

    def __init__(self, week, cause=None):
        super().__init__(f"Week {week} draw state not found or not yet published")
        self.week = week
        self.cause = cause


class PrizeConfigError(Exception):
    """The legacy prize configuration file could not be loaded."""


class ApiError(Exception):
    """Caller-visible failure rendered as {"error": code, "message": message}."""

    def __init__(self, code, message, status=400):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status

    def to_dict(self):
        return {"error": self.code, "message": self.message}
