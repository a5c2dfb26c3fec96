class EnrichmentException(Exception):
    """Base exception for all enrichment-pipeline errors."""
    pass

class RateLimitExceededException(EnrichmentException):
    """Raised when the GitHub GraphQL rate limit is hit."""
    def __init__(self, reset_at: str, message: str = "GitHub API rate limit exceeded."):
        self.reset_at = reset_at
        super().__init__(f"{message} Resets at: {reset_at}")

class TransportException(EnrichmentException):
    """Raised when an HTTP call fails or keeps returning a non-2xx status."""
    def __init__(self, url: str, message: str, status: int = None):
        self.url = url
        self.status = status
        super().__init__(f"{message} ({url})")

class ResponseParseException(EnrichmentException):
    """Raised when a query service returns a body we cannot interpret."""
    pass

class ProcessException(EnrichmentException):
    """Raised when an external command exits with a non-zero status."""
    def __init__(self, command: str, returncode: int, stderr: str = ""):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"'{command}' exited with {returncode}: {stderr.strip()[:500]}")

class ProcessTimeoutException(ProcessException):
    """Raised when an external command outlives its per-item timeout."""
    def __init__(self, command: str, timeout: float):
        self.timeout = timeout
        super().__init__(command, -1, f"timed out after {timeout}s")

class DatabaseException(EnrichmentException):
    """Raised when a database operation fails."""
    pass
