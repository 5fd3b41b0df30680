class HalfwayError(Exception):
    """Base class for errors raised by the meet-me-halfway core"""


class InvalidInput(HalfwayError):
    """Malformed coordinate or request parameter supplied by the caller"""


class InvalidRoute(HalfwayError):
    """Route that cannot be used to compute a midpoint (fewer than 2 points)"""


class CollaboratorUnavailable(HalfwayError):
    """An external routing / travel time / POI / geocoding call failed"""

    def __init__(self, service: str, message: str):
        super().__init__(f"{service}: {message}")
        self.service = service


class NotFound(HalfwayError):
    """Stored record does not exist or belongs to another user"""
