class GeoDropError(Exception):
    pass


class ValidationError(GeoDropError):
    pass


class NotFoundError(GeoDropError):
    pass


class OutOfRangeError(GeoDropError):
    def __init__(self, distance_meters: float, radius_meters: float):
        super().__init__(f"share is {distance_meters:.0f} m away, limit is {radius_meters:.0f} m")
        self.distance_meters = distance_meters
        self.radius_meters = radius_meters


class AlreadyConsumedError(GeoDropError):
    pass


class ExpiredError(GeoDropError):
    pass


class StorageError(GeoDropError):
    """Blob or record store failure. Callers may retry."""


class CodeCollisionError(GeoDropError):
    pass


class CodeSpaceExhaustedError(GeoDropError):
    pass
