class MetricsLensError(Exception):
    pass


class ParseError(MetricsLensError, ValueError):
    """Raised when a payload is not valid OTLP metrics JSON."""


class InvalidArgumentError(MetricsLensError, ValueError):
    pass


class OutOfOrderSnapshotsError(MetricsLensError, ValueError):
    def __init__(self, timestamp_a: int, timestamp_b: int) -> None:
        super().__init__(
            'Snapshot B must be chronologically later than Snapshot A '
            f'(A={timestamp_a}, B={timestamp_b})'
        )
        self.timestamp_a = timestamp_a
        self.timestamp_b = timestamp_b


class SnapshotNotFoundError(MetricsLensError, KeyError):
    def __init__(self, snapshot_id: str) -> None:
        super().__init__(snapshot_id)
        self.snapshot_id = snapshot_id

    def __str__(self) -> str:
        return f'Snapshot {self.snapshot_id} not found'
