"""Error kinds raised by the classification core."""


class InvalidArgumentError(ValueError):
    """Raised for malformed arguments (negative period, empty required series).

    Data insufficiency is never an error: callers receive ``None`` or a
    degraded ``FORMING`` classification instead.
    """
