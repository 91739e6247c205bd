"""Core error types for :mod:`rxapplog`."""


class AppLogException(Exception):
    """An error raised inside an rxapplog component.

    Reactive components report it through ``on_error``. ``exception`` is the
    underlying error and is chained as ``__cause__``; ``source`` names the
    component and ``note`` what it was doing.
    """

    def __init__(
        self, exception: BaseException, source: str = "Unknown", note: str = ""
    ):
        super().__init__(exception, source, note)
        self.exception = exception
        self.source = source
        self.note = note
        self.__cause__ = exception

    @property
    def error_name(self) -> str:
        """Class name of the underlying error."""
        return type(self.exception).__name__

    def __str__(self) -> str:
        where = f"<{self.source}> {self.note}" if self.note else f"<{self.source}>"
        return f"{where}: {self.exception}"
