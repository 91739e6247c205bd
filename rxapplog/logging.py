from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, Callable

import reactivex as rx
from reactivex import Observable, Observer
from reactivex import operators as ops

from .entry import LogEntry, LogLevel
from .mechanism import AppLogException

"""
Log components and operators for streams that carry LogEntry items next to
ordinary data.
"""


def keep_log(func: Callable[[Any], Any]) -> Callable[[Any], Any]:
    """
    Wrap a mapping function so LogEntry items pass through it unchanged.
    """

    def wrapper(x):
        if isinstance(x, LogEntry):
            return x
        return func(x)

    return wrapper


def log_filter(min_level: LogLevel | str = LogLevel.DEBUG):
    """
    Keep only the log entries at or above ``min_level``.
    """
    threshold = LogLevel.parse(min_level)
    return ops.filter(lambda x: isinstance(x, LogEntry) and x.level >= threshold)


def drop_log():
    return ops.filter(lambda x: not isinstance(x, LogEntry))


def log_redirect_to(
    log_observer: Observer | Callable,
    min_level: LogLevel | str = LogLevel.DEBUG,
):
    """
    Send the log entries to ``log_observer`` (an observer such as a LogPipeline,
    or a function) and forward everything else. Entries below ``min_level``
    are dropped.
    """
    threshold = LogLevel.parse(min_level)

    def _log_redirect_to(source):
        def subscribe(observer, scheduler=None):

            if hasattr(log_observer, "on_next"):
                redirect_fun = log_observer.on_next
            else:
                redirect_fun = log_observer

            def on_next(value: Any) -> None:
                if isinstance(value, LogEntry):
                    if value.level >= threshold:
                        redirect_fun(value)  # type: ignore
                else:
                    observer.on_next(value)

            return source.subscribe(
                on_next=on_next,
                on_error=observer.on_error,
                on_completed=observer.on_completed,
                scheduler=scheduler,
            )

        return Observable(subscribe)

    return _log_redirect_to


class LogComp(ABC):
    """
    A component that can log: it builds LogEntry items tagged with its name and
    hands them to a super observer (usually a LogPipeline).
    """

    @abstractmethod
    def set_super(self, obs: rx.abc.ObserverBase | Callable): ...

    @abstractmethod
    def log(
        self,
        message: str,
        level: LogLevel | str = LogLevel.INFO,
        context: Mapping[str, Any] | None = None,
        error: BaseException | None = None,
    ): ...

    @abstractmethod
    def get_exception(self, error: Exception, note: str = "") -> AppLogException: ...


class EmptyLogComp(LogComp):
    def set_super(self, obs: rx.abc.ObserverBase | Callable):
        pass

    def log(
        self,
        message: str,
        level: LogLevel | str = LogLevel.INFO,
        context: Mapping[str, Any] | None = None,
        error: BaseException | None = None,
    ):
        pass

    def get_exception(self, error: Exception, note: str = "") -> AppLogException:
        return AppLogException(error, note=note)


class NamedLogComp(LogComp):
    def __init__(self, name: str = "LogSource"):
        self.name = name
        self.super_obs: rx.abc.ObserverBase | Callable | None = None

    def set_super(self, obs: rx.abc.ObserverBase | Callable):
        """
        Set the observer (or function) receiving this component's entries.
        """
        self.super_obs = obs

    def log(
        self,
        message: str,
        level: LogLevel | str = LogLevel.INFO,
        context: Mapping[str, Any] | None = None,
        error: BaseException | None = None,
    ):
        """
        Log a message; the entry's source is this component's name.
        """
        entry = LogEntry.create(
            LogLevel.parse(level), message, context, error, source=self.name
        )
        if self.super_obs is None:
            raise RuntimeError("Super observer is not set. Please call set_super() first.")
        if hasattr(self.super_obs, "on_next"):
            self.super_obs.on_next(entry)
        else:
            self.super_obs(entry)  # type: ignore

    def get_exception(self, error: Exception, note: str = "") -> AppLogException:
        return AppLogException(error, source=self.name, note=note)
