"""Crash reporting.

A router node with reporting enabled asks its factory for a fresh reporter on
every exchange. The reporter is told about any exception escaping the handler
and is always closed when the exchange ends.
"""

from __future__ import annotations

from typing import Callable, Protocol


class FaultReporter(Protocol):
    def notify_fault(self, exc: BaseException) -> None: ...

    def close(self) -> None: ...


ReporterFactory = Callable[[], FaultReporter]


class AirbrakeReporter:
    """FaultReporter backed by an Airbrake notifier."""

    def __init__(self, project_id: int, project_key: str, environment: str | None = None) -> None:
        import pybrake

        self._notifier = pybrake.Notifier(
            project_id=project_id,
            project_key=project_key,
            environment=environment,
        )

    def notify_fault(self, exc: BaseException) -> None:
        self._notifier.notify_sync(exc)

    def close(self) -> None:
        self._notifier.close()


def airbrake_factory(project_id: int, project_key: str, environment: str | None = None) -> ReporterFactory:
    def factory() -> FaultReporter:
        return AirbrakeReporter(project_id, project_key, environment)

    return factory
