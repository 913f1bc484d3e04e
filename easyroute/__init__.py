"""Route registration with gates, request timing and logging over Starlette."""

from easyroute.context import RequestContext, ResponseSink
from easyroute.errors import DecodeError, EasyRouteError
from easyroute.observability.logging import Logger, configure_logging
from easyroute.reporting import AirbrakeReporter, FaultReporter
from easyroute.router import RouteInfo, Router

__version__ = "0.1.0"
