"""Wire rules of the Mixpanel ingestion API.

Events are sent as base64(JSON) in a ``data`` parameter: in the query string
for immediate delivery (one event per GET) and as a form field for batch
delivery (a JSON array of up to 50 events per POST).

Response validation (see https://developer.mixpanel.com/docs/http):
- verbose=1: body is JSON ``{"status": 1|0, "error": "..."}``
- verbose=0: body is "1" on success and "0" on failure
A request is successful only with HTTP 200 and a body that passes validation.
"""

import base64
import json
import logging
from typing import Any, Optional
from urllib.parse import urlencode

from .errors import AnalyticsError, ErrorCallback, ResponseValidationError, TransportError
from .transport import Transport

logger = logging.getLogger(__name__)

BASE_API = "https://api.mixpanel.com"

TRACK = "track"
ENGAGE = "engage"


def encode_data(event: Any) -> str:
    """Encode an event (or a list of events) as base64 of its UTF-8 JSON."""
    return base64.b64encode(json.dumps(event).encode("utf-8")).decode("ascii")


class ErrorReporter:
    """Single side channel for non-fatal failures.

    Proxies errors to the ``on_error`` callback when one is configured,
    otherwise logs them as warnings.
    """

    def __init__(self, on_error: Optional[ErrorCallback] = None):
        self.on_error = on_error

    def report(self, error: AnalyticsError) -> None:
        if self.on_error is not None:
            try:
                self.on_error(error)
            except Exception as e:
                logger.error(f"Error callback raised: {e}", exc_info=True)
            return
        logger.warning(str(error))


class MixpanelApi:
    """Sends encoded events to the track and engage endpoints."""

    def __init__(
        self,
        transport: Transport,
        base_url: str = BASE_API,
        verbose: bool = False,
        reporter: Optional[ErrorReporter] = None,
    ):
        self.transport = transport
        self.base_url = base_url.rstrip("/")
        self.verbose = verbose
        self.reporter = reporter or ErrorReporter()

    def endpoint(self, op: str) -> str:
        return f"{self.base_url}/{op}/"

    async def send_event(self, op: str, event: Any) -> bool:
        """Send one event via GET with ``data`` in the query string."""
        query = urlencode({"data": encode_data(event), "verbose": 1 if self.verbose else 0})
        url = f"{self.endpoint(op)}?{query}"
        try:
            response = await self.transport.get(url, headers={"Content-type": "application/json"})
        except Exception as e:
            self._report_transport(url, e)
            return False
        return self._check_response(url, response.status_code, response.body)

    async def send_batch(self, op: str, events: Any) -> bool:
        """Send a list of events via form POST with ``data`` in the body."""
        url = f"{self.endpoint(op)}?verbose={1 if self.verbose else 0}"
        try:
            response = await self.transport.post(
                url,
                headers={"Content-type": "application/x-www-form-urlencoded"},
                data={"data": encode_data(events)},
            )
        except Exception as e:
            self._report_transport(url, e)
            return False
        return self._check_response(url, response.status_code, response.body)

    def _report_transport(self, url: str, cause: Exception) -> None:
        error = TransportError(f"Request error to {url}: {cause}", url=url)
        error.__cause__ = cause
        self.reporter.report(error)

    def _check_response(self, url: str, status_code: int, body: str) -> bool:
        if status_code != 200:
            self.reporter.report(
                TransportError(f"Request error to {url}: HTTP {status_code}", url=url, status_code=status_code)
            )
            return False
        return self.validate_response_body(url, body)

    def validate_response_body(self, url: str, body: str) -> bool:
        """Validate a 200 response body according to the verbose setting."""
        if self.verbose:
            try:
                decoded = json.loads(body)
            except (json.JSONDecodeError, TypeError) as e:
                self.reporter.report(
                    ResponseValidationError(f"Request error to {url}: invalid JSON body ({e})", url=url, body=body)
                )
                return False
            if not isinstance(decoded, dict):
                self.reporter.report(
                    ResponseValidationError(f"Request error to {url}: unexpected body {body!r}", url=url, body=body)
                )
                return False
            if decoded.get("status") == 0:
                self.reporter.report(
                    ResponseValidationError(f"Request error to {url}: {decoded.get('error')}", url=url, body=body)
                )
                return False
            return True

        if body.strip() == "0":
            self.reporter.report(ResponseValidationError(f"Request error to {url}", url=url, body=body))
            return False
        return True
