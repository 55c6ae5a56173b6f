"""
HTTP Transport

The only place requests are put on the wire. Clients compose a method,
an instance-relative path, a content type and a Credential; the transport
adds authorization, retries failed connections and hands back the raw
response for the caller to interpret.
"""

from typing import Any, Dict, Iterable, Optional
import requests
import structlog
from tenacity import RetryCallState, retry, stop_after_attempt, wait_exponential

from ..errors import RemoteError, TransportError

logger = structlog.get_logger()

API_VERSION = "v59.0"
API_PATH = f"/services/data/{API_VERSION}"

JSON_TYPE = "application/json"
CSV_TYPE = "text/csv"

# Methods that are safe to send again after the server may have seen them
IDEMPOTENT_METHODS = frozenset(["GET", "HEAD", "OPTIONS", "PUT", "DELETE"])


def is_retryable(retry_state: RetryCallState) -> bool:
    """
    Decide whether a failed send is tried again.

    A connect timeout never reached the server, so any method is retried.
    Other connection errors and read timeouts may have been processed
    remotely; only idempotent methods are retried for those.
    """
    outcome = retry_state.outcome
    if outcome is None or not outcome.failed:
        return False

    error = outcome.exception()
    if isinstance(error, requests.ConnectTimeout):
        return True

    method = str(retry_state.args[1]).upper()
    return isinstance(error, (requests.ConnectionError, requests.Timeout)) and method in IDEMPOTENT_METHODS


class Transport:
    """requests.Session wrapper shared by the REST and Bulk clients"""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 60.0):
        self._session = session or requests.Session()
        self.timeout = timeout

    def send(
        self,
        method: str,
        path: str,
        content_type: str,
        credential,
        body: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
        accept: Optional[str] = None
    ) -> requests.Response:
        """
        Send one authenticated request.

        Args:
            method: HTTP method
            path: Path relative to the instance URL (e.g. /services/data/v59.0/...)
            content_type: Request content type
            credential: Credential supplying token and instance URL
            body: Request body, already encoded
            params: Query string parameters
            accept: Accept header (defaults to content_type)

        Returns:
            The response, whatever its status

        Raises:
            TransportError: if no response was received
        """
        url = f"{credential.instance_url}{path}"
        headers = {
            'Authorization': credential.authorization,
            'Content-Type': content_type,
            'Accept': accept or content_type
        }

        try:
            response = self._send(method, url, headers, body, params)
        except requests.RequestException as e:
            logger.error("transport_error", method=method, path=path, error=str(e))
            raise TransportError(f"{method} {path} failed: {e}") from e

        logger.debug("request_sent", method=method, path=path, status_code=response.status_code)
        return response

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=is_retryable,
        reraise=True
    )
    def _send(self, method, url, headers, body, params) -> requests.Response:
        return self._session.request(
            method, url, headers=headers, data=body, params=params, timeout=self.timeout
        )

    def close(self) -> None:
        self._session.close()


# ==================== Error Handling ====================

def error_message(response: requests.Response) -> str:
    """Best-effort message from a Salesforce error body"""
    try:
        data = response.json()
    except ValueError:
        return response.text

    if isinstance(data, list):
        messages = [item.get("message", str(item)) for item in data if isinstance(item, dict)]
        return "; ".join(messages) if messages else response.text
    if isinstance(data, dict):
        return data.get("message") or data.get("error_description") or response.text
    return response.text


def handle_error(response: requests.Response, operation: str, **context) -> RemoteError:
    """Log a failed response and build the RemoteError for it"""
    try:
        error_data = response.json()
    except ValueError:
        error_data = {'message': response.text}

    fields = []
    if isinstance(error_data, list):
        for item in error_data:
            if isinstance(item, dict):
                fields.extend(item.get("fields") or [])

    logger.error(
        "salesforce_api_error",
        operation=operation,
        status_code=response.status_code,
        error=error_data,
        **context
    )

    return RemoteError(
        error_message(response),
        status_code=response.status_code,
        fields=fields,
        record_id=context.get("record_id"),
        job_id=context.get("job_id"),
        error_data=error_data
    )


def raise_for_status(
    response: requests.Response,
    operation: str,
    expected: Iterable[int] = (200,),
    **context
) -> None:
    if response.status_code not in expected:
        raise handle_error(response, operation, **context)
