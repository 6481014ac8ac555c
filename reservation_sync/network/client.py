"""
Octorate REST client.

Every call carries an explicit timeout and is made at most twice: once, and
once more after a token refresh when the channel manager answers 401. There is
no retry on timeouts or server errors; a duplicated booking-creation call could
create a duplicate external booking.
"""

import time
from typing import Any, Optional, cast

import requests
import structlog
from sqlalchemy.engine import Engine

from reservation_sync.config import OCTORATE_API_BASE_URL, OCTORATE_TIMEOUT_SECONDS
from reservation_sync.exceptions import ExternalSyncFailure
from reservation_sync.metrics import api_latency, api_requests
from reservation_sync.network.auth import get_or_refresh_token

logger = structlog.get_logger(__name__)


def build_booking_request(
    reservation: dict[str, Any], accommodation_id: str, external_room_id: str
) -> dict[str, Any]:
    """
    Build the booking-creation body from a reservation snapshot.

    Args:
        reservation (dict[str, Any]): Reservation row as returned by the readers.
        accommodation_id (str): Octorate accommodation ID of the property.
        external_room_id (str): Octorate room type ID from the room mapping.

    Returns:
        dict[str, Any]: JSON-serializable request body.
    """
    full_name = (reservation.get("guest_name") or "").strip()
    first_name, _, last_name = full_name.partition(" ")
    body: dict[str, Any] = {
        "accommodationId": accommodation_id,
        "roomTypeId": external_room_id,
        "checkInDate": reservation["check_in"].isoformat(),
        "checkOutDate": reservation["check_out"].isoformat(),
        "guests": {
            "adults": reservation.get("adults") or 0,
            "children": reservation.get("children") or 0,
            "infants": reservation.get("infants") or 0,
        },
        "guestInfo": {
            "firstName": first_name,
            "lastName": last_name,
            "email": reservation.get("guest_email") or "",
        },
        "externalReference": reservation["confirmation_number"],
        "totalAmount": (
            (reservation.get("base_rate") or 0)
            + (reservation.get("taxes") or 0)
            + (reservation.get("fees") or 0)
        )
        / 100,
        "currency": reservation.get("currency") or "EUR",
    }
    if reservation.get("special_requests"):
        body["specialRequests"] = reservation["special_requests"]
    return body


class OctorateClient:
    """
    Channel-manager client bound to one engine (for token storage) and one HTTP session.

    Constructed once per process and injected into the services; tests pass a
    mocked session.
    """

    def __init__(
        self,
        engine: Engine,
        session: Optional[requests.Session] = None,
        base_url: str = OCTORATE_API_BASE_URL,
        timeout: float = OCTORATE_TIMEOUT_SECONDS,
    ) -> None:
        self.engine = engine
        self.session = session or requests.Session()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def request(
        self,
        connection_id: str,
        method: str,
        path: str,
        endpoint: str,
        json_body: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """
        Make an authenticated request on behalf of a connection.

        Args:
            connection_id (str): ExternalConnection whose token is used.
            method (str): HTTP method.
            path (str): Path below the API base URL.
            endpoint (str): Low-cardinality label for metrics (e.g. "bookings").
            json_body (Optional[dict[str, Any]]): JSON body, if any.

        Returns:
            dict[str, Any]: Decoded JSON response.

        Raises:
            requests.RequestException: On timeout, transport error or non-2xx status.
        """
        token = get_or_refresh_token(self.engine, connection_id)
        res = self._send(method, path, endpoint, token, json_body)

        if res.status_code == 401:
            logger.warning("channel_api_unauthorized_refreshing", endpoint=endpoint)
            token = get_or_refresh_token(self.engine, connection_id, prev_token=token)
            res = self._send(method, path, endpoint, token, json_body)

        if not res.ok:
            logger.error(
                "channel_api_error",
                endpoint=endpoint,
                status_code=res.status_code,
                response_text=res.text[:500],
            )
        res.raise_for_status()
        return cast(dict[str, Any], res.json())

    def _send(
        self,
        method: str,
        path: str,
        endpoint: str,
        token: str,
        json_body: Optional[dict[str, Any]],
    ) -> requests.Response:
        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
        start_time = time.time()
        try:
            res = self.session.request(
                method,
                f"{self.base_url}{path}",
                headers=headers,
                json=json_body,
                timeout=self.timeout,
            )
        except requests.RequestException as err:
            api_requests.labels(endpoint=endpoint, status_code="error").inc()
            logger.warning("channel_api_request_failed", endpoint=endpoint, error=str(err))
            raise
        api_requests.labels(endpoint=endpoint, status_code=str(res.status_code)).inc()
        api_latency.labels(endpoint=endpoint).observe(time.time() - start_time)
        return res

    def create_booking(
        self,
        connection: dict[str, Any],
        reservation: dict[str, Any],
        external_room_id: str,
    ) -> str:
        """
        Create the booking in the channel manager.

        Args:
            connection (dict[str, Any]): Active connection row.
            reservation (dict[str, Any]): Reservation snapshot.
            external_room_id (str): Mapped Octorate room type ID.

        Returns:
            str: The external booking ID.

        Raises:
            requests.RequestException: If the call fails or times out.
            ExternalSyncFailure: If the response carries no booking ID.
        """
        accommodation_id = connection["external_accommodation_id"]
        data = self.request(
            connection["id"],
            "POST",
            f"/accommodations/{accommodation_id}/bookings",
            endpoint="bookings",
            json_body=build_booking_request(reservation, accommodation_id, external_room_id),
        )
        booking_id = data.get("bookingId")
        if not booking_id:
            raise ExternalSyncFailure(reservation["id"], "Octorate response has no bookingId")
        return str(booking_id)
