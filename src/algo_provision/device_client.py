"""Signed HTTPS client for the Algo device control API."""

import threading
import time
from datetime import timezone
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import requests
import urllib3

from algo_provision import constants
from algo_provision.exceptions import (
    AuthClockSkewError, DeviceApiError, NetworkUnreachableError
)
from algo_provision.logging_config import get_logger, log_with_context
from algo_provision.models import DeviceInfo
from algo_provision.rejection_log import RejectionLog
from algo_provision.signing import SignedRequest, encode_json_body, sign_request


def clock_offset_from_date(date_header: str, local_now: float) -> Optional[int]:
    """
    Seconds the device clock is ahead of ours, from its Date header.

    A "-0000" zone parses as naive and is taken as UTC.

    Returns:
        Integer offset, or None if the header cannot be parsed
    """
    try:
        parsed = parsedate_to_datetime(date_header)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    server_time = parsed.timestamp()
    return int(round(server_time - local_now))


class DeviceClient:
    """Client for the per-device HTTPS control API."""

    def __init__(
        self,
        secret: str,
        principal: str = constants.DEFAULT_PRINCIPAL,
        request_timeout: float = constants.DEFAULT_REQUEST_TIMEOUT,
        firmware_timeout: float = constants.DEFAULT_FIRMWARE_TIMEOUT,
        rejection_log: Optional[RejectionLog] = None,
        session: Optional[requests.Session] = None,
        verify_tls: bool = False,
        scheme: str = "https",
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize device client.

        Args:
            secret: Shared HMAC secret
            principal: Principal name for the Authorization header
            request_timeout: Timeout for settings and control calls in seconds
            firmware_timeout: Timeout for firmware uploads in seconds
            rejection_log: Audit log for failed attempts
            session: Optional requests.Session shared by all threads (testing).
                Without one, each calling thread gets its own session.
            verify_tls: Verify device certificates (devices ship self-signed ones)
            scheme: URL scheme
            clock: Wall clock used for signing and skew measurement
        """
        self.secret = secret
        self.principal = principal
        self.request_timeout = request_timeout
        self.firmware_timeout = firmware_timeout
        self.rejection_log = rejection_log or RejectionLog(None)
        self._shared_session = session
        self._local = threading.local()
        self.verify_tls = verify_tls
        self.scheme = scheme
        self.clock = clock
        self.logger = get_logger("algo_provision.device_client")

        if not verify_tls:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    @property
    def session(self) -> requests.Session:
        """The injected session, otherwise one session per calling thread."""
        if self._shared_session is not None:
            return self._shared_session
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
        return session

    def _url(self, address: str, path: str) -> str:
        return f"{self.scheme}://{address}{path}"

    def _sign(
        self,
        method: str,
        path: str,
        body: Optional[bytes],
        content_type: Optional[str],
        clock_offset: int
    ) -> SignedRequest:
        return sign_request(
            method,
            path,
            self.secret,
            principal=self.principal,
            body=body,
            content_type=content_type,
            clock_offset=clock_offset,
            now=self.clock()
        )

    def _send(self, address: str, signed: SignedRequest, timeout: float) -> requests.Response:
        """Send one signed attempt. Network failures are recorded and raised."""
        try:
            return self.session.request(
                signed.method,
                self._url(address, signed.path),
                data=signed.body,
                headers=signed.headers,
                timeout=timeout,
                verify=self.verify_tls
            )
        except requests.RequestException as e:
            self.rejection_log.record(address, constants.STATUS_NETWORK, str(e))
            raise NetworkUnreachableError(address, str(e)) from e

    def call(
        self,
        address: str,
        path: str,
        method: str = "GET",
        payload: Any = None,
        *,
        body: Optional[bytes] = None,
        content_type: Optional[str] = None,
        timeout: Optional[float] = None
    ) -> requests.Response:
        """
        Perform one authenticated call, correcting for device clock skew once.

        Args:
            address: Device address
            path: API path
            method: HTTP method
            payload: JSON-serializable body
            body: Raw body bytes (used instead of payload)
            content_type: Content type for a raw body
            timeout: Request timeout override in seconds

        Returns:
            Successful response

        Raises:
            NetworkUnreachableError: Transport failure (no retry)
            AuthClockSkewError: 403 persisted after the corrective retry
            DeviceApiError: Any other error status
        """
        if payload is not None and body is None:
            body = encode_json_body(payload)
            content_type = constants.CONTENT_TYPE_JSON
        if timeout is None:
            timeout = self.request_timeout

        response = self._send(address, self._sign(method, path, body, content_type, 0), timeout)
        if response.status_code < 400:
            return response

        message = _response_message(response)
        timestamp = self.rejection_log.record(address, response.status_code, message)

        date_header = response.headers.get("Date")
        if response.status_code != 403 or not date_header:
            raise DeviceApiError(address, response.status_code, message)

        offset = clock_offset_from_date(date_header, self.clock())
        if offset is None:
            raise DeviceApiError(address, response.status_code, message)

        log_with_context(
            self.logger, "warning",
            f"[SYNC] {timestamp} Time drift {offset}s on {address}, retrying",
            address=address,
            details={"offset": offset, "path": path}
        )

        retry = self._send(address, self._sign(method, path, body, content_type, offset), timeout)
        if retry.status_code < 400:
            return retry

        message = _response_message(retry)
        self.rejection_log.record(address, retry.status_code, message)
        if retry.status_code == 403:
            raise AuthClockSkewError(address, offset, message)
        raise DeviceApiError(address, retry.status_code, message)

    def get_device_info(self, address: str) -> DeviceInfo:
        """
        Identify the device.

        Returns:
            DeviceInfo with model and firmware version
        """
        self.logger.debug(f"Getting device info from {address}")
        response = self.call(address, constants.API_INFO_ABOUT, "GET")
        try:
            data = response.json()
        except ValueError as e:
            raise DeviceApiError(address, response.status_code, f"invalid JSON in info response: {e}")
        if not isinstance(data, dict):
            raise DeviceApiError(address, response.status_code, "unexpected info response shape")
        return DeviceInfo.from_about(data)

    def apply_settings(self, address: str, settings: Dict[str, Any]) -> requests.Response:
        """PUT a flat dotted-key settings dictionary."""
        self.logger.info(f"Applying {len(settings)} settings to {address}")
        return self.call(address, constants.API_SETTINGS, "PUT", settings)

    def push_config(self, address: str, config_text: str) -> requests.Response:
        """PUT a full configuration blob."""
        self.logger.info(f"Pushing configuration blob ({len(config_text)} bytes) to {address}")
        return self.call(address, constants.API_SETTINGS, "PUT", {"config": config_text})

    def reboot(self, address: str) -> requests.Response:
        """Ask the device to reboot. Returns before the device disconnects."""
        self.logger.info(f"Rebooting device {address}")
        return self.call(address, constants.API_REBOOT, "POST")

    def upload_firmware(self, address: str, artifact_path: Path) -> requests.Response:
        """
        Upload a firmware image as a binary body.

        Args:
            address: Device address
            artifact_path: Local firmware file

        Returns:
            Successful response
        """
        data = Path(artifact_path).read_bytes()
        self.logger.info(f"Uploading firmware {Path(artifact_path).name} ({len(data)} bytes) to {address}")
        return self.call(
            address,
            constants.API_FIRMWARE,
            "POST",
            body=data,
            content_type=constants.CONTENT_TYPE_BINARY,
            timeout=self.firmware_timeout
        )


def _response_message(response: requests.Response) -> str:
    text = (response.text or "").strip()
    return text[:200] if text else (response.reason or "")
