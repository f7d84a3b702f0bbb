"""Tests for the signed device API client and its clock-skew retry."""

import threading
import time
from email.utils import formatdate, parsedate_to_datetime

import pytest
import requests

from algo_provision.device_client import DeviceClient, clock_offset_from_date
from algo_provision.exceptions import (
    AuthClockSkewError, DeviceApiError, NetworkUnreachableError
)
from algo_provision.rejection_log import RejectionLog
from tests.helpers import MockResponse

ADDRESS = "10.0.0.11"
ABOUT = {"Product Name": "Algo 8186 SIP Horn Speaker", "Firmware Version": "4.2.0"}


@pytest.fixture
def rejection_file(tmp_path):
    return tmp_path / "rejections.log"


@pytest.fixture
def client(mock_session, fake_clock, rejection_file):
    return DeviceClient(
        secret="algo",
        request_timeout=10,
        firmware_timeout=120,
        rejection_log=RejectionLog(rejection_file),
        session=mock_session,
        clock=fake_clock
    )


def _sent_timestamp(recorded) -> int:
    return int(parsedate_to_datetime(recorded.headers["Date"]).timestamp())


class TestClockOffset:
    """Test Date header parsing."""

    def test_device_ahead(self):
        assert clock_offset_from_date(formatdate(1_700_000_045, usegmt=True), 1_700_000_000.0) == 45

    def test_device_behind(self):
        assert clock_offset_from_date(formatdate(1_699_999_880, usegmt=True), 1_700_000_000.0) == -120

    def test_unparseable(self):
        assert clock_offset_from_date("not a date", 1_700_000_000.0) is None

    @pytest.mark.skipif(not hasattr(time, "tzset"), reason="needs time.tzset")
    def test_unknown_zone_read_as_utc(self, monkeypatch):
        monkeypatch.setenv("TZ", "America/New_York")
        time.tzset()
        try:
            header = formatdate(1_700_000_045, usegmt=True).replace("GMT", "-0000")
            assert clock_offset_from_date(header, 1_700_000_000.0) == 45
        finally:
            monkeypatch.undo()
            time.tzset()


class TestCall:
    """Test single-call behavior."""

    def test_success_single_attempt(self, client, mock_session, rejection_file):
        mock_session.add_response("GET", "/api/info/about", MockResponse(200, ABOUT))

        response = client.call(ADDRESS, "/api/info/about")

        assert response.status_code == 200
        assert len(mock_session.requests) == 1
        sent = mock_session.requests[0]
        assert sent.url == f"https://{ADDRESS}/api/info/about"
        assert sent.timeout == 10
        assert sent.verify is False
        assert sent.headers["Authorization"].startswith("hmac admin:")
        assert not rejection_file.exists()

    def test_payload_is_json_encoded(self, client, mock_session):
        mock_session.add_response("PUT", "/api/settings", MockResponse(200, {}))

        client.call(ADDRESS, "/api/settings", "PUT", {"nm.ipv4.mode": "static"})

        sent = mock_session.requests[0]
        assert sent.data == b'{"nm.ipv4.mode":"static"}'
        assert sent.headers["Content-Type"] == "application/json"
        assert "Content-Md5" in sent.headers

    def test_skew_retry_uses_device_clock(self, client, mock_session, fake_clock, rejection_file):
        """A 403 carrying a Date 45s ahead is retried once, 45s later."""
        device_date = formatdate(fake_clock() + 45, usegmt=True)
        mock_session.add_response(
            "GET", "/api/info/about",
            MockResponse(403, text="Forbidden", headers={"Date": device_date}),
            MockResponse(200, ABOUT)
        )

        response = client.call(ADDRESS, "/api/info/about")

        assert response.status_code == 200
        first, second = mock_session.requests
        assert _sent_timestamp(second) - _sent_timestamp(first) == 45
        assert first.headers["Authorization"] != second.headers["Authorization"]

        lines = rejection_file.read_text().splitlines()
        assert len(lines) == 1
        assert f"HOST: {ADDRESS} | STATUS: 403 | MSG: Forbidden" in lines[0]

    def test_second_403_raises_clock_skew(self, client, mock_session, fake_clock, rejection_file):
        device_date = formatdate(fake_clock() + 300, usegmt=True)
        mock_session.add_response(
            "GET", "/api/info/about",
            MockResponse(403, text="Forbidden", headers={"Date": device_date})
        )

        with pytest.raises(AuthClockSkewError) as exc_info:
            client.call(ADDRESS, "/api/info/about")

        assert exc_info.value.offset == 300
        assert exc_info.value.status == 403
        assert len(mock_session.requests) == 2
        assert len(rejection_file.read_text().splitlines()) == 2

    def test_retry_failing_with_other_status(self, client, mock_session, fake_clock):
        device_date = formatdate(fake_clock() + 10, usegmt=True)
        mock_session.add_response(
            "GET", "/api/info/about",
            MockResponse(403, headers={"Date": device_date}),
            MockResponse(500, text="Internal Error")
        )

        with pytest.raises(DeviceApiError) as exc_info:
            client.call(ADDRESS, "/api/info/about")

        assert not isinstance(exc_info.value, AuthClockSkewError)
        assert exc_info.value.status == 500

    def test_no_retry_on_server_error(self, client, mock_session, rejection_file):
        mock_session.add_response("PUT", "/api/settings", MockResponse(500, text="Internal Error"))

        with pytest.raises(DeviceApiError) as exc_info:
            client.call(ADDRESS, "/api/settings", "PUT", {"a": "b"})

        assert exc_info.value.status == 500
        assert len(mock_session.requests) == 1
        assert "STATUS: 500 | MSG: Internal Error" in rejection_file.read_text()

    def test_no_retry_on_403_without_date(self, client, mock_session):
        mock_session.add_response("GET", "/api/info/about", MockResponse(403, text="Forbidden"))

        with pytest.raises(DeviceApiError) as exc_info:
            client.call(ADDRESS, "/api/info/about")

        assert exc_info.value.status == 403
        assert len(mock_session.requests) == 1

    def test_no_retry_on_403_with_garbage_date(self, client, mock_session):
        mock_session.add_response(
            "GET", "/api/info/about",
            MockResponse(403, headers={"Date": "yesterday-ish"})
        )

        with pytest.raises(DeviceApiError):
            client.call(ADDRESS, "/api/info/about")

        assert len(mock_session.requests) == 1

    def test_network_error_not_retried(self, client, mock_session, rejection_file):
        mock_session.add_response(
            "GET", "/api/info/about",
            requests.ConnectionError("connection refused")
        )

        with pytest.raises(NetworkUnreachableError):
            client.call(ADDRESS, "/api/info/about")

        assert len(mock_session.requests) == 1
        assert "STATUS: NETWORK | MSG: connection refused" in rejection_file.read_text()

    def test_timeout_is_network_error(self, client, mock_session):
        mock_session.add_response("POST", "/api/controls/reboot", requests.Timeout("read timed out"))

        with pytest.raises(NetworkUnreachableError):
            client.reboot(ADDRESS)

    def test_long_error_text_truncated(self, client, mock_session):
        mock_session.add_response("GET", "/api/info/about", MockResponse(500, text="x" * 1000))

        with pytest.raises(DeviceApiError) as exc_info:
            client.call(ADDRESS, "/api/info/about")

        assert len(exc_info.value.message) == 200


class TestOperations:
    """Test the named device operations."""

    def test_get_device_info(self, client, mock_session):
        mock_session.add_response("GET", "/api/info/about", MockResponse(200, ABOUT))

        info = client.get_device_info(ADDRESS)

        assert info.model == "Algo 8186 SIP Horn Speaker"
        assert info.firmware_version == "4.2.0"

    def test_get_device_info_invalid_json(self, client, mock_session):
        mock_session.add_response("GET", "/api/info/about", MockResponse(200, text="<html>"))

        with pytest.raises(DeviceApiError):
            client.get_device_info(ADDRESS)

    def test_apply_settings(self, client, mock_session):
        mock_session.add_response("PUT", "/api/settings", MockResponse(200, {}))

        client.apply_settings(ADDRESS, {"nm.ipv4.address": "10.0.1.11"})

        assert mock_session.calls("PUT", "/api/settings")[0].data == b'{"nm.ipv4.address":"10.0.1.11"}'

    def test_push_config_wraps_blob(self, client, mock_session):
        mock_session.add_response("PUT", "/api/settings", MockResponse(200, {}))

        client.push_config(ADDRESS, "audio.page.vol = -6dB\n")

        assert mock_session.requests[0].data == b'{"config":"audio.page.vol = -6dB\\n"}'

    def test_reboot_is_signed_post_without_body(self, client, mock_session):
        mock_session.add_response("POST", "/api/controls/reboot", MockResponse(200, {}))

        client.reboot(ADDRESS)

        sent = mock_session.requests[0]
        assert sent.method == "POST"
        assert sent.data is None
        assert "Authorization" in sent.headers

    def test_upload_firmware(self, client, mock_session, tmp_path):
        image = tmp_path / "8186_v4.5.1.bin"
        image.write_bytes(b"\x7fELF-image")
        mock_session.add_response("POST", "/api/firmware", MockResponse(200, {}))

        client.upload_firmware(ADDRESS, image)

        sent = mock_session.requests[0]
        assert sent.data == b"\x7fELF-image"
        assert sent.headers["Content-Type"] == "application/octet-stream"
        assert sent.timeout == 120


class TestSessions:
    """Test HTTP session ownership across worker threads."""

    def test_each_thread_gets_its_own_session(self):
        client = DeviceClient(secret="algo")
        seen = {}

        def worker(name):
            seen[name] = (client.session, client.session)

        threads = [threading.Thread(target=worker, args=(name,)) for name in ("a", "b")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        first_a, second_a = seen["a"]
        first_b, _ = seen["b"]
        assert isinstance(first_a, requests.Session)
        assert first_a is second_a
        assert first_a is not first_b
        assert client.session is not first_a

    def test_injected_session_shared_by_all_threads(self, mock_session):
        client = DeviceClient(secret="algo", session=mock_session)
        seen = []

        thread = threading.Thread(target=lambda: seen.append(client.session))
        thread.start()
        thread.join()

        assert seen == [mock_session]
        assert client.session is mock_session
