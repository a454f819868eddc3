from urllib.parse import parse_qs, urlsplit
from unittest.mock import MagicMock, patch

import pytest

from casgate.core.cas_client import CASClient
from casgate.core.responses import FailureCode
from casgate.exceptions import InvalidCallError, MissingPGT, ServerUnavailable
from conftest import PGT_SUCCESS_XML, PROXY_SUCCESS_XML, SUCCESS_XML, failure_xml


def query_of(url):
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}

def test_cas_client_urls():
    client = CASClient("https://cas.example.com")

    login_url = client.get_login_url("http://service.com")
    assert login_url == "https://cas.example.com/login?service=http%3A%2F%2Fservice.com"

    logout_url = client.get_logout_url(service="http://service.com")
    assert logout_url == "https://cas.example.com/logout?service=http%3A%2F%2Fservice.com"

    assert client.get_logout_url() == "https://cas.example.com/logout"

def test_gateway_login_url_marks_service_as_guest():
    client = CASClient("https://cas.example.com/cas")
    login_url = client.get_login_url("http://app/page?x=1", gateway=True)
    assert login_url.startswith("https://cas.example.com/cas/login?")
    assert query_of(login_url) == {"service": "http://app/page?x=1&cas=guest", "gateway": "true"}

def test_service_validate_url():
    client = CASClient("https://cas.example.com/cas")
    url = client.service_validate_url("http://app/?ticket=ST-1&a=b", "ST-1", "https://app/pgt_callback")
    assert urlsplit(url).path == "/cas/serviceValidate"
    assert query_of(url) == {"service": "http://app/?a=b", "ticket": "ST-1", "pgtUrl": "https://app/pgt_callback"}

@pytest.mark.asyncio
async def test_cas_validate_ticket_success():
    client = CASClient("https://cas.example.com")

    with patch("httpx.AsyncClient.get") as mock_get:
        mock_get.return_value = MagicMock(status_code=200, content=SUCCESS_XML)

        result = await client.validate_service("http://service.com", "ST-123")
        assert result.user == "alice"
        assert result.attributes["role"] == "admin"

        url = mock_get.call_args.args[0]
        assert "pgtUrl" not in query_of(url)
        assert mock_get.call_args.kwargs["headers"] == {"Accept": "*/*"}

@pytest.mark.asyncio
async def test_cas_validate_ticket_fail():
    client = CASClient("https://cas.example.com")

    with patch("httpx.AsyncClient.get") as mock_get:
        mock_get.return_value = MagicMock(status_code=200, content=failure_xml("INVALID_TICKET"))

        result = await client.validate_service("http://service.com", "ST-123")
        assert not result.ok
        assert result.code is FailureCode.INVALID_TICKET

@pytest.mark.asyncio
async def test_cas_validate_with_pgt_url():
    client = CASClient("https://cas.example.com")

    with patch("httpx.AsyncClient.get") as mock_get:
        mock_get.return_value = MagicMock(status_code=200, content=PGT_SUCCESS_XML)
        result = await client.validate_service("http://service.com", "ST-123", "https://service.com/pgt_callback")
        assert result.pgt_iou == "PGTIOU-84678-8a9d"

        mock_get.return_value = MagicMock(status_code=200, content=SUCCESS_XML)
        with pytest.raises(MissingPGT):
            await client.validate_service("http://service.com", "ST-123", "https://service.com/pgt_callback")

@pytest.mark.asyncio
async def test_cas_server_unavailable():
    client = CASClient("https://cas.example.com")

    with patch("httpx.AsyncClient.get") as mock_get:
        mock_get.return_value = MagicMock(status_code=503, text="Service Unavailable")

        with pytest.raises(ServerUnavailable) as excinfo:
            await client.validate_service("http://service.com", "ST-123")
        assert excinfo.value.status_code == 503

@pytest.mark.asyncio
async def test_proxy_ticket():
    client = CASClient("https://cas.example.com")

    with patch("httpx.AsyncClient.get") as mock_get:
        mock_get.return_value = MagicMock(status_code=200, content=PROXY_SUCCESS_XML)

        result = await client.validate_proxy_granting_ticket("https://backend.example.com", "PGT-1")
        assert result.proxy_ticket == "PT-957-ZuucXqTZ1YcJw81T3dxf"
        assert query_of(mock_get.call_args.args[0]) == {"service": "https://backend.example.com", "pgt": "PGT-1"}

@pytest.mark.asyncio
@pytest.mark.parametrize("service_url, pgt", [(None, "PGT-1"), ("", "PGT-1"), ("https://backend", None)])
async def test_proxy_ticket_argument_errors(service_url, pgt):
    client = CASClient("https://cas.example.com")

    with patch("httpx.AsyncClient.get") as mock_get:
        with pytest.raises(InvalidCallError):
            await client.validate_proxy_granting_ticket(service_url, pgt)
        mock_get.assert_not_called()
