"""Unit tests for EWS autodiscovery."""

from __future__ import annotations

import pytest
import requests

from pmc_exchange.exceptions import AuthenticationError, DiscoveryError
from pmc_exchange.exchange.autodiscover import (
    Autodiscoverer,
    discover_ews_url,
    is_secure_redirect,
    parse_autodiscover_response,
)

EWS_URL = "https://mail.contoso.com/EWS/Exchange.asmx"


def _settings_body(ews_url: str = EWS_URL, protocol: str = "EXPR") -> str:
    return f"""<?xml version="1.0" encoding="utf-8"?>
<Autodiscover xmlns="http://schemas.microsoft.com/exchange/autodiscover/responseschema/2006">
  <Response xmlns="http://schemas.microsoft.com/exchange/autodiscover/outlook/responseschema/2006a">
    <Account>
      <AccountType>email</AccountType>
      <Action>settings</Action>
      <Protocol>
        <Type>{protocol}</Type>
        <EwsUrl>{ews_url}</EwsUrl>
      </Protocol>
    </Account>
  </Response>
</Autodiscover>"""


def _redirect_body(action: str, tag: str, value: str) -> str:
    return f"""<?xml version="1.0" encoding="utf-8"?>
<Autodiscover xmlns="http://schemas.microsoft.com/exchange/autodiscover/responseschema/2006">
  <Response xmlns="http://schemas.microsoft.com/exchange/autodiscover/outlook/responseschema/2006a">
    <Account>
      <Action>{action}</Action>
      <{tag}>{value}</{tag}>
    </Account>
  </Response>
</Autodiscover>"""


class FakeResponse:
    def __init__(self, status_code: int = 200, body: str = "", location: str | None = None) -> None:
        self.status_code = status_code
        self.content = body.encode("utf-8")
        self.headers = {"Location": location} if location else {}


class FakeSession:
    """Answers requests from a url -> response (or exception) table."""

    def __init__(self, routes: dict[str, FakeResponse | Exception]) -> None:
        self.routes = routes
        self.requests: list[tuple[str, str]] = []

    def _answer(self, method: str, url: str) -> FakeResponse:
        self.requests.append((method, url))
        answer = self.routes.get(url, requests.ConnectionError(f"no route to {url}"))
        if isinstance(answer, Exception):
            raise answer
        return answer

    def post(self, url: str, **kwargs) -> FakeResponse:
        assert kwargs["allow_redirects"] is False
        return self._answer("POST", url)

    def get(self, url: str, **kwargs) -> FakeResponse:
        return self._answer("GET", url)


class ClosingSession(FakeSession):
    """FakeSession that records whether it was closed."""

    def __init__(self, routes: dict[str, FakeResponse | Exception]) -> None:
        super().__init__(routes)
        self.closed = False

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "ClosingSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


ROOT_URL = "https://contoso.com/autodiscover/autodiscover.xml"
AUTODISCOVER_URL = "https://autodiscover.contoso.com/autodiscover/autodiscover.xml"
HTTP_REDIRECT_URL = "http://autodiscover.contoso.com/autodiscover/autodiscover.xml"


def _discover(routes: dict[str, FakeResponse | Exception], email: str = "alice@contoso.com") -> str:
    return Autodiscoverer(auth=None, session=FakeSession(routes)).discover(email)


class TestSecureRedirect:
    def test_http_is_rejected(self) -> None:
        assert is_secure_redirect("http://autodiscover.contoso.com/autodiscover/autodiscover.xml") is False

    def test_https_is_accepted(self) -> None:
        assert is_secure_redirect("https://autodiscover.contoso.com/autodiscover/autodiscover.xml") is True

    def test_scheme_check_is_case_insensitive(self) -> None:
        assert is_secure_redirect("HTTPS://mail.contoso.com/EWS/Exchange.asmx") is True


class TestParseAutodiscoverResponse:
    def test_settings_prefers_internal_endpoint(self) -> None:
        body = _settings_body().replace(
            "<Protocol>",
            "<Protocol><Type>EXCH</Type><EwsUrl>https://internal.contoso.com/EWS/Exchange.asmx</EwsUrl></Protocol><Protocol>",
            1,
        )

        assert parse_autodiscover_response(body) == (
            "settings",
            "https://internal.contoso.com/EWS/Exchange.asmx",
        )

    def test_redirect_addr(self) -> None:
        body = _redirect_body("redirectAddr", "RedirectAddr", "alice@fabrikam.com")

        assert parse_autodiscover_response(body) == ("redirectAddr", "alice@fabrikam.com")

    def test_error_response(self) -> None:
        body = """<Autodiscover xmlns="http://schemas.microsoft.com/exchange/autodiscover/responseschema/2006">
          <Response><Error><ErrorCode>500</ErrorCode><Message>The e-mail address cannot be found.</Message></Error></Response>
        </Autodiscover>"""

        with pytest.raises(DiscoveryError, match="cannot be found"):
            parse_autodiscover_response(body)

    def test_entity_expansion_is_rejected(self) -> None:
        body = """<?xml version="1.0"?>
<!DOCTYPE Autodiscover [
  <!ENTITY lol "lol">
  <!ENTITY lol2 "&lol;&lol;&lol;&lol;&lol;&lol;&lol;&lol;&lol;&lol;">
]>
<Autodiscover><Response><Account><Action>&lol2;</Action></Account></Response></Autodiscover>"""

        with pytest.raises(DiscoveryError, match="unsafe"):
            parse_autodiscover_response(body)

    def test_malformed_xml(self) -> None:
        with pytest.raises(DiscoveryError):
            parse_autodiscover_response("<Autodiscover>")


class TestAutodiscoverer:
    def test_first_candidate_settings(self) -> None:
        assert _discover({ROOT_URL: FakeResponse(body=_settings_body())}) == EWS_URL

    def test_falls_through_to_autodiscover_host(self) -> None:
        routes = {
            ROOT_URL: FakeResponse(status_code=404),
            AUTODISCOVER_URL: FakeResponse(body=_settings_body()),
        }

        assert _discover(routes) == EWS_URL

    def test_https_redirect_is_followed(self) -> None:
        target = "https://autodiscover.outlook.com/autodiscover/autodiscover.xml"
        routes = {
            ROOT_URL: FakeResponse(status_code=302, location=target),
            target: FakeResponse(body=_settings_body()),
        }

        assert _discover(routes) == EWS_URL

    def test_http_redirect_fails_outright(self) -> None:
        """An insecure redirect must not fall back to the next candidate."""
        routes = {
            ROOT_URL: FakeResponse(status_code=302, location="http://evil.example.com/autodiscover.xml"),
            AUTODISCOVER_URL: FakeResponse(body=_settings_body()),
        }
        session = FakeSession(routes)

        with pytest.raises(DiscoveryError):
            Autodiscoverer(auth=None, session=session).discover("alice@contoso.com")

        assert ("POST", AUTODISCOVER_URL) not in session.requests

    def test_plain_http_redirect_to_https_is_accepted(self) -> None:
        target = "https://autodiscover-s.outlook.com/autodiscover/autodiscover.xml"
        routes = {
            HTTP_REDIRECT_URL: FakeResponse(status_code=302, location=target),
            target: FakeResponse(body=_settings_body()),
        }

        assert _discover(routes) == EWS_URL

    def test_plain_http_redirect_to_http_is_rejected(self) -> None:
        routes = {HTTP_REDIRECT_URL: FakeResponse(status_code=302, location="http://plain.contoso.com/a.xml")}

        with pytest.raises(DiscoveryError):
            _discover(routes)

    def test_insecure_ews_url_is_rejected(self) -> None:
        routes = {ROOT_URL: FakeResponse(body=_settings_body("http://mail.contoso.com/EWS/Exchange.asmx"))}

        with pytest.raises(DiscoveryError):
            _discover(routes)

    def test_redirect_address_restarts_discovery(self) -> None:
        routes = {
            ROOT_URL: FakeResponse(body=_redirect_body("redirectAddr", "RedirectAddr", "alice@fabrikam.com")),
            "https://fabrikam.com/autodiscover/autodiscover.xml": FakeResponse(body=_settings_body()),
        }

        assert _discover(routes) == EWS_URL

    def test_redirect_loop_is_bounded(self) -> None:
        routes = {
            ROOT_URL: FakeResponse(body=_redirect_body("redirectUrl", "RedirectUrl", ROOT_URL)),
        }

        with pytest.raises(DiscoveryError, match="Too many"):
            _discover(routes)

    def test_unauthorized_raises_authentication_error(self) -> None:
        with pytest.raises(AuthenticationError):
            _discover({ROOT_URL: FakeResponse(status_code=401)})

    def test_no_endpoint_raises_discovery_error(self) -> None:
        with pytest.raises(DiscoveryError):
            _discover({})

    def test_address_without_domain_raises(self) -> None:
        with pytest.raises(DiscoveryError):
            _discover({}, email="not-an-address")


class TestDiscoverEwsUrl:
    def test_owned_session_is_closed(self, monkeypatch: pytest.MonkeyPatch) -> None:
        session = ClosingSession({ROOT_URL: FakeResponse(body=_settings_body())})
        monkeypatch.setattr("pmc_exchange.exchange.autodiscover.requests.Session", lambda: session)

        assert discover_ews_url("alice@contoso.com", auth=None) == EWS_URL
        assert session.closed is True

    def test_owned_session_is_closed_on_failure(self, monkeypatch: pytest.MonkeyPatch) -> None:
        session = ClosingSession({})
        monkeypatch.setattr("pmc_exchange.exchange.autodiscover.requests.Session", lambda: session)

        with pytest.raises(DiscoveryError):
            discover_ews_url("alice@contoso.com", auth=None)
        assert session.closed is True

    def test_caller_session_is_left_open(self) -> None:
        session = ClosingSession({ROOT_URL: FakeResponse(body=_settings_body())})

        assert discover_ews_url("alice@contoso.com", auth=None, session=session) == EWS_URL
        assert session.closed is False
