"""EWS endpoint discovery (POX autodiscover).

Candidates are tried in the usual Exchange order:

1. ``https://<domain>/autodiscover/autodiscover.xml``
2. ``https://autodiscover.<domain>/autodiscover/autodiscover.xml``
3. An unauthenticated GET to ``http://autodiscover.<domain>/...`` whose
   HTTP redirect is followed.

Every redirect target and the final EWS URL must use ``https``. An insecure
redirect aborts discovery with :class:`DiscoveryError`; it never falls
through to the next candidate.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import urlsplit
from xml.etree.ElementTree import Element
from xml.sax.saxutils import escape

import requests
import structlog
from defusedxml import DefusedXmlException
from defusedxml.ElementTree import ParseError, fromstring
from requests.auth import HTTPBasicAuth

from pmc_exchange.exceptions import AuthenticationError, DiscoveryError

logger = structlog.get_logger()

_REQUEST_TEMPLATE = """<?xml version="1.0" encoding="utf-8"?>
<Autodiscover xmlns="http://schemas.microsoft.com/exchange/autodiscover/outlook/requestschema/2006">
  <Request>
    <EMailAddress>{email}</EMailAddress>
    <AcceptableResponseSchema>http://schemas.microsoft.com/exchange/autodiscover/outlook/responseschema/2006a</AcceptableResponseSchema>
  </Request>
</Autodiscover>
"""

_REDIRECT_STATUSES = {301, 302, 303, 307, 308}

# Internal endpoint first, then external.
_PROTOCOL_PREFERENCE = ("EXCH", "EXPR", "WEB")


def is_secure_redirect(url: str) -> bool:
    """Return True if ``url`` may be used as an autodiscover or EWS target."""
    return urlsplit(url).scheme.lower() == "https"


def _require_secure(url: str, what: str) -> str:
    if not is_secure_redirect(url):
        logger.error("autodiscover_insecure_target_rejected", target=url, kind=what)
        raise DiscoveryError(f"Refusing non-https {what}: {url}")
    return url


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _find_all(root: Element, name: str) -> list[Element]:
    return [el for el in root.iter() if _local_name(el.tag) == name]


def _child_text(el: Element, name: str) -> str | None:
    for child in el:
        if _local_name(child.tag) == name and child.text:
            return child.text.strip()
    return None


def parse_autodiscover_response(body: bytes | str) -> tuple[str, str | None]:
    """Parse a POX autodiscover response.

    Returns:
        ``(action, value)`` where action is ``settings`` (value is the EWS
        URL), ``redirectAddr`` (value is an email address) or ``redirectUrl``
        (value is the next autodiscover URL).

    Raises:
        DiscoveryError: If the payload is an error response or unparseable.
    """
    try:
        root = fromstring(body)
    except ParseError as exc:
        raise DiscoveryError(f"Malformed autodiscover response: {exc}") from exc
    except DefusedXmlException as exc:
        raise DiscoveryError(f"Rejected unsafe autodiscover response: {exc}") from exc

    for error in _find_all(root, "Error"):
        message = _child_text(error, "Message") or _child_text(error, "ErrorCode") or "unknown error"
        raise DiscoveryError(f"Autodiscover error: {message}")

    accounts = _find_all(root, "Account")
    if not accounts:
        raise DiscoveryError("Autodiscover response has no Account element")
    account = accounts[0]

    action = _child_text(account, "Action") or "settings"
    if action == "redirectAddr":
        return action, _child_text(account, "RedirectAddr")
    if action == "redirectUrl":
        return action, _child_text(account, "RedirectUrl")

    protocols = {}
    for protocol in _find_all(account, "Protocol"):
        ptype = _child_text(protocol, "Type")
        ews_url = _child_text(protocol, "EwsUrl")
        if ptype and ews_url:
            protocols.setdefault(ptype, ews_url)

    for ptype in _PROTOCOL_PREFERENCE:
        if ptype in protocols:
            return "settings", protocols[ptype]
    raise DiscoveryError("Autodiscover response did not contain an EWS URL")


def build_http_auth(username: str, password: str, auth_type: str) -> Any:
    """Return a ``requests`` auth object for the configured scheme."""
    if auth_type.lower() == "basic":
        return HTTPBasicAuth(username, password)
    from requests_ntlm import HttpNtlmAuth

    return HttpNtlmAuth(username, password)


class Autodiscoverer:
    """Resolve an account's EWS URL from its email address."""

    def __init__(
        self,
        auth: Any,
        *,
        session: requests.Session,
        timeout: int = 30,
        max_redirects: int = 10,
    ) -> None:
        self._auth = auth
        self._session = session
        self._timeout = timeout
        self._max_redirects = max_redirects
        self._hops = 0

    def discover(self, email: str) -> str:
        """Return the EWS URL for ``email``.

        Raises:
            AuthenticationError: If the server rejects the credentials.
            DiscoveryError: If no secure endpoint is found.
        """
        self._hops = 0
        return self._discover_address(email)

    def _discover_address(self, email: str) -> str:
        domain = email.rsplit("@", 1)[-1].strip().lower()
        if not domain or "@" not in email:
            raise DiscoveryError(f"Cannot derive a domain from address: {email!r}")

        logger.info("autodiscover_started", domain=domain)

        candidates = [
            f"https://{domain}/autodiscover/autodiscover.xml",
            f"https://autodiscover.{domain}/autodiscover/autodiscover.xml",
        ]
        for url in candidates:
            result = self._try_endpoint(url, email)
            if result is not None:
                return result

        redirected = self._follow_http_redirect(f"http://autodiscover.{domain}/autodiscover/autodiscover.xml")
        if redirected is not None:
            result = self._try_endpoint(redirected, email)
            if result is not None:
                return result

        raise DiscoveryError(f"No secure EWS endpoint found for domain {domain}")

    def _count_hop(self) -> None:
        self._hops += 1
        if self._hops > self._max_redirects:
            raise DiscoveryError(f"Too many autodiscover redirects (>{self._max_redirects})")

    def _try_endpoint(self, url: str, email: str) -> str | None:
        """POST to ``url``; follow redirects; None means try the next candidate."""
        while True:
            logger.debug("autodiscover_request", url=url)
            try:
                response = self._session.post(
                    url,
                    data=_REQUEST_TEMPLATE.format(email=escape(email)).encode("utf-8"),
                    headers={"Content-Type": "text/xml; charset=utf-8"},
                    auth=self._auth,
                    timeout=self._timeout,
                    allow_redirects=False,
                )
            except requests.RequestException as exc:
                logger.debug("autodiscover_endpoint_unreachable", url=url, error=str(exc))
                return None

            status = response.status_code
            if status in _REDIRECT_STATUSES:
                location = response.headers.get("Location")
                if not location:
                    return None
                self._count_hop()
                url = _require_secure(location, "redirect")
                continue
            if status == 401:
                raise AuthenticationError(f"Autodiscover rejected the credentials at {url}")
            if status != 200:
                logger.debug("autodiscover_endpoint_failed", url=url, status=status)
                return None

            try:
                action, value = parse_autodiscover_response(response.content)
            except DiscoveryError as exc:
                logger.debug("autodiscover_response_invalid", url=url, error=str(exc))
                return None

            if action == "settings" and value:
                ews_url = _require_secure(value, "EWS URL")
                logger.info("autodiscover_completed", ews_url=ews_url)
                return ews_url
            if action == "redirectAddr" and value:
                self._count_hop()
                logger.info("autodiscover_redirect_address", address=value)
                return self._discover_address(value)
            if action == "redirectUrl" and value:
                self._count_hop()
                url = _require_secure(value, "redirect")
                continue
            return None

    def _follow_http_redirect(self, url: str) -> str | None:
        # No credentials are sent on this plain-http request.
        try:
            response = self._session.get(url, timeout=self._timeout, allow_redirects=False)
        except requests.RequestException as exc:
            logger.debug("autodiscover_endpoint_unreachable", url=url, error=str(exc))
            return None

        location = response.headers.get("Location")
        if response.status_code not in _REDIRECT_STATUSES or not location:
            return None
        self._count_hop()
        return _require_secure(location, "redirect")


def discover_ews_url(
    email: str,
    *,
    auth: Any,
    session: requests.Session | None = None,
    timeout: int = 30,
    max_redirects: int = 10,
) -> str:
    """Convenience wrapper around :class:`Autodiscoverer`.

    A session created here is closed before returning; a caller's session is
    left open.
    """
    if session is not None:
        discoverer = Autodiscoverer(auth, session=session, timeout=timeout, max_redirects=max_redirects)
        return discoverer.discover(email)
    with requests.Session() as owned:
        return discover_ews_url(email, auth=auth, session=owned, timeout=timeout, max_redirects=max_redirects)
