"""
Network loaders for dataset payloads.

Each loader is responsible for acquiring one kind of payload (tabular data
or metadata) for a dataset ID from a specific remote service. Loaders never
raise for the conditions the retrieval pipeline needs to tell apart; they
return a FetchResult whose status says what happened.
"""

import enum
import logging
import time
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional
from xml.sax.saxutils import escape

import requests

from .errors import ImporterError


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60


class FetchStatus(enum.Enum):
    OK = 'ok'
    NOT_FOUND = 'not_found'
    SESSION_EXPIRED = 'session_expired'
    FAILED = 'failed'


@dataclass(frozen=True)
class FetchResult:
    """Outcome of a single fetch attempt"""
    status: FetchStatus
    payload: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def ok(cls, payload: str) -> 'FetchResult':
        return cls(FetchStatus.OK, payload=payload)

    @classmethod
    def not_found(cls, reason: Optional[str] = None) -> 'FetchResult':
        return cls(FetchStatus.NOT_FOUND, reason=reason)

    @classmethod
    def session_expired(cls) -> 'FetchResult':
        return cls(FetchStatus.SESSION_EXPIRED, reason='Session expired')

    @classmethod
    def failed(cls, reason: str) -> 'FetchResult':
        return cls(FetchStatus.FAILED, reason=reason)


class BaseLoader(ABC):
    """Abstract base class for payload loaders"""

    @abstractmethod
    def fetch(self, dataset_id: str) -> FetchResult:
        """Make one attempt at fetching the payload for *dataset_id*"""
        pass

    def renew_session(self) -> None:
        """Re-establish the service session after SESSION_EXPIRED.

        Loaders for session-less services never report an expired session,
        so the default does nothing.
        """
        pass


class HTTPLoader(BaseLoader):
    """Loader for payloads served by plain HTTP GET.

    Args:
        url_for: Builds the download URL from a dataset ID.
        timeout: Per-request timeout in seconds.
    """

    def __init__(self, url_for: Callable[[str], str], timeout: int = DEFAULT_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.url_for = url_for
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch(self, dataset_id: str) -> FetchResult:
        url = self.url_for(dataset_id)
        try:
            logger.debug(f"Downloading {dataset_id} from {url}")
            response = self.session.get(url, timeout=self.timeout)

            if response.status_code == 404:
                return FetchResult.not_found(f"{url} returned 404")
            response.raise_for_status()

            # PANGAEA text files are UTF-8. Without a charset in the Content-Type
            # requests would guess ISO-8859-1, so the declared encoding is ignored.
            return FetchResult.ok(response.content.decode('utf-8'))

        except (requests.RequestException, UnicodeDecodeError) as e:
            return FetchResult.failed(f"Error downloading {url}: {e}")


class SessionState(enum.Enum):
    NO_SESSION = 'no_session'
    REFRESHING = 'refreshing'
    ACTIVE = 'active'


SOAP_ENV_NS = 'http://schemas.xmlsoap.org/soap/envelope/'


class PangaVistaLoader(BaseLoader):
    """
    Metadata loader for the PANGAEA PangaVista SOAP service.

    The service needs a session ID, obtained with ``registerSession``, on
    every ``metadata`` call. Sessions expire server-side without notice, so
    the loader keeps its own session state and reports SESSION_EXPIRED when
    the service rejects the current one; the caller then asks for a renewal.
    """

    END_POINT = 'https://ws.pangaea.de/ws/services/PangaVista'
    OPERATION_NS = 'http://soapinterop.org/'
    OPERATION_REGISTER_SESSION = 'registerSession'
    OPERATION_METADATA = 'metadata'

    # The service only reports these conditions as SOAP fault prose. Matching
    # on the text breaks if PANGAEA rewords its messages.
    EXPIRED_SESSION_FAULT = 'You must register a valid session first!'
    NOT_FOUND_FAULT = 'This is not a valid PANGAEA DOI or DATASETID'

    # Using a session straight after registering it fails intermittently
    SESSION_SETTLE_SECONDS = 1

    def __init__(self, timeout: int = DEFAULT_TIMEOUT, end_point: Optional[str] = None,
                 session: Optional[requests.Session] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.timeout = timeout
        self.end_point = end_point or self.END_POINT
        self.http = session or requests.Session()
        self.sleep = sleep
        self.state = SessionState.NO_SESSION
        self.session_id: Optional[str] = None

    def fetch(self, dataset_id: str) -> FetchResult:
        if self.state != SessionState.ACTIVE:
            try:
                self.renew_session()
            except ImporterError as e:
                return FetchResult.failed(str(e))

        try:
            body = self._call(self.OPERATION_METADATA, session=self.session_id, URI=dataset_id)
        except requests.RequestException as e:
            return FetchResult.failed(f"PangaVista request failed: {e}")
        except ET.ParseError as e:
            return FetchResult.failed(f"Malformed PangaVista response: {e}")

        fault = self._fault_string(body)
        if fault is not None:
            if fault.strip() == self.EXPIRED_SESSION_FAULT:
                self.state = SessionState.NO_SESSION
                return FetchResult.session_expired()
            if fault.strip().startswith(self.NOT_FOUND_FAULT):
                return FetchResult.not_found(fault)
            return FetchResult.failed(f"PangaVista fault: {fault}")

        metadata = self._return_value(body)
        if metadata is None:
            return FetchResult.failed("PangaVista response contained no metadata")
        return FetchResult.ok(metadata)

    def renew_session(self) -> None:
        """Register a new session with the service.

        Raises:
            ImporterError: If no session ID could be obtained. The loader is
                left in the NO_SESSION state.
        """
        self.state = SessionState.REFRESHING
        self.session_id = None
        logger.info("Registering new PangaVista session")

        try:
            body = self._call(self.OPERATION_REGISTER_SESSION)
            fault = self._fault_string(body)
            session_id = None if fault is not None else self._return_value(body)
        except (requests.RequestException, ET.ParseError) as e:
            self.state = SessionState.NO_SESSION
            raise ImporterError(f"Unable to get a session ID: {e}") from e

        if not session_id:
            self.state = SessionState.NO_SESSION
            raise ImporterError(f"Unable to get a session ID: {fault or 'empty response'}")

        self.session_id = session_id.strip()
        self.state = SessionState.ACTIVE
        self.sleep(self.SESSION_SETTLE_SECONDS)

    def _call(self, operation: str, **params: str) -> ET.Element:
        """POST a SOAP request and return the parsed Body element"""
        response = self.http.post(
            self.end_point,
            data=self._envelope(operation, params).encode('utf-8'),
            headers={'Content-Type': 'text/xml; charset=utf-8', 'SOAPAction': '""'},
            timeout=self.timeout,
        )

        # Faults come back as HTTP 500 with a normal SOAP body
        if response.status_code >= 400 and b'Fault' not in response.content:
            response.raise_for_status()

        root = ET.fromstring(response.content)
        body = root.find(f'{{{SOAP_ENV_NS}}}Body')
        if body is None:
            raise ET.ParseError("Response has no SOAP Body")
        return body

    def _envelope(self, operation: str, params: dict) -> str:
        args = ''.join(
            f'<{name} xsi:type="xsd:string">{escape(value or "")}</{name}>'
            for name, value in params.items()
        )
        return (
            '<?xml version="1.0" encoding="UTF-8"?>'
            f'<soapenv:Envelope xmlns:soapenv="{SOAP_ENV_NS}" '
            'xmlns:xsd="http://www.w3.org/2001/XMLSchema" '
            'xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance">'
            '<soapenv:Body>'
            f'<ns1:{operation} xmlns:ns1="{self.OPERATION_NS}">{args}</ns1:{operation}>'
            '</soapenv:Body>'
            '</soapenv:Envelope>'
        )

    @staticmethod
    def _fault_string(body: ET.Element) -> Optional[str]:
        fault = body.find(f'{{{SOAP_ENV_NS}}}Fault')
        if fault is None:
            return None
        return fault.findtext('faultstring', default='')

    @staticmethod
    def _return_value(body: ET.Element) -> Optional[str]:
        # rpc style: <opResponse><opReturn>value</opReturn></opResponse>
        for response in body:
            for value in response:
                return value.text
        return None
