import pytest
from unittest import mock

import requests

from cdi_pipeline.data_sources import SOURCES
from cdi_pipeline.errors import ImporterError
from cdi_pipeline.loaders import FetchStatus, HTTPLoader, PangaVistaLoader, SessionState
from cdi_pipeline.processors import TableProcessor


def soap_response(body_xml, status_code=200):
    content = (
        '<?xml version="1.0" encoding="utf-8"?>'
        '<soapenv:Envelope xmlns:soapenv="http://schemas.xmlsoap.org/soap/envelope/">'
        f'<soapenv:Body>{body_xml}</soapenv:Body>'
        '</soapenv:Envelope>'
    )
    return mock.MagicMock(status_code=status_code, content=content.encode('utf-8'))


def session_response(session_id='abc123'):
    return soap_response(
        '<ns1:registerSessionResponse xmlns:ns1="http://soapinterop.org/">'
        f'<registerSessionReturn>{session_id}</registerSessionReturn>'
        '</ns1:registerSessionResponse>'
    )


def metadata_response(escaped_xml='&lt;MetaData/&gt;'):
    return soap_response(
        '<ns1:metadataResponse xmlns:ns1="http://soapinterop.org/">'
        f'<metadataReturn>{escaped_xml}</metadataReturn>'
        '</ns1:metadataResponse>'
    )


def fault_response(message):
    return soap_response(
        '<soapenv:Fault><faultcode>soapenv:Server.userException</faultcode>'
        f'<faultstring>{message}</faultstring></soapenv:Fault>',
        status_code=500,
    )


@pytest.fixture
def http_session():
    return mock.MagicMock(spec=requests.Session)


class TestHTTPLoader:
    def test_fetch_ok(self, http_session):
        http_session.get.return_value = mock.MagicMock(status_code=200, content=b'Date/Time\t1\n', encoding=None)
        loader = HTTPLoader(lambda dataset_id: f"https://example.org/{dataset_id}", timeout=5, session=http_session)

        result = loader.fetch('123')

        assert result.status == FetchStatus.OK
        assert result.payload == 'Date/Time\t1\n'
        http_session.get.assert_called_once_with("https://example.org/123", timeout=5)

    def test_fetch_not_found(self, http_session):
        http_session.get.return_value = mock.MagicMock(status_code=404)
        loader = HTTPLoader(lambda dataset_id: "https://example.org/x", session=http_session)
        assert loader.fetch('123').status == FetchStatus.NOT_FOUND

    def test_fetch_server_error(self, http_session):
        response = mock.MagicMock(status_code=503)
        response.raise_for_status.side_effect = requests.HTTPError("503 Server Error")
        http_session.get.return_value = response
        loader = HTTPLoader(lambda dataset_id: "https://example.org/x", session=http_session)

        result = loader.fetch('123')

        assert result.status == FetchStatus.FAILED
        assert "503" in result.reason

    def test_fetch_connection_error(self, http_session):
        http_session.get.side_effect = requests.ConnectionError("refused")
        loader = HTTPLoader(lambda dataset_id: "https://example.org/x", session=http_session)
        assert loader.fetch('123').status == FetchStatus.FAILED

    def test_utf8_served_without_charset(self, http_session, socat_text):
        response = requests.Response()
        response.status_code = 200
        response.headers['Content-Type'] = 'text/plain'
        response._content = socat_text.encode('utf-8')
        response.encoding = requests.utils.get_encoding_from_headers(response.headers)
        http_session.get.return_value = response
        loader = HTTPLoader(lambda dataset_id: "https://example.org/x", session=http_session)

        result = loader.fetch('849221')

        assert response.encoding == 'ISO-8859-1'
        assert result.payload == socat_text
        stored = TableProcessor().process(SOURCES['SOCATv3'](), result.payload)
        assert 'Temp [°C]' in stored.splitlines()[0]

    def test_invalid_utf8(self, http_session):
        http_session.get.return_value = mock.MagicMock(status_code=200, content=b'Temp [\xb0C]')
        loader = HTTPLoader(lambda dataset_id: "https://example.org/x", session=http_session)

        result = loader.fetch('123')

        assert result.status == FetchStatus.FAILED
        assert "Error downloading" in result.reason

    def test_renew_session_is_noop(self, http_session):
        HTTPLoader(lambda dataset_id: "x", session=http_session).renew_session()
        http_session.get.assert_not_called()


class TestPangaVistaLoader:
    def make_loader(self, http_session):
        return PangaVistaLoader(timeout=5, session=http_session, sleep=mock.MagicMock())

    def test_first_fetch_registers_session(self, http_session):
        http_session.post.side_effect = [session_response(), metadata_response()]
        loader = self.make_loader(http_session)
        assert loader.state == SessionState.NO_SESSION

        result = loader.fetch('849221')

        assert result.status == FetchStatus.OK
        assert result.payload == '<MetaData/>'
        assert loader.state == SessionState.ACTIVE
        assert loader.session_id == 'abc123'
        loader.sleep.assert_called_once_with(PangaVistaLoader.SESSION_SETTLE_SECONDS)

        register_call, metadata_call = http_session.post.call_args_list
        assert b'registerSession' in register_call.kwargs['data']
        assert b'<session xsi:type="xsd:string">abc123</session>' in metadata_call.kwargs['data']
        assert b'<URI xsi:type="xsd:string">849221</URI>' in metadata_call.kwargs['data']

    def test_session_reused(self, http_session):
        http_session.post.side_effect = [session_response(), metadata_response(), metadata_response()]
        loader = self.make_loader(http_session)

        loader.fetch('1')
        loader.fetch('2')

        assert http_session.post.call_count == 3

    def test_expired_session(self, http_session):
        http_session.post.side_effect = [
            session_response(), fault_response(PangaVistaLoader.EXPIRED_SESSION_FAULT),
        ]
        loader = self.make_loader(http_session)

        result = loader.fetch('849221')

        assert result.status == FetchStatus.SESSION_EXPIRED
        assert loader.state == SessionState.NO_SESSION

    def test_renew_after_expiry(self, http_session):
        http_session.post.side_effect = [session_response('first'), session_response('second')]
        loader = self.make_loader(http_session)

        loader.renew_session()
        loader.renew_session()

        assert loader.session_id == 'second'
        assert loader.state == SessionState.ACTIVE

    def test_not_found(self, http_session):
        http_session.post.side_effect = [
            session_response(),
            fault_response("This is not a valid PANGAEA DOI or DATASETID: 999999999"),
        ]
        result = self.make_loader(http_session).fetch('999999999')
        assert result.status == FetchStatus.NOT_FOUND

    def test_other_fault_fails(self, http_session):
        http_session.post.side_effect = [session_response(), fault_response("Database unavailable")]
        result = self.make_loader(http_session).fetch('849221')
        assert result.status == FetchStatus.FAILED
        assert "Database unavailable" in result.reason

    def test_malformed_response_fails(self, http_session):
        http_session.post.side_effect = [
            session_response(), mock.MagicMock(status_code=200, content=b'<html>oops'),
        ]
        assert self.make_loader(http_session).fetch('849221').status == FetchStatus.FAILED

    def test_register_failure(self, http_session):
        http_session.post.side_effect = requests.ConnectionError("refused")
        loader = self.make_loader(http_session)

        with pytest.raises(ImporterError, match="Unable to get a session ID"):
            loader.renew_session()
        assert loader.state == SessionState.NO_SESSION

    def test_register_failure_during_fetch_is_failed_attempt(self, http_session):
        http_session.post.side_effect = requests.ConnectionError("refused")
        loader = self.make_loader(http_session)

        result = loader.fetch('849221')

        assert result.status == FetchStatus.FAILED
        assert loader.state == SessionState.NO_SESSION

    def test_register_fault(self, http_session):
        http_session.post.return_value = fault_response("Service closed")
        with pytest.raises(ImporterError, match="Service closed"):
            self.make_loader(http_session).renew_session()

    def test_dataset_id_is_escaped(self, http_session):
        http_session.post.side_effect = [session_response(), metadata_response()]
        self.make_loader(http_session).fetch('1<2')
        assert b'1&lt;2' in http_session.post.call_args_list[1].kwargs['data']
