"""
Amazon Simple Email Service (SES) transport.

Sends SendRawEmail and GetSendStatistics requests to the SES query API,
signed with SigV4. Configuration problems are reported through the
ConfigResult returned by load_config() so the caller can inspect them before
anything is signed.
"""

from collections import namedtuple
from base64 import b64encode
from logging import getLogger
from os import environ as os_environ
from types import MappingProxyType
from urllib.parse import urlencode, urlsplit

import requests

from .exc import MissingCredentialError, TransportError, UnsupportedRegionError
from .sigv4 import AWSSigV4Signer

# pylint: disable=C0103

# Region to SES endpoint
ENDPOINTS = MappingProxyType({
    "US-EAST-1": "https://email.us-east-1.amazonaws.com",
    "US-WEST-2": "https://email.us-west-2.amazonaws.com",
    "EU-WEST-1": "https://email.eu-west-1.amazonaws.com",
    "EU-CENTRAL-1": "https://email.eu-central-1.amazonaws.com",
})

DEFAULT_ENDPOINT = ENDPOINTS["US-EAST-1"]

# Service name used in the credential scope
SERVICE = "email"

# Seconds to wait for SES before giving up
DEFAULT_TIMEOUT = 30

_action = "Action"
_authorization = "Authorization"
_content_type = "Content-Type"
_form_urlencoded = "application/x-www-form-urlencoded; charset=utf-8"
_destination_member = "Destinations.member.%d"
_raw_message_data = "RawMessage.Data"
_source = "Source"

# Logging instance
log = getLogger("sessigv4.ses")

_SESConfig = namedtuple(
    "SESConfig", ["access_key", "secret_key", "region", "endpoint"])

class SESConfig(_SESConfig):
    """
    Validated transport settings. Build these with load_config().
    """
    __slots__ = ()

    def __repr__(self):
        return ("SESConfig(access_key=%r, secret_key='********', region=%r, "
                "endpoint=%r)" % (self.access_key, self.region, self.endpoint))

class ConfigResult(namedtuple("ConfigResult", ["config", "error"])):
    """
    The outcome of load_config(): exactly one of config and error is set.
    """
    __slots__ = ()

    @property
    def ok(self):
        return self.error is None

    def unwrap(self):
        """
        Return the config, or raise the recorded error.
        """
        if self.error is not None:
            raise self.error
        return self.config

def region_for_endpoint(endpoint):
    """
    region_for_endpoint(endpoint: str) -> Optional[str]

    Look up the region key (e.g. "US-EAST-1") for an endpoint URL, ignoring a
    trailing slash. Returns None for unknown endpoints.
    """
    endpoint = endpoint.rstrip("/")
    for region, url in ENDPOINTS.items():
        if url == endpoint:
            return region
    return None

def load_config(settings=None, endpoint=DEFAULT_ENDPOINT, environ=None):
    """
    load_config(
        settings: Optional[Mapping[str, str]],
        endpoint: str,
        environ: Optional[Mapping[str, str]]) -> ConfigResult

    Build an SESConfig from the access_key and secret_key entries of settings,
    falling back to AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY in the
    environment. Nothing is raised; a missing key yields a
    MissingCredentialError and an unknown endpoint an UnsupportedRegionError
    in the result.
    """
    settings = settings or {}
    if environ is None:
        environ = os_environ

    access_key = settings.get("access_key") or environ.get("AWS_ACCESS_KEY_ID")
    if not access_key:
        return ConfigResult(None, MissingCredentialError(
            "This transport requires the Amazon access key"))

    secret_key = (settings.get("secret_key") or
                  environ.get("AWS_SECRET_ACCESS_KEY"))
    if not secret_key:
        return ConfigResult(None, MissingCredentialError(
            "This transport requires the Amazon secret key"))

    region = region_for_endpoint(endpoint)
    if region is None:
        return ConfigResult(None, UnsupportedRegionError(
            "Unsupported SES endpoint: %r" % (endpoint,)))

    return ConfigResult(
        SESConfig(access_key, secret_key, region, endpoint.rstrip("/")), None)

def split_recipients(recipients):
    """
    Split a comma-separated recipient string into a list of addresses,
    trimming whitespace and dropping empty entries. A sequence of addresses
    is accepted as-is (after the same trimming).
    """
    if isinstance(recipients, str):
        recipients = recipients.split(",")

    result = []
    for recipient in recipients:
        recipient = recipient.strip()
        if recipient:
            result.append(recipient)
    return result

def build_send_raw_email_params(source, recipients, raw_message):
    """
    build_send_raw_email_params(
        source: str,
        recipients: Union[str, Sequence[str]],
        raw_message: bytes) -> List[Tuple[str, str]]

    The ordered form parameters for a SendRawEmail request. Recipients are
    numbered Destinations.member.1, .2, ... in the order given.
    """
    if isinstance(raw_message, str):
        raw_message = raw_message.encode("utf-8")

    params = [(_action, "SendRawEmail"), (_source, source)]

    addresses = split_recipients(recipients)
    for index in range(len(addresses)):
        params.append((_destination_member % (index + 1), addresses[index]))

    params.append((_raw_message_data, b64encode(raw_message).decode("ascii")))
    return params

class SESTransport(object):
    """
    Send signed requests to the SES query API.
    """

    def __init__(self, config, session=None, timeout=DEFAULT_TIMEOUT):
        """
        SESTransport(
            config: Union[SESConfig, ConfigResult],
            session: Optional[requests.Session],
            timeout: float)

        A ConfigResult is unwrapped, so configuration errors surface here at
        the latest.
        """
        super(SESTransport, self).__init__()
        if isinstance(config, ConfigResult):
            config = config.unwrap()

        self.config = config
        self._owns_session = session is None
        self.session = requests.Session() if session is None else session
        self.timeout = timeout
        return

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()
        return False

    def close(self):
        """
        Close the HTTP session if this transport created it. A session passed
        in by the caller is left open.
        """
        if self._owns_session:
            self.session.close()
        return

    def sign(self, body, timestamp=None):
        """
        sign(body: bytes, timestamp: Optional[datetime]) -> Dict[str, str]

        Return the headers for a form POST of body to the endpoint, including
        the Authorization header. Only host and x-amz-date are signed.
        """
        url = urlsplit(self.config.endpoint)
        signer = AWSSigV4Signer(
            request_method="POST", uri_path=url.path or "/",
            query_string=url.query, body=body,
            region=self.config.region.lower(), service=SERVICE,
            access_key=self.config.access_key,
            secret_key=self.config.secret_key, host=url.netloc)

        if timestamp is not None:
            signer.timestamp = timestamp

        signer.headers = signer.prepare_headers()

        headers = dict(signer.headers)
        headers[_authorization] = signer.authorization
        headers[_content_type] = _form_urlencoded
        return headers

    def request(self, params, timestamp=None):
        """
        POST the form parameters and return the response body. A non-200
        response raises TransportError.
        """
        body = urlencode(params).encode("utf-8")
        headers = self.sign(body, timestamp)

        log.debug("POST %s action=%s", self.config.endpoint,
                  dict(params).get(_action))
        response = self.session.post(
            self.config.endpoint, data=body, headers=headers,
            timeout=self.timeout)

        if response.status_code != 200:
            log.error("SES request to %s failed with HTTP %s",
                      self.config.endpoint, response.status_code)
            raise TransportError(response.status_code, response.text)

        return response.text

    def send_raw_email(self, source, recipients, raw_message, timestamp=None):
        """
        Send an already formatted message to the given recipients.
        """
        params = build_send_raw_email_params(source, recipients, raw_message)
        log.info("Sending raw email from %s to %d recipient(s)", source,
                 len(params) - 3)
        return self.request(params, timestamp)

    def get_send_statistics(self, timestamp=None):
        """
        Return the raw GetSendStatistics response body.
        """
        return self.request([(_action, "GetSendStatistics")], timestamp)

# Local variables:
# mode: Python
# tab-width: 8
# indent-tabs-mode: nil
# End:
# vi: set expandtab tabstop=8
