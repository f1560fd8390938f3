"""
SigV4 request signing routines.

The signing pipeline is a chain of pure functions, each covering one step of
https://docs.aws.amazon.com/general/latest/gr/signature-version-4.html:

    encode_uri_path        -> canonical URI
    canonical_headers      -> canonical header block and signed-header list
    hash_payload           -> hex digest of the body
    canonical_request      -> the canonical request string
    string_to_sign         -> algorithm, timestamp, scope and request digest
    derive_signing_key     -> the date/region/service scoped key
    compute_signature      -> hex HMAC of the string to sign
    authorization_header   -> the Authorization header value

AWSSigV4Signer wraps the chain for a single request.
"""

from collections import namedtuple
from collections.abc import Mapping
from datetime import datetime
import hashlib
import hmac
from logging import getLogger
from operator import itemgetter
from re import compile as re_compile
from types import MappingProxyType
from urllib.parse import quote

from pytz import UTC
from .dateutil import amz_date, date_stamp, parse_iso8601, to_utc
from .exc import EncodingError, InvalidSignatureError, MissingCredentialError

# pylint: disable=C0103

# Digest algorithm key to protocol display name. Only SHA-256 is defined by
# SigV4 today.
ALGORITHMS = MappingProxyType({
    "sha256": "AWS4-HMAC-SHA256",
})

# Digest algorithm used for signing
HASH_ALGORITHM = "sha256"

# Algorithm for AWS SigV4
AWS4_HMAC_SHA256 = ALGORITHMS[HASH_ALGORITHM]

# Literals used in the signing key derivation
_aws4 = b"AWS4"
_aws4_request = "aws4_request"
_aws4_request_bytes = _aws4_request.encode("utf-8")

# Header names added by prepare_headers; SigV4 servers canonicalize in
# lowercase
_host = "host"
_x_amz_date = "x-amz-date"

# Match for runs of spaces
_multispace = re_compile(r" +")

# Logging instance
log = getLogger("sessigv4.sigv4")

_SignableRequest = namedtuple(
    "SignableRequest", ["method", "path", "query_string", "headers", "body"])

class SignableRequest(_SignableRequest):
    """
    SignableRequest(method, path, query_string="", headers=(), body=b"")

    The parts of an HTTP request that are covered by the signature.
    query_string must already be encoded; it is signed verbatim. headers may
    be a mapping or a sequence of (name, value) pairs.
    """
    __slots__ = ()

    def __new__(cls, method, path, query_string="", headers=(), body=b""):
        return super(SignableRequest, cls).__new__(
            cls, method, path, query_string, headers, body)

_Credential = namedtuple(
    "Credential", ["access_key", "secret_key", "timestamp", "region",
                   "service"])

class Credential(_Credential):
    """
    Credential(access_key, secret_key, timestamp, region, service)

    The key pair plus the date/region/service scope a signature is bound to.
    The secret key is masked in repr() so it does not end up in logs or
    tracebacks.
    """
    __slots__ = ()

    def __repr__(self):
        return ("Credential(access_key=%r, secret_key='********', "
                "timestamp=%r, region=%r, service=%r)" % (
                    self.access_key, self.timestamp, self.region,
                    self.service))

def _utf8(value, what):
    """
    Encode a string component as UTF-8, failing on anything that cannot be
    represented (e.g. lone surrogates).
    """
    if not isinstance(value, str):
        raise TypeError("Expected %s to be a string: %r" %
                        (what, type(value).__name__))
    try:
        return value.encode("utf-8")
    except UnicodeEncodeError as e:
        raise EncodingError("Cannot encode %s as UTF-8: %s" % (what, e))

def _digestmod(algorithm):
    if algorithm not in ALGORITHMS:
        raise ValueError("Unsupported digest algorithm: %r" % (algorithm,))
    return getattr(hashlib, algorithm)

def _header_items(headers):
    """
    Return headers as a list of (name, value) pairs in input order.
    """
    if isinstance(headers, Mapping):
        items = list(headers.items())
    else:
        items = []
        for i, item in enumerate(headers):
            try:
                name, value = item
            except (TypeError, ValueError):
                raise TypeError(
                    "Header %d must be a (name, value) pair: %r" % (i, item))
            items.append((name, value))

    for name, value in items:
        if not isinstance(name, str):
            raise TypeError("Header must be a string: %r" % (name,))
        if not isinstance(value, str):
            raise TypeError("Header %r value must be a string: %r" %
                            (name, type(value).__name__))

    return items

def encode_uri_path(path):
    """
    encode_uri_path(path: str) -> str

    Split the path on '/' and percent-encode each segment twice, as
    rawurlencode(rawurlencode(segment)) would. Everything outside the RFC 3986
    unreserved set (alphanumerics and '-', '.', '_', '~') is encoded, so a
    '%' in a segment comes out as '%2525' and a space as '%2520'. Empty
    segments stay empty, which keeps consecutive slashes intact.
    """
    segments = []
    for segment in path.split("/"):
        once = quote(_utf8(segment, "URI path"), safe="")
        segments.append(quote(once, safe=""))
    return "/".join(segments)

def trim_all_spaces(value):
    """
    Collapse runs of spaces to a single space and trim leading and trailing
    spaces. Tabs and other whitespace are left alone.
    """
    return _multispace.sub(" ", value).strip(" ")

def canonical_headers(headers):
    """
    canonical_headers(headers) -> (str, str)

    Return the canonical header block and the signed-header list.

    Header names are sorted by code point as supplied (no case folding); a
    name that appears more than once keeps its input order. Each header is
    emitted as "name:value\\n" and the block ends with one extra newline. The
    signed-header list is the sorted names joined by ';'.
    """
    items = sorted(_header_items(headers), key=itemgetter(0))

    lines = []
    for name, value in items:
        _utf8(name, "header name")
        _utf8(value, "header %r value" % (name,))
        lines.append("%s:%s\n" % (name, trim_all_spaces(value)))

    return ("".join(lines) + "\n",
            ";".join([name for name, _ in items]))

def hash_payload(body, algorithm=HASH_ALGORITHM):
    """
    hash_payload(body: bytes, algorithm: str="sha256") -> str

    Lowercase hex digest of the raw body. An empty body hashes to the digest
    of the empty byte string.
    """
    if not isinstance(body, (bytes, bytearray)):
        raise TypeError("Expected body to be a byte array.")

    return _digestmod(algorithm)(body).hexdigest()

def canonical_request(method, path, query_string, headers, body,
                      algorithm=HASH_ALGORITHM):
    """
    The AWS SigV4 canonical request:
        method + '\\n' +
        encode_uri_path(path) + '\\n' +
        query_string + '\\n' +
        canonical header block (already ending in a blank line) +
        signed-header list + '\\n' +
        hash_payload(body)

    The query string is used exactly as given; it is neither re-encoded nor
    re-sorted here.
    """
    header_block, signed_headers = canonical_headers(headers)

    return (method + "\n" +
            encode_uri_path(path) + "\n" +
            query_string + "\n" +
            header_block +
            signed_headers + "\n" +
            hash_payload(body, algorithm))

def credential_scope(timestamp, region, service):
    """
    The scope of the credentials: YYYYMMDD/region/service/aws4_request.
    """
    return (date_stamp(timestamp) + "/" + region + "/" + service + "/" +
            _aws4_request)

def string_to_sign(timestamp, scope, request, algorithm=HASH_ALGORITHM):
    """
    string_to_sign(timestamp, scope, request, algorithm="sha256") -> str

    The string fed to the final HMAC: the algorithm display name, the
    timestamp in ISO 8601 basic format, the credential scope and the hex
    digest of the canonical request, separated by newlines.
    """
    digestmod = _digestmod(algorithm)
    return (ALGORITHMS[algorithm] + "\n" +
            amz_date(timestamp) + "\n" +
            scope + "\n" +
            digestmod(_utf8(request, "canonical request")).hexdigest())

def derive_signing_key(secret_key, date, region, service,
                       algorithm=HASH_ALGORITHM):
    """
    derive_signing_key(secret_key, date, region, service) -> bytes

    Derive the scoped signing key:
        k_date    = HMAC("AWS4" + secret_key, YYYYMMDD)
        k_region  = HMAC(k_date, region)
        k_service = HMAC(k_region, service)
        k_signing = HMAC(k_service, "aws4_request")

    date may be a datetime or an already formatted YYYYMMDD string. The
    result is raw bytes and is not retained anywhere.
    """
    digestmod = _digestmod(algorithm)
    if isinstance(date, datetime):
        date = date_stamp(date)

    k_secret = _aws4 + _utf8(secret_key, "secret key")
    k_date = hmac.new(k_secret, _utf8(date, "date stamp"), digestmod).digest()
    k_region = hmac.new(k_date, _utf8(region, "region"), digestmod).digest()
    k_service = hmac.new(k_region, _utf8(service, "service"),
                         digestmod).digest()
    return hmac.new(k_service, _aws4_request_bytes, digestmod).digest()

def compute_signature(signing_key, sts, algorithm=HASH_ALGORITHM):
    """
    Lowercase hex HMAC of the string to sign under the signing key.
    """
    return hmac.new(signing_key, _utf8(sts, "string to sign"),
                    _digestmod(algorithm)).hexdigest()

def authorization_header(access_key, scope, signed_headers, signature,
                         algorithm=HASH_ALGORITHM):
    """
    Format the Authorization header value:
        <algorithm> Credential=<access_key>/<scope>,
        SignedHeaders=<signed_headers>, Signature=<signature>
    """
    return "%s Credential=%s/%s, SignedHeaders=%s, Signature=%s" % (
        ALGORITHMS[algorithm], access_key, scope, signed_headers, signature)

def sign(request, credential):
    """
    sign(request: SignableRequest, credential: Credential) -> str

    Run the whole pipeline and return the Authorization header value.

    The headers must already contain everything that will be sent and signed
    (at least Host and X-Amz-Date); see AWSSigV4Signer.prepare_headers.
    MissingCredentialError is raised if either key is empty.
    """
    if not credential.access_key:
        raise MissingCredentialError("Access key is missing")
    if not credential.secret_key:
        raise MissingCredentialError("Secret key is missing")

    signer = AWSSigV4Signer(
        request_method=request.method, uri_path=request.path,
        query_string=request.query_string, headers=request.headers,
        body=request.body, timestamp=credential.timestamp,
        region=credential.region, service=credential.service,
        access_key=credential.access_key, secret_key=credential.secret_key)
    return signer.authorization

class AWSSigV4Signer(object):
    # pylint: disable=R0902,R0904
    """
    Sign a request according to AWS SigV4.
    """

    def __init__(self, **kw):
        """
        AWSSigV4Signer(
            request_method: str,
            uri_path: str,
            query_string: str,
            headers: Union[Mapping[str, str], Iterable[Tuple[str, str]]],
            body: bytes,
            timestamp: Union[datetime, str],
            region: str,
            service: str,
            access_key: str,
            secret_key: str,
            host: Optional[str])

        Create a new AWSSigV4Signer instance. Properties can be specified
        as keyword arguments.

        request_method: The HTTP request method (GET, PUT, POST, etc.).
        uri_path: The path accessed (usually just "/").
        query_string: The already-encoded query string portion of the URI.
        headers: The headers to sign, either a mapping or a sequence of
            (name, value) pairs. Names are used with the case given.
        body: The request body (if any). This should be undecoded (bytes, not
            a Unicode str)
        timestamp: The time of the request. Defaults to the current time.
        region: The AWS region the request is scoped to.
        service: The name of the service being invoked.
        access_key: The access key id placed in the Authorization header.
        secret_key: The secret key used to derive the signing key.
        host: The host name added by prepare_headers() when the headers do
            not carry one.
        """
        super(AWSSigV4Signer, self).__init__()
        self._request_method = "GET"
        self._uri_path = "/"
        self._query_string = ""
        self._headers = []
        self._body = b""
        self._timestamp = datetime.now(UTC)
        self._region = "us-east-1"
        self._service = "none"
        self._access_key = ""
        self._secret_key = ""
        self._host = None

        for key, value in kw.items():
            setattr(self, key, value)
        return

    def __repr__(self):
        return "<AWSSigV4Signer %s %s %s/%s access_key=%r>" % (
            self.request_method, self.uri_path, self.region, self.service,
            self.access_key)

    @property
    def request_method(self):
        """
        The HTTP method (GET, POST, PUT) used to make the request.
        """
        return self._request_method

    @request_method.setter
    def request_method(self, value):
        if not isinstance(value, str):
            raise TypeError("Expected request_method to be a string.")

        self._request_method = value
        return

    @property
    def uri_path(self):
        """
        The path component of the URI.
        """
        return self._uri_path

    @uri_path.setter
    def uri_path(self, value):
        if not isinstance(value, str):
            raise TypeError("Expected uri_path to be a string.")

        self._uri_path = value
        return

    @property
    def query_string(self):
        """
        The query string portion of the URI, signed verbatim.
        """
        return self._query_string

    @query_string.setter
    def query_string(self, value):
        if not isinstance(value, str):
            raise TypeError("Expected query_string to be a string.")

        self._query_string = value
        return

    @property
    def headers(self):
        """
        The headers to sign, as a list of (name, value) pairs in the order
        they were supplied.
        """
        return self._headers

    @headers.setter
    def headers(self, value):
        if isinstance(value, (str, bytes)):
            raise TypeError("Expected headers to be a mapping or a sequence "
                            "of (name, value) pairs.")

        self._headers = _header_items(value)
        return

    @property
    def body(self):
        """
        The body sent with the HTTP request (for PUT and POST requests).
        """
        return self._body

    @body.setter
    def body(self, value):
        if not isinstance(value, (bytes, bytearray)):
            raise TypeError("Expected body to be a byte array.")

        self._body = bytes(value)
        return

    @property
    def timestamp(self):
        """
        The time of the request as an aware UTC datetime.
        """
        return self._timestamp

    @timestamp.setter
    def timestamp(self, value):
        if isinstance(value, str):
            parsed = parse_iso8601(value)
            if parsed is None:
                raise ValueError("Timestamp is not a valid ISO 8601 string: %r"
                                 % (value,))
            value = parsed

        self._timestamp = to_utc(value)
        return

    @property
    def region(self):
        """
        The region the request is scoped to.
        """
        return self._region

    @region.setter
    def region(self, value):
        if not isinstance(value, str):
            raise TypeError("Expected region to be a string.")

        self._region = value
        return

    @property
    def service(self):
        """
        The name of the service being invoked.
        """
        return self._service

    @service.setter
    def service(self, value):
        if not isinstance(value, str):
            raise TypeError("Expected service to be a string.")

        self._service = value
        return

    @property
    def access_key(self):
        """
        The access key id used to sign the request.
        """
        return self._access_key

    @access_key.setter
    def access_key(self, value):
        if not isinstance(value, str):
            raise TypeError("Expected access_key to be a string.")

        self._access_key = value
        return

    @property
    def secret_key(self):
        """
        The secret key. Never logged.
        """
        return self._secret_key

    @secret_key.setter
    def secret_key(self, value):
        if not isinstance(value, str):
            raise TypeError("Expected secret_key to be a string.")

        self._secret_key = value
        return

    @property
    def host(self):
        """
        The host added to the headers by prepare_headers(), if any.
        """
        return self._host

    @host.setter
    def host(self, value):
        if value is not None and not isinstance(value, str):
            raise TypeError("Expected host to be a string.")

        self._host = value
        return

    def prepare_headers(self):
        """
        Return the headers with the minimal signing headers added under
        lowercase names: host (when a host is configured and no Host header
        is present, in any case) and x-amz-date set to the request timestamp,
        replacing any existing X-Amz-Date.
        """
        headers = [(name, value) for name, value in self.headers
                   if name.lower() != _x_amz_date]

        if (self.host is not None and
                _host not in [name.lower() for name, _ in headers]):
            headers.append((_host, self.host))

        headers.append((_x_amz_date, amz_date(self.timestamp)))
        return headers

    @property
    def credential_scope(self):
        """
        The scope of the credentials to use.
        """
        return credential_scope(self.timestamp, self.region, self.service)

    @property
    def signed_headers(self):
        """
        The ';'-separated list of signed header names.
        """
        return canonical_headers(self.headers)[1]

    @property
    def canonical_request(self):
        """
        The AWS SigV4 canonical request for this request.
        """
        result = canonical_request(
            self.request_method, self.uri_path, self.query_string,
            self.headers, self.body)
        log.debug("Canonical request:\n%s", result)
        return result

    @property
    def string_to_sign(self):
        """
        The AWS SigV4 string being signed.
        """
        result = string_to_sign(
            self.timestamp, self.credential_scope, self.canonical_request)
        log.debug("String to sign:\n%s", result)
        return result

    @property
    def signature(self):
        """
        The hex signature over the string to sign. The signing key is derived
        afresh on each access.
        """
        sts = self.string_to_sign
        return compute_signature(
            derive_signing_key(
                self.secret_key, self.timestamp, self.region, self.service),
            sts)

    @property
    def authorization(self):
        """
        The value for the Authorization header.
        """
        return authorization_header(
            self.access_key, self.credential_scope, self.signed_headers,
            self.signature)

    def verify(self, authorization):
        """
        Verify that a received Authorization header value matches the one
        computed for this request. Raises InvalidSignatureError if not.
        """
        if not isinstance(authorization, str):
            raise InvalidSignatureError("Authorization header is not a string")

        expected = self.authorization
        try:
            received = _utf8(authorization, "authorization")
        except EncodingError as e:
            raise InvalidSignatureError(str(e))

        if not hmac.compare_digest(expected.encode("utf-8"), received):
            raise InvalidSignatureError(
                "Signature mismatch for %r: got %r" % (self, authorization))

        return True

# Local variables:
# mode: Python
# tab-width: 8
# indent-tabs-mode: nil
# End:
# vi: set expandtab tabstop=8
