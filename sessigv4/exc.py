#!/usr/bin/env python
"""
AWS SigV4 signing exceptions.
"""

class SigningError(Exception):
    """
    Base class for all errors raised by this package.
    """
    pass

class MissingCredentialError(SigningError):
    """
    The access key or secret key is absent or empty.
    """
    pass

class UnsupportedRegionError(SigningError):
    """
    The region or endpoint is not one we know how to reach.
    """
    pass

class EncodingError(SigningError, ValueError):
    """
    A request component cannot be represented in the encoding required for
    signing. Nothing is signed in this case.
    """
    pass

class TransportError(SigningError):
    """
    The service answered a signed request with a non-success status.
    """
    def __init__(self, status_code, body):
        super(TransportError, self).__init__(
            "Request failed with HTTP %s: %s" % (status_code, body))
        self.status_code = status_code
        self.body = body

class InvalidSignatureError(SigningError):
    """
    An exception indicating that the signature on the request was invalid.
    """
    pass

# Local variables:
# mode: Python
# tab-width: 8
# indent-tabs-mode: nil
# End:
# vi: set expandtab tabstop=8
