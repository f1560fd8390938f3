#!/usr/bin/env python
"""
AWS SigV4 request signing, with an Amazon SES transport.
"""

from .exc import (
    EncodingError, InvalidSignatureError, MissingCredentialError,
    SigningError, TransportError, UnsupportedRegionError)
from .sigv4 import (
    ALGORITHMS, AWS4_HMAC_SHA256, AWSSigV4Signer, Credential, SignableRequest,
    sign)
from .ses import ConfigResult, SESConfig, SESTransport, load_config

# Local variables:
# mode: Python
# tab-width: 8
# indent-tabs-mode: nil
# End:
# vi: set expandtab tabstop=8
