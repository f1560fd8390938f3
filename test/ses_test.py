#!/usr/bin/env python
from base64 import b64decode
from datetime import datetime
from hashlib import sha256
import hmac
from unittest import TestCase
from unittest.mock import Mock, patch
from urllib.parse import parse_qsl

import requests
from pytz import UTC

import sessigv4.ses as ses
from sessigv4.exc import (
    MissingCredentialError, TransportError, UnsupportedRegionError)
from sessigv4.sigv4 import AWSSigV4Signer

access_key = "AKIDEXAMPLE"
secret_key = "wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY"
settings = {"access_key": access_key, "secret_key": secret_key}
timestamp = datetime(2015, 8, 30, 12, 36, 0, tzinfo=UTC)

class LoadConfig(TestCase):
    def test_ok(self):
        result = ses.load_config(settings, environ={})
        self.assertTrue(result.ok)
        self.assertIsNone(result.error)
        config = result.unwrap()
        self.assertEqual(config.access_key, access_key)
        self.assertEqual(config.region, "US-EAST-1")
        self.assertEqual(config.endpoint, ses.DEFAULT_ENDPOINT)

    def test_environment_fallback(self):
        result = ses.load_config(
            None, "https://email.eu-west-1.amazonaws.com/",
            environ={"AWS_ACCESS_KEY_ID": "env-access",
                     "AWS_SECRET_ACCESS_KEY": "env-secret"})
        config = result.unwrap()
        self.assertEqual(config.access_key, "env-access")
        self.assertEqual(config.secret_key, "env-secret")
        self.assertEqual(config.region, "EU-WEST-1")
        self.assertEqual(config.endpoint,
                         "https://email.eu-west-1.amazonaws.com")

    def test_missing_access_key(self):
        result = ses.load_config({"secret_key": secret_key}, environ={})
        self.assertFalse(result.ok)
        self.assertIsNone(result.config)
        self.assertIsInstance(result.error, MissingCredentialError)
        with self.assertRaises(MissingCredentialError):
            result.unwrap()

    def test_empty_secret_key(self):
        result = ses.load_config(
            {"access_key": access_key, "secret_key": ""}, environ={})
        self.assertIsInstance(result.error, MissingCredentialError)

    def test_unsupported_endpoint(self):
        result = ses.load_config(
            settings, "https://email.ap-south-1.amazonaws.com", environ={})
        self.assertIsInstance(result.error, UnsupportedRegionError)

    def test_repr_hides_secret(self):
        config = ses.load_config(settings, environ={}).unwrap()
        self.assertNotIn(secret_key, repr(config))

class SendRawEmailParams(TestCase):
    def test_recipients_numbered_in_order(self):
        params = ses.build_send_raw_email_params(
            "me@example.com", "a@example.com, b@example.com,,c@example.com",
            b"Subject: hi\n\nhello\n")

        self.assertEqual(params[:5], [
            ("Action", "SendRawEmail"),
            ("Source", "me@example.com"),
            ("Destinations.member.1", "a@example.com"),
            ("Destinations.member.2", "b@example.com"),
            ("Destinations.member.3", "c@example.com"),
        ])
        self.assertEqual(params[5][0], "RawMessage.Data")
        self.assertEqual(b64decode(params[5][1]), b"Subject: hi\n\nhello\n")
        self.assertEqual(len(params), 6)

    def test_recipient_sequence(self):
        params = ses.build_send_raw_email_params(
            "me@example.com", ["x@example.com"], u"body")
        self.assertIn(("Destinations.member.1", "x@example.com"), params)
        self.assertEqual(b64decode(params[-1][1]), b"body")

class Transport(TestCase):
    def make_transport(self, status_code=200, text="<Response/>"):
        session = Mock()
        session.post.return_value = Mock(status_code=status_code, text=text)
        transport = ses.SESTransport(
            ses.load_config(settings, environ={}), session=session)
        return transport, session

    def test_sign(self):
        transport, _ = self.make_transport()
        body = b"Action=GetSendStatistics"
        headers = transport.sign(body, timestamp)

        self.assertEqual(headers["host"], "email.us-east-1.amazonaws.com")
        self.assertEqual(headers["x-amz-date"], "20150830T123600Z")
        self.assertEqual(headers["Content-Type"],
                         "application/x-www-form-urlencoded; charset=utf-8")

        # Built by hand from the SigV4 rules, without the package's code.
        creq = ("POST\n/\n\n"
                "host:email.us-east-1.amazonaws.com\n"
                "x-amz-date:20150830T123600Z\n\n"
                "host;x-amz-date\n" + sha256(body).hexdigest())
        scope = "20150830/us-east-1/email/aws4_request"
        sts = ("AWS4-HMAC-SHA256\n20150830T123600Z\n" + scope + "\n" +
               sha256(creq.encode("utf-8")).hexdigest())
        key = ("AWS4" + secret_key).encode("utf-8")
        for part in ("20150830", "us-east-1", "email", "aws4_request"):
            key = hmac.new(key, part.encode("utf-8"), sha256).digest()
        signature = hmac.new(key, sts.encode("utf-8"), sha256).hexdigest()

        self.assertEqual(
            headers["Authorization"],
            "AWS4-HMAC-SHA256 Credential=AKIDEXAMPLE/" + scope +
            ", SignedHeaders=host;x-amz-date, Signature=" + signature)
        self.assertTrue(signature.startswith("565a20e8"))
        self.assertTrue(signature.endswith("cfb9"))

        signer = AWSSigV4Signer(
            request_method="POST", uri_path="/", body=body,
            headers=[("host", "email.us-east-1.amazonaws.com"),
                     ("x-amz-date", "20150830T123600Z")],
            timestamp=timestamp, region="us-east-1", service="email",
            access_key=access_key, secret_key=secret_key)
        self.assertTrue(signer.verify(headers["Authorization"]))

    def test_send_raw_email(self):
        transport, session = self.make_transport()
        result = transport.send_raw_email(
            "me@example.com", "a@example.com,b@example.com", b"raw",
            timestamp)
        self.assertEqual(result, "<Response/>")

        session.post.assert_called_once()
        args, kw = session.post.call_args
        self.assertEqual(args, (ses.DEFAULT_ENDPOINT,))
        self.assertEqual(kw["timeout"], ses.DEFAULT_TIMEOUT)
        form = parse_qsl(kw["data"].decode("utf-8"))
        self.assertIn(("Destinations.member.1", "a@example.com"), form)
        self.assertIn(("Destinations.member.2", "b@example.com"), form)
        self.assertIn("Authorization", kw["headers"])

    def test_get_send_statistics(self):
        transport, session = self.make_transport(text="<Stats/>")
        self.assertEqual(transport.get_send_statistics(timestamp), "<Stats/>")
        self.assertEqual(session.post.call_args[1]["data"],
                         b"Action=GetSendStatistics")

    def test_non_success_status(self):
        transport, _ = self.make_transport(400, "<Error>Bad</Error>")
        with self.assertRaises(TransportError) as cm:
            transport.get_send_statistics(timestamp)

        self.assertEqual(cm.exception.status_code, 400)
        self.assertEqual(cm.exception.body, "<Error>Bad</Error>")

    def test_bad_config(self):
        with self.assertRaises(MissingCredentialError):
            ses.SESTransport(ses.load_config({}, environ={}))

    def test_default_session(self):
        transport = ses.SESTransport(ses.load_config(settings, environ={}))
        self.assertIsInstance(transport.session, requests.Session)

    def test_close_owned_session(self):
        with patch("sessigv4.ses.requests.Session") as session_class:
            with ses.SESTransport(ses.load_config(settings, environ={})):
                pass
        session_class.return_value.close.assert_called_once_with()

    def test_close_leaves_caller_session_open(self):
        session = Mock()
        with ses.SESTransport(ses.load_config(settings, environ={}),
                              session=session):
            pass
        session.close.assert_not_called()
