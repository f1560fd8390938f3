"""
Timestamp utilities for SigV4: UTC normalization, the two date formats used
in signing, and strict parsing of X-Amz-Date values.
"""
from datetime import datetime
from pytz import FixedOffset, UTC
from re import compile as re_compile

# Long (X-Amz-Date) and short (credential scope) timestamp formats
AMZ_DATE_FORMAT = "%Y%m%dT%H%M%SZ"
DATE_STAMP_FORMAT = "%Y%m%d"

# ISO 8601 timestamp format regex (includes RFC 3339)
_iso_8601_regex = re_compile(
    r"^(?P<year>[0-9]{4})-?"
    r"(?P<month>0[1-9]|1[0-2])-?"
    r"(?P<day>0[1-9]|[12][0-9]|3[01])"
    r"[Tt ]"
    r"(?P<hour>[01][0-9]|2[0-3]):?"
    r"(?P<minute>[0-5][0-9]):?"
    r"(?P<second>[0-5][0-9]|6[01])"
    r"(?P<frac_sec>[\.,][0-9]+)?"
    r"(?P<timezone>[-+][01][0-9]:?[0-5][0-9]|[Zz])$")

def to_utc(timestamp):
    """
    to_utc(timestamp: datetime) -> datetime

    Return the timestamp as an aware UTC datetime. Naive datetimes are taken
    to already be in UTC.
    """
    if not isinstance(timestamp, datetime):
        raise TypeError("Expected timestamp to be a datetime: %r" %
                        (type(timestamp).__name__,))

    if timestamp.tzinfo is None or timestamp.utcoffset() is None:
        return UTC.localize(timestamp)

    return timestamp.astimezone(UTC)

def amz_date(timestamp):
    """
    The timestamp in ISO 8601 basic format, e.g. 20150830T123600Z.
    """
    return to_utc(timestamp).strftime(AMZ_DATE_FORMAT)

def date_stamp(timestamp):
    """
    The UTC date of the timestamp in YYYYMMDD format.
    """
    return to_utc(timestamp).strftime(DATE_STAMP_FORMAT)

def parse_iso8601(s):
    """
    Parse a timestamp formatted in ISO 8601 timestamp format and return a
    datetime object. If the string is not a valid ISO 8601 timestamp, None
    is returned.

    ISO 8601 timestamps include the forms:
        2018-12-25T14:00:00-08:00
        20181225T140000-0800            (Condensed)
        20181225T230000+0100            (Timestamp sign *must* be present)
        2018-12-25T22:00:00Z            (Z == +0000, UTC)
        20181225T220000Z                (Condensed, as used by X-Amz-Date)
        20181225 220000Z                (Space instead of T)

    Condensing of dates and times/zone offsets may be mixed, and case of
    'T' and 'Z' is insignificant.

    If fractional seconds are included, they are ignored.
    """
    m = _iso_8601_regex.match(s)
    if not m:
        return None

    zone = m.group("timezone")
    if zone in ("Z", "z"):
        offset = UTC
    else:
        zone = zone.replace(":", "")
        sign = zone[0]
        offset_minutes = int(zone[1:3]) * 60 + int(zone[3:5])

        if sign == "-":
            offset_minutes = -offset_minutes

        offset = UTC if offset_minutes == 0 else FixedOffset(offset_minutes)

    try:
        return datetime(
            year=int(m.group("year")),
            month=int(m.group("month")),
            day=int(m.group("day")),
            hour=int(m.group("hour")),
            minute=int(m.group("minute")),
            # Leap seconds are not representable; clamp them.
            second=min(int(m.group("second")), 59),
            tzinfo=offset)
    except ValueError:
        # Day out of range for the month (e.g. Feb 30)
        return None

# Local variables:
# mode: Python
# tab-width: 8
# indent-tabs-mode: nil
# End:
# vi: set expandtab tabstop=8
