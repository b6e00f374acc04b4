"""Strict URL parsing and canonical serialization.

``urllib.parse`` is lenient: it silently drops tabs and newlines, accepts
junk in the authority and never normalizes anything. ``parse_url`` layers
browser (WHATWG) rules over ``urlsplit`` for http-like schemes: host code
points, UTS #46 IDNA, IPv4 shorthand, ports, ``\\`` as ``/``, dot segments
(including ``%2e``) and the percent-encode sets. It raises ``ValueError`` for
anything those rules refuse. ``ParsedUrl.geturl()`` gives a canonical string
that parses back to itself. Opaque schemes are only split off, not parsed.
"""

import ipaddress
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote, urlsplit

import idna

SCHEME_RE = re.compile(r"^([a-zA-Z][a-zA-Z0-9+.-]*):")

# Schemes that carry an authority, with their default ports. Every other
# scheme is kept opaque.
DEFAULT_PORTS = {"http": 80, "https": 443, "ws": 80, "wss": 443, "ftp": 21}

_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")

# Space passes here; callers report it as a hostname error.
_FORBIDDEN_HOST_CHARS = frozenset("#%/:<>?@[\\]^|")

# WHATWG percent-encode sets (C0 controls and non-ASCII are always encoded).
_FRAGMENT_SET = frozenset(' "<>`')
_QUERY_SET = frozenset(" \"#<>'")
_PATH_SET = frozenset(' "#<>?`{}')
_USERINFO_SET = _PATH_SET | frozenset("/:;=@[\\]^|")

_IPV4_DIGITS = {
    8: re.compile(r"[0-7]*"),
    10: re.compile(r"[0-9]+"),
    16: re.compile(r"[0-9a-fA-F]*"),
}


@dataclass(frozen=True)
class ParsedUrl:
    """Canonical components of a parsed URL.

    ``opaque`` is set (and the authority fields are empty) for schemes that
    have no authority, such as ``javascript:`` or ``data:``.
    """

    scheme: str
    hostname: str = ""
    port: Optional[int] = None
    username: str = ""
    password: str = ""
    path: str = ""
    query: str = ""
    fragment: str = ""
    opaque: Optional[str] = None

    @property
    def protocol(self) -> str:
        return f"{self.scheme}:"

    def geturl(self) -> str:
        if self.opaque is not None:
            return f"{self.protocol}{self.opaque}"

        userinfo = ""
        if self.username or self.password:
            userinfo = self.username
            if self.password:
                userinfo += ":" + self.password
            userinfo += "@"
        host = f"[{self.hostname}]" if ":" in self.hostname else self.hostname
        port = "" if self.port is None else f":{self.port}"

        url = f"{self.scheme}://{userinfo}{host}{port}{self.path}"
        if self.query:
            url += "?" + self.query
        if self.fragment:
            url += "#" + self.fragment
        return url


def reject_control_characters(text: str) -> None:
    match = _CONTROL_RE.search(text)
    if match:
        raise ValueError(
            f"control character U+{ord(match.group()):04X} at position {match.start()}"
        )


def _percent_encode(text: str, encode_set) -> str:
    # '%' is never in an encode set, so existing escapes are left alone.
    return "".join(
        quote(ch, safe="") if ch in encode_set or not " " < ch < "\x7f" else ch
        for ch in text
    )


def _dot_segment(segment: str) -> int:
    """1 for a "." segment, 2 for "..", 0 otherwise (``%2e`` counts as a dot)."""
    normalized = segment.lower().replace("%2e", ".")
    if normalized == ".":
        return 1
    if normalized == "..":
        return 2
    return 0


def _remove_dot_segments(path: str) -> str:
    segments = path.split("/")[1:]
    output = []
    for segment in segments:
        dots = _dot_segment(segment)
        if dots == 2:
            if output:
                output.pop()
        elif not dots:
            output.append(segment)
    if segments and _dot_segment(segments[-1]):
        output.append("")
    return "/" + "/".join(output)


def _ipv4_number(part: str) -> int:
    digits, radix = part, 10
    if part[:2].lower() == "0x":
        digits, radix = part[2:], 16
    elif len(part) > 1 and part.startswith("0"):
        digits, radix = part[1:], 8
    if not _IPV4_DIGITS[radix].fullmatch(digits):
        raise ValueError(f"invalid IPv4 number {part!r}")
    return int(digits, radix) if digits else 0


def _ends_in_number(host: str) -> bool:
    labels = host.split(".")
    if labels[-1] == "" and len(labels) > 1:
        labels.pop()
    last = labels[-1]
    if last.isdigit() and last.isascii():
        return True
    try:
        _ipv4_number(last)
    except ValueError:
        return False
    return True


def _parse_ipv4(host: str) -> str:
    """Browser IPv4 parsing: ``0x7f.1`` and ``2130706433`` are both 127.0.0.1."""
    parts = host.split(".")
    if parts[-1] == "" and len(parts) > 1:
        parts.pop()
    if len(parts) > 4:
        raise ValueError(f"too many parts in IPv4 address {host!r}")
    numbers = [_ipv4_number(part) for part in parts]
    if any(n > 255 for n in numbers[:-1]) or numbers[-1] >= 256 ** (5 - len(numbers)):
        raise ValueError(f"IPv4 address {host!r} out of range")
    address = numbers[-1]
    for index, n in enumerate(numbers[:-1]):
        address += n * 256 ** (3 - index)
    return str(ipaddress.IPv4Address(address))


def _check_host_chars(host: str) -> None:
    forbidden = sorted(set(host) & _FORBIDDEN_HOST_CHARS)
    if forbidden:
        raise ValueError(f"invalid character {forbidden[0]!r} in host")


def _encode_host(hostname: str) -> str:
    _check_host_chars(hostname)
    if hostname.isascii():
        host = hostname.lower()
    else:
        try:
            host = idna.encode(hostname, uts46=True, transitional=False).decode("ascii")
        except idna.IDNAError as e:
            raise ValueError(f"invalid internationalized host: {e}") from e
        # UTS #46 maps fullwidth punctuation onto ASCII
        _check_host_chars(host)
    if _ends_in_number(host):
        return _parse_ipv4(host)
    return host


def _parse_hierarchical(scheme: str, rest: str) -> ParsedUrl:
    # Browsers read "\" as "/" and ignore extra slashes before the host.
    cut = len(rest)
    for delimiter in "?#":
        index = rest.find(delimiter)
        if index != -1:
            cut = min(cut, index)
    head = rest[:cut].replace("\\", "/").lstrip("/")

    parts = urlsplit(f"{scheme}://{head}{rest[cut:]}")
    hostname = parts.hostname
    if not parts.netloc or not hostname:
        raise ValueError("URL has no host")

    if parts.netloc.rpartition("@")[2].startswith("["):
        host = str(ipaddress.IPv6Address(hostname))
    else:
        host = _encode_host(hostname)

    port = parts.port
    if port == DEFAULT_PORTS[scheme]:
        port = None

    return ParsedUrl(
        scheme=scheme,
        hostname=host,
        port=port,
        username=_percent_encode(parts.username or "", _USERINFO_SET),
        password=_percent_encode(parts.password or "", _USERINFO_SET),
        path=_percent_encode(_remove_dot_segments(parts.path or "/"), _PATH_SET),
        query=_percent_encode(parts.query, _QUERY_SET),
        fragment=_percent_encode(parts.fragment, _FRAGMENT_SET),
    )


def parse_url(text: str) -> ParsedUrl:
    """Parse ``text`` into canonical components.

    Raises ValueError for control characters, a missing scheme, a missing or
    malformed host, a bad port or an invalid IPv6 literal.
    """
    reject_control_characters(text)
    match = SCHEME_RE.match(text)
    if match is None:
        raise ValueError("URL has no scheme")
    scheme = match.group(1).lower()
    rest = text[match.end():]
    if scheme not in DEFAULT_PORTS:
        return ParsedUrl(scheme=scheme, opaque=rest)
    return _parse_hierarchical(scheme, rest)
