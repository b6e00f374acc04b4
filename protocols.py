"""Protocol allowlist for navigation targets."""

# Anything not listed here is refused; new schemes stay blocked by default.
ALLOWED_PROTOCOLS = frozenset({"http:", "https:"})


def is_protocol_allowed(protocol: str) -> bool:
    """Return True if ``protocol`` (lowercase, with trailing colon) may be loaded."""
    return protocol in ALLOWED_PROTOCOLS


def describe_allowed() -> str:
    return ", ".join(sorted(ALLOWED_PROTOCOLS))
