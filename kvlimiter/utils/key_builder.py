import hashlib
import re

from kvlimiter.core.errors import ValidationAppError

ALLOWANCE_SUFFIX = "allowance"
TIMESTAMP_SUFFIX = "timestamp"
LOCK_SUFFIX = "lock"

# memcached rejects longer keys; Redis accepts them but they waste memory
MAX_KEY_BYTES = 250

# C0 and C1 controls, DEL, and any Unicode whitespace (NBSP, ideographic space...)
_DISALLOWED = re.compile(r"[\s\x00-\x20\x7f-\x9f]+")


def sanitize_key_part(part: str | None) -> str:
    """Strip whitespace and control characters from a key fragment.

    Args:
        part: Raw prefix or unique key, or None.

    Returns:
        str: Fragment safe for the store key grammar (possibly empty).
    """
    if part is None:
        return ""
    return _DISALLOWED.sub("", str(part))


def hash_key(key: str) -> str:
    """Hash a key for logging without exposing it."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def build_base_key(key_prefix: str | None, unique_key: str | None) -> str:
    """Join prefix and unique key into the per-bucket base key.

    Empty fragments are skipped. Keys that would not fit the store once a
    suffix is appended use the SHA-256 digest of the unique key instead.

    Raises:
        ValidationAppError: If both fragments are empty after sanitizing.
    """
    prefix = sanitize_key_part(key_prefix)
    unique = sanitize_key_part(unique_key)
    if not prefix and not unique:
        raise ValidationAppError(
            code="rate_limit_blank_key",
            message="key_prefix and unique_key cannot both be empty",
        )

    longest_suffix = max(len(s) for s in (ALLOWANCE_SUFFIX, TIMESTAMP_SUFFIX, LOCK_SUFFIX))
    base = ":".join(p for p in (prefix, unique) if p)
    if len(base.encode()) + longest_suffix + 1 > MAX_KEY_BYTES:
        digest = hashlib.sha256(unique.encode()).hexdigest()
        short_prefix = prefix.encode()[: MAX_KEY_BYTES // 2].decode(errors="ignore")
        base = ":".join(p for p in (short_prefix, digest) if p)
    return base


def bucket_keys(base_key: str) -> tuple[str, str, str]:
    """Return the (allowance, timestamp, lock) store keys for a bucket."""
    return (
        f"{base_key}:{ALLOWANCE_SUFFIX}",
        f"{base_key}:{TIMESTAMP_SUFFIX}",
        f"{base_key}:{LOCK_SUFFIX}",
    )
