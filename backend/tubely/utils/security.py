"""
Security utilities module for Tubely.

Provides the random identifiers used in storage keys. Identifiers are 32 bytes
from the operating system's CSPRNG encoded with the unpadded URL-safe base64
alphabet, so they are always 43 characters and safe in URLs and object keys.

Uniqueness rests on entropy alone. Keys are not checked against existing
objects; the birthday-bound collision risk of 256 random bits is accepted.
"""

import base64
import logging
import secrets

from tubely.core.exceptions import EntropyUnavailable


logger = logging.getLogger(__name__)

# Number of random bytes behind each asset identifier
ASSET_ID_BYTES = 32

# Length of the unpadded base64 encoding of ASSET_ID_BYTES
ASSET_ID_LENGTH = 43


def generate_asset_id(num_bytes: int = ASSET_ID_BYTES) -> str:
    """
    Generate a collision-resistant, URL-safe identifier for a stored asset.

    A failing entropy source is fatal for the request and is never retried.

    Args:
        num_bytes: Number of random bytes to encode. Defaults to 32.

    Returns:
        str: Unpadded URL-safe base64 string.

    Raises:
        EntropyUnavailable: If the random source cannot be read.

    Example:
        >>> asset_id = generate_asset_id()
        >>> len(asset_id)
        43
    """
    if num_bytes <= 0:
        raise ValueError("num_bytes must be a positive integer")

    try:
        raw = secrets.token_bytes(num_bytes)
    except (OSError, NotImplementedError) as e:
        logger.exception("Secure random source unavailable")
        raise EntropyUnavailable("Unable to populate random bytes") from e

    asset_id = base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")

    # Cannot happen for a positive byte count; kept as a last guard
    if not asset_id:
        raise EntropyUnavailable("Unable to create random string")

    return asset_id
