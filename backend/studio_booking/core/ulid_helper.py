"""ULIDs for every primary key; they sort by creation time."""

import ulid

# Crockford base32, 26 chars; used for path and X-User-Id validation
ULID_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


def generate_ulid() -> str:
    return str(ulid.ULID())
