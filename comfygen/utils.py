import time

# Seeds derived from the clock stay below this bound
SEED_BOUND = 100_000_000_000_000

DEFAULT_CLIENT_ID = "huobao_drama"


def gen_seed() -> int:
    """
    Seed from the current time in nanoseconds, never 0.
    """
    return time.time_ns() % SEED_BOUND or 1


def resolve_client_id(client_id: str | None) -> str:
    return client_id or DEFAULT_CLIENT_ID


def strip_base_url(base_url: str) -> str:
    """
    Drop a single trailing slash: "http://x/" and "http://x" give the same URLs.
    """
    if base_url.endswith("/"):
        return base_url[:-1]
    return base_url
