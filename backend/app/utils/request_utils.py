# /app/utils/request_utils.py
from fastapi import Request


def get_remote_address(request: Request) -> str:
    """
    Returns the client's IP address, preferring the first X-Forwarded-For hop
    since the app runs behind a reverse proxy (see gunicorn_conf.py).
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    if request.client and request.client.host:
        return request.client.host
    return "127.0.0.1"
