"""Client address resolution behind reverse proxies.

Order: first hop of X-Forwarded-For, then X-Real-IP, then the socket peer.
"""

from starlette.requests import HTTPConnection


def client_ip(request: HTTPConnection) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"
