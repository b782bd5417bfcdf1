"""
Visitor fingerprints

A fingerprint stands in for a visitor inside one estimator update. It is
a keyed hash of the client IP and is never stored; only the register it
lands in is.
"""
import hashlib
import hmac
from datetime import date
from typing import Optional


def resolve_client_ip(remote_addr: Optional[str], proxy_ip: Optional[str] = None) -> str:
    """
    Best available client IP

    Args:
        remote_addr: Address of the connecting peer
        proxy_ip: Client IP forwarded by the trusted reverse proxy

    Returns:
        Proxy-supplied IP when present, else the connection address
    """
    if proxy_ip and proxy_ip.strip():
        return proxy_ip.strip()
    return (remote_addr or "").strip()


class FingerprintHasher:
    """
    Derive fingerprints from client IPs

    With daily rotation the UTC day is mixed into the hash, so the same
    visitor produces unrelated fingerprints on different days.
    """

    def __init__(self, salt: str = "", daily_rotation: bool = True):
        self._key = salt.encode("utf-8")
        self.daily_rotation = daily_rotation

    def fingerprint(self, client_ip: str, day: date) -> bytes:
        """
        Fingerprint of a visitor

        Args:
            client_ip: Resolved client IP
            day: UTC day of the visit

        Returns:
            32-byte HMAC-SHA256 digest
        """
        material = client_ip
        if self.daily_rotation:
            material = f"{day.isoformat()}|{client_ip}"
        return hmac.new(self._key, material.encode("utf-8"), hashlib.sha256).digest()
