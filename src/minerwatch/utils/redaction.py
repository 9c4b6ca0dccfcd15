from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Redactor:
    """Masks addresses and wallet names in output meant to be shared."""

    enabled: bool = True
    _mac_map: dict[str, int] = field(default_factory=dict)
    _mac_counter: int = 0

    def redact_ip(self, ip: str) -> str:
        if not self.enabled:
            return ip
        host, sep, port = ip.partition(":")
        parts = host.split(".")
        if len(parts) == 4 and all(part.isdigit() for part in parts):
            return f"x.x.x.{parts[3]}{sep}{port}"
        return ip

    def redact_mac(self, mac: str) -> str:
        if not self.enabled:
            return mac
        parts = mac.split(":")
        if len(parts) != 6:
            return mac
        prefix = ":".join(parts[:3])
        counter = self._mac_map.get(mac)
        if counter is None:
            self._mac_counter += 1
            counter = self._mac_counter
            self._mac_map[mac] = counter
        return f"{prefix}:xx:xx:{counter:02d}"

    def redact_device_id(self, device_id: str) -> str:
        if not self.enabled:
            return device_id
        if device_id.startswith(("avalon-", "axeos-")):
            prefix, _, rest = device_id.partition("-")
            return f"{prefix}-{self.redact_ip(rest.replace('-', '.'))}"
        return self.redact_mac(device_id)

    def redact_worker(self, user: str | None) -> str:
        """``bc1qxyz...abc.rig1`` -> ``bc1q…abc.rig1``; the worker suffix is kept."""
        if not user:
            return ""
        if not self.enabled:
            return user
        wallet, sep, worker = user.partition(".")
        if len(wallet) > 10:
            wallet = f"{wallet[:4]}…{wallet[-3:]}"
        return f"{wallet}{sep}{worker}"
