from __future__ import annotations
import httpx

class SimApiClient:
    def __init__(self, base_url: str, timeout_s: float = 2.0):
        self._client = httpx.Client(base_url=base_url, timeout=timeout_s)

    def close(self) -> None:
        self._client.close()

    def health(self) -> dict:
        r = self._client.get("/health")
        r.raise_for_status()
        return r.json()

    def status(self) -> dict:
        r = self._client.get("/status")
        r.raise_for_status()
        return r.json()

    def reset(self) -> dict:
        r = self._client.post("/control/reset")
        r.raise_for_status()
        return r.json()

    def set_info(self, **fields) -> dict:
        """Replace the advertised server info; omitted fields keep their defaults."""
        r = self._client.put("/control/info", json=fields)
        r.raise_for_status()
        return r.json()

    def set_faults(self, *, delay_ms: int = 0, drop_rate: float = 0.0,
                   truncate_to: int | None = None, corrupt_text: bool = False) -> dict:
        r = self._client.post("/control/faults", json={
            "delay_ms": delay_ms,
            "drop_rate": drop_rate,
            "truncate_to": truncate_to,
            "corrupt_text": corrupt_text,
        })
        r.raise_for_status()
        return r.json()

    def get_faults(self) -> dict:
        r = self._client.get("/control/faults")
        r.raise_for_status()
        return r.json()
