from __future__ import annotations

from dataclasses import dataclass
import os


@dataclass(frozen=True)
class Settings:
    query_timeout_s: float
    log_level: str
    sim_http: str
    sim_udp_host: str
    sim_udp_port: int


def get_settings() -> Settings:
    """
    Centralized configuration for the simulator, tests and callers of the client.
    Values come from environment variables with safe defaults.
    """
    return Settings(
        query_timeout_s=float(os.getenv("SAMP_QUERY_TIMEOUT", "2.0")),
        log_level=os.getenv("SAMP_LOG_LEVEL", "info"),
        sim_http=os.getenv("SIM_HTTP", "http://127.0.0.1:8000"),
        sim_udp_host=os.getenv("SIM_UDP_HOST", "127.0.0.1"),
        sim_udp_port=int(os.getenv("SIM_UDP_PORT", "7777")),
    )
