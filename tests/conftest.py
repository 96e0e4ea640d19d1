import asyncio
import os
import subprocess
import time
import sys
from pathlib import Path

import pytest
import httpx

from sampquery.config.settings import get_settings
from sampquery.api.client import SimApiClient
from sampquery.transport.udp import QueryClient

REPO_ROOT = Path(__file__).resolve().parents[1]

def _wait_for_http_ready(url: str, proc: subprocess.Popen, timeout_s: float = 15.0) -> None:
    """
    Wait for the simulator to respond at url. If the process exits, surface logs.
    """
    deadline = time.time() + timeout_s

    while time.time() < deadline:
        if proc.poll() is not None:
            out = ""
            if proc.stdout:
                out = proc.stdout.read() or ""
            raise RuntimeError(
                f"Simulator exited early (code={proc.returncode}).\n"
                f"--- simulator output ---\n{out}"
            )

        try:
            r = httpx.get(url, timeout=1.0)
            if r.status_code == 200:
                return
        except httpx.HTTPError:
            pass

        time.sleep(0.2)

    raise RuntimeError(f"Simulator did not become ready at {url} within {timeout_s}s.")

@pytest.fixture(scope="session")
def simulator_process():
    """
    Starts the simulator for the test session.
    Uses `python -m uvicorn ...` from repo root so `services.*` imports resolve.
    """
    settings = get_settings()

    sim_host = "127.0.0.1"
    sim_port = int(os.getenv("SIM_HTTP_PORT", "8000"))
    sim_http = os.getenv("SIM_HTTP", f"http://{sim_host}:{sim_port}")

    env = os.environ.copy()
    env["SIM_HTTP"] = sim_http
    env["SIM_HTTP_HOST"] = sim_host
    env["SIM_HTTP_PORT"] = str(sim_port)
    env["SIM_UDP_HOST"] = settings.sim_udp_host
    env["SIM_UDP_PORT"] = str(settings.sim_udp_port)
    env["PYTHONPATH"] = os.pathsep.join(
        p for p in (str(REPO_ROOT / "src"), str(REPO_ROOT), env.get("PYTHONPATH")) if p
    )

    cmd = [
        sys.executable, "-m", "uvicorn",
        "services.server_sim.app.main:app",
        "--host", sim_host,
        "--port", str(sim_port),
        "--log-level", "warning",
    ]

    kwargs = {}
    if sys.platform == "win32":
        kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP

    p = subprocess.Popen(
        cmd,
        cwd=str(REPO_ROOT),
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        **kwargs,
    )

    try:
        _wait_for_http_ready(f"{sim_http}/health", p, timeout_s=15.0)
        yield p
    finally:
        p.terminate()
        try:
            p.wait(timeout=5)
        except subprocess.TimeoutExpired:
            p.kill()

@pytest.fixture
def settings():
    return get_settings()

@pytest.fixture
def sim_api(simulator_process, settings):
    """
    Control plane client; every test starts from a clean simulator.
    """
    client = SimApiClient(settings.sim_http)
    client.reset()
    try:
        yield client
    finally:
        client.close()

@pytest.fixture
def sim_query(settings):
    """Runs one open/send/recv conversation against the simulator."""
    def _query(timeout_s: float = settings.query_timeout_s):
        async def run():
            async with await QueryClient.open(settings.sim_udp_host, settings.sim_udp_port,
                                              timeout_s=timeout_s) as client:
                return await client.info()
        return asyncio.run(run())
    return _query
