import asyncio
import logging
import os
from dataclasses import asdict, replace

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from services.server_sim.app.core.protocol import SimModel, send_reply
from sampquery.config.logging_config import init_logging
from sampquery.config.settings import get_settings
from sampquery.transport.framing import FrameError
from sampquery.transport.opcodes import HEADER_SIZE, RECV_BUFSIZE

logger = logging.getLogger(__name__)

SETTINGS = get_settings()

HTTP_HOST = os.getenv("SIM_HTTP_HOST", "127.0.0.1")
HTTP_PORT = int(os.getenv("SIM_HTTP_PORT", "8000"))

UDP_HOST = SETTINGS.sim_udp_host
UDP_PORT = SETTINGS.sim_udp_port

app = FastAPI(title="SA-MP Server Simulator", version="0.1.0")

MODEL = SimModel()

class InfoIn(BaseModel):
    password: bool = False
    players: int = Field(0, ge=0, le=65535)
    max_players: int = Field(50, ge=0, le=65535)
    hostname: str = "Simulated Server"
    gamemode: str = "Freeroam"
    language: str = "English"

class FaultsIn(BaseModel):
    delay_ms: int = Field(0, ge=0, le=5000)
    drop_rate: float = Field(0.0, ge=0.0, le=1.0)
    truncate_to: int | None = Field(None, ge=0, le=1500)
    corrupt_text: bool = False

@app.get("/health")
def health():
    return {"status": "ok"}

@app.get("/status")
def status():
    return {
        "info": asdict(MODEL.info),
        "queries_served": MODEL.queries_served,
        "reset_count": MODEL.reset_count,
        "faults": asdict(MODEL.faults),
    }

@app.post("/control/reset")
def reset():
    MODEL.reset()
    return {"status": "reset", "reset_count": MODEL.reset_count}

@app.put("/control/info")
def set_info(info: InfoIn):
    text_len = sum(len(s.encode()) for s in (info.hostname, info.gamemode, info.language))
    # reply must fit one receive buffer: header, 5 fixed bytes, 3 length prefixes
    if HEADER_SIZE + 5 + 12 + text_len > RECV_BUFSIZE:
        raise HTTPException(status_code=422, detail="server info does not fit in one datagram")
    MODEL.info = replace(MODEL.info, **info.model_dump())
    return {"status": "info_updated", "info": asdict(MODEL.info)}

@app.post("/control/faults")
def set_faults(f: FaultsIn):
    MODEL.faults.delay_ms = f.delay_ms
    MODEL.faults.drop_rate = f.drop_rate
    MODEL.faults.truncate_to = f.truncate_to
    MODEL.faults.corrupt_text = f.corrupt_text
    return {"status": "faults_updated", "faults": f.model_dump()}

@app.get("/control/faults")
def get_faults():
    return asdict(MODEL.faults)

class UdpProto(asyncio.DatagramProtocol):
    def connection_made(self, transport):
        # stored for replies sent from datagram_received
        self.transport = transport

    def datagram_received(self, data: bytes, addr):
        loop = asyncio.get_running_loop()

        if MODEL.faults.should_drop():
            logger.debug("dropping query from %s:%d", *addr)
            return

        try:
            resp_pkt = MODEL.reply(data)
        except FrameError as e:
            # a real server ignores anything that is not a query it knows
            logger.debug("ignoring %d bytes from %s:%d: %s", len(data), addr[0], addr[1], e)
            return

        delay = MODEL.faults.delay_ms / 1000.0
        if delay > 0:
            loop.call_later(delay, send_reply, self.transport, resp_pkt, addr)
        else:
            send_reply(self.transport, resp_pkt, addr)

@app.on_event("startup")
async def start_udp():
    init_logging(SETTINGS.log_level)
    loop = asyncio.get_running_loop()
    transport, _ = await loop.create_datagram_endpoint(
        lambda: UdpProto(),
        local_addr=(UDP_HOST, UDP_PORT),
    )
    app.state.udp_transport = transport
    logger.info("answering info queries on %s:%d", UDP_HOST, UDP_PORT)

@app.on_event("shutdown")
async def stop_udp():
    t = getattr(app.state, "udp_transport", None)
    if t:
        t.close()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host=HTTP_HOST,
        port=HTTP_PORT,
        reload=False)
