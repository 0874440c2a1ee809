"""FastAPI HTTP server: COBS encode/decode over JSON plus transport debug.

Payloads travel as hex strings so arbitrary bytes survive JSON.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from cobsio.io.cobs import CorruptFrameError, FrameCodec

if TYPE_CHECKING:
    from cobsio.io.serial_transport import SerialTransport

log = logging.getLogger(__name__)


class HexBody(BaseModel):
    hex: str = Field(default="", description="Bytes as a hex string")


class HexResult(BaseModel):
    hex: str
    length: int


def _parse_hex(text: str) -> bytes:
    try:
        return bytes.fromhex(text)
    except ValueError:
        raise HTTPException(status_code=400, detail="invalid hex") from None


def create_app(
    codec: FrameCodec,
    transport: SerialTransport | None = None,
) -> FastAPI:
    app = FastAPI(title="cobsio", version="0.1.0")

    @app.get("/config")
    async def get_config():
        return JSONResponse(
            {"delimiter": codec.delimiter, "max_chunk": codec.max_chunk}
        )

    @app.post("/encode", response_model=HexResult)
    async def post_encode(body: HexBody):
        encoded = codec.encode(_parse_hex(body.hex))
        return HexResult(hex=encoded.hex(), length=len(encoded))

    @app.post("/decode", response_model=HexResult)
    async def post_decode(body: HexBody):
        frame = _parse_hex(body.hex)
        try:
            payload = codec.decode(frame)
        except CorruptFrameError as e:
            log.debug("decode rejected %d-byte frame: %s", len(frame), e)
            return JSONResponse(
                {"error": str(e), "kind": e.kind.value}, status_code=422
            )
        return HexResult(hex=payload.hex(), length=len(payload))

    @app.post("/send")
    async def post_send(body: HexBody):
        payload = _parse_hex(body.hex)
        if transport is None or not transport.connected:
            raise HTTPException(status_code=503, detail="transport not connected")
        ok = transport.send(payload)
        return JSONResponse({"ok": ok}, status_code=200 if ok else 502)

    @app.get("/debug/transport")
    async def get_transport_debug():
        if transport is None:
            return JSONResponse(None)
        return JSONResponse(transport.debug_snapshot())

    return app
