"""Minimal FastAPI app wiring the webssh router and gateway."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from webssh import Gateway, WebSSHConfig
from webssh.router import router


@asynccontextmanager
async def lifespan(app: FastAPI):
    gateway = Gateway(WebSSHConfig(buff_size=1024))
    app.extra["webssh_gateway"] = gateway
    try:
        yield
    finally:
        await gateway.shutdown()


logging.basicConfig(level=logging.DEBUG)

app = FastAPI(lifespan=lifespan)
app.include_router(router)
