import logging

import uvicorn
from fastapi import FastAPI

from sitegen.api.generate import router as generate_router
from sitegen.api.status import router as status_router
from sitegen.utils.config import LOG_LEVEL, SERVER_HOST, SERVER_PORT

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = FastAPI(title="Website Generation Backend")
app.include_router(generate_router, prefix="/generate")
app.include_router(status_router, prefix="/status")


def run() -> None:
    uvicorn.run("sitegen.main:app", host=SERVER_HOST, port=SERVER_PORT, log_level=LOG_LEVEL.lower())
