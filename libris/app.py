#!/usr/bin/env python3

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from libris.routes import api, catalog, reports, users
from libris.configs import CORS_ORIGINS, OPTIONS
from libris import __version__ as VERSION

app = FastAPI(
    title="Libris API",
    description="Libris: circulation, catalog and fines for a lending library",
    version=VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api.router, prefix="/v1/api")
app.include_router(catalog.router, prefix="/v1/api")
app.include_router(users.router, prefix="/v1/api")
app.include_router(reports.router, prefix="/v1/api")

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("libris.app:app", **OPTIONS)
