from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware


def parse_origins(raw: str) -> list[str]:
    origins = [o.strip() for o in raw.split(",") if o.strip()]
    return ["*"] if "*" in origins else origins


def add_cors(app: FastAPI, allowed_origins: str) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=parse_origins(allowed_origins),
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-API-Key"],
        max_age=600,
    )
