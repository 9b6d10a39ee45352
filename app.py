from contextlib import asynccontextmanager

import socketio
from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from constants import CORS_ORIGINS, LOG_FILE, LOG_LEVEL
from logging_config import get_logger, setup_logging
from realtime.relay import RelayConfig
from realtime.socketio import attach, create_socket_server
from realtime.websocket import serve_websocket
from routers.chats import chats_router
from routers.health import health_router
from routers.messages import messages_router
from routers.users import users_router

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)

# One relay (and registry) per process, shared by the socket.io and plain WebSocket transports
relay_config = RelayConfig.from_env()
sio = create_socket_server(relay_config)
relay = attach(sio, relay_config)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Chat relay starting")
    yield
    relay.shutdown()
    logger.info("Chat relay stopped")


app = FastAPI(title="Chat Relay", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(users_router)
app.include_router(chats_router)
app.include_router(messages_router)
app.include_router(health_router)

app.state.relay = relay

logger.info("FastAPI application initialized")


@app.get("/", response_class=PlainTextResponse)
async def root():
    return "API is running.."


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Plain WebSocket transport; frames are ``{"event": ..., "data": ...}``."""
    await serve_websocket(relay, websocket)


# Socket.IO handles its own path and hands everything else to FastAPI
asgi_app = socketio.ASGIApp(sio, other_asgi_app=app, socketio_path=relay_config.socketio_path)
