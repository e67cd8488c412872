from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import httpx
import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tripcircle import obs
from tripcircle.api.errors import install_error_handlers, install_request_context
from tripcircle.infra import postgres
from tripcircle.infra.scheduler import JobScheduler
from tripcircle.settings import settings
from tripcircle.social.container import build_services
from tripcircle.social.domain.repo import PostgresEntityStore, ensure_schema
from tripcircle.social.infra.blobs import S3BlobGateway
from tripcircle.social.infra.identity import HttpIdentityGateway
from tripcircle.social.sockets import server as social_server

obs.init()
_LOG = logging.getLogger(__name__)

sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=list(settings.cors_allow_origins) or "*")
social_namespace = social_server.register(sio)


@asynccontextmanager
async def lifespan(app: FastAPI):
	await postgres.init_pool()
	await ensure_schema()
	http = httpx.AsyncClient()
	store = PostgresEntityStore()
	services = build_services(
		store=store,
		blobs=S3BlobGateway(),
		identity=HttpIdentityGateway.from_settings(http),
		notifier=social_server.SocketIORealtimeNotifier(),
	)
	social_namespace.bind_store(store)
	app.state.social = services
	scheduler: JobScheduler | None = None
	if settings.repair_job_enabled:
		scheduler = JobScheduler()
		scheduler.start()
		scheduler.schedule_every("social-link-repair", services.repair.run_once, hours=settings.repair_interval_hours)
		app.state.social_scheduler = scheduler
	_LOG.info("tripcircle.started", extra={"env": settings.environment})
	try:
		yield
	finally:
		if scheduler is not None:
			scheduler.shutdown()
		await http.aclose()
		await postgres.close_pool()


app = FastAPI(title="TripCircle Social Core", lifespan=lifespan)
install_request_context(app)
install_error_handlers(app)

allow_origins = list(settings.cors_allow_origins)
if not allow_origins:
	allow_origins = ["http://localhost:3000"] if settings.is_dev() else []

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

socket_app = socketio.ASGIApp(sio, other_asgi_app=app)
