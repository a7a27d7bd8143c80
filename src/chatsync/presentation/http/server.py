"""HTTP server for jobs, retrieval, backfill reads and the broker hub."""

import json
from typing import Any

import structlog
from aiohttp import web
from pydantic import BaseModel, Field, ValidationError

from chatsync.application.services.reply_generator import ReplyGenerator
from chatsync.application.services.semantic_retrieval import SemanticRetrievalEngine
from chatsync.config.models import ServerConfig
from chatsync.domain.entities.broker_event import (
    MemberProfileChanged,
    MessageCreated,
    MessageDeleted,
    MessageUpdated,
    parse_broker_event,
)
from chatsync.domain.entities.embedding_record import RetrievalFilters
from chatsync.domain.entities.job import (
    Job,
    JobType,
    PurgeEmbeddingsJob,
    VectorizeJob,
)
from chatsync.domain.entities.message import (
    ChannelLocator,
    DirectLocator,
    Message,
)
from chatsync.domain.errors import MalformedEventError
from chatsync.domain.repositories.message_repository import MessageRepository
from chatsync.infrastructure.job_queue import JobQueue
from chatsync.presentation.http.broker_hub import BrokerHub


class RetrievalRequest(BaseModel):
    """Body of POST /api/v1/retrieve and POST /api/v1/replies."""

    prompt: str = Field(min_length=1)
    author_id: str = Field(min_length=1)
    channel_id: str | None = None
    workspace_id: str | None = None
    top_k: int | None = Field(default=None, ge=1, le=100)

    def to_filters(self) -> RetrievalFilters:
        return RetrievalFilters(
            author_id=self.author_id,
            channel_id=self.channel_id,
            workspace_id=self.workspace_id,
        )


def _bad_request(error: str, **extra: Any) -> web.HTTPBadRequest:
    return web.HTTPBadRequest(
        text=json.dumps({"error": error, **extra}, default=str),
        content_type="application/json",
    )


def _messages_response(messages: list[Message]) -> web.Response:
    return web.json_response(
        {"messages": [m.model_dump(mode="json") for m in messages]}
    )


class HTTPServer:
    """HTTP server for the chatsync service.

    This server provides endpoints for:
    - GET /healthz: Kubernetes liveness probe
    - POST /api/v1/jobs: Enqueue background jobs
    - POST /api/v1/retrieve: Semantic retrieval of a user's messages
    - POST /api/v1/replies: Style-matched reply generation
    - GET /api/v1/channels/{channel_id}/messages: Channel backfill
    - GET /api/v1/direct/{user_a}/{user_b}/messages: Direct backfill
    - GET /api/v1/messages/{message_id}/replies: Thread backfill
    - POST /api/v1/topics/{topic}/events: Record and publish a broker event
    - GET /ws: Websocket broker hub

    Args:
        config: Server configuration containing host and port.
        job_queue: JobQueue for background work.
        repository: Primary message store.
        retrieval: Semantic retrieval engine.
        hub: Websocket broker hub.
        logger: Structured logger for logging.
        reply_generator: Reply generator, None when generation is not
            configured.
        top_k: Default number of retrieval matches.
    """

    # Mapping from job type string to job class
    JOB_TYPE_MAP: dict[str, type[Job]] = {
        JobType.VECTORIZE.value: VectorizeJob,
        JobType.PURGE_EMBEDDINGS.value: PurgeEmbeddingsJob,
    }

    def __init__(
        self,
        config: ServerConfig,
        job_queue: JobQueue,
        repository: MessageRepository,
        retrieval: SemanticRetrievalEngine,
        hub: BrokerHub,
        logger: structlog.stdlib.BoundLogger,
        reply_generator: ReplyGenerator | None = None,
        top_k: int = 5,
    ) -> None:
        self.config = config
        self._job_queue = job_queue
        self._repository = repository
        self._retrieval = retrieval
        self._hub = hub
        self._logger = logger
        self._reply_generator = reply_generator
        self._top_k = top_k
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    @property
    def is_running(self) -> bool:
        """Return True if the server is running."""
        return self._site is not None

    @property
    def actual_port(self) -> int:
        """Return the port the server listens on, useful with port 0.

        Raises:
            RuntimeError: If the server is not running.
        """
        if self._site is None:
            raise RuntimeError("Server is not running")
        server = getattr(self._site, "_server", None)
        sockets = getattr(server, "sockets", None) if server is not None else None
        if sockets:
            return sockets[0].getsockname()[1]
        raise RuntimeError("No sockets available")

    def create_app(self) -> web.Application:
        """Create and return the aiohttp Application.

        This method is exposed for testing purposes.
        """
        app = web.Application()
        app.router.add_get("/healthz", self._handle_health_check)
        app.router.add_post("/api/v1/jobs", self._handle_job)
        app.router.add_post("/api/v1/retrieve", self._handle_retrieve)
        app.router.add_post("/api/v1/replies", self._handle_reply)
        app.router.add_get(
            "/api/v1/channels/{channel_id}/messages", self._handle_channel_messages
        )
        app.router.add_get(
            "/api/v1/direct/{user_a}/{user_b}/messages", self._handle_direct_messages
        )
        app.router.add_get(
            "/api/v1/messages/{message_id}/replies", self._handle_thread_replies
        )
        app.router.add_post("/api/v1/topics/{topic}/events", self._handle_topic_event)
        app.router.add_get("/ws", self._hub.handle_websocket)
        return app

    async def start(self) -> None:
        """Start the HTTP server."""
        self._app = self.create_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self.config.host, self.config.port)
        await self._site.start()
        self._logger.info(
            "HTTP server started",
            host=self.config.host,
            port=self.actual_port,
        )

    async def stop(self) -> None:
        """Close broker connections and stop the HTTP server."""
        if self._runner is not None:
            await self._hub.close()
            await self._runner.cleanup()
            self._runner = None
            self._site = None
            self._app = None
            self._logger.info("HTTP server stopped")

    async def _read_json(self, request: web.Request) -> Any:
        try:
            return await request.json()
        except json.JSONDecodeError:
            raise _bad_request("Invalid JSON")

    async def _handle_health_check(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    async def _handle_job(self, request: web.Request) -> web.Response:
        """Handle POST /api/v1/jobs requests.

        Returns:
            JSON response with job_id on success, or error message on failure.
        """
        body = await self._read_json(request)
        if not isinstance(body, dict) or "type" not in body:
            return web.json_response(
                {"error": "Missing required field: type"}, status=400
            )

        job_type = body["type"]
        if job_type not in self.JOB_TYPE_MAP:
            return web.json_response(
                {"error": f"Invalid job type: {job_type}"}, status=400
            )

        payload = body.get("payload", {})
        delay = body.get("delay", 0)
        if not isinstance(payload, dict) or not isinstance(delay, (int, float)):
            return web.json_response({"error": "Invalid payload or delay"}, status=400)

        job = self.JOB_TYPE_MAP[job_type](payload=payload, source="http")
        try:
            await self._job_queue.enqueue(job, delay=delay)
        except Exception as e:
            self._logger.error("Failed to enqueue job", error=str(e))
            return web.json_response({"error": "Failed to enqueue job"}, status=500)

        self._logger.info("Job received", job_id=job.id, job_type=job_type, delay=delay)
        return web.json_response({"job_id": job.id})

    async def _parse_retrieval_request(
        self, request: web.Request
    ) -> RetrievalRequest:
        body = await self._read_json(request)
        try:
            return RetrievalRequest.model_validate(body)
        except ValidationError as e:
            raise _bad_request(
                "Invalid request",
                details=e.errors(include_url=False, include_input=False),
            )

    async def _handle_retrieve(self, request: web.Request) -> web.Response:
        """Handle POST /api/v1/retrieve requests.

        Returns:
            The matches and the style context rendered from them.
        """
        body = await self._parse_retrieval_request(request)
        matches = await self._retrieval.retrieve_context(
            body.prompt, body.to_filters(), top_k=body.top_k or self._top_k
        )
        return web.json_response(
            {
                "matches": [m.model_dump(mode="json") for m in matches],
                "context": self._retrieval.build_style_context(matches),
            }
        )

    async def _handle_reply(self, request: web.Request) -> web.Response:
        """Handle POST /api/v1/replies requests."""
        if self._reply_generator is None:
            return web.json_response(
                {"error": "Reply generation is not configured"}, status=503
            )

        body = await self._parse_retrieval_request(request)
        try:
            reply = await self._reply_generator.generate(
                body.prompt, body.to_filters()
            )
        except Exception as e:
            self._logger.error("Failed to generate reply", error=str(e))
            return web.json_response(
                {"error": "Failed to generate reply"}, status=502
            )

        return web.json_response({"reply": reply.text, "context": reply.context})

    async def _handle_channel_messages(self, request: web.Request) -> web.Response:
        locator = ChannelLocator(channel_id=request.match_info["channel_id"])
        return _messages_response(
            await self._repository.fetch_conversation_messages(locator)
        )

    async def _handle_direct_messages(self, request: web.Request) -> web.Response:
        user_a = request.match_info["user_a"]
        user_b = request.match_info["user_b"]
        if user_a == user_b:
            return web.json_response(
                {"error": "Direct conversations need two distinct users"}, status=400
            )
        locator = DirectLocator.between(user_a, user_b)
        return _messages_response(
            await self._repository.fetch_conversation_messages(locator)
        )

    async def _handle_thread_replies(self, request: web.Request) -> web.Response:
        return _messages_response(
            await self._repository.fetch_thread_replies(
                request.match_info["message_id"]
            )
        )

    async def _handle_topic_event(self, request: web.Request) -> web.Response:
        """Handle POST /api/v1/topics/{topic}/events requests.

        Applies the event to the primary store, then relays it to the hub
        subscribers of the topic. Deleting a message also schedules the
        removal of its embeddings and those of its replies.

        Returns:
            JSON response with the number of subscribers reached.
        """
        topic = request.match_info["topic"]
        body = await self._read_json(request)
        try:
            event = parse_broker_event(body)
        except MalformedEventError as e:
            return web.json_response({"error": str(e)}, status=400)

        match event:
            case MessageCreated(message=message) | MessageUpdated(message=message):
                await self._repository.save(message)
            case MessageDeleted(message_id=message_id):
                replies = await self._repository.fetch_thread_replies(message_id)
                if await self._repository.delete(message_id):
                    await self._job_queue.enqueue(
                        PurgeEmbeddingsJob(
                            payload={
                                "message_ids": [message_id] + [r.id for r in replies]
                            }
                        )
                    )
            case MemberProfileChanged():
                pass

        delivered = await self._hub.publish(topic, body)
        self._logger.info(
            "Event published",
            topic=topic,
            kind=event.kind.value,
            delivered=delivered,
        )
        return web.json_response({"delivered": delivered})
