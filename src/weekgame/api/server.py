"""
weekgame FastAPI server.

A stateful REST surface over the GameManager: create games, drive their
turns, submit decisions and adapter actions, and fetch snapshots.
Game state persists through the configured store between requests.

Endpoints:
- GET  /health
- GET  /games                           - Active games
- POST /games/island, /games/auction    - Create a season
- GET  /games/{id}                      - Full state
- POST /games/{id}/turn/begin|step|end  - Turn lifecycle
- POST /games/{id}/decisions            - Submit a decision
- POST /games/{id}/actions              - Raw adapter action
- POST /games/{id}/auctions/{piece}/open, /games/{id}/auctions/close
- POST /games/{id}/prizes, /games/{id}/points
- GET  /games/{id}/render               - SVG snapshot
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from ..config import Config, load_config
from ..interface.dispatch import ActionDispatcher
from ..interface.messenger import ActionEvent, RecordingMessenger
from ..interface.renderer import RichStateRenderer
from ..state import GameManager, GameRuntime, GameStore, JsonGameStore
from ..systems.auction import AuctionEngine
from ..systems.errors import (
    ConcurrencyReject,
    DecisionRejected,
    GameError,
    TurnError,
    UnknownGameError,
)
from .schemas import (
    ActionRequest,
    CreateAuctionRequest,
    CreateIslandRequest,
    DecisionRequest,
    ErrorResponse,
    GameSummary,
    NarrativeResponse,
    PointsRequest,
    PrizeRequest,
    ReplyResponse,
    StepResponse,
)

logger = logging.getLogger(__name__)


class WeekgameAPI:
    """
    Wraps the GameManager for the HTTP surface.

    Keeps one ActionDispatcher per game so bid and prize events are
    recorded on a messenger between requests.
    """

    def __init__(self, store: GameStore | None = None, data_dir: Path | str = "games", config: Config | None = None):
        self.config = config or load_config(data_dir)
        self.manager = GameManager(store or JsonGameStore(data_dir), config=self.config)
        self.renderer = RichStateRenderer()
        self._dispatchers: dict[str, ActionDispatcher] = {}
        self.messenger = RecordingMessenger()

    def runtime(self, game_id: str) -> GameRuntime:
        return self.manager.get(game_id)

    def dispatcher(self, game_id: str) -> ActionDispatcher:
        runtime = self.runtime(game_id)
        if runtime.id not in self._dispatchers:
            self._dispatchers[runtime.id] = ActionDispatcher(runtime, self.messenger, renderer=self.renderer)
        return self._dispatchers[runtime.id]

    def narrative(self, runtime: GameRuntime, lines: list[str]) -> NarrativeResponse:
        return NarrativeResponse(
            game_id=runtime.id,
            phase=runtime.state.phase.value,
            turn=runtime.state.turn,
            narrative=lines,
        )

    def auction_engine(self, game_id: str) -> AuctionEngine:
        engine = self.runtime(game_id).engine
        if not isinstance(engine, AuctionEngine):
            raise DecisionRejected("That action only applies to auction games.")
        return engine

    def shutdown(self) -> None:
        for dispatcher in self._dispatchers.values():
            dispatcher.close()
        self._dispatchers.clear()


def _error(status: int, exc: Exception, code: str) -> JSONResponse:
    message = getattr(exc, "reason", None) or str(exc)
    return JSONResponse(status_code=status, content=ErrorResponse(error=message, code=code).model_dump())


def create_app(
    data_dir: Path | str = "games",
    store: GameStore | None = None,
    config: Config | None = None,
) -> FastAPI:
    """Create the FastAPI application."""

    api = WeekgameAPI(store=store, data_dir=data_dir, config=config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        api.shutdown()

    app = FastAPI(
        title="weekgame API",
        description="REST API for weekly decision games",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.api = api

    def get_api() -> WeekgameAPI:
        return app.state.api

    # -------------------------------------------------------------------------
    # Error mapping
    # -------------------------------------------------------------------------

    @app.exception_handler(UnknownGameError)
    async def unknown_game(request: Request, exc: UnknownGameError):
        return _error(404, exc, "unknown_game")

    @app.exception_handler(DecisionRejected)
    async def rejected(request: Request, exc: DecisionRejected):
        return _error(422, exc, "rejected")

    @app.exception_handler(ConcurrencyReject)
    async def contention(request: Request, exc: ConcurrencyReject):
        return _error(409, exc, "try_again")

    @app.exception_handler(TurnError)
    async def wrong_phase(request: Request, exc: TurnError):
        return _error(409, exc, "invalid_phase")

    @app.exception_handler(GameError)
    async def game_error(request: Request, exc: GameError):
        return _error(400, exc, "game_error")

    @app.exception_handler(ValueError)
    async def bad_value(request: Request, exc: ValueError):
        return _error(422, exc, "bad_value")

    # -------------------------------------------------------------------------
    # Games
    # -------------------------------------------------------------------------

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"ok": True, "service": "weekgame-api"}

    @app.get("/games", response_model=list[GameSummary])
    async def list_games(api: WeekgameAPI = Depends(get_api)):
        return [GameSummary(**{k: g[k] for k in GameSummary.model_fields}) for g in api.manager.list_games()]

    @app.post("/games/island", status_code=201)
    async def create_island(request: CreateIslandRequest, api: WeekgameAPI = Depends(get_api)):
        runtime = api.manager.create_island_game(request.roster, name=request.name, season=request.season)
        return runtime.state.model_dump(mode="json")

    @app.post("/games/auction", status_code=201)
    async def create_auction(request: CreateAuctionRequest, api: WeekgameAPI = Depends(get_api)):
        runtime = api.manager.create_auction_game(
            request.roster,
            pieces=[p.model_dump() for p in request.pieces],
            name=request.name,
            season=request.season,
            starting_points=request.starting_points,
        )
        return runtime.state.model_dump(mode="json")

    @app.get("/games/{game_id}")
    async def get_game(game_id: str, api: WeekgameAPI = Depends(get_api)):
        return api.runtime(game_id).state.model_dump(mode="json")

    # -------------------------------------------------------------------------
    # Turn lifecycle
    # -------------------------------------------------------------------------

    @app.post("/games/{game_id}/turn/begin", response_model=NarrativeResponse)
    async def begin_turn(game_id: str, api: WeekgameAPI = Depends(get_api)):
        runtime = api.runtime(game_id)
        return api.narrative(runtime, runtime.controller.begin_turn())

    @app.post("/games/{game_id}/turn/step", response_model=StepResponse)
    async def step(game_id: str, api: WeekgameAPI = Depends(get_api)):
        runtime = api.runtime(game_id)
        result = runtime.controller.process_next_decision()
        return StepResponse(
            game_id=runtime.id,
            summary=result.summary,
            extra_summaries=result.extra_summaries,
            continue_processing=result.continue_processing,
            skipped=result.skipped,
            payload=result.payload,
        )

    @app.post("/games/{game_id}/turn/end", response_model=NarrativeResponse)
    async def end_turn(game_id: str, api: WeekgameAPI = Depends(get_api)):
        runtime = api.runtime(game_id)
        return api.narrative(runtime, runtime.controller.end_turn())

    # -------------------------------------------------------------------------
    # Participant input
    # -------------------------------------------------------------------------

    @app.post("/games/{game_id}/decisions", response_model=ReplyResponse)
    async def submit_decision(game_id: str, request: DecisionRequest, api: WeekgameAPI = Depends(get_api)):
        runtime = api.runtime(game_id)
        confirmation = runtime.collector.submit(request.participant_id, request.text, option_id=request.option_id)
        return ReplyResponse(replies=[confirmation])

    @app.post("/games/{game_id}/actions", response_model=ReplyResponse)
    async def dispatch_action(game_id: str, request: ActionRequest, api: WeekgameAPI = Depends(get_api)):
        dispatcher = api.dispatcher(game_id)
        replies = dispatcher.dispatch(ActionEvent(**request.model_dump()))
        return ReplyResponse(replies=[r.content for r in replies])

    @app.post("/games/{game_id}/auctions/{piece_id}/open", response_model=NarrativeResponse)
    async def open_auction(game_id: str, piece_id: str, api: WeekgameAPI = Depends(get_api)):
        engine = api.auction_engine(game_id)
        lines = engine.open_auction(piece_id)
        runtime = api.runtime(game_id)
        api.manager.save_game(runtime.state)
        return api.narrative(runtime, lines)

    @app.post("/games/{game_id}/auctions/close", response_model=NarrativeResponse)
    async def close_auctions(game_id: str, api: WeekgameAPI = Depends(get_api)):
        engine = api.auction_engine(game_id)
        lines = engine.close_auctions()
        runtime = api.runtime(game_id)
        api.manager.save_game(runtime.state)
        return api.narrative(runtime, lines)

    @app.post("/games/{game_id}/prizes", response_model=ReplyResponse)
    async def award_prize(game_id: str, request: PrizeRequest, api: WeekgameAPI = Depends(get_api)):
        runtime = api.runtime(game_id)
        replies = runtime.engine.award_prize(request.participant_id, intro=request.intro, tied=request.tied)
        api.manager.save_game(runtime.state)
        return ReplyResponse(replies=replies)

    @app.post("/games/{game_id}/points", response_model=ReplyResponse)
    async def add_points(game_id: str, request: PointsRequest, api: WeekgameAPI = Depends(get_api)):
        runtime = api.runtime(game_id)
        runtime.engine.add_points(request.participant_id, request.points)
        api.manager.save_game(runtime.state)
        return ReplyResponse()

    @app.get("/games/{game_id}/render")
    async def render(game_id: str, api: WeekgameAPI = Depends(get_api)):
        runtime = api.runtime(game_id)
        return Response(content=api.renderer.render_state(runtime.state), media_type="image/svg+xml")

    return app
