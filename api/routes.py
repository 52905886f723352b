"""
REST endpoints consumed by the web client.

Repository-backed endpoints are plain `def` so FastAPI runs their SQLite
reads in its threadpool; lobby lookups read in-memory state directly.
"""

import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from domain.models.player import PlayerProfile
from infrastructure.service_container import ServiceContainer
from rating_system import EloRatingSystem

logger = logging.getLogger("lobby_server.api.routes")

router = APIRouter(prefix="/api")


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def profile_payload(profile: PlayerProfile) -> dict:
    win_rate = profile.get_win_rate()
    return {
        **profile.to_dict(),
        "rank": EloRatingSystem.rank_for(profile.elo),
        "winRate": round(win_rate, 1) if win_rate is not None else None,
        "kdr": round(profile.get_kdr(), 2),
    }


@router.get("/health")
async def health(container: ServiceContainer = Depends(get_container)):
    return {
        "status": "ok",
        "lobbies": len(container.registry),
        "timers": container.timers.active_count(),
    }


# --- Lobbies ---


@router.get("/lobby/{code}")
async def get_lobby(code: str, container: ServiceContainer = Depends(get_container)):
    lobby = container.lobby_service.get_lobby(code)
    if lobby is None:
        return _error("Lobby not found", 404)
    return lobby.to_dict()


@router.get("/lobbies")
async def list_public_lobbies(container: ServiceContainer = Depends(get_container)):
    return [lobby.summary_dict() for lobby in container.lobby_service.get_public_lobbies()]


@router.get("/session/{discord_id}")
async def get_session(discord_id: str, container: ServiceContainer = Depends(get_container)):
    """The lobby a player is currently in, so a client can offer to rejoin it."""
    lobby = container.lobby_service.get_lobby_for_player(discord_id)
    if lobby is None:
        return {"lobbyId": None, "lobby": None}
    return {"lobbyId": lobby.code, "lobby": lobby.to_dict()}


# --- Players ---


@router.get("/players")
def list_players(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    container: ServiceContainer = Depends(get_container),
):
    return [profile_payload(p) for p in container.player_repo.get_all(limit=limit, offset=offset)]


@router.get("/players/search/{query}")
def search_players(
    query: str,
    limit: int = Query(20, ge=1, le=100),
    container: ServiceContainer = Depends(get_container),
):
    if not query.strip():
        return _error("Search query is required", 400)
    return [profile_payload(p) for p in container.player_repo.search(query.strip(), limit=limit)]


@router.get("/players/{discord_id}")
def get_player(discord_id: str, container: ServiceContainer = Depends(get_container)):
    profile = container.player_repo.get_by_id(discord_id)
    if profile is None:
        return _error("Player not found", 404)
    payload = profile_payload(profile)
    payload["recentMatches"] = [m.to_dict() for m in container.match_repo.get_player_matches(discord_id)]
    return payload


@router.get("/leaderboard")
def leaderboard(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    container: ServiceContainer = Depends(get_container),
):
    players = container.player_repo.get_leaderboard(limit=limit, offset=offset)
    return [
        {**profile_payload(p), "position": offset + index}
        for index, p in enumerate(players, start=1)
    ]


# --- Matches ---


@router.get("/matches")
def list_matches(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    container: ServiceContainer = Depends(get_container),
):
    return [m.to_dict() for m in container.match_repo.get_recent_matches(limit=limit, offset=offset)]


@router.get("/matches/{match_id}")
def get_match(match_id: str, container: ServiceContainer = Depends(get_container)):
    match = container.match_repo.get_match(match_id)
    if match is None:
        return _error("Match not found", 404)
    return match.to_dict()
