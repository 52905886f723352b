"""
Socket.IO transport.

Each lobby is a Socket.IO room named by its code. Client intents are mapped
onto LobbyService calls; failures go back to the caller only as
error{message, code}. Lobby events fan out through SocketIONotifier without
blocking the lobby that produced them.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import socketio

from config import INTENT_RATE_LIMIT, INTENT_RATE_WINDOW
from services import error_codes
from services.lobby_service import LobbyService
from services.notifier import LobbyNotifier
from services.result import Result
from utils.rate_limiter import RateLimiter

logger = logging.getLogger("lobby_server.api.sockets")


class SocketIONotifier(LobbyNotifier):
    """
    Publishes lobby events to Socket.IO rooms.

    Also remembers which player each socket speaks for, so events can be sent
    to one player across all of their open connections.
    """

    def __init__(self, sio: socketio.AsyncServer):
        self.sio = sio
        self._sids_by_player: dict[str, set[str]] = {}
        self._player_by_sid: dict[str, str] = {}
        self._pending: set[asyncio.Task] = set()

    # --- connection bookkeeping ---

    def bind(self, sid: str, player_id: str) -> None:
        previous = self._player_by_sid.get(sid)
        if previous is not None and previous != player_id:
            self._sids_by_player.get(previous, set()).discard(sid)
        self._player_by_sid[sid] = player_id
        self._sids_by_player.setdefault(player_id, set()).add(sid)

    def unbind(self, sid: str) -> str | None:
        player_id = self._player_by_sid.pop(sid, None)
        if player_id is not None:
            sids = self._sids_by_player.get(player_id)
            if sids is not None:
                sids.discard(sid)
                if not sids:
                    del self._sids_by_player[player_id]
        return player_id

    def player_for(self, sid: str) -> str | None:
        return self._player_by_sid.get(sid)

    def sids_for(self, player_id: str) -> set[str]:
        return set(self._sids_by_player.get(player_id, ()))

    def is_connected(self, player_id: str) -> bool:
        return bool(self._sids_by_player.get(player_id))

    # --- LobbyNotifier ---

    def notify(self, lobby_id: str, event: str, payload: Any) -> None:
        self._spawn(self.sio.emit(event, payload, room=lobby_id))

    def notify_player(self, player_id: str, event: str, payload: Any) -> None:
        for sid in self.sids_for(player_id):
            self._spawn(self.sio.emit(event, payload, to=sid))

    def detach(self, lobby_id: str, player_id: str) -> None:
        for sid in self.sids_for(player_id):
            self._spawn(self.sio.leave_room(sid, lobby_id))

    def close(self, lobby_id: str) -> None:
        self._spawn(self.sio.close_room(lobby_id))

    async def drain(self) -> None:
        """Wait for every delivery scheduled so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _spawn(self, coro: Awaitable) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.debug("No running event loop, dropping socket delivery")
            return
        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._on_delivered)

    def _on_delivered(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Socket delivery failed: {task.exception()!r}")


def _payload(data) -> dict:
    return data if isinstance(data, dict) else {}


def _user_id(data: dict) -> str | None:
    user = data.get("userData")
    if isinstance(user, dict) and user.get("odiscordId") is not None:
        return str(user["odiscordId"])
    return None


# (service, player_id, lobby_code, data) -> Result
LobbyIntent = Callable[[LobbyService, str, str, dict], Awaitable[Result]]

LOBBY_INTENTS: dict[str, LobbyIntent] = {
    "kickPlayer": lambda svc, pid, code, d: svc.kick_player(code, pid, d.get("odiscordId"), d.get("reason")),
    "whitelistPlayer": lambda svc, pid, code, d: svc.whitelist_player(code, pid, d.get("odiscordId"), True),
    "unwhitelistPlayer": lambda svc, pid, code, d: svc.whitelist_player(code, pid, d.get("odiscordId"), False),
    "timeoutPlayer": lambda svc, pid, code, d: svc.timeout_player(
        pid, d.get("odiscordId"), d.get("duration"), d.get("reason"), code=code
    ),
    "setTeamColors": lambda svc, pid, code, d: svc.set_team_colors(
        code, pid, d.get("team1Color"), d.get("team2Color")
    ),
    "setDraftMode": lambda svc, pid, code, d: svc.set_draft_mode(code, pid, d.get("draftMode")),
    "startCaptainSelect": lambda svc, pid, code, d: svc.start_captain_select(code, pid),
    "selectCaptain": lambda svc, pid, code, d: svc.select_captain(code, pid, d.get("odiscordId")),
    "removeCaptain": lambda svc, pid, code, d: svc.remove_captain(code, pid, d.get("odiscordId")),
    "startDraft": lambda svc, pid, code, d: svc.start_team_formation(code, pid, d.get("firstTeam")),
    "draftPick": lambda svc, pid, code, d: svc.draft_pick(code, pid, d.get("odiscordId")),
    "placeBid": lambda svc, pid, code, d: svc.place_bid(code, pid, d.get("amount")),
    "addScore": lambda svc, pid, code, d: svc.add_score(code, pid, d.get("team")),
    "declareWinner": lambda svc, pid, code, d: svc.declare_winner(code, pid, d.get("winnerTeam"), d.get("stats")),
    "resetLobby": lambda svc, pid, code, d: svc.reset_lobby(code, pid),
    "closeLobby": lambda svc, pid, code, d: svc.close_lobby(code, pid, d.get("reason")),
    "leaveLobby": lambda svc, pid, code, d: svc.leave_lobby(pid, code),
    "checkVCStatus": lambda svc, pid, code, d: svc.check_vc_status(code, pid),
}


class LobbySocketHandlers:
    """Registers every client intent on a Socket.IO server."""

    def __init__(
        self,
        sio: socketio.AsyncServer,
        lobby_service: LobbyService,
        notifier: SocketIONotifier,
        rate_limiter: RateLimiter | None = None,
        rate_limit: int = INTENT_RATE_LIMIT,
        rate_window: int = INTENT_RATE_WINDOW,
    ):
        self.sio = sio
        self.lobby_service = lobby_service
        self.notifier = notifier
        self.rate_limiter = rate_limiter or RateLimiter()
        self.rate_limit = rate_limit
        self.rate_window = rate_window

    def register(self) -> None:
        self.sio.on("connect", self.on_connect)
        self.sio.on("disconnect", self.on_disconnect)
        self.sio.on("createLobby", self.create_lobby)
        self.sio.on("joinLobby", self.join_lobby)
        self.sio.on("getPublicLobbies", self.get_public_lobbies)
        for event in LOBBY_INTENTS:
            self.sio.on(event, self._make_intent_handler(event))

    async def _reply(self, sid: str, event: str, payload: Any) -> None:
        await self.sio.emit(event, payload, to=sid)

    async def _error(self, sid: str, result: Result) -> None:
        await self._reply(sid, "error", result.to_error_payload())

    async def _allowed(self, sid: str, key: str, scope: str = "intent") -> bool:
        limited = self.rate_limiter.check(
            scope=scope, player_id=key, limit=self.rate_limit, per_seconds=self.rate_window
        )
        if not limited.allowed:
            await self._error(
                sid,
                Result.fail(
                    f"Slow down! Try again in {limited.retry_after_seconds}s.", code=error_codes.RATE_LIMITED
                ),
            )
        return limited.allowed

    # --- connection lifecycle ---

    async def on_connect(self, sid: str, environ: dict, auth=None) -> None:
        logger.debug(f"Socket {sid} connected")

    async def on_disconnect(self, sid: str, reason=None) -> None:
        player_id = self.notifier.unbind(sid)
        logger.debug(f"Socket {sid} disconnected (player={player_id}, reason={reason})")
        if player_id is not None and not self.notifier.is_connected(player_id):
            await self.lobby_service.handle_disconnect(player_id)

    # --- intents that establish who the socket speaks for ---

    async def create_lobby(self, sid: str, data=None) -> None:
        data = _payload(data)
        if not await self._allowed(sid, _user_id(data) or sid, scope="createLobby"):
            return
        result = await self.lobby_service.create_lobby(
            data.get("userData"),
            max_players=data.get("maxPlayers"),
            is_public=bool(data.get("isPublic", True)),
            draft_mode=data.get("draftMode"),
            is_ranked=bool(data.get("isRanked", True)),
            rounds_to_win=data.get("roundsToWin"),
        )
        if not result:
            await self._error(sid, result)
            return
        lobby = result.value
        self.notifier.bind(sid, lobby.host_id)
        await self.sio.enter_room(sid, lobby.code)
        await self._reply(sid, "lobbyCreated", lobby.to_dict())

    async def join_lobby(self, sid: str, data=None) -> None:
        data = _payload(data)
        if not await self._allowed(sid, _user_id(data) or sid, scope="joinLobby"):
            return
        code = data.get("code") or data.get("lobbyId")
        result = await self.lobby_service.join_lobby(code, data.get("userData"))
        if not result:
            await self._error(sid, result)
            return
        outcome = result.value
        self.notifier.bind(sid, outcome.player.discord_id)
        await self.sio.enter_room(sid, outcome.lobby.code)
        snapshot = outcome.lobby.to_dict()
        await self._reply(sid, "lobbyJoined", snapshot)
        if outcome.rejoined:
            await self._reply(sid, "rejoinedLobby", snapshot)

    async def get_public_lobbies(self, sid: str, data=None) -> None:
        lobbies = self.lobby_service.get_public_lobbies()
        await self._reply(sid, "lobbiesUpdate", [lobby.summary_dict() for lobby in lobbies])

    # --- intents acting on the caller's lobby ---

    def _make_intent_handler(self, event: str):
        action = LOBBY_INTENTS[event]

        async def handler(sid: str, data=None) -> None:
            await self.handle_intent(event, action, sid, _payload(data))

        return handler

    async def handle_intent(self, event: str, action: LobbyIntent, sid: str, data: dict) -> None:
        player_id = self.notifier.player_for(sid)
        if player_id is None:
            await self._error(sid, Result.fail("Join a lobby first.", code=error_codes.NOT_IN_LOBBY))
            return
        if not await self._allowed(sid, player_id):
            return

        code = data.get("lobbyId") or data.get("code") or self.lobby_service.registry.lobby_code_for_player(player_id)
        if not code:
            await self._error(sid, Result.fail("You are not in a lobby.", code=error_codes.NOT_IN_LOBBY))
            return

        result = await action(self.lobby_service, player_id, str(code), data)
        if not result:
            logger.debug(f"{event} from {player_id} rejected: {result.error_code}")
            await self._error(sid, result)
            return

        if event == "timeoutPlayer":
            await self._reply(sid, "timeoutSuccess", {"odiscordId": result.value.target_id, "mins": result.value.minutes})
        elif event == "checkVCStatus":
            await self._reply(sid, "vcStatus", result.value.to_dict())
