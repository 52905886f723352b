"""
Standard error codes for service layer.

These error codes let the socket and REST handlers report specific error
conditions without parsing error message text.

Usage:
    from services.error_codes import LOBBY_FULL
    from services.result import Result

    if lobby.member_count >= capacity:
        return Result.fail("Lobby is full", code=LOBBY_FULL)
"""

# Validation errors (illegal action, state unchanged)
INVALID_PHASE = "invalid_phase"
NOT_YOUR_TURN = "not_your_turn"
INVALID_BID = "invalid_bid"
INSUFFICIENT_BUDGET = "insufficient_budget"
VALIDATION_ERROR = "validation_error"

# Capacity errors (rejected at join or start)
LOBBY_FULL = "lobby_full"
ALREADY_IN_LOBBY = "already_in_lobby"
PLAYER_TIMED_OUT = "player_timed_out"
KICKED_FROM_LOBBY = "kicked_from_lobby"
INSUFFICIENT_PLAYERS = "insufficient_players"

# Authorization errors
NOT_HOST = "not_host"
NOT_CAPTAIN = "not_captain"

# Lookup errors
LOBBY_NOT_FOUND = "lobby_not_found"
NOT_IN_LOBBY = "not_in_lobby"
PLAYER_NOT_FOUND = "player_not_found"
MATCH_NOT_FOUND = "match_not_found"

# Collaborator failures
STORAGE_UNAVAILABLE = "storage_unavailable"
PRESENCE_UNAVAILABLE = "presence_unavailable"

# Transport
RATE_LIMITED = "rate_limited"
