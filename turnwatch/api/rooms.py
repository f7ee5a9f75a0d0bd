from fastapi import APIRouter, Depends, Request, WebSocket
from pydantic import BaseModel, Field

from turnwatch.bot import Bot
from turnwatch.commands.handlers import handle_intent
from turnwatch.commands.parser import Register, Unregister
from turnwatch.ws.handler import room_websocket

router = APIRouter(tags=["turnwatch"])


def get_bot(request: Request) -> Bot:
    return request.app.state.bot


class CommandRequest(BaseModel):
    sender: str
    body: str


class CommandResponse(BaseModel):
    reply: str | None


class RegisterRequest(BaseModel):
    user_id: str
    game_id: str
    player_name: str
    delay_minutes: int = Field(..., description="Minutes the turn must last before the alert")


class AlertResponse(BaseModel):
    room_id: str
    game_id: str
    user_id: str
    player_name: str
    delay_minutes: int

    class Config:
        from_attributes = True


class PlayerResponse(BaseModel):
    name: str
    color: str
    is_turn: bool


class GameResponse(BaseModel):
    id: str
    phase: str
    players: list[PlayerResponse]


@router.get("/health")
async def health(bot: Bot = Depends(get_bot)):
    return {
        "status": "ok",
        "polling": bot.polling.state.value,
        "alerts": len(bot.store),
        "pending": len(bot.scheduler.pending()),
    }


@router.get("/api/games", response_model=list[GameResponse])
async def list_games(bot: Bot = Depends(get_bot)):
    snapshot = bot.polling.latest
    if snapshot is None:
        return []
    return [
        GameResponse(
            id=game.id,
            phase=game.phase.value,
            players=[
                PlayerResponse(name=p.name, color=p.color, is_turn=p.is_turn)
                for p in game.players
            ],
        )
        for game in snapshot.sorted_games()
    ]


@router.post("/api/rooms/{room_id}/commands", response_model=CommandResponse)
async def post_command(room_id: str, req: CommandRequest, bot: Bot = Depends(get_bot)):
    reply = await bot.handle_message(room_id, req.sender, req.body)
    return CommandResponse(reply=reply)


@router.get("/api/rooms/{room_id}/alerts", response_model=list[AlertResponse])
async def list_alerts(room_id: str, bot: Bot = Depends(get_bot)):
    return [AlertResponse.model_validate(a) for a in bot.store.list_by_room(room_id)]


@router.post("/api/rooms/{room_id}/alerts", response_model=AlertResponse, status_code=201)
async def register_alert(room_id: str, req: RegisterRequest, bot: Bot = Depends(get_bot)):
    ctx = bot.command_context(room_id, req.user_id)
    await handle_intent(
        Register(game_id=req.game_id, player_name=req.player_name, delay_minutes=req.delay_minutes),
        ctx,
    )
    return AlertResponse.model_validate(bot.store.get(room_id, req.game_id))


@router.delete("/api/rooms/{room_id}/alerts/{game_id}", status_code=204)
async def unregister_alert(room_id: str, game_id: str, bot: Bot = Depends(get_bot)):
    # user id is irrelevant for removal, only (room, game) keys an alert
    await handle_intent(Unregister(game_id=game_id), bot.command_context(room_id, ""))


@router.websocket("/ws/rooms/{room_id}")
async def room_socket(websocket: WebSocket, room_id: str):
    bot: Bot = websocket.app.state.bot
    await room_websocket(websocket, room_id, bot.sink)
