from turnwatch.tmars.source import GameStateSource, TMarsSource
from turnwatch.tmars.structs import Game, Phase, Player, Snapshot

__all__ = ["Game", "GameStateSource", "Phase", "Player", "Snapshot", "TMarsSource"]
