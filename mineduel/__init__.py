"""Mine Duel: two-player real-time Minesweeper."""

__version__ = '1.0.0'
