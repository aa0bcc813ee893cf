"""Move log - two lines per step in <logs_dir>/session_<id>.log

Format
------
  <opt1>, <opt2>, ...   options open to the acting player (comma-separated)
  <player>: <action>    what the player (or the engine on their behalf) did
"""
import os


class GameLogger:
    def __init__(self, session_id: str, logs_dir: str):
        os.makedirs(logs_dir, exist_ok=True)
        self._path = os.path.join(logs_dir, f'session_{session_id}.log')

    @property
    def path(self) -> str:
        return self._path

    def log_step(self, options: str, executed: str):
        with open(self._path, 'a', encoding='utf-8') as f:
            f.write(options + '\n')
            f.write(executed + '\n')
