# tak_engine/config.py
from dataclasses import dataclass, field
from typing import Dict, Optional
import logging
import os
import tomllib  # python >=3.11

# Defaults (evaluation units; a flat lead of one tile is worth FLAT)
EVAL_WEIGHTS = {
    "FLAT": 100,
    "ROAD": 20,
    "GROUP": 15,
    "MOBILITY": 3,
    "CAPSTONE_CENTER": 12,
    "SCARCITY": 150,
}


@dataclass
class SearchConfig:
    depth: int = 6  # iterative deepening ceiling
    time_limit_ms: Optional[int] = 2000  # None means no deadline
    node_budget: Optional[int] = None
    tt_entries: int = 1 << 18
    tt_seed: int = 0x7A6B
    check_interval: int = 256  # nodes between budget / cancel checks
    max_clock_ms: int = 30000  # cap for time allotted from a game clock


@dataclass
class EvalConfig:
    weights: Dict[str, int] = field(default_factory=lambda: EVAL_WEIGHTS.copy())
    mobility_cap: int = 40
    max_eval: int = 100000  # heuristic scores are clamped to +/- this


@dataclass
class GameConfig:
    size: int = 5
    komi: float = 0.0


@dataclass
class UIConfig:
    engine_name: str = "TakEngine"
    api_port: int = 8000


@dataclass
class Config:
    search: SearchConfig = field(default_factory=SearchConfig)
    eval: EvalConfig = field(default_factory=EvalConfig)
    game: GameConfig = field(default_factory=GameConfig)
    ui: UIConfig = field(default_factory=UIConfig)
    log_level: str = "INFO"

    @staticmethod
    def load_from_toml(path: str = "config.toml") -> "Config":
        cfg = Config()
        if not os.path.exists(path):
            return cfg
        with open(path, "rb") as f:
            raw = tomllib.load(f)
        for section in ("search", "eval", "game", "ui"):
            target = getattr(cfg, section)
            for k, v in raw.get(section, {}).items():
                if k == "weights" and isinstance(v, dict):
                    target.weights.update(v)
                elif hasattr(target, k):
                    setattr(target, k, v)
        if "log_level" in raw:
            cfg.log_level = str(raw["log_level"])
        return cfg


def configure_logging(level: Optional[str] = None):
    """Set up root logging for the interfaces; the engine itself only emits records."""
    logging.basicConfig(
        level=(level or CONFIG.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# single globally importable config instance
CONFIG = Config.load_from_toml(os.environ.get("TAK_ENGINE_CONFIG_TOML", "config.toml"))
# allow env override of depth for quick debugging
override_depth = os.environ.get("TAK_ENGINE_SEARCH_DEPTH")
if override_depth and override_depth.isdigit():
    CONFIG.search.depth = int(override_depth)
