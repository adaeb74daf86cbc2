# fundchat/config.py
import copy
import logging
import os
from decimal import Decimal
from typing import Any, Dict, List, Optional

import yaml

from .security.hasher import Argon2Params

log = logging.getLogger(__name__)

CONFIG_FILENAME = "fundchat_config.yaml"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# -------- Defaults --------
_DEFAULT: Dict[str, Any] = {
    "storage": {
        "data_dir": "data",
        "lock_timeout_sec": 5.0,
    },
    "ledger": {
        "starting_balance": 1000,
        "currency_places": 2,
        # Upper bound for any balance or project total; null means the largest
        # value stored exactly at currency_places.
        "max_balance": None,
    },
    "chats": {
        "timestamp_epsilon": 1e-6,
        "max_message_len": 4000,
    },
    "uploads": {
        "dir": "uploads",
        "max_bytes": 5 * 1024 * 1024,
        "allowed_extensions": [".png", ".jpg", ".jpeg", ".gif", ".webp"],
    },
    "security": {
        "argon2_iterations": 2,
        "argon2_memory_kib": 64 * 1024,
        "argon2_lanes": 2,
    },
    "logging": {"level": "INFO"},
    "server": {
        "host": "0.0.0.0",
        "port": 8080,
    },
    "cors": {"origins": ["*"]},
    # Projects are created out-of-band; anything listed here is added on boot
    # when its id is not present yet.
    "seed": {"projects": []},
}

# -------- ENV overrides --------
_ENV_MAP = {
    ("storage", "data_dir"): ("FUNDCHAT_DATA_DIR", str),
    ("storage", "lock_timeout_sec"): ("FUNDCHAT_LOCK_TIMEOUT_SEC", float),
    ("uploads", "dir"): ("FUNDCHAT_UPLOAD_DIR", str),
    ("ledger", "starting_balance"): ("FUNDCHAT_STARTING_BALANCE", str),
    ("logging", "level"): ("FUNDCHAT_LOG_LEVEL", str),
    ("server", "host"): ("FUNDCHAT_HOST", str),
    ("server", "port"): ("FUNDCHAT_PORT", int),
}


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for k, v in (overlay or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _apply_env_overrides(cfg: Dict[str, Any]) -> Dict[str, Any]:
    for (section, key), (env_name, cast) in _ENV_MAP.items():
        val = os.getenv(env_name)
        if val is None:
            continue
        try:
            casted = cast(val)
        except ValueError:
            log.warning("ignoring %s=%r: expected %s", env_name, val, cast.__name__)
            continue
        cfg.setdefault(section, {})
        cfg[section][key] = casted
    return cfg


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration: defaults <- YAML file <- environment.

    The YAML file is ``path`` if given, else $FUNDCHAT_CONFIG, else
    fundchat_config.yaml in the working directory. A missing file means
    defaults; an unparsable one is logged and ignored.
    """
    path = path or os.getenv("FUNDCHAT_CONFIG") or os.path.join(os.getcwd(), CONFIG_FILENAME)
    cfg = copy.deepcopy(_DEFAULT)

    if os.path.exists(path):
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            log.warning("could not read config %s (%s); using defaults", path, e)
            data = {}
        if isinstance(data, dict):
            cfg = _deep_merge(cfg, data)
        else:
            log.warning("config %s is not a mapping; using defaults", path)

    cfg = _apply_env_overrides(cfg)

    origins = cfg.get("cors", {}).get("origins")
    if isinstance(origins, str):
        cfg["cors"]["origins"] = [origins]

    return cfg


def configure_logging(cfg: Dict[str, Any]) -> None:
    level_name = str(cfg.get("logging", {}).get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("fundchat").setLevel(level)


# -------- Small helpers used by the app --------
def get_data_dir(cfg: Dict[str, Any]) -> str:
    return str(cfg.get("storage", {}).get("data_dir", "data"))


def get_lock_timeout(cfg: Dict[str, Any]) -> float:
    return float(cfg.get("storage", {}).get("lock_timeout_sec", 5.0))


def get_upload_dir(cfg: Dict[str, Any]) -> str:
    return str(cfg.get("uploads", {}).get("dir", "uploads"))


def get_starting_balance(cfg: Dict[str, Any]) -> Decimal:
    return Decimal(str(cfg.get("ledger", {}).get("starting_balance", 1000)))


def get_currency_places(cfg: Dict[str, Any]) -> int:
    return int(cfg.get("ledger", {}).get("currency_places", 2))


def get_max_balance(cfg: Dict[str, Any]) -> Optional[Decimal]:
    raw = cfg.get("ledger", {}).get("max_balance")
    return None if raw is None else Decimal(str(raw))


def get_argon2_params(cfg: Dict[str, Any]) -> Argon2Params:
    sec = cfg.get("security", {})
    return Argon2Params(
        iterations=int(sec.get("argon2_iterations", 2)),
        memory_cost_kib=int(sec.get("argon2_memory_kib", 64 * 1024)),
        parallelism=int(sec.get("argon2_lanes", 2)),
    )


def get_seed_projects(cfg: Dict[str, Any]) -> List[Dict[str, Any]]:
    projects = cfg.get("seed", {}).get("projects") or []
    return [p for p in projects if isinstance(p, dict)]


def get_bind_host(cfg: Dict[str, Any]) -> str:
    return str(cfg.get("server", {}).get("host", "0.0.0.0"))


def get_bind_port(cfg: Dict[str, Any]) -> int:
    return int(cfg.get("server", {}).get("port", 8080))


def get_cors_origins(cfg: Dict[str, Any]) -> List[str]:
    return list(cfg.get("cors", {}).get("origins", []))
