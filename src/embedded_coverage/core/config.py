"""Pipeline configuration with environment overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace

DEFAULT_RTT_PORT = 19021


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    max_frame_len: int = 4096
    read_chunk_size: int = 1024
    # The debug server keeps the socket open while the target is idle.
    read_timeout_s: float = 2.0
    rtt_host: str = "127.0.0.1"
    rtt_port: int = DEFAULT_RTT_PORT
    max_parallel_runs: int | None = None


def _env_int(name: str, *, minimum: int) -> int | None:
    env = os.getenv(name)
    if env is None or env == "":
        return None

    try:
        value = int(env)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    return value


def resolve_pipeline_config(cfg: PipelineConfig | None = None) -> PipelineConfig:
    """Return config with optional env overrides applied."""
    if cfg is None:
        cfg = PipelineConfig()

    overrides: dict[str, int] = {}

    max_frame_len = _env_int("EMBEDDED_COVERAGE_MAX_FRAME_LEN", minimum=16)
    if max_frame_len is not None:
        overrides["max_frame_len"] = max_frame_len

    rtt_port = _env_int("EMBEDDED_COVERAGE_RTT_PORT", minimum=1)
    if rtt_port is not None:
        if rtt_port > 65535:
            raise ValueError("EMBEDDED_COVERAGE_RTT_PORT must be <= 65535")
        overrides["rtt_port"] = rtt_port

    max_parallel = _env_int("EMBEDDED_COVERAGE_MAX_PARALLEL_RUNS", minimum=1)
    if max_parallel is not None:
        overrides["max_parallel_runs"] = max_parallel

    if not overrides:
        return cfg
    return replace(cfg, **overrides)


def resolve_max_parallel_runs(max_parallel: int | None) -> int:
    """Explicit value, then env, then CPU count (capped at 32)."""
    if max_parallel is not None:
        if max_parallel < 1:
            raise ValueError("max_parallel must be >= 1")
        return max_parallel

    env = _env_int("EMBEDDED_COVERAGE_MAX_PARALLEL_RUNS", minimum=1)
    if env is not None:
        return env

    cpu_count = os.cpu_count() or 1
    return min(32, cpu_count)
