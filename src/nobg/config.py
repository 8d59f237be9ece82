from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence


def default_workers() -> int:
    return max(1, os.cpu_count() or 1)


@dataclass
class NobgConfig:
    model_name: str = "rmbg14"
    weights_dir: Path = field(default_factory=lambda: Path("~/.cache/nobg").expanduser())
    providers: Sequence[str] = ("CPUExecutionProvider",)
    alpha_threshold: Optional[float] = None
    refine_dilate: int = 0
    refine_feather: int = 1
    max_dim: Optional[int] = 4096
    max_workers: int = field(default_factory=default_workers)
    serialize_inference: bool = True
    cache_masks: bool = False
    output_suffix: str = "_nobg"
    download_weights: bool = True

    def __post_init__(self) -> None:
        self.weights_dir = Path(self.weights_dir).expanduser()
        if self.alpha_threshold is not None and not 0.0 <= self.alpha_threshold <= 1.0:
            raise ValueError(f"alpha_threshold must be in [0, 1], got {self.alpha_threshold}")
        self.refine_dilate = max(0, int(self.refine_dilate))
        self.refine_feather = max(0, int(self.refine_feather))
        self.max_workers = max(1, int(self.max_workers))
