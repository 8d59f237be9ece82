from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Mapping, Tuple

__all__ = ["BackgroundSpec", "ProcessOptions"]

HEX_COLOR_RE = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


@dataclass(frozen=True)
class BackgroundSpec:
    """
    Background treatment applied behind the predicted foreground.

    One of ``Transparent``, ``White``, ``Black`` or ``Color`` (with an RGB
    triple). Instances are immutable; build them with the class helpers
    rather than the constructor.
    """

    TRANSPARENT: ClassVar[str] = "Transparent"
    WHITE: ClassVar[str] = "White"
    BLACK: ClassVar[str] = "Black"
    COLOR: ClassVar[str] = "Color"
    KINDS: ClassVar[Tuple[str, ...]] = ("Transparent", "White", "Black", "Color")

    kind: str = "Transparent"
    rgb: Tuple[int, int, int] = (0, 0, 0)

    def __post_init__(self) -> None:
        if self.kind not in self.KINDS:
            raise ValueError(f"Unknown background kind '{self.kind}'. Choices: {list(self.KINDS)}")
        if len(self.rgb) != 3:
            raise ValueError(f"Background colour needs three channels, got {self.rgb!r}")
        for channel in self.rgb:
            if not isinstance(channel, int) or isinstance(channel, bool) or not 0 <= channel <= 255:
                raise ValueError(f"Colour channels must be integers in [0, 255], got {self.rgb!r}")
        if self.kind == self.WHITE and self.rgb != (255, 255, 255):
            object.__setattr__(self, "rgb", (255, 255, 255))
        elif self.kind in (self.BLACK, self.TRANSPARENT) and self.rgb != (0, 0, 0):
            object.__setattr__(self, "rgb", (0, 0, 0))

    @classmethod
    def transparent(cls) -> "BackgroundSpec":
        return cls(cls.TRANSPARENT)

    @classmethod
    def white(cls) -> "BackgroundSpec":
        return cls(cls.WHITE, (255, 255, 255))

    @classmethod
    def black(cls) -> "BackgroundSpec":
        return cls(cls.BLACK)

    @classmethod
    def color(cls, r: int, g: int, b: int) -> "BackgroundSpec":
        return cls(cls.COLOR, (r, g, b))

    @property
    def is_transparent(self) -> bool:
        return self.kind == self.TRANSPARENT

    @classmethod
    def parse(cls, payload: Mapping[str, Any]) -> "BackgroundSpec":
        """Build a spec from the tagged form ``{"type": "Color", "r": .., "g": .., "b": ..}``."""
        kind = payload.get("type")
        if kind == cls.COLOR:
            try:
                return cls.color(int(payload["r"]), int(payload["g"]), int(payload["b"]))
            except KeyError as exc:
                raise ValueError(f"Color background is missing channel {exc.args[0]!r}") from exc
        if kind in cls.KINDS:
            return cls(kind)
        raise ValueError(f"Unknown background type {kind!r}")

    @classmethod
    def from_string(cls, value: str) -> "BackgroundSpec":
        """Parse ``transparent``, ``white``, ``black`` or a ``#rrggbb`` / ``#rgb`` colour."""
        text = value.strip()
        lowered = text.lower()
        for kind in (cls.TRANSPARENT, cls.WHITE, cls.BLACK):
            if lowered == kind.lower():
                return cls(kind)

        match = HEX_COLOR_RE.match(text)
        if not match:
            raise ValueError(f"Cannot parse background '{value}'")
        hex_value = match.group(1)
        if len(hex_value) == 3:
            hex_value = "".join(ch * 2 for ch in hex_value)
        return cls.color(int(hex_value[0:2], 16), int(hex_value[2:4], 16), int(hex_value[4:6], 16))

    def to_dict(self) -> Dict[str, Any]:
        if self.kind == self.COLOR:
            r, g, b = self.rgb
            return {"type": self.kind, "r": r, "g": g, "b": b}
        return {"type": self.kind}


@dataclass(frozen=True)
class ProcessOptions:
    background: BackgroundSpec = field(default_factory=BackgroundSpec.transparent)

    @classmethod
    def parse(cls, payload: Mapping[str, Any]) -> "ProcessOptions":
        background = payload.get("background")
        if background is None:
            return cls()
        return cls(background=BackgroundSpec.parse(background))
