from __future__ import annotations

import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional


@dataclass
class Loadout:
    name: str
    weapon: Optional[str] = None
    amp: Optional[str] = None
    scope: Optional[str] = None
    sight_one: Optional[str] = None
    sight_two: Optional[str] = None
    # decay is in hundredths of a percent of the shot, burn in ammo units
    decay: Decimal = field(default_factory=lambda: Decimal("0"))
    burn: int = 0
    created_at: float = field(default_factory=time.time)

    @property
    def slug(self) -> str:
        return self.name.replace(" ", "_").lower()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "weapon": self.weapon,
            "amp": self.amp,
            "scope": self.scope,
            "sight_one": self.sight_one,
            "sight_two": self.sight_two,
            "decay": str(self.decay),
            "burn": self.burn,
            "created_at": int(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Loadout":
        return cls(
            name=data["name"],
            weapon=data.get("weapon"),
            amp=data.get("amp"),
            scope=data.get("scope"),
            sight_one=data.get("sight_one"),
            sight_two=data.get("sight_two"),
            decay=Decimal(str(data.get("decay", "0"))),
            burn=int(data.get("burn", 0)),
            created_at=float(data.get("created_at", time.time())),
        )


@dataclass
class Markup:
    name: str
    # multiplier on trade value, 1.00 == 100%
    value: Decimal = field(default_factory=lambda: Decimal("1.00"))
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "value": str(self.value), "created_at": int(self.created_at)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Markup":
        return cls(
            name=data["name"],
            value=Decimal(str(data.get("value", "1.00"))),
            created_at=float(data.get("created_at", time.time())),
        )
