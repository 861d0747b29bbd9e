"""
Reel event data models.

A reel event reports a finished set of reels for a production order. The
header and its details are written together in one local transaction and
registered with the remote system in the same unit of work.

Input keys are matched case-insensitively, and the field names used by the
slitter terminals (``CantReelsEjeSup``, ``Eje``, ...) are accepted as aliases.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from core.exceptions import ValidationError


@dataclass(frozen=True)
class ReelDetail:
    """One reel of the set."""

    shaft: int
    """Slitter shaft the reel came off."""

    position: int
    """Position on the shaft."""

    product_code: str

    manual_exit: bool

    edge_trim: int

    def to_remote_record(self) -> Dict[str, Any]:
        """Shape used in the remote ``Reels/CreateSet`` records list."""
        return {
            "slitterShaft": self.shaft,
            "manualExit": 1 if self.manual_exit else 0,
            "productionCode": self.product_code,
            "edgeTrim": self.edge_trim,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "shaft": self.shaft,
            "position": self.position,
            "productCode": self.product_code,
            "manualExit": self.manual_exit,
            "edgeTrim": self.edge_trim,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], index: int = 0) -> "ReelDetail":
        prefix = f"reels[{index}]"
        return cls(
            shaft=_require_int(data, ("shaft", "eje"), f"{prefix}.shaft"),
            position=_require_int(data, ("position", "pos"), f"{prefix}.position"),
            product_code=_require_str(data, ("productCode",), f"{prefix}.productCode"),
            manual_exit=_require_bool(data, ("manualExit",), f"{prefix}.manualExit"),
            edge_trim=_require_int(data, ("edgeTrim",), f"{prefix}.edgeTrim"),
        )


@dataclass(frozen=True)
class ReelEvent:
    """
    A reel event header plus its ordered details.

    ``message_id`` is generated server-side when the event is ingested;
    it is ``None`` on events built from request bodies.
    """

    production_order: int
    user_id: int
    upper_shaft_reels: int
    lower_shaft_reels: int
    reel_length: int
    end_of_lot: bool
    reels: Tuple[ReelDetail, ...] = field(default_factory=tuple)
    message_id: Optional[str] = None

    def with_message_id(self, message_id: str) -> "ReelEvent":
        return ReelEvent(
            production_order=self.production_order,
            user_id=self.user_id,
            upper_shaft_reels=self.upper_shaft_reels,
            lower_shaft_reels=self.lower_shaft_reels,
            reel_length=self.reel_length,
            end_of_lot=self.end_of_lot,
            reels=self.reels,
            message_id=message_id,
        )

    def to_remote_payload(self) -> Dict[str, Any]:
        """Body for the remote ``Reels/CreateSet`` command."""
        return {
            "messageType": "CREATE_SET",
            "messageId": self.message_id,
            "productionOrder": str(self.production_order),
            "reelsOnUpperShaft": self.upper_shaft_reels,
            "reelsOnLowerShaft": self.lower_shaft_reels,
            # Field name is misspelled on the remote side
            "reelsLenght": self.reel_length,
            "endOfLot": 1 if self.end_of_lot else 0,
            "records": [reel.to_remote_record() for reel in self.reels],
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ReelEvent":
        """
        Build and validate an event from a request body.

        Raises:
            ValidationError: If a required field is missing or mistyped,
                or if no reels are provided
        """
        if not isinstance(data, Mapping):
            raise ValidationError("Request body must be a JSON object")

        raw_reels = _lookup(data, ("reels",))
        if not isinstance(raw_reels, Sequence) or isinstance(raw_reels, (str, bytes)):
            raise ValidationError("At least one reel must be provided.", field="reels")
        if len(raw_reels) == 0:
            raise ValidationError("At least one reel must be provided.", field="reels")

        reels: List[ReelDetail] = []
        for index, raw in enumerate(raw_reels):
            if not isinstance(raw, Mapping):
                raise ValidationError("Each reel must be an object", field=f"reels[{index}]")
            reels.append(ReelDetail.from_dict(raw, index))

        return cls(
            production_order=_require_int(data, ("productionOrder",), "productionOrder"),
            user_id=_require_int(data, ("userId",), "userId"),
            upper_shaft_reels=_require_int(
                data, ("upperShaftReels", "cantReelsEjeSup"), "upperShaftReels"
            ),
            lower_shaft_reels=_require_int(
                data, ("lowerShaftReels", "cantReelsEjeInf"), "lowerShaftReels"
            ),
            reel_length=_require_int(data, ("reelLength",), "reelLength"),
            end_of_lot=_require_bool(data, ("endOfLot", "endLot"), "endOfLot"),
            reels=tuple(reels),
        )


# =============================================================================
# FIELD HELPERS
# =============================================================================

_MISSING = object()


def _lookup(data: Mapping[str, Any], names: Sequence[str]) -> Any:
    lowered = {str(k).lower(): v for k, v in data.items()}
    for name in names:
        value = lowered.get(name.lower(), _MISSING)
        if value is not _MISSING:
            return value
    return _MISSING


def _require_int(data: Mapping[str, Any], names: Sequence[str], label: str) -> int:
    value = _lookup(data, names)
    if value is _MISSING or value is None:
        raise ValidationError(f"{label} is required.", field=label)
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be an integer.", field=label)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be an integer.", field=label)


def _require_str(data: Mapping[str, Any], names: Sequence[str], label: str) -> str:
    value = _lookup(data, names)
    if value is _MISSING or value is None or str(value).strip() == "":
        raise ValidationError(f"{label} is required.", field=label)
    return str(value)


def _require_bool(data: Mapping[str, Any], names: Sequence[str], label: str) -> bool:
    value = _lookup(data, names)
    if value is _MISSING or value is None:
        raise ValidationError(f"{label} is required.", field=label)
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise ValidationError(f"{label} must be a boolean.", field=label)
