"""Trade dependency rules: one kind of work implies another line item."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

PRIORITY_CRITICAL = "critical"
PRIORITY_MINOR = "minor"
PRIORITIES = (PRIORITY_CRITICAL, PRIORITY_MINOR)

KeywordGroups = Tuple[Tuple[str, ...], ...]


class RuleValidationError(ValueError):
    """Raised when a dependency rule record is missing mandatory parts."""


@dataclass(frozen=True)
class KeywordCondition:
    """AND across ``groups``; how a single group is read depends on its use.

    Triggers need one keyword of every group (OR inside a group). Exclusions
    hold when every keyword of any one group is present.
    """

    groups: KeywordGroups
    description: str = ""

    def __post_init__(self) -> None:
        if not self.groups:
            raise RuleValidationError("Keyword condition needs at least one group")
        for group in self.groups:
            if not group or not _all_keywords(group):
                raise RuleValidationError(
                    f"Keyword group {group!r} is empty or malformed"
                )

    @classmethod
    def from_value(cls, value: Any, description: str = "") -> "KeywordCondition":
        return cls(groups=_as_groups(value), description=description)


@dataclass(frozen=True)
class DependencyRule:
    category: str
    trigger: KeywordCondition
    required: Tuple[str, ...]
    missing_item: str
    reason: str
    priority: str = PRIORITY_CRITICAL
    required_description: str = ""
    exclude_keywords: Optional[KeywordCondition] = None
    exclude_if: Optional[KeywordCondition] = None

    def __post_init__(self) -> None:
        for name in ("category", "missing_item", "reason"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise RuleValidationError(f"Dependency rule is missing '{name}'")
        if not isinstance(self.trigger, KeywordCondition):
            raise RuleValidationError(
                "Dependency rule trigger must be a KeywordCondition"
            )
        if not self.required or not _all_keywords(self.required):
            raise RuleValidationError(
                f"Rule '{self.missing_item}' has no usable required keywords"
            )
        if self.priority not in PRIORITIES:
            raise RuleValidationError(f"Unknown priority '{self.priority}'")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DependencyRule":
        """Build a rule from a stored record (camelCase or snake_case keys)."""

        if not isinstance(data, Mapping):
            raise RuleValidationError("Dependency rule record must be a mapping")
        for key in ("category", "trigger", "required", "reason"):
            if not data.get(key):
                raise RuleValidationError(
                    f"Dependency rule record is missing '{key}'"
                )
        missing_item = data.get("missingItem", data.get("missing_item"))
        if not missing_item:
            raise RuleValidationError(
                "Dependency rule record is missing 'missingItem'"
            )

        trigger = data["trigger"]
        required = data["required"]
        if isinstance(trigger, Mapping):
            trigger_keywords = trigger.get("keywords")
            trigger_description = str(trigger.get("description") or "")
            exclude_raw = trigger.get(
                "excludeKeywords", trigger.get("exclude_keywords")
            )
        else:
            trigger_keywords, trigger_description, exclude_raw = trigger, "", None
        exclude_raw = exclude_raw or data.get(
            "excludeKeywords", data.get("exclude_keywords")
        )
        if isinstance(required, Mapping):
            required_keywords = required.get("keywords")
            required_description = str(required.get("description") or "")
        else:
            required_keywords, required_description = required, ""

        exclude_if = data.get("excludeIf", data.get("exclude_if"))
        exclude_if_condition = None
        if isinstance(exclude_if, Mapping) and exclude_if.get("keywords"):
            exclude_if_condition = KeywordCondition.from_value(
                exclude_if["keywords"], str(exclude_if.get("description") or "")
            )
        elif isinstance(exclude_if, (list, tuple)) and exclude_if:
            exclude_if_condition = KeywordCondition.from_value(exclude_if)

        priority = str(data.get("priority") or "").strip().lower()
        return cls(
            category=str(data["category"]).strip(),
            trigger=KeywordCondition.from_value(trigger_keywords, trigger_description),
            required=_as_keywords(required_keywords),
            missing_item=str(missing_item).strip(),
            reason=str(data["reason"]).strip(),
            priority=(
                PRIORITY_MINOR if priority == PRIORITY_MINOR else PRIORITY_CRITICAL
            ),
            required_description=required_description,
            exclude_keywords=(
                KeywordCondition.from_value(exclude_raw) if exclude_raw else None
            ),
            exclude_if=exclude_if_condition,
        )

    def to_dict(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "category": self.category,
            "trigger": {
                "keywords": [list(group) for group in self.trigger.groups],
                "description": self.trigger.description,
            },
            "required": {
                "keywords": list(self.required),
                "description": self.required_description,
            },
            "missingItem": self.missing_item,
            "reason": self.reason,
            "priority": self.priority,
        }
        if self.exclude_keywords is not None:
            record["trigger"]["excludeKeywords"] = [
                list(group) for group in self.exclude_keywords.groups
            ]
        if self.exclude_if is not None:
            record["excludeIf"] = {
                "keywords": [list(group) for group in self.exclude_if.groups],
                "description": self.exclude_if.description,
            }
        return record


@dataclass(frozen=True)
class CarveOut:
    """Skip a missing item when the estimate context makes it inapplicable."""

    missing_item_terms: Tuple[str, ...]
    context_terms: Tuple[str, ...]
    description: str = ""

    def applies_to(self, missing_item: str) -> bool:
        lowered = missing_item.lower()
        return any(term in lowered for term in self.missing_item_terms)


def coerce_rules(records: Optional[Iterable[Any]]) -> List[DependencyRule]:
    """Validate caller supplied rules, dropping the malformed ones."""

    rules: List[DependencyRule] = []
    for record in records or []:
        if isinstance(record, DependencyRule):
            rules.append(record)
            continue
        try:
            rules.append(DependencyRule.from_dict(record))
        except (RuleValidationError, TypeError) as exc:
            logger.warning("Dropping malformed dependency rule: %s", exc)
    return rules


def _all_keywords(values: Iterable[Any]) -> bool:
    return all(isinstance(keyword, str) and keyword.strip() for keyword in values)


def _as_groups(value: Any) -> KeywordGroups:
    if isinstance(value, str) or not isinstance(value, Iterable):
        raise RuleValidationError(
            f"Keyword groups must be a list of lists, got {value!r}"
        )
    groups = []
    for group in value:
        if isinstance(group, str):
            raise RuleValidationError(f"Keyword group must be a list, got {group!r}")
        groups.append(_as_keywords(group))
    return tuple(groups)


def _as_keywords(value: Any) -> Tuple[str, ...]:
    if isinstance(value, str) or not isinstance(value, Iterable):
        raise RuleValidationError(f"Keywords must be a list of strings, got {value!r}")
    keywords = []
    for keyword in value:
        if not isinstance(keyword, str) or not keyword.strip():
            raise RuleValidationError(f"Invalid keyword {keyword!r}")
        keywords.append(keyword.strip())
    return tuple(keywords)


def _rule(
    category: str,
    trigger: Sequence[Sequence[str]],
    trigger_description: str,
    required: Sequence[str],
    required_description: str,
    missing_item: str,
    reason: str,
    priority: str = PRIORITY_CRITICAL,
    exclude_keywords: Optional[Sequence[Sequence[str]]] = None,
    exclude_if: Optional[Sequence[Sequence[str]]] = None,
    exclude_if_description: str = "",
) -> DependencyRule:
    exclusion = None
    if exclude_keywords:
        exclusion = KeywordCondition(_as_groups(exclude_keywords))
    context_exclusion = None
    if exclude_if:
        context_exclusion = KeywordCondition(
            _as_groups(exclude_if), exclude_if_description
        )
    return DependencyRule(
        category=category,
        trigger=KeywordCondition(_as_groups(trigger), trigger_description),
        required=_as_keywords(required),
        missing_item=missing_item,
        reason=reason,
        priority=priority,
        required_description=required_description,
        exclude_keywords=exclusion,
        exclude_if=context_exclusion,
    )


_INSTALL_WORK = ["install", "replace", "repair"]

_DRYWALL_TRIGGER = [
    ["drywall", "sheetrock"],
    ["replace", "replacement", "remove", "demo", "install", "hang"],
]
# "Drywall per LF" line items already bundle tape, mud and texture.
_DRYWALL_PER_LF = [
    ["drywall", "per", "lf"],
    ["drywall", "per", "linear"],
    ["drywall", "lf"],
]
_ROOF_TRIGGER = [
    ["shingles", "roof", "roofing"],
    ["install", "replace", "replacement", "repair"],
]
_PIPE_TRIGGER = [["pipe", "plumbing", "water line"], ["replace", "repair", "install"]]
_PIPE_IN_WALL_TRIGGER = [["pipe", "plumbing"], ["replace", "repair", "install"]]
_FIXTURE_TRIGGER = [["toilet", "sink", "faucet", "shower", "tub"], _INSTALL_WORK]
_WATER_HEATER_TRIGGER = [["water heater"], _INSTALL_WORK]
_WIRING_TRIGGER = [["wire", "electrical", "wiring"], _INSTALL_WORK]
_CIRCUIT_TRIGGER = [["circuit", "wiring"], ["add", "new", "install"]]
_OUTLET_TRIGGER = [["outlet", "switch", "receptacle"], _INSTALL_WORK]
_HVAC_TRIGGER = [["hvac", "furnace", "air conditioner"], _INSTALL_WORK]
_AC_TRIGGER = [["air conditioner", "heat pump"], _INSTALL_WORK]
_FLOORING_TRIGGER = [["flooring", "tile", "hardwood", "carpet"], _INSTALL_WORK]
_TILE_TRIGGER = [["tile"], _INSTALL_WORK]
_CARPET_TRIGGER = [["carpet"], _INSTALL_WORK]
_WINDOW_TRIGGER = [["window"], _INSTALL_WORK]
_DOOR_TRIGGER = [["door"], _INSTALL_WORK]
_SIDING_TRIGGER = [["siding"], _INSTALL_WORK]
_WATER_TRIGGER = [
    ["water damage", "water loss", "flood"],
    ["restore", "restoration", "repair"],
]

DEPENDENCY_RULES: Tuple[DependencyRule, ...] = (
    # Drywall & interior finishes
    _rule(
        "Drywall", _DRYWALL_TRIGGER, "Drywall replacement/installation",
        ["tape", "mud", "compound", "joint"], "Tape and mud",
        "Drywall tape and mud (finish)",
        "Drywall replacement typically requires taping and joint compound.",
        exclude_keywords=_DRYWALL_PER_LF,
    ),
    _rule(
        "Drywall", _DRYWALL_TRIGGER, "Drywall replacement/installation",
        ["texture", "orange peel", "knockdown"], "Texture finish",
        "Drywall texture (match existing)",
        "Drywall replacement usually requires re-texturing to match existing finish.",
        exclude_keywords=_DRYWALL_PER_LF,
    ),
    _rule(
        "Drywall", _DRYWALL_TRIGGER, "Drywall replacement/installation",
        ["prime", "primer", "seal"], "Primer/sealer",
        "Prime/seal new drywall",
        "New drywall needs primer/sealer before paint.",
        priority=PRIORITY_MINOR,
    ),
    _rule(
        "Drywall", _DRYWALL_TRIGGER, "Drywall replacement/installation",
        ["paint", "finish coat"], "Paint",
        "Paint repaired surfaces",
        "Drywall replacement usually requires painting finished surfaces.",
    ),
    _rule(
        "Drywall", _DRYWALL_TRIGGER, "Drywall replacement/installation",
        ["paint room", "paint walls", "paint ceiling", "paint entire"],
        "Full room paint",
        "Paint entire affected room (walls/ceiling)",
        "Patching drywall often requires full room paint for color/texture "
        "consistency.",
        priority=PRIORITY_MINOR,
        exclude_if=[
            ["wall", "calculation"],
            ["ceiling", "calculation"],
            ["calc", "wall"],
            ["calc", "ceiling"],
        ],
        exclude_if_description=(
            "Wall or ceiling calculations present (paint likely included)"
        ),
    ),
    # Roofing
    _rule(
        "Roofing", _ROOF_TRIGGER, "Roofing/shingles work",
        ["underlayment", "felt", "tar paper", "ice shield"], "Underlayment",
        "Roofing underlayment/ice shield",
        "Shingles require underlayment for protection against water.",
    ),
    _rule(
        "Roofing", _ROOF_TRIGGER, "Roofing/shingles work",
        ["flashing", "valley", "ridge", "step", "counter flashing"], "Flashing",
        "Roof flashing (valleys, ridges, penetrations)",
        "Roofing requires flashing at valleys, ridges, and penetrations to "
        "prevent leaks.",
    ),
    _rule(
        "Roofing", _ROOF_TRIGGER, "Roofing/shingles work",
        ["gutters", "downspouts", "drainage"], "Gutters/downspouts",
        "Gutters and downspouts",
        "Roof replacement often requires inspection/repair of gutter systems.",
        priority=PRIORITY_MINOR,
    ),
    _rule(
        "Roofing", _ROOF_TRIGGER, "Roofing/shingles work",
        ["drip edge", "edge metal"], "Drip edge",
        "Drip edge metal",
        "Drip edge protects roof edges and prevents water damage.",
        priority=PRIORITY_MINOR,
    ),
    # Plumbing
    _rule(
        "Plumbing", _PIPE_TRIGGER, "Plumbing pipe work",
        ["shutoff valve", "ball valve", "stop valve", "isolation valve"],
        "Shutoff valves",
        "Shutoff/isolation valves",
        "Pipe replacement requires shutoff valves for maintenance and emergency "
        "control.",
    ),
    _rule(
        "Plumbing", _PIPE_IN_WALL_TRIGGER, "Plumbing pipe in wall/ceiling",
        ["access panel", "access door"], "Access panel",
        "Access panel for plumbing",
        "Pipes in walls/ceilings require access panels for future maintenance.",
        priority=PRIORITY_MINOR,
    ),
    _rule(
        "Plumbing", _FIXTURE_TRIGGER, "Plumbing fixture installation",
        ["supply line", "water line", "connector", "flex line"], "Supply lines",
        "Supply lines/connectors for fixtures",
        "Plumbing fixtures require supply lines to connect to water supply.",
    ),
    _rule(
        "Plumbing", _FIXTURE_TRIGGER, "Plumbing fixture installation",
        ["drain", "waste", "p-trap", "trap"], "Drain/waste lines",
        "Drain/waste lines and P-traps",
        "Plumbing fixtures require drain/waste connections and P-traps.",
    ),
    _rule(
        "Plumbing", _WATER_HEATER_TRIGGER, "Water heater installation",
        ["expansion tank", "thermal expansion"], "Expansion tank",
        "Thermal expansion tank",
        "Water heaters often require expansion tanks for pressure relief "
        "(code requirement).",
        priority=PRIORITY_MINOR,
    ),
    # Electrical
    _rule(
        "Electrical", _WIRING_TRIGGER, "Electrical wiring work",
        ["junction box", "electrical box", "j-box"], "Junction boxes",
        "Junction boxes for electrical connections",
        "Electrical wiring requires junction boxes for connections "
        "(code requirement).",
    ),
    _rule(
        "Electrical", _CIRCUIT_TRIGGER, "New circuit installation",
        ["circuit breaker", "breaker", "panel breaker"], "Circuit breaker",
        "Circuit breaker in panel",
        "New circuits require corresponding breakers in electrical panel.",
    ),
    _rule(
        "Electrical", _WIRING_TRIGGER, "Electrical work",
        ["ground", "grounding", "ground wire", "earth ground"], "Grounding system",
        "Grounding system",
        "Electrical systems require proper grounding for safety "
        "(code requirement).",
    ),
    _rule(
        "Electrical", _OUTLET_TRIGGER, "Outlet/switch installation",
        ["electrical box", "outlet box", "switch box"], "Electrical box",
        "Electrical box for outlet/switch",
        "Outlets and switches require proper electrical boxes for installation.",
    ),
    # HVAC
    _rule(
        "HVAC", _HVAC_TRIGGER, "HVAC installation",
        ["duct", "ductwork", "supply duct", "return duct"], "Ductwork",
        "HVAC ductwork",
        "HVAC units require ductwork to distribute air.",
    ),
    _rule(
        "HVAC", _HVAC_TRIGGER, "HVAC installation",
        ["vent", "register", "grille", "diffuser"], "Vents/registers",
        "HVAC vents and registers",
        "HVAC systems require supply and return vents/registers.",
    ),
    _rule(
        "HVAC", _AC_TRIGGER, "AC/heat pump installation",
        ["refrigerant line", "line set", "refrigerant"], "Refrigerant lines",
        "Refrigerant lines/line set",
        "Air conditioning systems require refrigerant lines between units.",
    ),
    # Flooring
    _rule(
        "Flooring", _FLOORING_TRIGGER, "Flooring installation",
        ["subfloor", "underlayment", "floor prep", "leveling"],
        "Subfloor preparation",
        "Subfloor preparation/underlayment",
        "Flooring installation requires proper subfloor preparation.",
    ),
    _rule(
        "Flooring", _TILE_TRIGGER, "Tile installation",
        ["grout", "tile grout"], "Grout",
        "Tile grout",
        "Tile installation requires grout to fill joints.",
    ),
    _rule(
        "Flooring", _CARPET_TRIGGER, "Carpet installation",
        ["carpet pad", "padding", "underlayment"], "Carpet padding",
        "Carpet padding/underlayment",
        "Carpet requires padding for comfort and longevity.",
    ),
    # Windows & doors
    _rule(
        "Windows", _WINDOW_TRIGGER, "Window installation",
        ["flashing", "window flashing", "head flashing"], "Window flashing",
        "Window flashing",
        "Windows require flashing to prevent water intrusion.",
    ),
    _rule(
        "Windows", _WINDOW_TRIGGER, "Window installation",
        ["caulk", "sealant", "window seal", "weather seal"], "Caulk/sealant",
        "Window caulk/sealant",
        "Windows require caulking/sealant for weatherproofing.",
    ),
    _rule(
        "Doors", _DOOR_TRIGGER, "Door installation",
        ["hardware", "door hardware", "hinges", "lockset", "handle"],
        "Door hardware",
        "Door hardware (hinges, lockset, handle)",
        "Doors require hardware for operation.",
    ),
    # Siding & exterior
    _rule(
        "Siding", _SIDING_TRIGGER, "Siding installation",
        ["underlayment", "wrvb", "house wrap", "building paper"],
        "Underlayment/weather barrier",
        "Siding underlayment/weather barrier",
        "Siding requires underlayment for moisture protection.",
    ),
    _rule(
        "Siding", _SIDING_TRIGGER, "Siding installation",
        ["flashing", "corner flashing", "j-channel"], "Siding flashing",
        "Siding flashing",
        "Siding requires flashing at corners and penetrations.",
    ),
    # Water damage restoration
    _rule(
        "Water Damage", _WATER_TRIGGER, "Water damage restoration",
        ["demolition", "demo", "remove", "tear out"], "Demolition",
        "Demolition of damaged materials",
        "Water damage requires removal of affected materials.",
    ),
    _rule(
        "Water Damage", _WATER_TRIGGER, "Water damage restoration",
        ["dehumidifier", "air mover", "drying equipment"], "Drying equipment",
        "Drying equipment and services",
        "Water damage requires professional drying to prevent mold.",
    ),
)

# Loose context terms: their presence anywhere raises confidence slightly.
CATEGORY_CONTEXT_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "Roofing": ("roof", "shingle", "gutter"),
    "Plumbing": ("plumb", "pipe", "fixture"),
    "Electrical": ("electrical", "wire", "circuit"),
    "HVAC": ("hvac", "duct", "vent"),
    "Flooring": ("floor", "tile", "carpet"),
    "Drywall": ("drywall", "sheetrock"),
    "Windows": ("window",),
    "Doors": ("door",),
}

# Terms an item must mention to be quoted as evidence for a category.
CATEGORY_EVIDENCE_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "Roofing": (
        "roof", "shingle", "gutter", "downspout", "flashing", "drip edge",
        "ventilation", "ridge", "valley", "eave", "soffit", "fascia", "roofing",
        "roof repair", "roof replace",
    ),
    "Plumbing": (
        "plumb", "pipe", "fixture", "toilet", "sink", "faucet", "shower", "tub",
        "drain", "waste", "water line", "valve", "supply line", "p-trap", "trap",
        "plumbing",
    ),
    "Electrical": (
        "electrical", "wire", "wiring", "circuit", "breaker", "outlet", "switch",
        "panel", "ground", "junction box", "conduit", "electrical work",
    ),
    "HVAC": (
        "hvac", "furnace", "air conditioner", "heat pump", "duct", "vent",
        "register", "refrigerant", "thermostat", "hvac system",
    ),
    "Flooring": (
        "floor", "tile", "carpet", "hardwood", "subfloor", "underlayment", "grout",
        "padding", "flooring",
    ),
    "Drywall": (
        "drywall", "sheetrock", "tape", "mud", "texture", "joint compound",
        "drywall repair", "drywall install",
    ),
    "Windows": (
        "window", "glazing", "sash", "window frame", "casement", "double hung",
        "window install", "window replace",
    ),
    "Doors": (
        "door", "entry door", "interior door", "exterior door", "door slab",
        "door jamb", "door install", "door replace",
    ),
    "Siding": ("siding", "exterior siding", "cladding", "lap siding", "siding board"),
    "Water Damage": (
        "water damage", "flood", "moisture", "mold", "drying", "dehumidifier",
        "water mitigation",
    ),
    "Foundation": (
        "foundation", "concrete foundation", "slab", "footing",
        "basement foundation",
    ),
}

# Generic management lines that would otherwise be quoted as misleading evidence.
GENERIC_EVIDENCE_PHRASES: Tuple[str, ...] = (
    "project manager",
    "schedule",
    "coordinate",
    "oversee",
    "jobsite",
    "policyholder",
    "repair period",
    "minimum charge",
    "labor and material",
    "manage project",
    "deadline",
)

CARVE_OUTS: Tuple[CarveOut, ...] = (
    CarveOut(
        ("entire room", "full room", "entire affected room"),
        ("patch", "small repair", "spot repair"),
        "Minor repair only",
    ),
    CarveOut(("expansion tank",), ("tankless", "on-demand"), "Tankless water heater"),
    CarveOut(("access panel",), ("exposed", "open"), "Pipes are exposed"),
)


__all__ = [
    "CARVE_OUTS",
    "CATEGORY_CONTEXT_KEYWORDS",
    "CATEGORY_EVIDENCE_KEYWORDS",
    "CarveOut",
    "DEPENDENCY_RULES",
    "DependencyRule",
    "GENERIC_EVIDENCE_PHRASES",
    "KeywordCondition",
    "PRIORITIES",
    "PRIORITY_CRITICAL",
    "PRIORITY_MINOR",
    "RuleValidationError",
    "coerce_rules",
]
