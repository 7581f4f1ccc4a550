"""
Field and physics presets for divflow.

Field presets set the per-axis expressions only. Physics presets additionally
replace the point-source set and zero the base field. Preset values are kept
exactly as published for the interactive views; the Earth-Moon and binary star
entries are illustrative sink pairs, not orbital models.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple


@dataclass(frozen=True)
class FieldPreset:
    name: str
    fx: str
    fy: str
    description: str
    fz: Optional[str] = None

    @property
    def expressions(self):
        if self.fz is None:
            return (self.fx, self.fy)
        return (self.fx, self.fy, self.fz)


@dataclass(frozen=True)
class SourceSpec:
    """Position and strength of one preset point source (positive = source)."""
    x: float
    y: float
    strength: float


@dataclass(frozen=True)
class PhysicsPreset:
    name: str
    description: str
    sources: Tuple[SourceSpec, ...] = field(default_factory=tuple)
    fx: str = "0"
    fy: str = "0"


FIELD_PRESETS_2D = (
    FieldPreset("Rotational", "-y", "x", "Counter-clockwise rotation (zero divergence)"),
    FieldPreset("Radial Outward", "x", "y", "Expanding from origin (positive divergence)"),
    FieldPreset("Radial Inward", "-x", "-y", "Contracting to origin (negative divergence)"),
    FieldPreset("Saddle", "x", "-y", "Hyperbolic flow (zero divergence)"),
    FieldPreset("Shear", "y", "0", "Horizontal shear flow"),
    FieldPreset("Spiral", "-y + 0.1*x", "x + 0.1*y", "Outward spiral"),
    FieldPreset("Wave", "sin(y)", "cos(x)", "Sinusoidal field"),
)

FIELD_PRESETS_3D = (
    FieldPreset("Rotational (Z-axis)", "-y", "x", "Rotation around Z axis", fz="0"),
    FieldPreset("Radial Outward", "x", "y", "Expanding from origin", fz="z"),
    FieldPreset("Radial Inward", "-x", "-y", "Contracting to origin", fz="-z"),
    FieldPreset("Helical", "-y", "x", "Helical flow upward", fz="0.5"),
    FieldPreset("Saddle 3D", "x", "-y", "Hyperbolic in XY plane", fz="0"),
    FieldPreset("Spiral Vortex", "-y + 0.1*z", "x + 0.1*z", "Spiral with downward pull",
                fz="-0.1*(x*x + y*y)"),
)

PHYSICS_PRESETS = (
    PhysicsPreset(
        "Electric Dipole", "Positive and negative charges",
        (SourceSpec(-1.0, 0.0, 3.0), SourceSpec(1.0, 0.0, -3.0)),
    ),
    PhysicsPreset(
        "Earth-Moon System", "Gravitational field",
        # Earth (larger mass), Moon (smaller mass)
        (SourceSpec(-0.5, 0.0, -4.0), SourceSpec(1.5, 0.0, -1.0)),
    ),
    PhysicsPreset(
        "Quadrupole", "Four alternating charges",
        (SourceSpec(-1.0, -1.0, 2.0), SourceSpec(1.0, -1.0, -2.0),
         SourceSpec(1.0, 1.0, 2.0), SourceSpec(-1.0, 1.0, -2.0)),
    ),
    PhysicsPreset(
        "Binary Star", "Two equal mass objects orbiting",
        (SourceSpec(-1.2, 0.0, -3.0), SourceSpec(1.2, 0.0, -3.0)),
    ),
)


def _find(presets, name, label):
    wanted = name.strip().lower()
    for preset in presets:
        if preset.name.lower() == wanted:
            return preset
    available = ", ".join(p.name for p in presets)
    raise KeyError(f"Unknown {label} '{name}'. Available: {available}")


def field_presets(dimension):
    """Return the field presets for a 2D or 3D view."""
    if dimension == 2:
        return FIELD_PRESETS_2D
    if dimension == 3:
        return FIELD_PRESETS_3D
    raise ValueError(f"Unsupported dimension: {dimension}")


def get_field_preset(name, dimension=2):
    """Look up a field preset by (case-insensitive) name."""
    return _find(field_presets(dimension), name, "field preset")


def get_physics_preset(name):
    """Look up a physics preset by (case-insensitive) name."""
    return _find(PHYSICS_PRESETS, name, "physics preset")
