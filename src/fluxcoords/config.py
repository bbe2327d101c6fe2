import json
from dataclasses import dataclass, fields, asdict
from typing import Any, Dict, Optional

FIRST_METHODS = ("C2", "C4")
SECOND_METHODS = ("C2", "C4")
UPWIND_METHODS = ("U1", "U2", "C2")
Z_METHODS = ("C2", "C4", "FFT")


@dataclass
class GeometryOptions:
    """Configuration values consumed by the coordinates builder and operators."""
    # Non-uniform mesh correction in D2DX2/D2DY2
    non_uniform: bool = True
    # z domain: zperiod wins over zmin/zmax when set
    zperiod: Optional[int] = None
    zmin: float = 0.0
    zmax: float = 1.0
    # Integrated shear (IntShiftTorsion) terms
    inc_int_shear: bool = False
    # Perpendicular Laplacian coefficients
    laplace_all_terms: bool = True
    laplace_nonuniform: bool = True
    # Default differencing methods
    first_method: str = "C2"
    second_method: str = "C2"
    upwind_method: str = "U1"
    z_method: str = "C2"
    # Validity thresholds
    singular_threshold: float = 1e-15
    min_spacing: float = 1e-8
    min_jacobian: float = 1e-10

    def validate(self) -> None:
        """Reject inconsistent option sets."""
        if self.zperiod is not None and self.zperiod < 1:
            raise ValueError(f"zperiod must be >= 1, got {self.zperiod}")
        if self.zperiod is None and not self.zmax > self.zmin:
            raise ValueError(f"zmax ({self.zmax}) must exceed zmin ({self.zmin})")
        if self.first_method not in FIRST_METHODS:
            raise ValueError(f"Unknown first derivative method {self.first_method}, allowed {FIRST_METHODS}")
        if self.second_method not in SECOND_METHODS:
            raise ValueError(f"Unknown second derivative method {self.second_method}, allowed {SECOND_METHODS}")
        if self.upwind_method not in UPWIND_METHODS:
            raise ValueError(f"Unknown upwind method {self.upwind_method}, allowed {UPWIND_METHODS}")
        if self.z_method not in Z_METHODS:
            raise ValueError(f"Unknown z derivative method {self.z_method}, allowed {Z_METHODS}")
        for name in ("singular_threshold", "min_spacing", "min_jacobian"):
            if getattr(self, name) <= 0.0:
                raise ValueError(f"{name} must be positive")

    def z_extent(self) -> float:
        """Length of the z domain in units of 2*pi."""
        if self.zperiod is not None:
            return 1.0 / float(self.zperiod)
        return self.zmax - self.zmin

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GeometryOptions":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown geometry options: {sorted(unknown)}")
        options = cls(**data)
        options.validate()
        return options

    @classmethod
    def from_json(cls, path: str) -> "GeometryOptions":
        with open(path, 'r') as f:
            data = json.load(f)
        # Allow the options to sit under a "geometry" section
        if "geometry" in data and isinstance(data["geometry"], dict):
            data = data["geometry"]
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
