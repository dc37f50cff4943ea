"""Core entities: Intrinsic, View, Observation, Track, RelativeMotion, SceneDescription."""

from typing import Optional, List, Dict, Literal, Tuple
import numpy as np
from pydantic import BaseModel, Field, field_validator, model_validator


class Intrinsic(BaseModel):
    """Pinhole camera intrinsics shared by zero or more views.

    - focal: focal length in pixels (square pixels)
    - cx, cy: principal point in pixels
    - distortion: radial coefficients [k1, k2, k3], only meaningful for the
      "pinhole_radial3" model
    """

    id: int = Field(description="Unique identifier for the intrinsic")
    width: int = Field(gt=0, description="Image width in pixels")
    height: int = Field(gt=0, description="Image height in pixels")
    focal: float = Field(gt=0, description="Focal length in pixels")
    cx: float = Field(description="Principal point x")
    cy: float = Field(description="Principal point y")
    distortion: List[float] = Field(
        default_factory=lambda: [0.0, 0.0, 0.0],
        description="Radial distortion [k1, k2, k3]",
        min_length=3,
        max_length=3
    )
    model: Literal["pinhole", "pinhole_radial3"] = Field(
        default="pinhole_radial3",
        description="Camera model"
    )

    def get_intrinsics(self) -> np.ndarray:
        """Get [f, cx, cy] as numpy array."""
        return np.array([self.focal, self.cx, self.cy])

    def set_intrinsics(self, values: np.ndarray) -> None:
        """Set focal length and principal point from [f, cx, cy]."""
        if values.shape != (3,):
            raise ValueError("intrinsics must be 3-element array [f, cx, cy]")
        self.focal, self.cx, self.cy = (float(v) for v in values)

    def has_distortion(self) -> bool:
        """Check if the model carries distortion coefficients."""
        return self.model == "pinhole_radial3"

    def get_distortion(self) -> np.ndarray:
        """Get distortion as numpy array (zeros for the plain pinhole model)."""
        if not self.has_distortion():
            return np.zeros(3)
        return np.array(self.distortion)

    def set_distortion(self, values: np.ndarray) -> None:
        """Set distortion coefficients from numpy array."""
        if values.shape != (3,):
            raise ValueError("distortion must be 3-element array")
        self.distortion = values.tolist()

    def K(self) -> np.ndarray:
        """3x3 calibration matrix."""
        return np.array([
            [self.focal, 0.0, self.cx],
            [0.0, self.focal, self.cy],
            [0.0, 0.0, 1.0]
        ])


class View(BaseModel):
    """One input image and its (optional) resolved absolute pose.

    Pose is world-to-camera: x_cam = R X + t, with R stored as axis-angle.
    """

    id: int = Field(description="Unique identifier for the view")
    image_path: str = Field(default="", description="Path to the source image")
    intrinsic_id: int = Field(description="Identifier of the shared intrinsic")
    rotation: Optional[List[float]] = Field(
        default=None,
        description="Rotation as axis-angle [rx, ry, rz]",
        min_length=3,
        max_length=3
    )
    translation: Optional[List[float]] = Field(
        default=None,
        description="Translation [tx, ty, tz]",
        min_length=3,
        max_length=3
    )

    def is_posed(self) -> bool:
        """Check if both pose components are resolved."""
        return self.rotation is not None and self.translation is not None


class Observation(BaseModel):
    """A 2D feature position of a track in one view."""

    view_id: int = Field(description="View observing the feature")
    feature_id: int = Field(description="Feature index within the view")
    x: float = Field(description="Pixel x coordinate")
    y: float = Field(description="Pixel y coordinate")

    def to_numpy(self) -> np.ndarray:
        """Pixel position as numpy array."""
        return np.array([self.x, self.y])


class Track(BaseModel):
    """Observations of one physical 3D point across views."""

    id: int = Field(description="Unique identifier for the track")
    observations: List[Observation] = Field(default_factory=list)
    xyz: Optional[List[float]] = Field(
        default=None,
        description="Triangulated 3D position [x, y, z]",
        min_length=3,
        max_length=3
    )
    color: Optional[List[int]] = Field(
        default=None,
        description="RGB color in [0, 255]",
        min_length=3,
        max_length=3
    )

    def to_numpy(self) -> Optional[np.ndarray]:
        """Convert position to numpy array."""
        if self.xyz is None:
            return None
        return np.array(self.xyz)

    def set_from_numpy(self, xyz: np.ndarray) -> None:
        """Set position from numpy array."""
        if xyz.shape != (3,):
            raise ValueError("xyz must be 3-element array")
        self.xyz = xyz.tolist()

    def is_triangulated(self) -> bool:
        """Check if track has a 3D position."""
        return self.xyz is not None

    def view_ids(self) -> List[int]:
        """Views supporting this track."""
        return [obs.view_id for obs in self.observations]


class RelativeMotion(BaseModel):
    """Pairwise relative motion estimated by the upstream matcher.

    rotation maps camera a to camera b (R_ab = R_b R_a^T); translation_direction
    is the unit direction of t_b - R_ab t_a expressed in camera b.
    """

    view_a: int = Field(description="First view ID")
    view_b: int = Field(description="Second view ID")
    rotation: List[List[float]] = Field(description="Relative rotation R_ab (3x3)")
    translation_direction: List[float] = Field(
        description="Relative translation direction",
        min_length=3,
        max_length=3
    )
    inlier_count: int = Field(default=0, ge=0, description="Number of supporting inlier matches")
    feature_matches: List[Tuple[int, int]] = Field(
        default_factory=list,
        description="Inlier feature index pairs (feature in a, feature in b)"
    )

    @field_validator('rotation')
    @classmethod
    def validate_rotation(cls, v):
        if len(v) != 3 or any(len(row) != 3 for row in v):
            raise ValueError("rotation must be a 3x3 matrix")
        return v

    def get_rotation(self) -> np.ndarray:
        """Relative rotation as 3x3 numpy array."""
        return np.array(self.rotation, dtype=float)

    def get_direction(self) -> np.ndarray:
        """Relative translation direction as numpy array (not renormalized)."""
        return np.array(self.translation_direction, dtype=float)

    def pair(self) -> Tuple[int, int]:
        """Unordered view pair key (smaller id first)."""
        return (min(self.view_a, self.view_b), max(self.view_a, self.view_b))


class SceneDescription(BaseModel):
    """Views, intrinsics and per-view features of a scene."""

    views: List[View] = Field(default_factory=list)
    intrinsics: List[Intrinsic] = Field(default_factory=list)
    features: Dict[int, List[List[float]]] = Field(
        default_factory=dict,
        description="Per-view feature positions [[x, y], ...]"
    )
    tracks: List[Track] = Field(
        default_factory=list,
        description="Reconstructed tracks (filled on export)"
    )

    @model_validator(mode='after')
    def validate_references(self):
        intrinsic_ids = {intrinsic.id for intrinsic in self.intrinsics}
        view_ids = set()
        for view in self.views:
            if view.id in view_ids:
                raise ValueError(f"View {view.id} is defined twice")
            view_ids.add(view.id)
            if view.intrinsic_id not in intrinsic_ids:
                raise ValueError(f"View {view.id} references non-existent intrinsic {view.intrinsic_id}")
        return self

    def get_view_ids(self) -> List[int]:
        """Get sorted list of all view IDs."""
        return sorted(view.id for view in self.views)

    def get_view(self, view_id: int) -> View:
        """Get view by ID."""
        for view in self.views:
            if view.id == view_id:
                return view
        raise ValueError(f"View {view_id} not found")

    def get_intrinsic(self, intrinsic_id: int) -> Intrinsic:
        """Get intrinsic by ID."""
        for intrinsic in self.intrinsics:
            if intrinsic.id == intrinsic_id:
                return intrinsic
        raise ValueError(f"Intrinsic {intrinsic_id} not found")

    def feature_position(self, view_id: int, feature_id: int) -> np.ndarray:
        """Pixel position of a feature."""
        if view_id not in self.features:
            raise ValueError(f"No features for view {view_id}")
        features = self.features[view_id]
        if feature_id < 0 or feature_id >= len(features):
            raise ValueError(f"Feature {feature_id} out of range for view {view_id}")
        return np.array(features[feature_id], dtype=float)
