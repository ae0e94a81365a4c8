"""
Core domain models for the photo frame backend.
These are framework-agnostic and can be used across all services.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import PurePosixPath
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class Face:
    """A face bounding box as reported by the face detector (top-left origin, pixels)."""
    x: int
    y: int
    width: int
    height: int
    confidence: float

    @property
    def confidence_multiplier(self) -> float:
        """Confidence scaled by pixel area, so large certain faces win over small doubtful ones."""
        return self.confidence * self.width * self.height

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    @property
    def bottom(self) -> int:
        return self.y + self.height


@dataclass(frozen=True)
class CropRectangle:
    """Axis-aligned crop rectangle in source image pixels."""
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    @property
    def ratio(self) -> float:
        return self.width / self.height

    def as_box(self) -> Tuple[int, int, int, int]:
        """Return (left, top, right, bottom) as used by Pillow."""
        return (self.x, self.y, self.right, self.bottom)


@dataclass(frozen=True)
class CropThresholds:
    """Tunable face-selection thresholds for the crop planner."""
    ratio_tolerance: float = 0.1
    min_confidence: float = 0.5
    min_avg_confidence: float = 1000.0  # confidence multiplier threshold
    min_avg_height: int = 40
    min_height: int = 20


class CropReason(str, Enum):
    """Why the crop planner settled on its rectangle."""
    RATIO_MATCH = "ratio_match"
    CENTERED = "centered"
    FACES_CENTROID = "faces_centroid"
    SINGLE_FACE = "single_face"


@dataclass(frozen=True)
class CropPlan:
    rectangle: CropRectangle
    default_rectangle: CropRectangle
    center: Tuple[float, float]
    reason: CropReason
    faces_used: Tuple[Face, ...] = ()

    @property
    def is_noop(self) -> bool:
        return self.reason == CropReason.RATIO_MATCH


class CaptionColor(str, Enum):
    BLACK = "black"
    WHITE = "white"


@dataclass(frozen=True)
class CaptionPlan:
    text: str
    font_size: float
    bounding_box: Tuple[int, int, int, int]  # left, top, right, bottom
    main_color: CaptionColor
    outline_color: CaptionColor
    luminance: float = 0.0


class DetectionStatus(str, Enum):
    FACES = "faces"
    NO_FACES = "no_faces"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class FaceDetection:
    """Outcome of one face detector call; only FACES carries usable boxes."""
    status: DetectionStatus
    faces: Tuple[Face, ...] = ()
    detail: Optional[str] = None

    @classmethod
    def found(cls, faces: List[Face]) -> "FaceDetection":
        return cls(status=DetectionStatus.FACES, faces=tuple(faces))

    @classmethod
    def none(cls, detail: Optional[str] = None) -> "FaceDetection":
        return cls(status=DetectionStatus.NO_FACES, detail=detail)

    @classmethod
    def unavailable(cls, detail: Optional[str] = None) -> "FaceDetection":
        return cls(status=DetectionStatus.UNAVAILABLE, detail=detail)

    @property
    def usable_faces(self) -> List[Face]:
        if self.status != DetectionStatus.FACES:
            return []
        return list(self.faces)


@dataclass(frozen=True)
class MediaEntry:
    """One enumerable item of the media source."""
    path: str
    media_id: int
    modified_at: Optional[datetime] = None


@dataclass
class MediaFacts:
    """Facts read from the image bytes themselves."""
    width: Optional[int] = None
    height: Optional[int] = None
    orientation: int = 1  # EXIF orientation 1..8
    created_at: Optional[datetime] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


@dataclass
class MediaRecord:
    """A fetched photo plus everything the caption needs to know about it."""
    path: str
    data: bytes
    width: int
    height: int
    created_at: Optional[datetime] = None
    location: Optional[str] = None
    orientation: int = 1
    media_id: int = -1
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    display_count: int = 0

    @property
    def is_landscape(self) -> bool:
        return self.orientation in (1, 3)

    @property
    def parent_folder(self) -> str:
        return PurePosixPath(self.path).parent.name


@dataclass(frozen=True)
class ComposeOptions:
    """Everything a single composition request can ask for."""
    filename: Optional[str] = None
    media_id: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    debug: bool = False

    @property
    def dimensions(self) -> Tuple[Optional[int], Optional[int]]:
        return (self.width, self.height)


@dataclass(frozen=True)
class ComposedImage:
    """Final encoded output; immutable so it can be shared by the look-ahead cache."""
    data: bytes
    filename: str
    width: int
    height: int
    content_type: str = "image/jpeg"
    requested: Tuple[Optional[int], Optional[int]] = field(default=(None, None))
