"""
Image composition pipeline.

decode -> auto-orient -> plan crop (face aware) -> crop or draw debug
overlays -> scale down to the requested size -> caption -> JPEG.
"""
from __future__ import annotations

import logging
from io import BytesIO
from typing import Optional, Tuple

from PIL import Image, ImageDraw, ImageOps

from domain.models import (
    ComposedImage,
    ComposeOptions,
    CropPlan,
    CropThresholds,
    FaceDetection,
    MediaRecord,
)
from services.caption import CaptionCompositor, build_caption
from services.crop_planner import plan_crop_detailed
from services.face_detector import FaceDetectorClient
from services.media_library import MediaLibrary

logger = logging.getLogger(__name__)

OVERLAY_WIDTH = 6
CENTER_MARKER = 15


class CompositionError(Exception):
    """The photo exists but could not be turned into an output image."""


class ImageComposer:
    def __init__(
        self,
        library: MediaLibrary,
        detector: FaceDetectorClient,
        captioner: CaptionCompositor,
        thresholds: CropThresholds = CropThresholds(),
        jpeg_quality: int = 85,
    ):
        self.library = library
        self.detector = detector
        self.captioner = captioner
        self.thresholds = thresholds
        self.jpeg_quality = jpeg_quality

    def compose(self, options: ComposeOptions = ComposeOptions()) -> Optional[ComposedImage]:
        """Compose one photo. Returns None when the requested photo does not exist."""
        path = self._resolve_path(options)
        if path is None:
            return None

        record = self.library.fetch(path)
        if record is None:
            logger.error("Failed to find image %s", path)
            return None

        image = self._decode(record)
        logger.debug(
            "%s - Orientation:%s - Dimensions:%sx%s",
            "Landscape mode" if record.is_landscape else "Portrait mode",
            record.orientation,
            image.width,
            image.height,
        )

        image = self.resize(image, record, options)
        self.captioner.compose(image, build_caption(record, options.debug), 0, options.debug)

        data = self._encode(image, path)
        return ComposedImage(
            data=data,
            filename=path,
            width=image.width,
            height=image.height,
            requested=options.dimensions,
        )

    def _resolve_path(self, options: ComposeOptions) -> Optional[str]:
        if options.media_id is not None:
            entry = self.library.entry_by_id(options.media_id)
            if entry is None:
                logger.error("No image with media id %s", options.media_id)
                return None
            return entry.path
        if options.filename and options.filename.strip():
            return options.filename
        entry = self.library.random_entry()
        return entry.path if entry else None

    def _decode(self, record: MediaRecord) -> Image.Image:
        try:
            image = Image.open(BytesIO(record.data))
            image.load()
            image = ImageOps.exif_transpose(image)
            return image.convert("RGB")
        except Exception as exc:
            raise CompositionError(f"Failed to decode {record.path}: {exc}") from exc

    def _encode(self, image: Image.Image, path: str) -> bytes:
        try:
            output = BytesIO()
            image.convert("RGB").save(output, format="JPEG", quality=self.jpeg_quality, optimize=True)
            return output.getvalue()
        except Exception as exc:
            raise CompositionError(f"Failed to encode {path}: {exc}") from exc

    def _detect_faces(self, image: Image.Image, record: MediaRecord) -> FaceDetection:
        """Faces must be found on the oriented pixels the crop is planned on."""
        if record.orientation == 1:
            payload = record.data
        else:
            buf = BytesIO()
            image.save(buf, format="JPEG", quality=90)
            payload = buf.getvalue()
        detection = self.detector.detect(payload, filename=record.path.rsplit("/", 1)[-1])
        if not detection.usable_faces:
            logger.info("No usable faces for %s (%s: %s)", record.path, detection.status.value, detection.detail)
        return detection

    def plan(self, image: Image.Image, record: MediaRecord, target: Tuple[int, int]) -> Tuple[CropPlan, FaceDetection]:
        target_w, target_h = target
        ratio_diff = abs(image.width / image.height - target_w / target_h)
        if ratio_diff <= self.thresholds.ratio_tolerance:
            logger.info("Not cropping as the image ratio differs by only %.4f", ratio_diff)
            detection = FaceDetection.none("ratio within tolerance")
        else:
            detection = self._detect_faces(image, record)
        plan = plan_crop_detailed(image.width, image.height, target_w, target_h, detection.usable_faces, self.thresholds)
        return plan, detection

    def resize(self, image: Image.Image, record: MediaRecord, options: ComposeOptions) -> Image.Image:
        if options.width is None and options.height is None:
            return image

        target = (options.width or image.width, options.height or image.height)
        logger.debug("Resizing image to %sx%s from %sx%s", target[0], target[1], image.width, image.height)
        plan, detection = self.plan(image, record, target)

        if options.debug:
            self.draw_overlays(image, plan, detection)
        elif not plan.is_noop:
            image = image.crop(plan.rectangle.as_box())

        image.thumbnail(target, Image.Resampling.LANCZOS)
        return image

    def draw_overlays(self, image: Image.Image, plan: CropPlan, detection: FaceDetection) -> None:
        """Visualize what the crop would do instead of doing it."""
        draw = ImageDraw.Draw(image)
        draw.rectangle(plan.default_rectangle.as_box(), outline="brown", width=OVERLAY_WIDTH)
        draw.rectangle(plan.rectangle.as_box(), outline="orange", width=OVERLAY_WIDTH)

        for face in detection.faces:
            draw.rectangle(
                (face.x, face.y, face.x + face.width, face.y + face.height),
                outline="yellow",
                width=OVERLAY_WIDTH,
            )
            label = f"{face.confidence:0.1f}"
            font, _, _ = self.captioner.fit_font(label, image.width, start_size=max(face.width / 2, 1))
            draw.text((face.x, face.y), label, font=font, fill="red")

        cx, cy = plan.center
        draw.rectangle(
            (cx - CENTER_MARKER, cy - CENTER_MARKER, cx + CENTER_MARKER, cy + CENTER_MARKER),
            fill="orangered",
        )
