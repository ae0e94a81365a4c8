"""
Face-aware crop planning.

Given the size of a (correctly oriented) photo, the size the frame asked for
and the faces the detector reported, work out a single crop rectangle that
has the requested aspect ratio and keeps people in the picture.

Algorithm:
- If the photo's ratio is already within `ratio_tolerance` of the requested
  ratio, keep the whole photo (the composer only scales it down).
- Otherwise the rectangle is the largest one of the requested ratio that
  fits: the axis where the photo is relatively short is pinned to its full
  extent and the other axis is derived from the ratio.
- Faces above `min_confidence` are candidates. Those whose confidence
  multiplier (confidence x width x height) beats `min_avg_confidence` and
  that are at least `min_avg_height` tall are averaged: with two or more the
  crop is centered on the mean of their centers, with exactly one on that
  face. When none of them qualify, the highest scoring candidate taller than
  `min_height` is used on its own. Without any, the crop stays centered.
- The rectangle is translated (never shrunk) back inside the photo.
- Edge-loss correction: the first used face that sticks out of the bottom
  pulls the bottom edge down by the overflow plus half the face width; the
  first one cut at the top pushes the rectangle up by the clipped amount plus
  half the face height. The height is pinned by the ratio, so both end up as
  a vertical shift, clamped to the photo again. Only one correction runs.

Everything here is pure CPU work and safe to call from any thread.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from domain.models import CropPlan, CropReason, CropRectangle, CropThresholds, Face

logger = logging.getLogger(__name__)


def _fit_size(image_w: int, image_h: int, target_ratio: float) -> Tuple[int, int]:
    """Largest (width, height) of `target_ratio` that fits inside the image."""
    if image_w / image_h > target_ratio:
        # Photo is wider than requested: height binds.
        height = image_h
        width = min(image_w, max(1, round(image_h * target_ratio)))
    else:
        width = image_w
        height = min(image_h, max(1, round(image_w / target_ratio)))
    return width, height


def _clamp(value: float, low: int, high: int) -> int:
    return int(max(low, min(high, round(value))))


def _place(center: Tuple[float, float], width: int, height: int, image_w: int, image_h: int) -> CropRectangle:
    """Center a width x height rectangle on `center`, shifted back inside the image."""
    cx, cy = center
    x = _clamp(cx - width / 2, 0, image_w - width)
    y = _clamp(cy - height / 2, 0, image_h - height)
    return CropRectangle(x=x, y=y, width=width, height=height)


def default_rectangle(image_w: int, image_h: int, target_w: int, target_h: int) -> CropRectangle:
    """Center-biased fallback crop used when no face is worth following."""
    width, height = _fit_size(image_w, image_h, target_w / target_h)
    return CropRectangle(x=(image_w - width) // 2, y=(image_h - height) // 2, width=width, height=height)


def centroid(faces: Sequence[Face]) -> Tuple[float, float]:
    """Arithmetic mean of each face's own center."""
    xs = [f.center[0] for f in faces]
    ys = [f.center[1] for f in faces]
    return (sum(xs) / len(faces), sum(ys) / len(faces))


def select_faces(
    faces: Iterable[Face], thresholds: CropThresholds
) -> Tuple[Optional[CropReason], List[Face]]:
    """Pick the faces the crop should follow.

    Returns (reason, faces) where reason is None when nothing qualifies.
    """
    confident = [f for f in faces if f.confidence > thresholds.min_confidence]
    if not confident:
        return None, []

    averaged = [
        f
        for f in confident
        if f.confidence_multiplier > thresholds.min_avg_confidence and f.height >= thresholds.min_avg_height
    ]
    averaged.sort(key=lambda f: f.confidence_multiplier, reverse=True)
    if len(averaged) > 1:
        return CropReason.FACES_CENTROID, averaged
    if len(averaged) == 1:
        return CropReason.SINGLE_FACE, averaged

    candidates = [f for f in confident if f.height > thresholds.min_height]
    if candidates:
        best = max(candidates, key=lambda f: f.confidence_multiplier)
        return CropReason.SINGLE_FACE, [best]
    return None, []


def correct_edge_loss(
    rect: CropRectangle, faces: Sequence[Face], image_w: int, image_h: int
) -> CropRectangle:
    """Shift the rectangle vertically so the first clipped face is back in frame."""
    for face in faces:
        if face.bottom > rect.bottom:
            overflow = face.bottom - rect.bottom + face.width / 2
            logger.debug("Face at %s,%s lost at bottom after crop, moving down %.1f", face.x, face.y, overflow)
            new_y = _clamp(rect.y + overflow, 0, image_h - rect.height)
            return CropRectangle(x=rect.x, y=new_y, width=rect.width, height=rect.height)
        if face.y < rect.y:
            overflow = rect.y - face.y + face.height / 2
            logger.debug("Face at %s,%s lost at top after crop, moving up %.1f", face.x, face.y, overflow)
            new_y = _clamp(rect.y - overflow, 0, image_h - rect.height)
            return CropRectangle(x=rect.x, y=new_y, width=rect.width, height=rect.height)
    return rect


def plan_crop_detailed(
    image_w: int,
    image_h: int,
    target_w: int,
    target_h: int,
    faces: Iterable[Face],
    thresholds: CropThresholds = CropThresholds(),
) -> CropPlan:
    """Compute the crop rectangle together with how it was chosen."""
    if target_w <= 0 or target_h <= 0:
        raise ValueError(f"Target dimensions must be positive, got {target_w}x{target_h}")
    if image_w <= 0 or image_h <= 0:
        raise ValueError(f"Image dimensions must be positive, got {image_w}x{image_h}")

    image_ratio = image_w / image_h
    target_ratio = target_w / target_h
    ratio_diff = abs(image_ratio - target_ratio)
    logger.info("Image ratio is %.4f, target ratio is %.4f. Diff: %.4f", image_ratio, target_ratio, ratio_diff)

    full = CropRectangle(x=0, y=0, width=image_w, height=image_h)
    if ratio_diff <= thresholds.ratio_tolerance:
        return CropPlan(
            rectangle=full,
            default_rectangle=full,
            center=full.center,
            reason=CropReason.RATIO_MATCH,
        )

    fallback = default_rectangle(image_w, image_h, target_w, target_h)
    faces = list(faces)
    reason, chosen = select_faces(faces, thresholds)
    if reason is None:
        if faces:
            logger.debug(
                "None of the faces look good... Max confidence: %s", max(f.confidence for f in faces)
            )
        return CropPlan(
            rectangle=fallback,
            default_rectangle=fallback,
            center=fallback.center,
            reason=CropReason.CENTERED,
        )

    center = centroid(chosen) if reason == CropReason.FACES_CENTROID else chosen[0].center
    rect = _place(center, fallback.width, fallback.height, image_w, image_h)
    rect = correct_edge_loss(rect, chosen, image_w, image_h)
    logger.debug(
        "Cropping %sx%s around %s (%s, %d faces) to %s", image_w, image_h, center, reason.value, len(chosen), rect
    )
    return CropPlan(
        rectangle=rect,
        default_rectangle=fallback,
        center=center,
        reason=reason,
        faces_used=tuple(chosen),
    )


def plan_crop(
    image_w: int,
    image_h: int,
    target_w: int,
    target_h: int,
    faces: Iterable[Face],
    *,
    ratio_tolerance: float,
    min_confidence: float,
    min_avg_confidence: float,
    min_avg_height: int,
    min_height: int,
) -> CropRectangle:
    thresholds = CropThresholds(
        ratio_tolerance=ratio_tolerance,
        min_confidence=min_confidence,
        min_avg_confidence=min_avg_confidence,
        min_avg_height=min_avg_height,
        min_height=min_height,
    )
    return plan_crop_detailed(image_w, image_h, target_w, target_h, faces, thresholds).rectangle
