"""
Highlight Categories

The closed set of semantic buckets a phrase can be assigned to. Declaration
order matters: it breaks ties when two categories score the same.

Each category carries a lookup entry with:
- seeds: words that define the category semantically
- color: background/border tokens for the rendering layer
- weight: default multiplier for seed similarity (0.1-2.0)
"""

from dataclasses import dataclass
from enum import Enum


class Category(str, Enum):
    """Semantic highlight category."""

    CAMERA = "camera"
    LIGHTING = "lighting"
    SUBJECTS = "subjects"
    ACTIONS = "actions"
    TECHNICAL = "technical"
    COLORS = "colors"
    ENVIRONMENT = "environment"
    EMOTIONS = "emotions"
    DESCRIPTIVE = "descriptive"

    @classmethod
    def parse(cls, value) -> "Category | None":
        """
        Resolve a category from an enum member or its name/value.

        Args:
            value: Category, or string such as "lighting" / "LIGHTING"

        Returns:
            Matching Category, or None for anything outside the closed set
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        key = value.strip().lower()
        for category in cls:
            if category.value == key:
                return category
        return None


@dataclass(frozen=True)
class CategoryColor:
    """Color token handed to the rendering layer."""
    bg: str
    border: str

    def to_dict(self) -> dict[str, str]:
        return {"bg": self.bg, "border": self.border}


@dataclass(frozen=True)
class CategorySpec:
    """Static definition of a category."""
    seeds: tuple[str, ...]
    color: CategoryColor
    weight: float = 1.0


CATEGORY_TABLE: dict[Category, CategorySpec] = {
    Category.CAMERA: CategorySpec(
        seeds=('camera', 'shot', 'lens', 'angle', 'view', 'zoom', 'pan', 'tilt',
               'tracking', 'dolly', 'crane', 'focus', 'frame', 'composition'),
        color=CategoryColor('rgba(139, 92, 246, 0.12)', 'rgba(139, 92, 246, 0.4)'),
    ),
    Category.LIGHTING: CategorySpec(
        seeds=('light', 'lighting', 'shadow', 'bright', 'dark', 'glow', 'illumination',
               'exposure', 'contrast', 'highlight', 'backlight', 'ray', 'sunlight',
               'moonlight'),
        color=CategoryColor('rgba(249, 115, 22, 0.12)', 'rgba(249, 115, 22, 0.4)'),
    ),
    Category.SUBJECTS: CategorySpec(
        seeds=('person', 'people', 'figure', 'character', 'building', 'architecture',
               'object', 'scene', 'landscape', 'cityscape', 'background', 'foreground',
               'subject'),
        color=CategoryColor('rgba(59, 130, 246, 0.12)', 'rgba(59, 130, 246, 0.4)'),
    ),
    Category.ACTIONS: CategorySpec(
        seeds=('walking', 'running', 'moving', 'motion', 'movement', 'emerging',
               'passing', 'approaching', 'gesture', 'action', 'dynamic', 'flowing'),
        color=CategoryColor('rgba(34, 197, 94, 0.12)', 'rgba(34, 197, 94, 0.4)'),
    ),
    Category.TECHNICAL: CategorySpec(
        seeds=('fps', 'resolution', 'aperture', 'bokeh', 'depth', 'field', 'grain',
               'compression', 'codec', 'format', 'lut', 'grading', 'anamorphic',
               '4k', '8k'),
        color=CategoryColor('rgba(99, 102, 241, 0.12)', 'rgba(99, 102, 241, 0.4)'),
    ),
    Category.COLORS: CategorySpec(
        seeds=('red', 'blue', 'green', 'yellow', 'orange', 'purple', 'pink', 'white',
               'black', 'color', 'hue', 'saturation', 'tone', 'neon', 'vibrant'),
        color=CategoryColor('rgba(244, 63, 94, 0.12)', 'rgba(244, 63, 94, 0.4)'),
    ),
    Category.ENVIRONMENT: CategorySpec(
        seeds=('fog', 'mist', 'rain', 'weather', 'atmospheric', 'air', 'wind', 'storm',
               'clouds', 'sky', 'environment', 'ambient', 'atmosphere'),
        color=CategoryColor('rgba(6, 182, 212, 0.12)', 'rgba(6, 182, 212, 0.4)'),
    ),
    Category.EMOTIONS: CategorySpec(
        seeds=('mood', 'emotion', 'feeling', 'peaceful', 'tense', 'mysterious',
               'dramatic', 'intimate', 'lonely', 'nostalgic', 'melancholic', 'serene'),
        color=CategoryColor('rgba(16, 185, 129, 0.12)', 'rgba(16, 185, 129, 0.4)'),
    ),
    Category.DESCRIPTIVE: CategorySpec(
        seeds=('beautiful', 'stunning', 'elegant', 'modern', 'vintage', 'cinematic',
               'artistic', 'professional', 'detailed', 'quality', 'style'),
        color=CategoryColor('rgba(250, 204, 21, 0.15)', 'rgba(250, 204, 21, 0.4)'),
        weight=0.8,
    ),
}

# Used when no category scores above zero
FALLBACK_CATEGORY = Category.DESCRIPTIVE
