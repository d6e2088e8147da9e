"""Rule-based customer segmentation."""

from .builder import SegmentBuildResult, SegmentBuilder, SegmentPreview, parse_criteria
from .rules import evaluate, evaluate_rule
from .snapshot import SNAPSHOT_FIELDS, build_snapshot

__all__ = [
    "SNAPSHOT_FIELDS",
    "SegmentBuildResult",
    "SegmentBuilder",
    "SegmentPreview",
    "build_snapshot",
    "evaluate",
    "evaluate_rule",
    "parse_criteria",
]
