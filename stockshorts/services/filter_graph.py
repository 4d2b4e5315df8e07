"""Filter Graph Builder - segment timing and ffmpeg filter graph construction.

Everything here is pure: the same inputs always produce the same graph, and
nothing touches ffmpeg. The graph is built as structured nodes first and
serialized to ``-filter_complex`` syntax in a separate step.
"""

from typing import Optional

from stockshorts.models.schemas import (
    Filter,
    FilterGraphSpec,
    FilterNode,
    NodeKind,
    SegmentPlan,
    SegmentTiming,
)

DEFAULT_CROSSFADE = 0.35
DEFAULT_TOTAL_DURATION = 15.0
MAX_CHAIN_CLIPS = 6

TITLE_WINDOW = (0.3, 3.0)
CAPTION_WINDOW = (0.6, 2.8)
FINAL_LABEL = "vfinal"


def escape_filter_text(text: str) -> str:
    """Escape the characters that are significant inside a filter description."""
    return text.replace("'", "\\'").replace(":", "\\:")


def format_seconds(value: float) -> str:
    """Millisecond-precision number without trailing zeros (2.5, 0, 15)."""
    text = f"{value:.3f}".rstrip("0").rstrip(".")
    return text if text not in ("", "-0") else "0"


def effective_clip_count(clip_count: int, max_clips: int = MAX_CHAIN_CLIPS) -> int:
    if clip_count < 1:
        raise ValueError(f"At least one clip is required, got {clip_count}")
    return min(clip_count, max_clips)


def build_segment_plan(
    clip_count: int,
    crossfade_duration: float = DEFAULT_CROSSFADE,
    total_duration: float = DEFAULT_TOTAL_DURATION,
    max_clips: int = MAX_CHAIN_CLIPS,
) -> SegmentPlan:
    """
    Derive per-segment timing for a cross-fade chain.

    Each segment lasts ``(total + xfade * (n - 1)) / n`` seconds, so that
    after ``n - 1`` overlaps the timeline is exactly ``total`` long. Segment
    ``i`` starts one cross-fade before segment ``i - 1`` ends.

    Args:
        clip_count: Available clips (capped at ``max_clips``).
        crossfade_duration: Overlap between consecutive segments.
        total_duration: Target output length.
        max_clips: Cap on chain length.

    Returns:
        SegmentPlan with millisecond-rounded values.
    """
    count = effective_clip_count(clip_count, max_clips)
    seg_dur = round((total_duration + crossfade_duration * (count - 1)) / count, 3)

    offsets = [0.0]
    for _ in range(1, count):
        offsets.append(round(offsets[-1] + seg_dur - crossfade_duration, 3))

    return SegmentPlan(
        segments=[SegmentTiming(start_offset_seconds=o, duration_seconds=seg_dur) for o in offsets],
        segment_duration=seg_dur,
        crossfade_duration=crossfade_duration,
        total_duration=total_duration,
    )


def _preprocess_node(index: int, seg_dur: float, width: int, height: int) -> FilterNode:
    # scale before crop so the crop window always has enough source pixels
    return FilterNode(
        kind=NodeKind.PREPROCESS,
        inputs=[f"{index}:v"],
        filters=[
            Filter(name="trim", args=["0", format_seconds(seg_dur)]),
            Filter(name="setpts", args=["PTS-STARTPTS"]),
            Filter(name="scale", args=[str(width), "-2"]),
            Filter(
                name="crop",
                args=[str(width), str(height), f"(in_w-{width})/2", f"(in_h-{height})/2"],
            ),
        ],
        output=f"v{index}",
    )


def _crossfade_node(left: str, right: str, duration: float, offset: float, output: str) -> FilterNode:
    return FilterNode(
        kind=NodeKind.CROSSFADE,
        inputs=[left, right],
        filters=[
            Filter(
                name="xfade",
                options=[
                    ("transition", "fade"),
                    ("duration", format_seconds(duration)),
                    ("offset", format_seconds(offset)),
                ],
            )
        ],
        output=output,
    )


def _drawtext_node(
    source: str,
    output: str,
    text: str,
    font_file: Optional[str],
    font_size: int,
    box_border: int,
    y_expr: str,
    window: tuple[float, float],
    shadow: bool,
) -> FilterNode:
    options = [("text", f"'{escape_filter_text(text)}'")]
    if font_file:
        options.append(("fontfile", f"'{escape_filter_text(font_file)}'"))
    options += [
        ("fontcolor", "Lavender"),
        ("fontsize", str(font_size)),
        ("box", "1"),
        ("boxcolor", "black@0.4"),
        ("boxborderw", str(box_border)),
        ("x", "(w-text_w)/2"),
        ("y", y_expr),
    ]
    if shadow:
        options += [("shadowcolor", "black"), ("shadowx", "5"), ("shadowy", "5")]
    start, end = window
    options.append(("enable", f"'between(t,{format_seconds(start)},{format_seconds(end)})'"))
    return FilterNode(
        kind=NodeKind.TEXT_OVERLAY,
        inputs=[source],
        filters=[Filter(name="drawtext", options=options)],
        output=output,
    )


def build_graph(
    clip_count: int,
    title: str,
    crossfade_duration: float = DEFAULT_CROSSFADE,
    total_duration: float = DEFAULT_TOTAL_DURATION,
    *,
    font_file: Optional[str] = None,
    brand_caption: str = "American Short Story",
    width: int = 1080,
    height: int = 1920,
    max_clips: int = MAX_CHAIN_CLIPS,
) -> FilterGraphSpec:
    """
    Build the filter graph for a vertical cross-faded short.

    Args:
        clip_count: Number of input clips available (capped at ``max_clips``).
        title: Text of the animated title overlay.
        crossfade_duration: Cross-fade length in seconds.
        total_duration: Output length in seconds.
        font_file: Font for both overlays; omitted from the graph when None.
        brand_caption: Static caption drawn under the title.
        width: Output width.
        height: Output height.
        max_clips: Cap on chain length.

    Returns:
        FilterGraphSpec whose terminal pad is ``vfinal``.
    """
    plan = build_segment_plan(clip_count, crossfade_duration, total_duration, max_clips)
    count = len(plan.segments)

    nodes = [_preprocess_node(i, plan.segment_duration, width, height) for i in range(count)]

    current = "v0"
    for i in range(1, count):
        output = "vtmp" if i == count - 1 else f"vxf{i}"
        nodes.append(_crossfade_node(current, f"v{i}", crossfade_duration, plan.offsets[i], output))
        current = output

    nodes.append(
        _drawtext_node(
            current,
            "vtxt1",
            title,
            font_file,
            font_size=80,
            box_border=10,
            y_expr="h*0.28+sin(2*PI*t/3)*20",
            window=TITLE_WINDOW,
            shadow=True,
        )
    )
    nodes.append(
        _drawtext_node(
            "vtxt1",
            FINAL_LABEL,
            brand_caption,
            font_file,
            font_size=40,
            box_border=8,
            y_expr="h*0.28+100",
            window=CAPTION_WINDOW,
            shadow=True,
        )
    )

    return FilterGraphSpec(nodes=nodes, output=FINAL_LABEL, plan=plan)


# ============================================================================
# Serialization
# ============================================================================


def render_filter(f: Filter) -> str:
    params = list(f.args) + [f"{key}={value}" for key, value in f.options]
    return f"{f.name}={':'.join(params)}" if params else f.name


def render_node(node: FilterNode) -> str:
    pads_in = "".join(f"[{label}]" for label in node.inputs)
    chain = ",".join(render_filter(f) for f in node.filters)
    return f"{pads_in}{chain}[{node.output}]"


def render_graph(graph: FilterGraphSpec) -> list[str]:
    """One ffmpeg filter chain string per node, in graph order."""
    return [render_node(node) for node in graph.nodes]


def to_filter_complex(graph: FilterGraphSpec) -> str:
    return ";".join(render_graph(graph))
